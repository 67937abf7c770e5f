# FreeHand: Discovery - Port Scanner
#
# Lists the TCP ports a process is listening on. psutil covers Linux and
# Windows; on macOS psutil needs root to read other processes' sockets,
# so lsof is used there instead.

import asyncio
import logging
import re
from typing import Iterable, List

import psutil

from ..core import constants

logger = logging.getLogger(__name__)

LSOF_TIMEOUT = 10.0  # seconds

_LSOF_LISTEN_RE = re.compile(r":(\d{1,5})\s+\(LISTEN\)")


def filter_ports(ports: Iterable[int]) -> List[int]:
    """Keep ports in (1024, 65535], deduplicated and ascending."""
    return sorted({
        p for p in ports
        if constants.MIN_PORT_EXCLUSIVE < p <= constants.MAX_PORT
    })


def parse_lsof_output(output: str) -> List[int]:
    """Extract listening ports from ``lsof -nP -iTCP -sTCP:LISTEN`` output."""
    return filter_ports(int(m) for m in _LSOF_LISTEN_RE.findall(output))


class PortScanner:
    """Capability: enumerate listening TCP ports for a pid."""

    async def listening_ports(self, pid: int) -> List[int]:
        raise NotImplementedError


class PsutilPortScanner(PortScanner):
    """Listening ports via psutil (Linux, Windows)."""

    def _scan(self, pid: int) -> List[int]:
        proc = psutil.Process(pid)
        # psutil >= 6 renamed connections() to net_connections()
        get_connections = getattr(proc, "net_connections", None) or proc.connections
        ports = []
        for conn in get_connections(kind="tcp"):
            if conn.status == psutil.CONN_LISTEN and conn.laddr:
                ports.append(conn.laddr.port)
        return filter_ports(ports)

    async def listening_ports(self, pid: int) -> List[int]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._scan, pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as exc:
            logger.debug("Cannot read sockets of pid %d: %s", pid, exc)
            return []


class LsofPortScanner(PortScanner):
    """Listening ports via lsof (macOS)."""

    async def listening_ports(self, pid: int) -> List[int]:
        try:
            proc = await asyncio.create_subprocess_exec(
                "lsof", "-nP", "-a", "-iTCP", "-sTCP:LISTEN", "-p", str(pid),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.warning("lsof unavailable: %s", exc)
            return []

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=LSOF_TIMEOUT)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("lsof timed out for pid %d", pid)
            return []

        return parse_lsof_output(stdout.decode("utf-8", errors="replace"))
