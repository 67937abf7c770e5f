# FreeHand: Discovery - Process Lister
#
# Enumerates running processes with their full command lines and keeps
# only the target language server started for the right application.
# psutil does the platform work; only the executable name differs per OS.

import asyncio
import logging
import os
import platform
import re
import sys
from typing import Iterable, List, Optional

import psutil

from ..core import constants
from .models import ProcessCandidate

logger = logging.getLogger(__name__)

# A flag value may follow "=" or whitespace, and may be quoted
_VALUE_SEP = r"""(?:=|\s+)["']?"""

_PORT_RE = re.compile(re.escape(constants.PORT_FLAG) + _VALUE_SEP + r"(\d+)", re.IGNORECASE)
_TOKEN_RE = re.compile(re.escape(constants.TOKEN_FLAG) + _VALUE_SEP + r"([A-Za-z0-9-]+)", re.IGNORECASE)
_MARKER_RE = re.compile(
    re.escape(constants.MARKER_FLAG) + _VALUE_SEP + re.escape(constants.MARKER_VALUE) + r"\b",
    re.IGNORECASE,
)


def target_process_name(system: Optional[str] = None, machine: Optional[str] = None) -> str:
    """Return the language server executable name for this platform."""
    system = system or sys.platform
    machine = (machine or platform.machine()).lower()

    if system.startswith("win"):
        return constants.PROCESS_NAMES["windows"]
    if system == "darwin":
        if machine in ("arm64", "aarch64"):
            return constants.PROCESS_NAMES["darwin_arm"]
        return constants.PROCESS_NAMES["darwin_x64"]
    return constants.PROCESS_NAMES["linux"]


def is_target_command_line(cmdline: str) -> bool:
    """Both flags present plus the application marker argument."""
    if not cmdline:
        return False
    lowered = cmdline.lower()
    return (
        constants.PORT_FLAG in lowered
        and constants.TOKEN_FLAG in lowered
        and bool(_MARKER_RE.search(cmdline))
    )


def parse_candidate(pid: int, cmdline: str) -> Optional[ProcessCandidate]:
    """Parse a ProcessCandidate out of a command line.

    Returns None when the command line is not the target, or when the
    token flag carries no usable value. The token format is not validated
    further: the verification probe is the only judge.
    """
    if not is_target_command_line(cmdline):
        return None

    token_match = _TOKEN_RE.search(cmdline)
    if not token_match:
        return None

    port_match = _PORT_RE.search(cmdline)
    auxiliary_port = int(port_match.group(1)) if port_match else 0

    return ProcessCandidate(
        pid=pid,
        auxiliary_port=auxiliary_port,
        token=token_match.group(1),
    )


def _join_cmdline(parts: Iterable[str]) -> str:
    return " ".join(p for p in parts if p)


class ProcessLister:
    """Capability: list target processes as candidates."""

    async def list_candidates(self) -> List[ProcessCandidate]:
        raise NotImplementedError


class PsutilProcessLister(ProcessLister):
    """List target processes via psutil on any platform.

    Args:
        target_name: Executable name to match (case-insensitive).
    """

    def __init__(self, target_name: Optional[str] = None):
        self.target_name = (target_name or target_process_name()).lower()

    def _matches_name(self, name: str, exe: str) -> bool:
        if name and name.lower() == self.target_name:
            return True
        # Some platforms truncate the process name; fall back to the exe path
        return bool(exe) and os.path.basename(exe).lower() == self.target_name

    def _scan(self) -> List[ProcessCandidate]:
        candidates = []
        for proc in psutil.process_iter(["pid", "name", "exe", "cmdline"]):
            try:
                info = proc.info
                if not self._matches_name(info.get("name") or "", info.get("exe") or ""):
                    continue
                cmdline = _join_cmdline(info.get("cmdline") or [])
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

            candidate = parse_candidate(info["pid"], cmdline)
            if candidate:
                candidates.append(candidate)
            else:
                logger.debug("Process %s matched by name but not by arguments", info["pid"])
        return candidates

    async def list_candidates(self) -> List[ProcessCandidate]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._scan)
