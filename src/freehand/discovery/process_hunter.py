# FreeHand: Discovery - Process Hunter
#
# Lister -> Scanner -> Probe, repeated for a bounded number of rounds.
# A round that finds nothing (no candidates, no ports, every probe
# refused, or a sub-step blew up) just falls through to the backoff; only
# running out of rounds is reported, and even that is non-fatal: the
# supervisor schedules another scan later.

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TYPE_CHECKING

from ..core import constants
from ..core.audit_log import EventSeverity, EventType
from ..core.exceptions import DiscoveryFailure
from .models import ConnectionDescriptor, ProcessCandidate
from .port_scanner import LsofPortScanner, PortScanner, PsutilPortScanner, filter_ports
from .probe import ConnectionProbe, HttpsConnectionProbe
from .process_lister import ProcessLister, PsutilProcessLister

if TYPE_CHECKING:
    from ..core.context import AppContext

logger = logging.getLogger(__name__)


@dataclass
class PlatformCapabilities:
    lister: ProcessLister
    scanner: PortScanner
    probe: ConnectionProbe


def create_platform_capabilities(system: Optional[str] = None) -> PlatformCapabilities:
    """Pick the lister/scanner/probe implementations for this OS, once."""
    system = system or sys.platform
    scanner: PortScanner = LsofPortScanner() if system == "darwin" else PsutilPortScanner()
    return PlatformCapabilities(
        lister=PsutilProcessLister(),
        scanner=scanner,
        probe=HttpsConnectionProbe(),
    )


class ProcessHunter:
    """Find and verify the target process's control endpoint.

    Args:
        lister: Process enumeration capability.
        scanner: Listening-port enumeration capability.
        probe: Verification capability.
        context: Optional AppContext for audit events and the
            connection_verified event channel.
        backoff: Seconds to wait between failed rounds.
    """

    def __init__(
        self,
        lister: ProcessLister,
        scanner: PortScanner,
        probe: ConnectionProbe,
        context: Optional["AppContext"] = None,
        backoff: float = constants.SCAN_BACKOFF,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.lister = lister
        self.scanner = scanner
        self.probe = probe
        self._context = context
        self._backoff = backoff
        self._sleep = sleep
        self.rounds_attempted = 0

    @classmethod
    def for_platform(cls, context: Optional["AppContext"] = None, **kwargs) -> "ProcessHunter":
        caps = create_platform_capabilities()
        return cls(caps.lister, caps.scanner, caps.probe, context=context, **kwargs)

    async def close(self) -> None:
        await self.probe.close()

    async def scan_environment(
        self, max_attempts: int = constants.DEFAULT_SCAN_ATTEMPTS
    ) -> Optional[ConnectionDescriptor]:
        """Run up to ``max_attempts`` discovery rounds.

        Returns:
            The first verified descriptor, or None after exhausting all rounds.
        """
        logger.info("Scanning for target process (max %d attempts)", max_attempts)
        self.rounds_attempted = 0

        for attempt in range(max_attempts):
            self.rounds_attempted += 1
            logger.debug("Scan attempt %d/%d", attempt + 1, max_attempts)

            try:
                descriptor = await self._scan_round()
            except Exception as exc:
                logger.warning("Scan attempt %d failed: %s", attempt + 1, exc)
                descriptor = None

            if descriptor is not None:
                logger.info("Verified connection on port %d", descriptor.control_port)
                self._record_verified(descriptor)
                return descriptor

            if attempt < max_attempts - 1:
                await self._sleep(self._backoff)

        logger.warning("No valid target process found after %d attempts", max_attempts)
        self._record_failure(max_attempts)
        return None

    async def require_environment(
        self, max_attempts: int = constants.DEFAULT_SCAN_ATTEMPTS
    ) -> ConnectionDescriptor:
        """Like scan_environment(), but raise DiscoveryFailure instead of returning None."""
        descriptor = await self.scan_environment(max_attempts)
        if descriptor is None:
            raise DiscoveryFailure(
                f"No verified target process after {max_attempts} attempt(s)"
            )
        return descriptor

    async def _scan_round(self) -> Optional[ConnectionDescriptor]:
        candidates = await self.lister.list_candidates()
        if not candidates:
            return None

        logger.info("Found %d candidate process(es)", len(candidates))
        for candidate in candidates:
            descriptor = await self._verify_candidate(candidate)
            if descriptor is not None:
                return descriptor
        return None

    async def _verify_candidate(self, candidate: ProcessCandidate) -> Optional[ConnectionDescriptor]:
        try:
            ports = filter_ports(await self.scanner.listening_ports(candidate.pid))
        except Exception as exc:
            logger.debug("Port scan for pid %d failed: %s", candidate.pid, exc)
            return None

        if not ports:
            logger.debug("Pid %d has no listening ports in range", candidate.pid)
            return None

        for port in ports:
            try:
                verified = await self.probe.verify(port, candidate.token)
            except Exception as exc:
                logger.debug("Probe on port %d raised: %s", port, exc)
                verified = False
            if verified:
                return ConnectionDescriptor(
                    auxiliary_port=candidate.auxiliary_port,
                    control_port=port,
                    token=candidate.token,
                )
        return None

    def _record_verified(self, descriptor: ConnectionDescriptor) -> None:
        if self._context is None:
            return
        self._context.audit.log_event(
            event_type=EventType.CONNECTION_VERIFIED,
            severity=EventSeverity.INFO,
            message=f"Verified target on port {descriptor.control_port}",
            details=descriptor.to_dict(),
            source="discovery",
        )
        self._context.events.connection_verified.emit(descriptor)

    def _record_failure(self, attempts: int) -> None:
        if self._context is None:
            return
        self._context.audit.log_event(
            event_type=EventType.DISCOVERY_FAILED,
            severity=EventSeverity.INVESTIGATE,
            message="No verified target process found",
            details={"attempts": attempts},
            source="discovery",
        )
