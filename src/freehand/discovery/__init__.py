# FreeHand: Discovery Module
#
# Locates the target language server process and verifies its control
# port: ProcessLister -> PortScanner -> ConnectionProbe, orchestrated by
# ProcessHunter with a bounded-retry policy.

from .models import ConnectionDescriptor, ProcessCandidate
from .port_scanner import LsofPortScanner, PortScanner, PsutilPortScanner, filter_ports
from .probe import ConnectionProbe, HttpsConnectionProbe
from .process_hunter import PlatformCapabilities, ProcessHunter, create_platform_capabilities
from .process_lister import (
    ProcessLister,
    PsutilProcessLister,
    parse_candidate,
    target_process_name,
)

__all__ = [
    "ConnectionDescriptor",
    "ProcessCandidate",
    "ProcessLister",
    "PsutilProcessLister",
    "parse_candidate",
    "target_process_name",
    "PortScanner",
    "PsutilPortScanner",
    "LsofPortScanner",
    "filter_ports",
    "ConnectionProbe",
    "HttpsConnectionProbe",
    "ProcessHunter",
    "PlatformCapabilities",
    "create_platform_capabilities",
]
