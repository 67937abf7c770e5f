# FreeHand: Discovery - Data Models

from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass(frozen=True)
class ProcessCandidate:
    """A target process parsed from its command line.

    Recreated on every scan attempt; never cached between rounds.
    """

    pid: int
    auxiliary_port: int  # 0 when the port flag carries no value
    token: str


@dataclass(frozen=True)
class ConnectionDescriptor:
    """A verified (port, token) pair sufficient to open a control channel."""

    auxiliary_port: int
    control_port: int
    token: str

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if redact:
            data["token"] = self.token[:4] + "..." if self.token else ""
        return data
