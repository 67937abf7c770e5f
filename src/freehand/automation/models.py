# FreeHand: Automation - Poll Result

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.exceptions import EvaluationError


@dataclass(frozen=True)
class PollResult:
    """Outcome of one poll cycle. Never persisted."""

    clicked: int = 0
    skipped: Optional[str] = None
    blocked: int = 0

    @classmethod
    def from_value(cls, value: Any) -> "PollResult":
        """Decode the ``{clicked, skipped, blocked}`` object the routine returns."""
        if not isinstance(value, dict):
            raise EvaluationError(f"Decision routine returned {type(value).__name__}, expected object")
        clicked = value.get("clicked", 0)
        if not isinstance(clicked, (int, float)) or isinstance(clicked, bool) or clicked < 0:
            raise EvaluationError(f"Invalid clicked count: {clicked!r}")
        skipped = value.get("skipped")
        blocked = value.get("blocked", 0)
        return cls(
            clicked=int(clicked),
            skipped=str(skipped) if skipped else None,
            blocked=int(blocked) if isinstance(blocked, (int, float)) and not isinstance(blocked, bool) else 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"clicked": self.clicked, "skipped": self.skipped, "blocked": self.blocked}
