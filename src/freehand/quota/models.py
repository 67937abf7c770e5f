# FreeHand: Quota - Data Models
#
# Decoding of the language server's GetUserStatus response into an
# immutable QuotaSnapshot. Decoding is lenient: missing numbers become
# zero, missing strings become empty, an unparseable reset time becomes
# "24 hours from now".

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..core import constants

STATUS_OK = "ok"
STATUS_WARNING = "warning"
STATUS_CRITICAL = "critical"
STATUS_UNKNOWN = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def parse_reset_time(raw: Any, now: Optional[datetime] = None) -> datetime:
    """Parse an ISO 8601 timestamp; fall back to now + 24h."""
    now = now or _utcnow()
    fallback = now + timedelta(hours=constants.DEFAULT_RESET_HOURS)
    if not isinstance(raw, str) or not raw:
        return fallback
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_duration(seconds: float) -> str:
    """Render a countdown like "3h 12m" or "45m"."""
    if seconds <= 0:
        return "now"
    minutes = int(seconds // 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def quota_status(
    percentage: Optional[float],
    warning_threshold: float = constants.DEFAULT_WARNING_THRESHOLD,
    critical_threshold: float = constants.CRITICAL_THRESHOLD,
) -> str:
    if percentage is None:
        return STATUS_UNKNOWN
    if percentage <= critical_threshold:
        return STATUS_CRITICAL
    if percentage <= warning_threshold:
        return STATUS_WARNING
    return STATUS_OK


@dataclass(frozen=True)
class ModelQuota:
    label: str
    model_id: str
    remaining_fraction: float  # clamped to [0, 1]
    reset_time: datetime

    @property
    def remaining_percentage(self) -> float:
        return round(self.remaining_fraction * 100, 1)

    @property
    def is_exhausted(self) -> bool:
        return self.remaining_fraction <= 0

    def time_until_reset(self, now: Optional[datetime] = None) -> float:
        return max(0.0, (self.reset_time - (now or _utcnow())).total_seconds())

    @classmethod
    def from_config(cls, config: Dict[str, Any], now: Optional[datetime] = None) -> "ModelQuota":
        quota_info = _as_dict(config.get("quotaInfo"))
        fraction = min(1.0, max(0.0, _as_float(quota_info.get("remainingFraction"))))
        return cls(
            label=str(config.get("label") or ""),
            model_id=str(_as_dict(config.get("modelOrAlias")).get("model") or ""),
            remaining_fraction=fraction,
            reset_time=parse_reset_time(quota_info.get("resetTime"), now),
        )

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        remaining = self.time_until_reset(now)
        return {
            "label": self.label,
            "model_id": self.model_id,
            "remaining_percentage": self.remaining_percentage,
            "is_exhausted": self.is_exhausted,
            "reset_time": self.reset_time.isoformat(),
            "time_until_reset": format_duration(remaining),
        }


@dataclass(frozen=True)
class UserInfo:
    name: str = ""
    email: str = ""
    plan_name: str = ""
    tier: str = ""
    monthly_prompt_credits: float = 0.0
    available_prompt_credits: float = 0.0

    @classmethod
    def from_status(cls, status: Dict[str, Any]) -> "UserInfo":
        plan_status = _as_dict(status.get("planStatus"))
        plan_info = _as_dict(plan_status.get("planInfo"))
        return cls(
            name=str(status.get("name") or ""),
            email=str(status.get("email") or ""),
            plan_name=str(plan_info.get("planName") or ""),
            tier=str(plan_info.get("teamsTier") or ""),
            monthly_prompt_credits=_as_float(plan_info.get("monthlyPromptCredits")),
            available_prompt_credits=_as_float(plan_status.get("availablePromptCredits")),
        )


@dataclass(frozen=True)
class QuotaSnapshot:
    """Point-in-time quota reading.

    ``percentage`` is the lowest remaining percentage across models, or the
    prompt-credit ratio when the server lists no models. It is None when
    nothing could be read.
    """

    timestamp: datetime
    is_connected: bool
    models: Tuple[ModelQuota, ...] = ()
    user: Optional[UserInfo] = None
    percentage: Optional[float] = None
    status: str = STATUS_UNKNOWN
    error_message: Optional[str] = None

    @classmethod
    def disconnected(cls, error_message: str, now: Optional[datetime] = None) -> "QuotaSnapshot":
        return cls(timestamp=now or _utcnow(), is_connected=False, error_message=error_message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "is_connected": self.is_connected,
            "percentage": self.percentage,
            "status": self.status,
            "plan": self.user.plan_name if self.user else None,
            "email": self.user.email if self.user else None,
            "models": [m.to_dict(self.timestamp) for m in self.models],
            "error": self.error_message,
        }


def decode_user_status(
    payload: Any,
    warning_threshold: float = constants.DEFAULT_WARNING_THRESHOLD,
    now: Optional[datetime] = None,
) -> QuotaSnapshot:
    """Turn a GetUserStatus response body into a QuotaSnapshot."""
    now = now or _utcnow()
    status = _as_dict(_as_dict(payload).get("userStatus"))
    if not status:
        return QuotaSnapshot.disconnected("Response carries no userStatus", now)

    user = UserInfo.from_status(status)
    configs = _as_dict(status.get("cascadeModelConfigData")).get("clientModelConfigs")
    models: List[ModelQuota] = [
        ModelQuota.from_config(c, now) for c in (configs or []) if isinstance(c, dict)
    ]

    percentage: Optional[float] = None
    if models:
        percentage = min(m.remaining_percentage for m in models)
    elif user.monthly_prompt_credits > 0:
        ratio = user.available_prompt_credits / user.monthly_prompt_credits
        percentage = round(min(1.0, max(0.0, ratio)) * 100, 1)

    return QuotaSnapshot(
        timestamp=now,
        is_connected=True,
        models=tuple(models),
        user=user,
        percentage=percentage,
        status=quota_status(percentage, warning_threshold),
    )
