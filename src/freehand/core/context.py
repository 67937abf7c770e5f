# FreeHand: Core - Application Context
#
# One AppContext is built by the top-level orchestrator (or a test) and
# passed explicitly to every component. There are no module-level
# singletons: two contexts in one process never share state.

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from .audit_log import AuditLogger
from .config import DEFAULT_DATA_DIR, SettingsStore
from .events import EventChannel


@dataclass
class AppEvents:
    """Every event channel the core emits on.

    Payload types:
        connection_verified: ConnectionDescriptor
        channel_closed: Optional[str] (close reason)
        poll_result: PollResult
        status_changed: AppStatus
        quota_updated: QuotaSnapshot
        wake_changed: bool
    """

    connection_verified: EventChannel[Any] = field(
        default_factory=lambda: EventChannel("connection_verified"))
    channel_closed: EventChannel[Optional[str]] = field(
        default_factory=lambda: EventChannel("channel_closed"))
    poll_result: EventChannel[Any] = field(
        default_factory=lambda: EventChannel("poll_result"))
    status_changed: EventChannel[Any] = field(
        default_factory=lambda: EventChannel("status_changed"))
    quota_updated: EventChannel[Any] = field(
        default_factory=lambda: EventChannel("quota_updated"))
    wake_changed: EventChannel[bool] = field(
        default_factory=lambda: EventChannel("wake_changed"))


@dataclass
class AppContext:
    settings: SettingsStore
    audit: AuditLogger
    events: AppEvents = field(default_factory=AppEvents)

    @classmethod
    def create(cls, data_dir: Optional[Union[str, Path]] = None) -> "AppContext":
        """Build a context rooted at ``data_dir`` (settings db + audit logs)."""
        root = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
        return cls(
            settings=SettingsStore(db_path=str(root / "settings.db")),
            audit=AuditLogger(log_dir=root / "audit_logs"),
        )

    def close(self) -> None:
        self.audit.close()
