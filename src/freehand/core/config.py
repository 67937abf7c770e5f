# FreeHand: Core - Settings
#
# SQLite key/value store holding JSON-encoded setting values, plus the
# typed Settings view the runtime reads. Follows the same per-operation
# connection pattern as the other stores (core.db connect helper).
#
# Runtime components never hold a Settings object across ticks: they call
# load() (or read a snapshot) at the start of each cycle, so an edit made
# by the CLI is observed at the next natural tick and never mid-cycle.

import json
import logging
import os
import re
import sqlite3
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from . import constants
from .events import EventChannel
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(os.environ.get("FREEHAND_DATA_DIR", "data"))

# Well-known setting keys
KEY_ENABLED = "automation.enabled"
KEY_POLL_INTERVAL = "automation.poll_interval"
KEY_ACCEPT_PATTERNS = "automation.accept_patterns"
KEY_REJECT_PATTERNS = "automation.reject_patterns"
KEY_BLOCKLIST = "safety.blocklist"
KEY_CDP_PORT = "cdp.port"
KEY_CALL_TIMEOUT = "cdp.call_timeout"
KEY_MAX_SCAN_ATTEMPTS = "discovery.max_attempts"
KEY_REDISCOVERY_DELAY = "discovery.rediscovery_delay"
KEY_QUOTA_REFRESH = "quota.refresh_interval"
KEY_WARNING_THRESHOLD = "quota.warning_threshold"
KEY_WAKE_ENABLED = "wake.enabled"
KEY_WAKE_START = "wake.start_time"
KEY_WAKE_END = "wake.end_time"
KEY_WAKE_DAYS = "wake.work_days"

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def _positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def _port(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= constants.MAX_PORT


def _percent(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and 0 <= value <= 100


def _string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _hhmm(value: Any) -> bool:
    return isinstance(value, str) and bool(_TIME_RE.match(value))


def _weekdays(value: Any) -> bool:
    return isinstance(value, list) and all(
        isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 6 for d in value
    )


_VALIDATORS: Dict[str, Callable[[Any], bool]] = {
    KEY_ENABLED: lambda v: isinstance(v, bool),
    KEY_POLL_INTERVAL: _positive_number,
    KEY_ACCEPT_PATTERNS: _string_list,
    KEY_REJECT_PATTERNS: _string_list,
    KEY_BLOCKLIST: _string_list,
    KEY_CDP_PORT: _port,
    KEY_CALL_TIMEOUT: _positive_number,
    KEY_MAX_SCAN_ATTEMPTS: lambda v: isinstance(v, int) and not isinstance(v, bool) and v >= 1,
    KEY_REDISCOVERY_DELAY: _positive_number,
    KEY_QUOTA_REFRESH: _positive_number,
    KEY_WARNING_THRESHOLD: _percent,
    KEY_WAKE_ENABLED: lambda v: isinstance(v, bool),
    KEY_WAKE_START: _hhmm,
    KEY_WAKE_END: _hhmm,
    KEY_WAKE_DAYS: _weekdays,
}

# Environment variable -> (key, parser)
_ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "FREEHAND_POLL_INTERVAL": (KEY_POLL_INTERVAL, float),
    "FREEHAND_CDP_PORT": (KEY_CDP_PORT, int),
}


@dataclass(frozen=True)
class Settings:
    """Typed, immutable view of every setting the runtime consumes."""

    enabled: bool = True
    poll_interval: float = constants.DEFAULT_POLL_INTERVAL
    accept_patterns: Tuple[str, ...] = constants.ACCEPT_PATTERNS
    reject_patterns: Tuple[str, ...] = constants.REJECT_PATTERNS
    # Empty means "use the built-in default blocklist"
    blocklist: Tuple[str, ...] = ()
    cdp_port: Optional[int] = constants.CDP_DEFAULT_PORT
    call_timeout: float = constants.DEFAULT_CALL_TIMEOUT
    max_scan_attempts: int = constants.DEFAULT_SCAN_ATTEMPTS
    rediscovery_delay: float = constants.DEFAULT_REDISCOVERY_DELAY
    quota_refresh_interval: float = constants.DEFAULT_QUOTA_REFRESH_INTERVAL
    warning_threshold: float = constants.DEFAULT_WARNING_THRESHOLD
    wake_enabled: bool = False
    wake_start_time: str = "09:00"
    wake_end_time: str = "18:00"
    wake_work_days: Tuple[int, ...] = (1, 2, 3, 4, 5)


# Settings field -> store key
_FIELD_KEYS: Dict[str, str] = {
    "enabled": KEY_ENABLED,
    "poll_interval": KEY_POLL_INTERVAL,
    "accept_patterns": KEY_ACCEPT_PATTERNS,
    "reject_patterns": KEY_REJECT_PATTERNS,
    "blocklist": KEY_BLOCKLIST,
    "cdp_port": KEY_CDP_PORT,
    "call_timeout": KEY_CALL_TIMEOUT,
    "max_scan_attempts": KEY_MAX_SCAN_ATTEMPTS,
    "rediscovery_delay": KEY_REDISCOVERY_DELAY,
    "quota_refresh_interval": KEY_QUOTA_REFRESH,
    "warning_threshold": KEY_WARNING_THRESHOLD,
    "wake_enabled": KEY_WAKE_ENABLED,
    "wake_start_time": KEY_WAKE_START,
    "wake_end_time": KEY_WAKE_END,
    "wake_work_days": KEY_WAKE_DAYS,
}


@dataclass(frozen=True)
class SettingChange:
    key: str
    value: Any


class SettingsStore:
    """SQLite key/value store for FreeHand settings.

    Args:
        db_path: Path to SQLite file. Defaults to data/settings.db.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_DATA_DIR / "settings.db"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.changed: EventChannel[SettingChange] = EventChannel("settings.changed")
        self._init_database()

    def _init_database(self):
        from .db import connect as db_connect

        with db_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        from .db import connect as db_connect

        return db_connect(self.db_path, row_factory=True)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a decoded setting value. Returns default if not set."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Ignoring undecodable value for setting %s", key)
            return default

    def set(self, key: str, value: Any) -> None:
        """Validate and store a setting value (upsert)."""
        validator = _VALIDATORS.get(key)
        if validator is None:
            raise ConfigurationError(f"Unknown setting: {key}")
        if isinstance(value, tuple):
            value = list(value)
        if not validator(value):
            raise ConfigurationError(f"Invalid value for {key}: {value!r}")

        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO settings (key, value, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = excluded.updated_at""",
                (key, json.dumps(value), now),
            )
            conn.commit()
        self.changed.emit(SettingChange(key=key, value=value))

    def delete(self, key: str) -> bool:
        """Delete a setting. Returns True if the key existed."""
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            conn.commit()
            existed = cur.rowcount > 0
        if existed:
            self.changed.emit(SettingChange(key=key, value=None))
        return existed

    def get_all(self) -> Dict[str, Any]:
        """Return all stored settings as a dict."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key, value FROM settings ORDER BY key"
            ).fetchall()
        result = {}
        for row in rows:
            try:
                result[row["key"]] = json.loads(row["value"])
            except json.JSONDecodeError:
                continue
        return result

    def toggle(self, key: str) -> bool:
        """Flip a boolean setting and return the new value."""
        current = self.get(key, key == KEY_ENABLED)
        new_value = not bool(current)
        self.set(key, new_value)
        return new_value

    def load(self) -> Settings:
        """Build an immutable Settings snapshot.

        Stored values that fail validation fall back to the default, and
        FREEHAND_* environment variables win over stored values.
        """
        stored = self.get_all()
        for env_name, (key, parser) in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                stored[key] = parser(raw)
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", env_name, raw)

        values = {}
        for f in fields(Settings):
            key = _FIELD_KEYS[f.name]
            if key not in stored:
                continue
            value = stored[key]
            if not _VALIDATORS[key](value):
                logger.warning("Ignoring invalid stored value for %s: %r", key, value)
                continue
            if isinstance(value, list):
                value = tuple(value)
            values[f.name] = value
        return Settings(**values)
