# FreeHand: Automation - Safety Filter
#
# Blocklist of commands that must never be auto-executed.
#
# Pattern syntax:
#   rm -rf /        literal, matched as a case-insensitive substring
#   /rm\s+-rf/i     regular expression with JS-style flags (default "i"),
#                   tested against the raw command text
#
# A regex that fails to compile degrades to a literal match on its inner
# text instead of disabling the whole check.

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple, TYPE_CHECKING

from ..core import constants
from ..core.audit_log import EventSeverity, EventType
from ..core.config import KEY_BLOCKLIST

if TYPE_CHECKING:
    from ..core.audit_log import AuditLogger
    from ..core.config import SettingsStore

logger = logging.getLogger(__name__)

_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}
# Valid JS flags with no Python equivalent that matters for a single test()
_IGNORED_FLAGS = set("gyud")


@dataclass(frozen=True)
class BlockPattern:
    raw: str
    literal: str
    regex: Optional[Pattern] = None

    def matches(self, command: str) -> bool:
        if self.regex is not None:
            return self.regex.search(command) is not None
        return self.literal in command.lower()


def _compile_flags(flags: str) -> int:
    compiled = 0
    for flag in flags:
        if flag in _FLAG_MAP:
            compiled |= _FLAG_MAP[flag]
        elif flag not in _IGNORED_FLAGS:
            raise re.error(f"unknown regex flag {flag!r}")
    return compiled


def parse_pattern(raw: str) -> Optional[BlockPattern]:
    """Turn a blocklist entry into a BlockPattern. Blank entries yield None."""
    if not raw or not raw.strip():
        return None

    last_slash = raw.rfind("/")
    if raw.startswith("/") and last_slash > 0:
        inner = raw[1:last_slash]
        flags = raw[last_slash + 1:] or "i"
        try:
            return BlockPattern(raw=raw, literal=inner.lower(), regex=re.compile(inner, _compile_flags(flags)))
        except re.error as exc:
            logger.debug("Blocklist regex %r invalid (%s); using literal match", raw, exc)
            return BlockPattern(raw=raw, literal=inner.lower())

    return BlockPattern(raw=raw, literal=raw.strip().lower())


def is_command_blocked(command: str, patterns: Iterable[str]) -> bool:
    """Pure check of ``command`` against a list of blocklist entries."""
    if not command:
        return False
    for raw in patterns:
        pattern = parse_pattern(raw)
        if pattern is not None and pattern.matches(command):
            return True
    return False


def resolve_blocklist(configured: Optional[Sequence[str]]) -> Tuple[str, ...]:
    """Configured patterns when non-empty, otherwise the built-in defaults."""
    return tuple(configured) if configured else constants.DEFAULT_BLOCKLIST


class SafetyFilter:
    """Blocklist backed by the settings store.

    Configured patterns replace the built-in defaults entirely when the
    configured list is non-empty; the two are never merged.
    """

    def __init__(self, settings: "SettingsStore", audit: Optional["AuditLogger"] = None):
        self._settings = settings
        self._audit = audit

    def get_blocklist(self) -> List[str]:
        return list(resolve_blocklist(self._settings.get(KEY_BLOCKLIST)))

    def snapshot(self) -> Tuple[str, ...]:
        """Immutable copy for one poll cycle."""
        return tuple(self.get_blocklist())

    def is_blocked(self, command: str) -> bool:
        blocked = is_command_blocked(command, self.get_blocklist())
        if blocked:
            logger.info("Blocked command: %.80s", command)
        return blocked

    def add_pattern(self, pattern: str) -> bool:
        """Append a pattern. Returns False (no-op) if already present or blank."""
        if not pattern or not pattern.strip():
            return False
        current = self.get_blocklist()
        if pattern in current:
            return False
        self._settings.set(KEY_BLOCKLIST, current + [pattern])
        self._record_change("added", pattern)
        return True

    def remove_pattern(self, pattern: str) -> bool:
        """Remove a pattern. Returns False (no-op) if it was not present."""
        current = self.get_blocklist()
        if pattern not in current:
            return False
        self._settings.set(KEY_BLOCKLIST, [p for p in current if p != pattern])
        self._record_change("removed", pattern)
        return True

    def reset_blocklist(self) -> List[str]:
        """Drop the configured list so the defaults apply again."""
        if self._settings.delete(KEY_BLOCKLIST):
            self._record_change("reset", None)
        return self.get_blocklist()

    def _record_change(self, action: str, pattern: Optional[str]) -> None:
        if self._audit is None:
            return
        self._audit.log_event(
            event_type=EventType.BLOCKLIST_CHANGED,
            severity=EventSeverity.INFO,
            message=f"Blocklist {action}" + (f": {pattern}" if pattern else ""),
            details={"action": action, "pattern": pattern},
            source="safety",
        )
