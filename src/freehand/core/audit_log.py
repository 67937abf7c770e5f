# FreeHand: Core - Audit Logging
#
# Structured, append-only record of lifecycle and safety events:
# discovery outcomes, channel open/close, poll results, blocklist edits.
# Operational chatter stays on the stdlib module loggers; this log is the
# one a user reads to answer "what did the automation click, and why?".

import json
import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

import structlog

from .log_throttle import LogThrottler


class EventType(str, Enum):
    """
    Types of events recorded in the audit log.
    """
    # Discovery
    CONNECTION_VERIFIED = "discovery.verified"
    DISCOVERY_FAILED = "discovery.failed"

    # Control channel
    CHANNEL_OPENED = "channel.opened"
    CHANNEL_CLOSED = "channel.closed"
    CONNECTION_FAILED = "channel.failed"

    # Automation
    POLL_RESULT = "automation.poll"
    BUTTON_CLICKED = "automation.clicked"
    AUTOMATION_STARTED = "automation.started"
    AUTOMATION_STOPPED = "automation.stopped"

    # Safety
    BLOCKLIST_CHANGED = "safety.blocklist.changed"
    COMMAND_BLOCKED = "safety.command.blocked"

    # Quota / schedule
    QUOTA_UPDATED = "quota.updated"
    WAKE_CHANGED = "schedule.wake.changed"

    # System Events
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"


class EventSeverity(str, Enum):
    """
    Severity levels for audit events.

    - INFO: normal activity
    - INVESTIGATE: something unusual (discovery failed, channel dropped)
    - ALERT: the safety gate held back an action
    - CRITICAL: automation could not run at all
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only JSON-lines audit logger.

    One file per day (``audit_YYYY-MM-DD.log``) under ``log_dir``.
    Repeated identical messages are rate-limited through LogThrottler so a
    1 Hz poll loop reporting the same skip reason does not flood the file.
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        throttler: Optional[LogThrottler] = None,
    ):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
            throttler: Rate limiter for repeated messages
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.throttler = throttler or LogThrottler()

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )

        # One stdlib logger per instance so two contexts never share a file
        self._logger_name = f"freehand.audit.{uuid4().hex[:8]}"
        self._file_handler: Optional[logging.Handler] = None
        self._setup_file_handler()

        self.logger = structlog.get_logger(self._logger_name)

    @property
    def log_file(self) -> Path:
        today = datetime.now().strftime("%Y-%m-%d")
        return self.log_dir / f"audit_{today}.log"

    def _setup_file_handler(self):
        """Attach a file handler to the dedicated audit logger."""
        file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))

        audit_logger = logging.getLogger(self._logger_name)
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        # Keep JSON lines out of the console handlers on the root logger
        audit_logger.propagate = False
        self._file_handler = file_handler

    def close(self) -> None:
        """Detach and close the file handler."""
        if self._file_handler is not None:
            logging.getLogger(self._logger_name).removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        source: str = "system",
        throttle: bool = True,
    ) -> str:
        """
        Record an event.

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details
            source: Component that produced the event (throttling key)
            throttle: False for records that must never be collapsed

        Returns:
            str: Event ID (UUID), returned even when the line is throttled
        """
        event_id = str(uuid4())

        should_log, summary_msg = True, None
        if throttle:
            should_log, summary_msg = self.throttler.should_log(
                source=source,
                message=message,
                severity=severity.value,
            )

        if not should_log:
            if summary_msg:
                self.logger.info("throttle_summary", message=summary_msg)
            return event_id

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": source,
            "details": details or {},
            "context": self._get_default_context(),
        }

        if summary_msg:
            event_data["throttle_note"] = summary_msg

        self.logger.info("freehand_event", **event_data)

        return event_id

    def _get_default_context(self) -> Dict[str, Any]:
        """OS user, hostname, platform."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }

    def query_events(
        self,
        event_types: Optional[List[EventType]] = None,
        severity: Optional[EventSeverity] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Read back today's events, newest last.

        Args:
            event_types: Filter by event types
            severity: Filter by severity level
            limit: Maximum number of events to return
        """
        if self._file_handler is not None:
            self._file_handler.flush()
        if not self.log_file.exists():
            return []

        wanted_types = {t.value for t in event_types} if event_types else None
        events = []
        with open(self.log_file, "r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if record.get("event") != "freehand_event":
                    continue
                if wanted_types and record.get("event_type") not in wanted_types:
                    continue
                if severity and record.get("severity") != severity.value:
                    continue
                events.append(record)
        return events[-limit:]
