"""
Log throttling for FreeHand.

The poll loop reports an outcome every tick. Most ticks look identical
("no matching buttons"), so this module:
1. Deduplicates repeated messages per source
2. Backs off exponentially for persistent repeats
3. Periodically summarizes what was suppressed
"""

import hashlib
import re
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

_VARIABLE_PARTS = (re.compile(r'[a-f0-9]{8,}'), re.compile(r'\d+'))


@dataclass
class ThrottleState:
    """Track throttling state for a specific source/message combination."""
    last_logged: float
    suppressed_count: int
    message_hash: str
    backoff_multiplier: float = 1.0


class LogThrottler:
    """
    Rate limit and deduplicate log messages.

    Messages with severity "critical" or "alert" are never throttled.
    """

    def __init__(
        self,
        min_interval_seconds: float = 60.0,  # Min time between identical messages
        max_backoff_multiplier: float = 10.0,
        summary_interval_seconds: float = 300.0,
        clock=time.monotonic,
    ):
        self.min_interval = min_interval_seconds
        self.max_backoff = max_backoff_multiplier
        self.summary_interval = summary_interval_seconds
        self._clock = clock

        self.throttle_states: Dict[str, ThrottleState] = {}
        self.last_summary_time = clock()
        self.total_suppressed = 0

    def _get_message_hash(self, message: str) -> str:
        """Hash the message with counts and ids masked out."""
        normalized = message.lower()
        for pattern in _VARIABLE_PARTS:
            normalized = pattern.sub('X', normalized)
        return hashlib.md5(normalized.encode()).hexdigest()[:8]

    def should_log(
        self,
        source: str,
        message: str,
        severity: str = "info"
    ) -> Tuple[bool, Optional[str]]:
        """
        Check if a message should be logged or throttled.

        Returns:
            Tuple of (should_log, summary_message)
        """
        if severity.lower() in ("critical", "alert"):
            return True, None

        current_time = self._clock()
        message_hash = self._get_message_hash(message)
        key = f"{source}:{message_hash}"

        state = self.throttle_states.get(key)
        if state is None:
            self.throttle_states[key] = ThrottleState(
                last_logged=current_time,
                suppressed_count=0,
                message_hash=message_hash,
            )
            return True, None

        required_interval = self.min_interval * state.backoff_multiplier
        if current_time - state.last_logged < required_interval:
            state.suppressed_count += 1
            self.total_suppressed += 1

            if state.suppressed_count % 10 == 0:
                state.backoff_multiplier = min(
                    state.backoff_multiplier * 1.5,
                    self.max_backoff
                )
            return False, self._check_summary(current_time)

        suppressed_msg = None
        if state.suppressed_count > 0:
            suppressed_msg = (
                f"[Previously suppressed {state.suppressed_count} similar messages from {source}]"
            )

        state.last_logged = current_time
        state.suppressed_count = 0
        if state.backoff_multiplier > 1.0:
            state.backoff_multiplier = max(1.0, state.backoff_multiplier * 0.9)

        return True, suppressed_msg

    def _check_summary(self, current_time: float) -> Optional[str]:
        """Emit a summary of suppressed messages once per summary interval."""
        if current_time - self.last_summary_time < self.summary_interval:
            return None
        if self.total_suppressed == 0:
            return None

        top_offenders = sorted(
            [(k, v.suppressed_count) for k, v in self.throttle_states.items()
             if v.suppressed_count > 0],
            key=lambda x: x[1],
            reverse=True
        )[:5]

        summary_parts = [f"LOG THROTTLE SUMMARY: Suppressed {self.total_suppressed} messages"]
        for key, count in top_offenders:
            summary_parts.append(f"{key.split(':')[0]}: {count}")

        self.last_summary_time = current_time
        self.total_suppressed = 0
        for state in self.throttle_states.values():
            state.suppressed_count = 0

        return " | ".join(summary_parts)

