# FreeHand: Scheduler - Wake Scheduler
#
# Restricts automation to configured work hours. When the schedule is
# enabled, automation is awake only on the configured weekdays
# (0 = Sunday ... 6 = Saturday) between start and end time, both
# inclusive to the minute. Disabled schedule means always awake.
#
# Times are local wall-clock time.

import asyncio
import logging
from datetime import datetime, time, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TYPE_CHECKING

from ..core import constants
from ..core.audit_log import EventSeverity, EventType
from ..core.config import Settings

if TYPE_CHECKING:
    from ..core.context import AppContext

logger = logging.getLogger(__name__)


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def weekday_index(moment: datetime) -> int:
    """Day of week with 0 = Sunday."""
    return (moment.weekday() + 1) % 7


def is_within_work_hours(settings: Settings, now: datetime) -> bool:
    if not settings.wake_enabled:
        return True
    if weekday_index(now) not in settings.wake_work_days:
        return False
    current = now.hour * 60 + now.minute
    start = parse_hhmm(settings.wake_start_time)
    end = parse_hhmm(settings.wake_end_time)
    return start.hour * 60 + start.minute <= current <= end.hour * 60 + end.minute


def next_transition(settings: Settings, now: datetime) -> Optional[Tuple[datetime, bool]]:
    """Next moment the awake state flips, and the state it flips to.

    None when the state never changes (schedule disabled, no work days,
    or an empty window).
    """
    if not settings.wake_enabled:
        return None

    current = is_within_work_hours(settings, now)
    start = parse_hhmm(settings.wake_start_time)
    end = parse_hhmm(settings.wake_end_time)

    candidates = []
    for offset in range(8):
        day = now.date() + timedelta(days=offset)
        wake_at = datetime.combine(day, start, tzinfo=now.tzinfo)
        if weekday_index(wake_at) not in settings.wake_work_days:
            continue
        # End time is inclusive, so sleep starts one minute after it
        sleep_at = datetime.combine(day, end, tzinfo=now.tzinfo) + timedelta(minutes=1)
        candidates.extend((wake_at, sleep_at))

    for moment in sorted(candidates):
        if moment > now and is_within_work_hours(settings, moment) != current:
            return moment, not current
    return None


class WakeScheduler:
    """Background check that publishes awake/asleep transitions.

    Args:
        context: AppContext (settings snapshot, audit log, wake_changed).
        clock: Returns the current local time; injected for tests.
    """

    def __init__(
        self,
        context: "AppContext",
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        interval: float = constants.WAKE_CHECK_INTERVAL,
    ):
        self._context = context
        self._clock = clock
        self._sleep = sleep
        self._interval = interval
        self._awake = True
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_awake(self) -> bool:
        return self._awake

    def is_within_work_hours(self, now: Optional[datetime] = None) -> bool:
        return is_within_work_hours(self._context.settings.load(), now or self._clock())

    def next_transition(self, now: Optional[datetime] = None) -> Optional[Tuple[datetime, bool]]:
        return next_transition(self._context.settings.load(), now or self._clock())

    def check(self) -> bool:
        """Re-evaluate the schedule, publishing a change if there is one."""
        awake = self.is_within_work_hours()
        if awake != self._awake:
            self._awake = awake
            logger.info("Schedule check: %s", "AWAKE" if awake else "SLEEPING")
            self._context.audit.log_event(
                event_type=EventType.WAKE_CHANGED,
                severity=EventSeverity.INFO,
                message="Automation awake" if awake else "Automation asleep (outside work hours)",
                details={"awake": awake},
                source="scheduler",
            )
            self._context.events.wake_changed.emit(awake)
        return awake

    def get_status(self) -> Dict[str, Any]:
        now = self._clock()
        status: Dict[str, Any] = {
            "is_awake": self.is_within_work_hours(now),
            "next_wake": None,
            "next_sleep": None,
        }
        transition = self.next_transition(now)
        if transition is not None:
            moment, to_awake = transition
            status["next_wake" if to_awake else "next_sleep"] = moment.isoformat(timespec="minutes")
        return status

    async def start(self):
        if self._running:
            return
        self._running = True
        self.check()
        self._task = asyncio.create_task(self._check_loop())
        logger.info("Wake scheduler started")

    async def stop(self):
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Wake scheduler stopped")

    async def _check_loop(self):
        while self._running:
            await self._sleep(self._interval)
            try:
                self.check()
            except Exception:
                logger.exception("Schedule check error")
