"""
Tests for the work-hours schedule.

2025-06-02 is a Monday. Default window is 09:00-18:00, Monday to Friday,
with both ends inclusive to the minute.
"""

import asyncio
from datetime import datetime

import pytest

from freehand.core.audit_log import EventType
from freehand.core.config import (
    KEY_WAKE_DAYS,
    KEY_WAKE_ENABLED,
    KEY_WAKE_END,
    KEY_WAKE_START,
    Settings,
)
from freehand.scheduler.wake_scheduler import (
    WakeScheduler,
    is_within_work_hours,
    next_transition,
    parse_hhmm,
    weekday_index,
)

SCHEDULE = Settings(wake_enabled=True)


def _at(day, hour, minute=0):
    return datetime(2025, 6, day, hour, minute)


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


async def _yield_sleep(seconds):
    await asyncio.sleep(0)


# ===================================================================
# TestWorkHours
# ===================================================================


class TestWorkHours:

    def test_parse_hhmm(self):
        assert parse_hhmm("7:05").hour == 7
        assert parse_hhmm("23:59").minute == 59

    def test_weekday_index_starts_on_sunday(self):
        assert weekday_index(_at(1, 12)) == 0
        assert weekday_index(_at(2, 12)) == 1
        assert weekday_index(_at(7, 12)) == 6

    def test_disabled_schedule_is_always_awake(self):
        assert is_within_work_hours(Settings(), _at(1, 3))

    @pytest.mark.parametrize("moment,expected", [
        (_at(2, 8, 59), False),
        (_at(2, 9, 0), True),
        (_at(2, 13, 30), True),
        (_at(2, 18, 0), True),
        (_at(2, 18, 1), False),
        (_at(7, 12, 0), False),
        (_at(1, 12, 0), False),
    ])
    def test_window_bounds(self, moment, expected):
        assert is_within_work_hours(SCHEDULE, moment) is expected

    def test_inverted_window_never_awake(self):
        settings = Settings(wake_enabled=True, wake_start_time="22:00", wake_end_time="06:00")
        assert not is_within_work_hours(settings, _at(2, 23))
        assert not is_within_work_hours(settings, _at(2, 3))


# ===================================================================
# TestNextTransition
# ===================================================================


class TestNextTransition:

    def test_sleep_starts_after_end_minute(self):
        assert next_transition(SCHEDULE, _at(2, 12)) == (_at(2, 18, 1), False)

    def test_next_morning(self):
        assert next_transition(SCHEDULE, _at(2, 20)) == (_at(3, 9), True)

    def test_skips_weekend(self):
        assert next_transition(SCHEDULE, _at(6, 19)) == (_at(9, 9), True)

    def test_disabled_schedule_never_changes(self):
        assert next_transition(Settings(), _at(2, 12)) is None

    def test_no_work_days_never_changes(self):
        assert next_transition(Settings(wake_enabled=True, wake_work_days=()), _at(2, 12)) is None

    def test_inverted_window_never_changes(self):
        settings = Settings(wake_enabled=True, wake_start_time="22:00", wake_end_time="06:00")
        assert next_transition(settings, _at(2, 12)) is None


# ===================================================================
# TestWakeScheduler
# ===================================================================


@pytest.fixture
def scheduled(context):
    context.settings.set(KEY_WAKE_ENABLED, True)
    context.settings.set(KEY_WAKE_START, "09:00")
    context.settings.set(KEY_WAKE_END, "18:00")
    context.settings.set(KEY_WAKE_DAYS, [1, 2, 3, 4, 5])
    return context


class TestWakeScheduler:

    def test_starts_awake(self, context):
        assert WakeScheduler(context).is_awake

    def test_check_publishes_changes_only(self, scheduled):
        changes = []
        scheduled.events.wake_changed.subscribe(changes.append)
        clock = _Clock(_at(2, 20))
        scheduler = WakeScheduler(scheduled, clock=clock)

        assert scheduler.check() is False
        assert scheduler.check() is False
        clock.now = _at(3, 9)
        assert scheduler.check() is True

        assert changes == [False, True]
        events = scheduled.audit.query_events(event_types=[EventType.WAKE_CHANGED])
        assert [e["details"]["awake"] for e in events] == [False, True]

    def test_settings_read_on_each_check(self, scheduled):
        scheduler = WakeScheduler(scheduled, clock=_Clock(_at(2, 20)))
        assert scheduler.check() is False

        scheduled.settings.set(KEY_WAKE_ENABLED, False)
        assert scheduler.check() is True

    def test_get_status_without_check(self, scheduled):
        scheduler = WakeScheduler(scheduled, clock=_Clock(_at(7, 12)))

        status = scheduler.get_status()
        assert status["is_awake"] is False
        assert status["next_wake"] == "2025-06-09T09:00"

    def test_get_status(self, scheduled):
        scheduler = WakeScheduler(scheduled, clock=_Clock(_at(2, 12)))
        scheduler.check()

        status = scheduler.get_status()
        assert status == {
            "is_awake": True,
            "next_wake": None,
            "next_sleep": "2025-06-02T18:01",
        }

    @pytest.mark.asyncio
    async def test_start_checks_immediately(self, scheduled):
        changes = []
        scheduled.events.wake_changed.subscribe(changes.append)
        scheduler = WakeScheduler(scheduled, clock=_Clock(_at(7, 12)), sleep=_yield_sleep)

        await scheduler.start()
        await scheduler.start()
        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.stop()
        await scheduler.stop()

        assert changes == [False]
        assert not scheduler.is_awake
