# FreeHand: Automation - Auto Clicker
#
# Background asyncio task that evaluates the decision routine in the
# target page once per poll interval and reports what it clicked.
#
# Every cycle reads a fresh Settings snapshot, so pattern and blocklist
# edits take effect on the next tick and never mid-cycle. A failing cycle
# is logged and swallowed; only stop() ends the loop.

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TYPE_CHECKING

from ..core import constants
from ..core.audit_log import EventSeverity, EventType
from ..core.config import Settings
from ..core.exceptions import EvaluationError, FreeHandError
from .decision_routine import DecisionRoutine
from .models import PollResult
from .safety_filter import resolve_blocklist

if TYPE_CHECKING:
    from ..cdp.channel import ControlChannel
    from ..core.context import AppContext

logger = logging.getLogger(__name__)


def build_routine(settings: Settings) -> DecisionRoutine:
    """Decision routine for one cycle, built from one settings snapshot."""
    return DecisionRoutine(
        accept_patterns=settings.accept_patterns,
        reject_patterns=settings.reject_patterns,
        blocklist=resolve_blocklist(settings.blocklist),
    )


class AutomationLoop:
    """Poll loop that drives the decision routine over a ControlChannel.

    Args:
        context: AppContext (settings, audit log, poll_result channel).
        channel: Open or soon-to-be-open ControlChannel. The loop never
            connects it; a dead channel makes the cycle report
            ``"disconnected"`` without issuing a call.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        context: "AppContext",
        channel: "ControlChannel",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._context = context
        self._channel = channel
        self._sleep = sleep
        self._running = False
        self._paused = False
        self._task: Optional[asyncio.Task] = None
        self._interval = constants.DEFAULT_POLL_INTERVAL

        self.cycles = 0
        self.failures = 0
        self.total_clicked = 0
        self.last_result: Optional[PollResult] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    def set_paused(self, paused: bool) -> None:
        """Paused cycles are skipped entirely (no call is issued)."""
        if paused != self._paused:
            logger.info("Automation loop %s", "paused" if paused else "resumed")
        self._paused = paused

    async def start(self):
        """Start the polling loop as a background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("Automation loop started")
        self._context.audit.log_event(
            event_type=EventType.AUTOMATION_STARTED,
            severity=EventSeverity.INFO,
            message="Automation started",
            source="automation",
        )

    async def stop(self, close_channel: bool = True):
        """Stop the polling loop; optionally close the channel as well.

        Once this returns no further call is issued by the loop.
        """
        was_running = self._running
        self._running = False
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if close_channel:
            await self._channel.close("automation stopped")
        if was_running:
            logger.info("Automation loop stopped")
            self._context.audit.log_event(
                event_type=EventType.AUTOMATION_STOPPED,
                severity=EventSeverity.INFO,
                message="Automation stopped",
                details={"cycles": self.cycles, "clicked": self.total_clicked},
                source="automation",
            )

    async def _poll_loop(self):
        """Main polling loop."""
        while self._running:
            if not self._paused:
                await self.poll_once()
            await self._sleep(self._interval)

    async def poll_once(self) -> Optional[PollResult]:
        """Run one cycle. Returns None when the cycle failed or was disabled."""
        try:
            result = await self._tick()
        except FreeHandError as exc:
            self.failures += 1
            logger.debug("Poll cycle failed: %s", exc)
            return None
        except Exception as exc:
            self.failures += 1
            logger.warning("Unexpected poll cycle error: %s", exc)
            return None

        if result is not None:
            self._report(result)
        return result

    async def _tick(self) -> Optional[PollResult]:
        settings = self._context.settings.load()
        self._interval = settings.poll_interval
        if not settings.enabled:
            return None

        self.cycles += 1
        if not self._channel.is_alive:
            return PollResult(skipped=constants.SKIP_DISCONNECTED)

        routine = build_routine(settings)
        response = await self._channel.call(
            constants.CDP_EVALUATE_METHOD,
            routine.to_evaluate_params(),
            timeout=settings.call_timeout,
        )

        details = response.get("exceptionDetails")
        if details:
            text = details.get("text") if isinstance(details, dict) else details
            raise EvaluationError(f"Decision routine threw: {text}")
        remote = response.get("result")
        if not isinstance(remote, dict):
            raise EvaluationError("Evaluation response has no result object")
        return PollResult.from_value(remote.get("value"))

    def _report(self, result: PollResult) -> None:
        self.last_result = result
        self.total_clicked += result.clicked
        audit = self._context.audit

        if result.clicked:
            logger.info("Clicked %d button(s)", result.clicked)
            audit.log_event(
                event_type=EventType.BUTTON_CLICKED,
                severity=EventSeverity.INFO,
                message=f"Clicked {result.clicked} button(s)",
                details=result.to_dict(),
                source="automation",
                throttle=False,
            )
        elif result.skipped:
            logger.debug("Nothing clicked: %s", result.skipped)
            audit.log_event(
                event_type=EventType.POLL_RESULT,
                severity=EventSeverity.INFO,
                message=f"Nothing clicked: {result.skipped}",
                details=result.to_dict(),
                source="automation",
            )

        if result.blocked:
            audit.log_event(
                event_type=EventType.COMMAND_BLOCKED,
                severity=EventSeverity.ALERT,
                message=f"Safety filter held back {result.blocked} command(s)",
                details=result.to_dict(),
                source="safety",
            )

        self._context.events.poll_result.emit(result)
