# FreeHand: Supervisor
#
# Top-level orchestrator. Owns one ProcessHunter, one ControlChannel, one
# AutomationLoop, the QuotaService and the WakeScheduler, all wired to a
# single AppContext.
#
# Connection supervisor, one task:
#   discover -> connect -> poll until the channel closes -> rediscover
#
# Discovery and polling never overlap: the automation loop is stopped
# (and the channel closed) before the next discovery round begins. Quota
# and schedule checks run as their own tasks and keep going while the
# supervisor is disconnected.

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, TYPE_CHECKING

from .automation.auto_clicker import AutomationLoop
from .cdp.channel import ControlChannel
from .core.audit_log import EventSeverity, EventType
from .core.events import Subscription
from .core.exceptions import ConnectionFailure, DiscoveryFailure
from .discovery.process_hunter import ProcessHunter
from .quota.quota_service import QuotaService
from .scheduler.wake_scheduler import WakeScheduler

if TYPE_CHECKING:
    from .core.context import AppContext

logger = logging.getLogger(__name__)


class AppStatus(str, Enum):
    STOPPED = "stopped"
    DISCOVERING = "discovering"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    SLEEPING = "sleeping"


class FreeHandApp:
    """Run the whole automation against one AppContext.

    Every collaborator can be injected; the defaults are the platform
    implementations.
    """

    def __init__(
        self,
        context: "AppContext",
        hunter: Optional[ProcessHunter] = None,
        channel: Optional[ControlChannel] = None,
        quota: Optional[QuotaService] = None,
        scheduler: Optional[WakeScheduler] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = context.settings.load()
        self.context = context
        self.hunter = hunter or ProcessHunter.for_platform(context)
        self.channel = channel or ControlChannel(
            context,
            debug_port=settings.cdp_port,
            handshake_timeout=settings.call_timeout,
        )
        self.automation = AutomationLoop(context, self.channel, sleep=sleep)
        self.quota = quota or QuotaService(context)
        self.scheduler = scheduler or WakeScheduler(context)
        self._sleep = sleep

        self._status = AppStatus.STOPPED
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._lost: Optional[asyncio.Event] = None
        self._woken: Optional[asyncio.Event] = None
        self._subscriptions: List[Subscription] = []

    @property
    def status(self) -> AppStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._running

    def _set_status(self, status: AppStatus) -> None:
        if status == self._status:
            return
        logger.info("Status: %s -> %s", self._status.value, status.value)
        self._status = status
        self.context.events.status_changed.emit(status)

    # ── Event handlers ───────────────────────────────────────────────

    def _on_channel_closed(self, reason: Optional[str]) -> None:
        self.quota.set_descriptor(None)
        if self._lost is not None:
            self._lost.set()

    def _on_wake_changed(self, awake: bool) -> None:
        if awake:
            if self._woken is not None:
                self._woken.set()
        elif self._lost is not None:
            self._lost.set()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self):
        """Start quota monitoring, the schedule and the connection supervisor."""
        if self._running:
            return
        self._running = True
        self._lost = asyncio.Event()
        self._woken = asyncio.Event()
        events = self.context.events
        self._subscriptions = [
            events.channel_closed.subscribe(self._on_channel_closed),
            events.wake_changed.subscribe(self._on_wake_changed),
        ]

        self.context.audit.log_event(
            event_type=EventType.SYSTEM_START,
            severity=EventSeverity.INFO,
            message="FreeHand starting",
            source="supervisor",
        )
        await self.scheduler.start()
        await self.quota.start()
        self._task = asyncio.create_task(self._supervise())

    async def stop(self):
        """Tear everything down. Safe to call more than once."""
        if not self._running:
            return
        self._running = False
        if self._lost is not None:
            self._lost.set()
        if self._woken is not None:
            self._woken.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self.automation.stop(close_channel=True)
        await self.quota.stop()
        await self.scheduler.stop()
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []
        self._set_status(AppStatus.STOPPED)

        self.context.audit.log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.INFO,
            message="FreeHand stopped",
            details={"cycles": self.automation.cycles, "clicked": self.automation.total_clicked},
            source="supervisor",
        )

    async def close(self):
        """stop() plus release of HTTP clients."""
        await self.stop()
        await self.quota.close()
        await self.hunter.close()

    # ── Connection supervisor ────────────────────────────────────────

    async def _supervise(self):
        while self._running:
            if not self.scheduler.is_awake:
                self._set_status(AppStatus.SLEEPING)
                self._woken.clear()
                if not self.scheduler.is_awake:
                    await self._woken.wait()
                continue

            if await self._connect_once():
                await self._lost.wait()
                await self.automation.stop(close_channel=True)
                if not self._running:
                    break
                if not self.scheduler.is_awake:
                    continue

            self._set_status(AppStatus.DISCONNECTED)
            delay = self.context.settings.load().rediscovery_delay
            logger.info("Rediscovering in %.0fs", delay)
            await self._sleep(delay)

    async def _connect_once(self) -> bool:
        """One discover + connect attempt. True when automation is running."""
        settings = self.context.settings.load()
        self._set_status(AppStatus.DISCOVERING)
        try:
            descriptor = await self.hunter.require_environment(settings.max_scan_attempts)
            self.quota.set_descriptor(descriptor)
            await self.channel.connect(descriptor)
        except (DiscoveryFailure, ConnectionFailure) as exc:
            logger.warning("Connection attempt failed: %s", exc)
            if isinstance(exc, ConnectionFailure):
                self.context.audit.log_event(
                    event_type=EventType.CONNECTION_FAILED,
                    severity=EventSeverity.INVESTIGATE,
                    message=f"Control channel connect failed: {exc}",
                    source="supervisor",
                )
            return False

        self._lost.clear()
        if not self.channel.is_alive:
            return False
        self._set_status(AppStatus.CONNECTED)
        await self.automation.start()
        return True
