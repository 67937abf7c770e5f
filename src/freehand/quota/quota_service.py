# FreeHand: Quota - Quota Service
#
# Periodic read of the user's remaining model quota from the language
# server (GetUserStatus on the verified control port). Runs as its own
# background task, independent of whether the automation is connected;
# a failed fetch yields a disconnected snapshot instead of an exception.

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TYPE_CHECKING

import httpx

from ..core import constants
from ..core.audit_log import EventSeverity, EventType
from ..discovery.models import ConnectionDescriptor
from .models import STATUS_CRITICAL, QuotaSnapshot, decode_user_status

if TYPE_CHECKING:
    from ..core.context import AppContext

logger = logging.getLogger(__name__)


class QuotaService:
    """Fetch and publish QuotaSnapshots.

    The descriptor is picked up from the context's connection_verified
    channel, or set explicitly with set_descriptor().

    Args:
        context: AppContext (settings for threshold and interval, audit
            log, quota_updated channel).
        client: Optional pre-built httpx.AsyncClient.
        scheme: "https" (default) or "http".
    """

    def __init__(
        self,
        context: "AppContext",
        client: Optional[httpx.AsyncClient] = None,
        scheme: str = "https",
        timeout: float = constants.QUOTA_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._context = context
        self._client = client
        self._owns_client = client is None
        self._scheme = scheme
        self._timeout = timeout
        self._sleep = sleep

        self._descriptor: Optional[ConnectionDescriptor] = None
        self._current = QuotaSnapshot.disconnected("Not refreshed yet")
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._subscription = context.events.connection_verified.subscribe(self.set_descriptor)

    @property
    def current(self) -> QuotaSnapshot:
        return self._current

    @property
    def descriptor(self) -> Optional[ConnectionDescriptor]:
        return self._descriptor

    def set_descriptor(self, descriptor: Optional[ConnectionDescriptor]) -> None:
        self._descriptor = descriptor

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(verify=False, timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        await self.stop()
        self._subscription.dispose()
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # ── Fetch ────────────────────────────────────────────────────────

    async def fetch(self, descriptor: ConnectionDescriptor) -> QuotaSnapshot:
        """One GetUserStatus round trip. Never raises."""
        warning_threshold = self._context.settings.load().warning_threshold
        url = (
            f"{self._scheme}://{constants.LOCALHOST}:{descriptor.control_port}"
            f"{constants.USER_STATUS_PATH}"
        )
        headers = {
            "Content-Type": "application/json",
            constants.TOKEN_HEADER: descriptor.token,
            constants.PROTOCOL_VERSION_HEADER: constants.PROTOCOL_VERSION,
        }
        body = {"metadata": dict(constants.QUOTA_CLIENT_METADATA)}

        try:
            resp = await self._get_client().post(url, json=body, headers=headers)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Quota fetch rejected: HTTP %d", exc.response.status_code)
            return QuotaSnapshot.disconnected(f"HTTP {exc.response.status_code}")
        except httpx.HTTPError as exc:
            logger.warning("Quota fetch failed: %s", exc)
            return QuotaSnapshot.disconnected(str(exc) or type(exc).__name__)
        except ValueError as exc:
            logger.warning("Quota response is not JSON: %s", exc)
            return QuotaSnapshot.disconnected("Invalid JSON response")

        return decode_user_status(payload, warning_threshold)

    async def refresh(self) -> QuotaSnapshot:
        """Fetch, store and publish a new snapshot."""
        if self._descriptor is None:
            snapshot = QuotaSnapshot.disconnected("No verified connection")
        else:
            snapshot = await self.fetch(self._descriptor)

        previous = self._current
        self._current = snapshot
        if snapshot.status != previous.status:
            logger.info("Quota status: %s (%s%%)", snapshot.status, snapshot.percentage)
            self._context.audit.log_event(
                event_type=EventType.QUOTA_UPDATED,
                severity=(
                    EventSeverity.ALERT if snapshot.status == STATUS_CRITICAL else EventSeverity.INFO
                ),
                message=f"Quota status {previous.status} -> {snapshot.status}",
                details=snapshot.to_dict(),
                source="quota",
            )
        self._context.events.quota_updated.emit(snapshot)
        return snapshot

    # ── Background loop ──────────────────────────────────────────────

    async def start(self):
        """Start the periodic refresh as a background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._refresh_loop())
        logger.info("Quota monitoring started")

    async def stop(self):
        """Stop the periodic refresh."""
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
        logger.info("Quota monitoring stopped")

    async def _refresh_loop(self):
        while self._running:
            try:
                await self.refresh()
            except Exception:
                logger.exception("Quota refresh cycle error")
            await self._sleep(self._context.settings.load().quota_refresh_interval)
