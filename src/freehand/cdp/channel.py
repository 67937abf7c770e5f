# FreeHand: CDP - Control Channel
#
# One websocket to the target's debugger, many concurrent calls over it.
# Every call gets its own id and Future; a single reader task resolves
# Futures by id. Anything that arrives with an id nobody is waiting on
# (CDP notifications, answers to calls that already timed out) is dropped.
#
# The channel never reconnects on its own. When the transport dies it
# fails every pending call, forgets its descriptor, and fires
# channel_closed; the supervisor decides what happens next.

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import aiohttp

from ..core import constants
from ..core.audit_log import EventSeverity, EventType
from ..core.exceptions import (
    CallTimeout,
    ConnectionFailure,
    ProtocolError,
    RemoteCallError,
)
from ..discovery.models import ConnectionDescriptor

if TYPE_CHECKING:
    from ..core.context import AppContext

logger = logging.getLogger(__name__)

TARGETS_TIMEOUT = 5.0  # seconds


@dataclass(frozen=True)
class CDPTarget:
    id: str
    title: str
    type: str
    debugger_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CDPTarget":
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            type=str(data.get("type", "")),
            debugger_url=data.get("webSocketDebuggerUrl") or data.get("debuggerUrl"),
        )


def select_page_target(targets: List[CDPTarget]) -> Optional[CDPTarget]:
    """First target of type "page" that exposes a debugger URL."""
    for target in targets:
        if target.type == "page" and target.debugger_url:
            return target
    return None


class ControlChannel:
    """Multiplexed request/response channel over the CDP websocket.

    Args:
        context: Optional AppContext for audit events and channel_closed.
        session: Optional aiohttp.ClientSession (not closed by the channel).
        debug_port: Port serving ``/json``. When None the descriptor's
            control port is used.
        handshake_timeout: Timeout for the Runtime.enable handshake.
    """

    def __init__(
        self,
        context: Optional["AppContext"] = None,
        session: Optional[aiohttp.ClientSession] = None,
        debug_port: Optional[int] = constants.CDP_DEFAULT_PORT,
        handshake_timeout: float = constants.DEFAULT_CALL_TIMEOUT,
    ):
        self._context = context
        self._session = session
        self._owns_session = session is None
        self._debug_port = debug_port
        self._handshake_timeout = handshake_timeout

        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._alive = False
        self._descriptor: Optional[ConnectionDescriptor] = None
        self.target: Optional[CDPTarget] = None

    # ── State ────────────────────────────────────────────────────────

    @property
    def is_alive(self) -> bool:
        return self._alive

    @property
    def descriptor(self) -> Optional[ConnectionDescriptor]:
        return self._descriptor

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ── Session Management ───────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def fetch_targets(self, port: int) -> List[CDPTarget]:
        """GET /json on the debugger port and parse the target list."""
        session = await self._get_session()
        url = f"http://{constants.LOCALHOST}:{port}/json"
        try:
            async with session.get(
                url, timeout=aiohttp.ClientTimeout(total=TARGETS_TIMEOUT)
            ) as resp:
                if resp.status != 200:
                    raise ConnectionFailure(f"{url} answered HTTP {resp.status}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ConnectionFailure(f"Cannot list debugger targets at {url}: {exc}") from exc

        if not isinstance(data, list):
            raise ConnectionFailure(f"Unexpected target list from {url}")
        return [CDPTarget.from_dict(item) for item in data if isinstance(item, dict)]

    # ── Lifecycle ────────────────────────────────────────────────────

    async def connect(self, descriptor: ConnectionDescriptor) -> None:
        """Open the websocket and perform the Runtime.enable handshake.

        Raises:
            ConnectionFailure: no page target, transport refused, or the
                handshake failed. The channel is left closed.
        """
        if self._alive:
            await self.close("reconnecting")

        port = self._debug_port or descriptor.control_port
        targets = await self.fetch_targets(port)
        target = select_page_target(targets)
        if target is None:
            raise ConnectionFailure("No suitable CDP page target found")

        session = await self._get_session()
        try:
            ws = await session.ws_connect(target.debugger_url)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise ConnectionFailure(f"Websocket connect failed: {exc}") from exc

        self._attach(ws, descriptor, target)

        try:
            await self.call(constants.CDP_HANDSHAKE_METHOD, timeout=self._handshake_timeout)
        except Exception as exc:
            await self.close("handshake failed")
            raise ConnectionFailure(f"Handshake failed: {exc}") from exc

        logger.info("CDP connection established (%s)", target.title or target.id)
        if self._context is not None:
            self._context.audit.log_event(
                event_type=EventType.CHANNEL_OPENED,
                severity=EventSeverity.INFO,
                message=f"Control channel open on target {target.id}",
                details={"title": target.title, "port": port},
                source="channel",
            )

    def _attach(self, ws, descriptor: ConnectionDescriptor, target: Optional[CDPTarget] = None) -> None:
        """Adopt an open websocket and start the reader task."""
        self._ws = ws
        self._descriptor = descriptor
        self.target = target
        self._alive = True
        self._reader = asyncio.create_task(self._read_loop())

    async def close(self, reason: str = "closed by owner") -> None:
        """Close the transport and reject every pending call. Idempotent."""
        reader = self._reader
        self._reader = None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        await self._close_ws()
        self._mark_dead(reason)

        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _close_ws(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except Exception as exc:
                logger.debug("Error while closing websocket: %s", exc)

    def _mark_dead(self, reason: str) -> None:
        was_alive = self._alive
        self._alive = False
        self._descriptor = None

        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(ConnectionFailure(f"Channel closed: {reason}"))

        if not was_alive:
            return

        logger.info("Control channel closed: %s", reason)
        if self._context is not None:
            self._context.audit.log_event(
                event_type=EventType.CHANNEL_CLOSED,
                severity=EventSeverity.INVESTIGATE,
                message=f"Control channel closed: {reason}",
                details={"rejected_calls": len(pending)},
                source="channel",
            )
            self._context.events.channel_closed.emit(reason)

    # ── Calls ────────────────────────────────────────────────────────

    def _next_id(self) -> int:
        return next(self._ids)

    async def call(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: float = constants.DEFAULT_CALL_TIMEOUT,
    ) -> Dict[str, Any]:
        """Send one request and wait for its response.

        Raises:
            ConnectionFailure: channel not open, or it died mid-call.
            CallTimeout: no response within ``timeout``; the channel stays open.
            RemoteCallError: the remote side answered with an error.
            ProtocolError: the response could not be interpreted.
        """
        if not self._alive or self._ws is None:
            raise ConnectionFailure("Control channel is not connected")

        call_id = self._next_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[call_id] = future

        envelope = {"id": call_id, "method": method, "params": params or {}}
        try:
            await self._ws.send_str(json.dumps(envelope))
        except Exception as exc:
            self._pending.pop(call_id, None)
            await self._close_ws()
            self._mark_dead(f"send failed: {exc}")
            raise ConnectionFailure(f"Send failed: {exc}") from exc

        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise CallTimeout(method, call_id, timeout) from None
        finally:
            self._pending.pop(call_id, None)

    # ── Inbound ──────────────────────────────────────────────────────

    async def _read_loop(self) -> None:
        reason = "remote closed connection"
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self._dispatch(msg.data.decode("utf-8", errors="replace"))
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"transport error: {self._ws.exception()}"
                    break
                else:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = f"transport error: {exc}"

        self._reader = None
        await self._close_ws()
        self._mark_dead(reason)

    def _dispatch(self, raw: str) -> None:
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.debug("Discarding undecodable message: %.80s", raw)
            return
        if not isinstance(payload, dict):
            logger.debug("Discarding non-object message")
            return

        call_id = payload.get("id")
        if isinstance(call_id, bool) or not isinstance(call_id, int):
            return
        future = self._pending.get(call_id)
        if future is None or future.done():
            # Notification or a call that already timed out
            return

        if "error" in payload:
            error = payload["error"]
            if isinstance(error, dict):
                future.set_exception(RemoteCallError(str(error.get("message", "unknown error"))))
            else:
                future.set_exception(ProtocolError(f"Malformed error for id {call_id}"))
            return

        result = payload.get("result", {})
        if not isinstance(result, dict):
            future.set_exception(ProtocolError(f"Malformed result for id {call_id}"))
            return
        future.set_result(result)
