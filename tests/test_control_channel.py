"""
Tests for the CDP control channel.

Covers: strictly increasing ids, response correlation, unmatched and
malformed frames, per-call timeout that leaves the channel open, error
replies, close rejecting pending calls, remote disconnect, and the
/json bootstrap + Runtime.enable handshake.
"""

import asyncio

import pytest

from freehand.cdp.channel import CDPTarget, ControlChannel, select_page_target
from freehand.core.audit_log import EventType
from freehand.core.exceptions import (
    CallTimeout,
    ConnectionFailure,
    ProtocolError,
    RemoteCallError,
)
from freehand.discovery.models import ConnectionDescriptor

DESCRIPTOR = ConnectionDescriptor(auxiliary_port=41000, control_port=42100, token="tok")

PAGE_TARGETS = [
    {"id": "worker-1", "type": "service_worker", "title": "sw",
     "webSocketDebuggerUrl": "ws://127.0.0.1:9222/devtools/worker/1"},
    {"id": "page-1", "type": "page", "title": "Antigravity",
     "webSocketDebuggerUrl": "ws://127.0.0.1:9222/devtools/page/1"},
]


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self._payload = payload

    async def json(self, content_type=None):
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, ws, targets=PAGE_TARGETS, status=200):
        self.ws = ws
        self.targets = targets
        self.status = status
        self.closed = False
        self.requested = []
        self.ws_urls = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        return FakeResponse(self.status, self.targets)

    async def ws_connect(self, url):
        self.ws_urls.append(url)
        return self.ws

    async def close(self):
        self.closed = True


async def _open_channel(ws, context=None):
    channel = ControlChannel(context=context)
    channel._attach(ws, DESCRIPTOR)
    return channel


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestTargets:

    def test_prefers_page_target(self):
        targets = [CDPTarget.from_dict(t) for t in PAGE_TARGETS]
        assert select_page_target(targets).id == "page-1"

    def test_no_targets(self):
        assert select_page_target([]) is None


class TestCalls:

    @pytest.mark.asyncio
    async def test_ids_strictly_increase_from_one(self, make_ws, cdp_reply):
        ws = make_ws(auto_reply=cdp_reply)
        channel = await _open_channel(ws)

        for _ in range(3):
            await channel.call("Runtime.enable")

        assert [m["id"] for m in ws.sent] == [1, 2, 3]
        assert all(m["params"] == {} for m in ws.sent)
        await channel.close()

    @pytest.mark.asyncio
    async def test_out_of_order_responses_correlate(self, make_ws):
        ws = make_ws()
        channel = await _open_channel(ws)

        first = asyncio.create_task(channel.call("A"))
        second = asyncio.create_task(channel.call("B"))
        await _settle()
        ws.feed({"id": 2, "result": {"which": "B"}})
        ws.feed({"id": 1, "result": {"which": "A"}})

        assert (await first)["which"] == "A"
        assert (await second)["which"] == "B"
        assert channel.pending_count == 0
        await channel.close()

    @pytest.mark.asyncio
    async def test_unmatched_and_malformed_frames_discarded(self, make_ws):
        ws = make_ws()
        channel = await _open_channel(ws)

        call = asyncio.create_task(channel.call("A"))
        await _settle()
        ws.feed("not json")
        ws.feed([1, 2, 3])
        ws.feed({"method": "Runtime.consoleAPICalled", "params": {}})
        ws.feed({"id": 99, "result": {}})
        ws.feed({"id": 1, "result": {"ok": True}})

        assert await call == {"ok": True}
        assert channel.is_alive
        await channel.close()

    @pytest.mark.asyncio
    async def test_boolean_id_never_resolves_a_call(self, make_ws):
        ws = make_ws()
        channel = await _open_channel(ws)

        call = asyncio.create_task(channel.call("A"))
        await _settle()
        ws.feed({"id": True, "result": {"from": "bool"}})
        await _settle()
        assert not call.done()

        ws.feed({"id": 1, "result": {"from": "int"}})
        assert await call == {"from": "int"}
        await channel.close()

    @pytest.mark.asyncio
    async def test_timeout_keeps_channel_open(self, make_ws):
        ws = make_ws()
        channel = await _open_channel(ws)

        with pytest.raises(CallTimeout) as exc_info:
            await channel.call("Slow.method", timeout=0.01)

        assert exc_info.value.call_id == 1
        assert channel.is_alive
        assert channel.pending_count == 0

        # A late reply for the timed-out id is ignored; the next id is fresh
        ws.feed({"id": 1, "result": {}})
        ws.auto_reply = lambda m: {"id": m["id"], "result": {"n": m["id"]}}
        assert await channel.call("Next") == {"n": 2}
        await channel.close()

    @pytest.mark.asyncio
    async def test_error_reply_raises_remote_error(self, make_ws):
        ws = make_ws(auto_reply=lambda m: {"id": m["id"], "error": {"code": -32601, "message": "nope"}})
        channel = await _open_channel(ws)

        with pytest.raises(RemoteCallError, match="nope"):
            await channel.call("Bad.method")
        assert channel.is_alive
        await channel.close()

    @pytest.mark.asyncio
    async def test_malformed_result_raises_protocol_error(self, make_ws):
        ws = make_ws(auto_reply=lambda m: {"id": m["id"], "result": "string"})
        channel = await _open_channel(ws)

        with pytest.raises(ProtocolError):
            await channel.call("Odd.method")
        await channel.close()

    @pytest.mark.asyncio
    async def test_call_on_closed_channel_fails_fast(self):
        channel = ControlChannel()
        with pytest.raises(ConnectionFailure):
            await channel.call("Runtime.enable")


class TestClose:

    @pytest.mark.asyncio
    async def test_close_rejects_every_pending_call(self, make_ws):
        ws = make_ws()
        channel = await _open_channel(ws)

        calls = [asyncio.create_task(channel.call(f"M{i}")) for i in range(3)]
        await _settle()
        await channel.close("test over")

        for call in calls:
            with pytest.raises(ConnectionFailure):
                await call
        assert not channel.is_alive
        assert channel.descriptor is None
        assert ws.closed

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_emits_once(self, make_ws, context):
        reasons = []
        context.events.channel_closed.subscribe(reasons.append)
        channel = await _open_channel(make_ws(), context=context)

        await channel.close("first")
        await channel.close("second")

        assert reasons == ["first"]
        assert len(context.audit.query_events(event_types=[EventType.CHANNEL_CLOSED])) == 1

    @pytest.mark.asyncio
    async def test_remote_drop_marks_channel_dead(self, make_ws, context):
        reasons = []
        context.events.channel_closed.subscribe(reasons.append)
        ws = make_ws()
        channel = await _open_channel(ws, context=context)

        pending = asyncio.create_task(channel.call("A"))
        await _settle()
        ws.drop()
        await _settle()

        assert not channel.is_alive
        with pytest.raises(ConnectionFailure):
            await pending
        assert reasons == ["remote closed connection"]

    @pytest.mark.asyncio
    async def test_send_failure_marks_channel_dead(self, make_ws):
        ws = make_ws()
        ws.fail_send = True
        channel = await _open_channel(ws)

        with pytest.raises(ConnectionFailure):
            await channel.call("A")
        assert not channel.is_alive


class TestConnect:

    @pytest.mark.asyncio
    async def test_bootstrap_and_handshake(self, make_ws, cdp_reply, context):
        ws = make_ws(auto_reply=cdp_reply)
        session = FakeSession(ws)
        channel = ControlChannel(context=context, session=session, debug_port=9222)

        await channel.connect(DESCRIPTOR)

        assert channel.is_alive
        assert channel.descriptor == DESCRIPTOR
        assert session.requested == ["http://127.0.0.1:9222/json"]
        assert session.ws_urls == ["ws://127.0.0.1:9222/devtools/page/1"]
        assert ws.sent[0]["method"] == "Runtime.enable"
        assert ws.sent[0]["id"] == 1
        assert context.audit.query_events(event_types=[EventType.CHANNEL_OPENED])

        await channel.close()
        assert not session.closed

    @pytest.mark.asyncio
    async def test_falls_back_to_descriptor_port(self, make_ws, cdp_reply):
        session = FakeSession(make_ws(auto_reply=cdp_reply))
        channel = ControlChannel(session=session, debug_port=None)

        await channel.connect(DESCRIPTOR)

        assert session.requested == ["http://127.0.0.1:42100/json"]
        await channel.close()

    @pytest.mark.asyncio
    async def test_no_page_target_fails(self, make_ws):
        session = FakeSession(make_ws(), targets=[])
        channel = ControlChannel(session=session)

        with pytest.raises(ConnectionFailure):
            await channel.connect(DESCRIPTOR)
        assert not channel.is_alive

    @pytest.mark.asyncio
    async def test_bootstrap_http_error_fails(self, make_ws):
        session = FakeSession(make_ws(), status=500)
        channel = ControlChannel(session=session)

        with pytest.raises(ConnectionFailure):
            await channel.connect(DESCRIPTOR)

    @pytest.mark.asyncio
    async def test_handshake_error_leaves_channel_closed(self, make_ws):
        ws = make_ws(auto_reply=lambda m: {"id": m["id"], "error": {"message": "denied"}})
        channel = ControlChannel(session=FakeSession(ws))

        with pytest.raises(ConnectionFailure):
            await channel.connect(DESCRIPTOR)
        assert not channel.is_alive
        assert ws.closed
