"""
Shared pytest fixtures for the FreeHand test suite.

Autouse fixtures below isolate tests from the live application data:
  - FREEHAND_* env vars -> removed       (a developer's shell cannot change defaults)
  - Default data dir    -> temp directory (prevents settings.db / audit logs in ./data)
"""

import asyncio
import json

import aiohttp
import pytest

from freehand.core.context import AppContext


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    for name in ("FREEHAND_POLL_INTERVAL", "FREEHAND_CDP_PORT", "FREEHAND_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _isolate_data_dir(tmp_path, monkeypatch):
    """Redirect the default data directory to a temp directory.

    Without this, any SettingsStore() or AppContext.create() built
    without an explicit path writes into the real ``./data/``.
    """
    import freehand.core.config as config_mod

    monkeypatch.setattr(config_mod, "DEFAULT_DATA_DIR", tmp_path / "default_data")
    import freehand.core.context as context_mod

    monkeypatch.setattr(context_mod, "DEFAULT_DATA_DIR", tmp_path / "default_data")


@pytest.fixture
def context(tmp_path):
    """A fresh AppContext rooted in the test's temp directory."""
    ctx = AppContext.create(tmp_path / "data")
    yield ctx
    ctx.close()


class FakeMessage:
    """Stand-in for aiohttp.WSMessage."""

    def __init__(self, data, type_=None):
        self.data = data
        self.type = type_ or aiohttp.WSMsgType.TEXT


class FakeWebSocket:
    """In-memory websocket: records sent frames, replays queued replies.

    Tests push replies with ``feed()``; ``auto_reply`` answers every
    request immediately with whatever the callable returns (None = no reply).
    """

    def __init__(self, auto_reply=None):
        self.sent = []
        self.closed = False
        self.auto_reply = auto_reply
        self._queue = asyncio.Queue()
        self.fail_send = False

    async def send_str(self, data):
        if self.fail_send or self.closed:
            raise ConnectionResetError("socket closed")
        message = json.loads(data)
        self.sent.append(message)
        if self.auto_reply is not None:
            reply = self.auto_reply(message)
            if reply is not None:
                self.feed(reply)

    def feed(self, payload):
        raw = payload if isinstance(payload, str) else json.dumps(payload)
        self._queue.put_nowait(FakeMessage(raw))

    def drop(self):
        """Simulate the remote end closing the connection."""
        self._queue.put_nowait(None)

    async def close(self):
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)

    def exception(self):
        return None

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._queue.get()
        if message is None:
            raise StopAsyncIteration
        return message


def runtime_reply(message, value=None):
    """Default CDP reply: empty result for Runtime.enable, ``value`` for evaluate."""
    if message["method"] == "Runtime.evaluate":
        return {"id": message["id"], "result": {"result": {"type": "object", "value": value}}}
    return {"id": message["id"], "result": {}}


@pytest.fixture
def make_ws():
    """Factory for FakeWebSocket instances."""
    return FakeWebSocket


@pytest.fixture
def cdp_reply():
    return runtime_reply
