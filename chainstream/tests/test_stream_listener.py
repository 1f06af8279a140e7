"""Block stream listener tests"""

import asyncio
import json
from contextlib import asynccontextmanager

import pytest

from chainstream.ingestion.stream_listener import (
    SUBSCRIBE_REQUEST,
    BlockStreamListener,
    parse_block_number,
)


def head(number):
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "method": "eth_subscription",
            "params": {"subscription": "0xabc", "result": {"number": number, "hash": "0x" + "cd" * 32}},
        }
    )


class FakeSocket:
    def __init__(self, messages, hang=False):
        self.messages = list(messages)
        self.hang = hang
        self.sent = []

    async def send(self, message):
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.hang:
            await asyncio.Event().wait()


class FakeConnector:
    """Each call plays the next scripted session: an exception or a FakeSocket."""

    def __init__(self, *sessions):
        self.sessions = list(sessions)
        self.sockets = []
        self.calls = []

    @asynccontextmanager
    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        session = self.sessions.pop(0) if self.sessions else FakeSocket([], hang=True)
        if isinstance(session, BaseException):
            raise session
        self.sockets.append(session)
        yield session


@pytest.fixture
def created():
    return []


@pytest.fixture
def listener(store, created):
    return BlockStreamListener(
        store,
        created.append,
        ws_url="ws://node.test",
        reconnect_base=0,
        reconnect_max=0,
        connect=FakeConnector(),
    )


class TestHandleMessage:
    def test_subscription_confirmation_ignored(self, listener, store, created):
        assert listener.handle_message(json.dumps({"jsonrpc": "2.0", "id": 1, "result": "0xsub"})) is None
        assert listener.handle_message(json.dumps({"id": 1, "error": {"code": -32000}})) is None
        assert created == []
        assert store.count("block") == 0

    def test_hex_block_number_creates_block(self, listener, store, created):
        assert listener.handle_message(head("0x11a49a0")) == 18500000

        assert store.count("block") == 1
        assert [b.block_number for b in created] == [18500000]
        assert store.load_stream_checkpoint(listener.stream_name) == 18500000
        assert listener.last_block_number == 18500000

    def test_duplicate_header_fires_callback_once(self, listener, store, created):
        listener.handle_message(head("0x11a49a0"))
        assert listener.handle_message(head("0x11a49a0")) is None

        assert store.count("block") == 1
        assert len(created) == 1
        assert listener.blocks_created == 1

    def test_malformed_frames_are_ignored(self, listener, created):
        assert listener.handle_message("not json") is None
        assert listener.handle_message(json.dumps([1, 2])) is None
        assert listener.handle_message(head("0xzz")) is None
        assert listener.handle_message(json.dumps({"method": "eth_subscription", "params": {}})) is None
        assert created == []

    def test_gap_advances_checkpoint(self, listener, store):
        listener.handle_message(head("0x64"))
        listener.handle_message(head("0x6e"))
        listener.handle_message(head("0x65"))

        assert store.count("block") == 3
        assert store.load_stream_checkpoint(listener.stream_name) == 110
        assert listener.last_block_number == 110


@pytest.mark.parametrize(
    "value, expected",
    [("0x1", 1), ("0x11A49A0", 18500000), ("42", 42), (7, 7), ("", None), (None, None), ("0xnope", None)],
)
def test_parse_block_number(value, expected):
    assert parse_block_number(value) == expected


class TestConnectionLoop:
    @pytest.mark.asyncio
    async def test_reconnects_after_error_and_resubscribes(self, store, created):
        connector = FakeConnector(
            OSError("connection refused"),
            FakeSocket([head("0x1")]),
            FakeSocket([head("0x1"), head("0x2")], hang=True),
        )
        listener = BlockStreamListener(
            store, created.append, ws_url="ws://node.test", reconnect_base=0, reconnect_max=0, connect=connector
        )

        listener.start()
        try:
            for _ in range(200):
                if listener.blocks_created == 2 and listener.connected:
                    break
                await asyncio.sleep(0.01)
        finally:
            await listener.stop()

        assert [b.block_number for b in created] == [1, 2]
        assert listener.reconnects == 2
        assert all(sock.sent == [SUBSCRIBE_REQUEST] for sock in connector.sockets)
        assert connector.calls[0] == ("ws://node.test", {"ping_interval": 20, "ping_timeout": 20})
        assert listener.connected is False
        assert listener.running is False

    @pytest.mark.asyncio
    async def test_start_resumes_from_checkpoint(self, store, created):
        store.save_stream_checkpoint("ethereum_new_heads", 500)
        listener = BlockStreamListener(
            store, created.append, ws_url="ws://node.test", reconnect_base=0, reconnect_max=0, connect=FakeConnector()
        )

        listener.start()
        await listener.stop()

        assert listener.last_block_number == 500
