import json

import anyio
import pytest
from websockets.exceptions import ConnectionClosedError, WebSocketException

from arplanes.ingestors.feed import (
    ConnectionState,
    FeedBatch,
    FeedClient,
    FeedParseError,
    ReconnectPolicy,
)
from arplanes.models.flight import GeoPosition

WATERLOO = GeoPosition(latitude=43.4729, longitude=-80.5402)
DAL137 = {"icao": "A1", "call": "DAL137", "lat": 44.4364, "lng": -80.4109, "alt": 10888.98}


class FakeSocket:
    def __init__(self, messages):
        self.messages = list(messages)
        self.sent: list[str] = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    async def send(self, message):
        self.sent.append(message)

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message


NO_RECONNECT = ReconnectPolicy(enabled=False)


@pytest.mark.anyio
async def test_feed_client_sends_location_and_forwards_batches():
    socket = FakeSocket([json.dumps([DAL137]), "not json", b"\x00\x01"])
    batches: list[FeedBatch] = []
    states: list[ConnectionState] = []
    errors: list[Exception] = []

    async def on_batch(batch):
        batches.append(batch)

    client = FeedClient(
        url="ws://feed.test",
        location=WATERLOO,
        on_batch=on_batch,
        on_state_change=states.append,
        on_error=errors.append,
        reconnect=NO_RECONNECT,
        connect=lambda url: socket,
    )

    with anyio.fail_after(5):
        await client.run()

    assert socket.sent == ["43.4729,-80.5402"]
    assert len(batches) == 2
    assert [record.icao for record in batches[0].records] == ["A1"]
    assert batches[1].records == []
    assert not batches[1].ok
    assert len(errors) == 1
    assert isinstance(errors[0], FeedParseError)
    assert states == [
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
    ]
    assert client.state == ConnectionState.DISCONNECTED


@pytest.mark.anyio
async def test_feed_client_sends_one_message_per_location_update():
    socket = FakeSocket([json.dumps([DAL137]), json.dumps([])])
    client: FeedClient

    async def on_batch(batch):
        if batch.records:
            await client.update_location(GeoPosition(latitude=44.0, longitude=-80.0))

    client = FeedClient(
        url="ws://feed.test",
        location=WATERLOO,
        on_batch=on_batch,
        reconnect=NO_RECONNECT,
        connect=lambda url: socket,
    )

    with anyio.fail_after(5):
        await client.run()

    assert socket.sent == ["43.4729,-80.5402", "44.0,-80.0"]


@pytest.mark.anyio
async def test_location_update_while_disconnected_is_sent_on_connect():
    socket = FakeSocket([])
    client = FeedClient(
        url="ws://feed.test", reconnect=NO_RECONNECT, connect=lambda url: socket
    )

    await client.update_location(WATERLOO)
    await client.update_location(GeoPosition(latitude=1.5, longitude=2.5))

    with anyio.fail_after(5):
        await client.run()

    assert socket.sent == ["1.5,2.5"]


@pytest.mark.anyio
async def test_feed_client_reconnects_with_backoff():
    attempts = {"count": 0}
    delays: list[float] = []
    errors: list[Exception] = []
    socket = FakeSocket([json.dumps([DAL137])])
    client: FeedClient

    def connect(url):
        attempts["count"] += 1
        if attempts["count"] <= 2:
            raise OSError("connection refused")
        return socket

    async def fake_sleep(delay):
        delays.append(delay)
        if len(delays) == 3:
            await client.stop()

    client = FeedClient(
        url="ws://feed.test",
        location=WATERLOO,
        on_error=errors.append,
        reconnect=ReconnectPolicy(initial_delay=1.0, multiplier=2.0, max_delay=60.0, jitter=0.0),
        connect=connect,
        sleep=fake_sleep,
    )

    with anyio.fail_after(5):
        await client.run()

    # Two refused attempts back off 1s then 2s; a clean close resets the backoff.
    assert delays == [1.0, 2.0, 1.0]
    assert attempts["count"] == 3
    assert len(errors) == 2
    assert socket.sent == ["43.4729,-80.5402"]


@pytest.mark.anyio
async def test_feed_client_gives_up_after_max_retries():
    delays: list[float] = []

    def connect(url):
        raise OSError("unreachable")

    async def fake_sleep(delay):
        delays.append(delay)

    client = FeedClient(
        url="ws://feed.test",
        reconnect=ReconnectPolicy(initial_delay=1.0, jitter=0.0, max_retries=3),
        connect=connect,
        sleep=fake_sleep,
    )

    with anyio.fail_after(5):
        await client.run()

    assert delays == [1.0, 2.0, 4.0]
    assert client.state == ConnectionState.DISCONNECTED


def test_reconnect_policy_caps_and_jitters():
    policy = ReconnectPolicy(initial_delay=1.0, multiplier=2.0, max_delay=60.0, jitter=0.5)

    assert policy.delay_for(1, rand=lambda: 0.0) == 1.0
    assert policy.delay_for(3, rand=lambda: 0.0) == 4.0
    assert policy.delay_for(3, rand=lambda: 1.0) == 6.0
    assert policy.delay_for(12, rand=lambda: 0.0) == 60.0
    assert policy.delay_for(12, rand=lambda: 1.0) == 90.0


def test_reconnect_policy_limits():
    assert ReconnectPolicy(max_retries=2).allows(2)
    assert not ReconnectPolicy(max_retries=2).allows(3)
    assert ReconnectPolicy(max_retries=None).allows(1000)
    assert not ReconnectPolicy(enabled=False).allows(1)


class ClosedOnSendSocket(FakeSocket):
    async def send(self, message):
        self.sent.append(message)
        if len(self.sent) > 1:
            raise ConnectionClosedError(None, None)


@pytest.mark.anyio
async def test_websocket_errors_are_reported_not_raised():
    socket = ClosedOnSendSocket([json.dumps([DAL137])])
    attempts = {"count": 0}
    delays: list[float] = []
    errors: list[Exception] = []
    client: FeedClient

    def connect(url):
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise WebSocketException("handshake rejected")
        return socket

    async def on_batch(batch):
        await client.update_location(GeoPosition(latitude=44.0, longitude=-80.0))

    async def fake_sleep(delay):
        delays.append(delay)
        if len(delays) == 2:
            await client.stop()

    client = FeedClient(
        url="ws://feed.test",
        location=WATERLOO,
        on_batch=on_batch,
        on_error=errors.append,
        reconnect=ReconnectPolicy(initial_delay=1.0, jitter=0.0, max_retries=3),
        connect=connect,
        sleep=fake_sleep,
    )

    with anyio.fail_after(5):
        await client.run()

    assert attempts["count"] == 2
    # The refused handshake backs off once; the clean close after the send
    # failure resets the backoff.
    assert delays == [1.0, 1.0]
    assert isinstance(errors[0], WebSocketException)
    assert isinstance(errors[1], ConnectionClosedError)
    assert socket.sent == ["43.4729,-80.5402", "44.0,-80.0"]
    assert client.state == ConnectionState.DISCONNECTED
