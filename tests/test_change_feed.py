import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.config import settings
from app.core.locks import KeyedLocks
from app.core.redis import RedisClient
from app.schemas.change import ChangeEvent, ChangeKind, ChangeTable
from app.services.change_feed import ChangeFeed


class RecordingConnection:
    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    async def publish(self, channel, message):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.published.append((channel, message))
        return 1


def token_event(doctor_id="d-1", kind=ChangeKind.INSERT):
    return ChangeEvent(
        table=ChangeTable.TOKENS,
        event=kind,
        record_id="t-1",
        record={"id": "t-1", "doctor_id": doctor_id, "status": "active"},
    )


@pytest.mark.asyncio
async def test_filtered_subscribers_only_see_matching_rows():
    feed = ChangeFeed()
    everything = feed.subscribe(ChangeTable.TOKENS)
    mine = feed.subscribe(ChangeTable.TOKENS, "doctor_id", "d-1")
    doctors = feed.subscribe(ChangeTable.DOCTORS)

    assert await feed.publish(token_event("d-2")) == 1
    assert await feed.publish(token_event("d-1")) == 2

    assert everything.queue.qsize() == 2
    assert (await mine.get()).record["doctor_id"] == "d-1"
    assert mine.queue.empty()
    assert doctors.queue.empty()


@pytest.mark.asyncio
async def test_filter_on_missing_field_matches_nothing():
    feed = ChangeFeed()
    subscription = feed.subscribe(ChangeTable.TOKENS, "patient_phone", "9876543210")
    assert await feed.publish(token_event()) == 0
    assert subscription.queue.empty()


@pytest.mark.asyncio
async def test_closed_subscription_stops_receiving():
    feed = ChangeFeed()
    with feed.subscribe(ChangeTable.TOKENS) as subscription:
        await feed.notify(ChangeTable.TOKENS, ChangeKind.UPDATE, {"id": "t-1", "doctor_id": "d-1"})
        event = await subscription.get()
        assert event.record_id == "t-1"

    assert subscription not in feed.subscriptions
    assert await feed.publish(token_event()) == 0
    assert [event async for event in subscription] == []


@pytest.mark.asyncio
async def test_publish_goes_through_redis_when_configured():
    connection = RecordingConnection()
    feed = ChangeFeed(RedisClient(connection=connection), channel="changes-test")
    local = feed.subscribe(ChangeTable.TOKENS)

    await feed.publish(token_event())

    # Local subscribers are fed by the relay, not by publish
    assert local.queue.empty()
    [(channel, message)] = connection.published
    assert channel == "changes-test"

    assert feed.relay(message) == 1
    relayed = local.queue.get_nowait()
    assert relayed == token_event()


@pytest.mark.asyncio
async def test_redis_failure_falls_back_to_local_delivery():
    feed = ChangeFeed(RedisClient(connection=RecordingConnection(fail=True)))
    local = feed.subscribe(ChangeTable.TOKENS)

    assert await feed.publish(token_event()) == 1
    assert local.queue.qsize() == 1


def test_relay_drops_malformed_messages():
    feed = ChangeFeed()
    feed.subscribe(ChangeTable.TOKENS)
    assert feed.relay("not json") == 0
    assert feed.relay('{"table": "patients", "event": "insert"}') == 0


def test_redis_disabled_without_url():
    assert not RedisClient(url="").enabled
    assert not ChangeFeed(RedisClient(url="")).uses_redis


@pytest.mark.asyncio
async def test_keyed_locks_serialize_one_key_only():
    locks = KeyedLocks()
    order = []
    release = asyncio.Event()

    async def hold(key, label):
        async with locks.hold(key):
            order.append(f"{label}-in")
            if label == "a1":
                await release.wait()
            order.append(f"{label}-out")

    first = asyncio.create_task(hold("a", "a1"))
    await asyncio.sleep(0)
    second = asyncio.create_task(hold("a", "a2"))
    other = asyncio.create_task(hold("b", "b1"))
    await other
    await asyncio.sleep(0)

    # b ran to completion while a1 still held "a", a2 is waiting
    assert order == ["a1-in", "b1-in", "b1-out"]
    assert "a" in locks and "b" not in locks

    release.set()
    await asyncio.gather(first, second)
    assert order[3:] == ["a1-out", "a2-in", "a2-out"]
    assert len(locks) == 0


class BrokenPubSub:
    def __init__(self, connection):
        self.connection = connection
        self.closed = False

    async def subscribe(self, channel):
        self.connection.subscribed.append(channel)

    async def listen(self):
        raise RedisConnectionError("Connection closed by server.")
        yield  # pragma: no cover

    async def aclose(self):
        self.closed = True


class BrokenRelayConnection(RecordingConnection):
    def __init__(self):
        super().__init__()
        self.subscribed = []
        self.pubsubs = []

    def pubsub(self, **kwargs):
        pubsub = BrokenPubSub(self)
        self.pubsubs.append(pubsub)
        return pubsub


def test_filter_needs_a_value():
    feed = ChangeFeed()
    with pytest.raises(ValueError):
        feed.subscribe(ChangeTable.TOKENS, "doctor_id")
    assert feed.subscriptions == set()


@pytest.mark.asyncio
async def test_drop_subscribers_ends_iteration():
    feed = ChangeFeed()
    subscription = feed.subscribe(ChangeTable.TOKENS)
    reader = asyncio.create_task(subscription.get())
    await asyncio.sleep(0)

    assert feed.drop_subscribers() == 1
    assert await reader is None
    assert feed.subscriptions == set()


@pytest.mark.asyncio
async def test_relay_reconnects_after_redis_errors(monkeypatch):
    monkeypatch.setattr(settings, "CHANGE_RELAY_RETRY_SECONDS", 0)
    connection = BrokenRelayConnection()
    feed = ChangeFeed(RedisClient(connection=connection), channel="changes-test")
    subscription = feed.subscribe(ChangeTable.TOKENS)

    await feed.start()
    for _ in range(100):
        if len(connection.pubsubs) >= 3:
            break
        await asyncio.sleep(0)

    # Still resubscribing, and existing subscribers were told to re-sync
    assert len(connection.pubsubs) >= 3
    assert not feed._listener.done()
    assert connection.subscribed[:3] == ["changes-test"] * 3
    assert all(p.closed for p in connection.pubsubs[:2])
    assert subscription.closed
    assert [event async for event in subscription] == []
    assert feed.subscriptions == set()

    await feed.stop()
    assert feed._listener is None


@pytest.mark.asyncio
async def test_stop_tolerates_a_failed_listener():
    feed = ChangeFeed(RedisClient(connection=RecordingConnection()))

    async def failed():
        raise RedisConnectionError("Connection closed by server.")

    feed._listener = asyncio.create_task(failed())
    await asyncio.sleep(0)

    await feed.stop()
    assert feed._listener is None
