import asyncio
from typing import Any, Optional, Set

from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.logger import logger
from app.core.redis import RedisClient, redis_client
from app.schemas.change import ChangeEvent, ChangeKind, ChangeTable


class Subscription:
    """Queue of change events matching one table and optional field filter."""

    def __init__(self, feed: "ChangeFeed", table: ChangeTable, field: Optional[str] = None, value: Optional[Any] = None):
        self.feed = feed
        self.table = ChangeTable(table)
        self.field = field
        self.value = value
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def offer(self, event: ChangeEvent) -> bool:
        if self.closed or not event.matches(self.table, self.field, self.value):
            return False
        self.queue.put_nowait(event)
        return True

    async def get(self) -> ChangeEvent:
        return await self.queue.get()

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.feed.unsubscribe(self)
        # Wakes a reader blocked in get()
        self.queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        event = None if self.closed and self.queue.empty() else await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class ChangeFeed:
    """
    Notify-then-refetch channel for doctors and tokens.

    Events carry the table, the kind of change, and the changed row so
    filters like ``doctor_id=<id>`` can be applied; subscribers are expected
    to re-read current state rather than trust the payload. With Redis
    configured every publish goes through the pub/sub channel and each
    process relays it to its own subscribers.
    """

    def __init__(self, redis: Optional[RedisClient] = None, channel: Optional[str] = None):
        self.redis = redis
        self.channel = channel or settings.CHANGE_CHANNEL
        self.subscriptions: Set[Subscription] = set()
        self._listener: Optional[asyncio.Task] = None

    @property
    def uses_redis(self) -> bool:
        return self.redis is not None and self.redis.enabled

    def subscribe(self, table: ChangeTable, field: Optional[str] = None, value: Optional[Any] = None) -> Subscription:
        if field is not None and value is None:
            raise ValueError(f"Filter on {field} needs a value")
        subscription = Subscription(self, table, field, value)
        self.subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        self.subscriptions.discard(subscription)

    def dispatch(self, event: ChangeEvent) -> int:
        delivered = 0
        for subscription in list(self.subscriptions):
            if subscription.offer(event):
                delivered += 1
        return delivered

    async def publish(self, event: ChangeEvent) -> int:
        if self.uses_redis:
            try:
                return await self.redis.publish(self.channel, event.model_dump_json())
            except RedisError as exc:
                # Remote workers go stale until their clients re-fetch
                logger.warning(f"Change feed publish via Redis failed, delivering locally: {exc}")
        return self.dispatch(event)

    async def notify(self, table: ChangeTable, kind: ChangeKind, record: Optional[dict] = None) -> int:
        record_id = str(record["id"]) if record and "id" in record else None
        event = ChangeEvent(table=table, event=kind, record_id=record_id, record=record)
        return await self.publish(event)

    def drop_subscribers(self) -> int:
        """Close every local subscription so its client reconnects and re-syncs."""
        subscriptions = list(self.subscriptions)
        for subscription in subscriptions:
            subscription.close()
        return len(subscriptions)

    def relay(self, raw) -> int:
        try:
            event = ChangeEvent.model_validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning(f"Dropping malformed change message: {exc}")
            return 0
        return self.dispatch(event)

    async def listen(self):
        while True:
            try:
                await self._relay_from_redis()
            except RedisError as exc:
                # Events published while we were away are lost, so clients must re-sync
                dropped = self.drop_subscribers()
                logger.warning(
                    f"Change feed lost Redis channel {self.channel}: {exc}; "
                    f"dropped {dropped} subscribers, reconnecting in {settings.CHANGE_RELAY_RETRY_SECONDS}s"
                )
                await asyncio.sleep(settings.CHANGE_RELAY_RETRY_SECONDS)

    async def _relay_from_redis(self):
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            logger.info(f"Change feed relaying from Redis channel {self.channel}")
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                self.relay(message["data"])
        finally:
            await pubsub.aclose()

    async def start(self):
        if self.uses_redis and self._listener is None:
            self._listener = asyncio.create_task(self.listen())

    async def stop(self):
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except (asyncio.CancelledError, RedisError):
                pass
            self._listener = None


change_feed = ChangeFeed(redis_client)


def get_change_feed() -> ChangeFeed:
    return change_feed
