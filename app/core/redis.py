import redis.asyncio as redis
from app.core.config import settings

class RedisClient:
    def __init__(self, url: str | None = None, connection=None):
        self.url = url or settings.REDIS_URL
        self.redis = connection
        if self.redis is None and self.url:
            self.redis = redis.from_url(self.url, encoding="utf-8", decode_responses=True)

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def publish(self, channel: str, message: str) -> int:
        return await self.redis.publish(channel, message)

    def pubsub(self):
        return self.redis.pubsub(ignore_subscribe_messages=True)

    async def close(self):
        if self.redis is not None:
            await self.redis.aclose()

redis_client = RedisClient()
