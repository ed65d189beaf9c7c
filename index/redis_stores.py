"""
Redis-backed cache store and notification history.

The cache store relies on Redis key expiry: a key that is present is fresh.
Notification history keeps one sorted set per candidate, scored by the send
time, so "who was notified since X" is one ZCOUNT per candidate.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Set, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from api.errors import RetrievalUnavailable
from api.models import NotificationRecord

from .base import as_utc

logger = logging.getLogger(__name__)

NOTIFICATION_PREFIX = "notifications"


def create_redis_client(redis_url: str) -> redis.Redis:
    logger.info(f"Using REDIS_URL: {redis_url}")
    return redis.from_url(redis_url, decode_responses=True)


class RedisCacheStore:
    """Cache store on Redis with native TTL."""

    def __init__(self, client: redis.Redis):
        self.client = client

    async def get(self, key: str) -> Tuple[Optional[str], bool]:
        try:
            value = await self.client.get(key)
        except RedisError as e:
            raise RetrievalUnavailable(f"Redis get failed for {key}: {e}")
        return value, False

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise RetrievalUnavailable(f"Redis set failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            raise RetrievalUnavailable(f"Redis delete failed for {key}: {e}")

    async def delete_prefix(self, prefix: str) -> int:
        try:
            keys: List[str] = [
                key async for key in self.client.scan_iter(match=f"{prefix}*")
            ]
            if keys:
                await self.client.delete(*keys)
        except RedisError as e:
            raise RetrievalUnavailable(f"Redis delete failed for {prefix}*: {e}")
        return len(keys)


class RedisNotificationHistory:
    """Sorted set per candidate: member is opportunity|sent_at, score is epoch."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @staticmethod
    def _key(candidate_id: str) -> str:
        return f"{NOTIFICATION_PREFIX}:{candidate_id}"

    async def record(self, notification: NotificationRecord) -> None:
        sent_at = as_utc(notification.sent_at)
        member = f"{notification.opportunity_id}|{sent_at.isoformat()}"
        try:
            await self.client.zadd(
                self._key(notification.candidate_id), {member: sent_at.timestamp()}
            )
        except RedisError as e:
            raise RetrievalUnavailable(f"Redis notification write failed: {e}")

    async def recent_recipients(
        self, candidate_ids: Iterable[str], since: datetime
    ) -> Set[str]:
        ids = list(candidate_ids)
        if not ids:
            return set()

        since_ts = as_utc(since).timestamp()
        try:
            pipe = self.client.pipeline(transaction=False)
            for candidate_id in ids:
                pipe.zcount(self._key(candidate_id), since_ts, "+inf")
            counts = await pipe.execute()
        except RedisError as e:
            raise RetrievalUnavailable(f"Redis notification lookup failed: {e}")

        return {cid for cid, count in zip(ids, counts) if count}
