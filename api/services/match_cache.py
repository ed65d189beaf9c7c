"""
Opportunity-scoped cache of scored match lists.

Entries are serialized CacheEntry models. An entry is either present and
fresh or treated as absent: expired, undecodable and unreadable entries all
count as misses. Recompute happens on TTL expiry or explicit invalidation
only; candidate profile edits do not invalidate.
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Tuple

from pydantic import ValidationError

from api.errors import RetrievalUnavailable
from api.models import CacheEntry, CacheStats, ScoredMatch
from index.base import CacheStore, as_utc, utcnow

logger = logging.getLogger(__name__)

CACHE_PREFIX = "matches"

ComputeFn = Callable[[], Awaitable[List[ScoredMatch]]]


class MatchCache:
    """Read-through cache keyed by opportunity id."""

    def __init__(
        self,
        store: CacheStore,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(opportunity_id: str) -> str:
        return f"{CACHE_PREFIX}:{opportunity_id}"

    async def get(self, opportunity_id: str) -> Optional[List[ScoredMatch]]:
        """Fresh cached matches, or None."""
        key = self.key(opportunity_id)
        try:
            raw, is_expired = await self.store.get(key)
        except RetrievalUnavailable as e:
            logger.error(f"[CACHE ERROR] Failed to get {key}: {e}")
            return None

        if raw is None:
            return None
        if is_expired:
            logger.info(f"[CACHE EXPIRED] {key}")
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"[CACHE CORRUPT] {key}: {e}")
            return None

        if as_utc(entry.expires_at) <= self._clock():
            logger.info(f"[CACHE EXPIRED] {key}")
            return None

        return entry.matches

    async def put(self, opportunity_id: str, matches: List[ScoredMatch]) -> None:
        key = self.key(opportunity_id)
        now = self._clock()
        entry = CacheEntry(
            opportunity_id=opportunity_id,
            matches=matches,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        try:
            await self.store.set(key, entry.model_dump_json(), self.ttl_seconds)
            logger.info(f"[CACHE SET] {key} (TTL: {self.ttl_seconds}s)")
        except RetrievalUnavailable as e:
            logger.error(f"[CACHE ERROR] Failed to set {key}: {e}")

    async def lookup_or_compute(
        self, opportunity_id: str, compute_fn: ComputeFn
    ) -> Tuple[List[ScoredMatch], bool]:
        """Like get_or_compute, also reporting whether it was a hit."""
        cached = await self.get(opportunity_id)
        if cached is not None:
            self.hits += 1
            logger.info(f"[CACHE HIT] {self.key(opportunity_id)}")
            return cached, True

        self.misses += 1
        logger.info(f"[CACHE MISS] {self.key(opportunity_id)}")
        matches = await compute_fn()
        await self.put(opportunity_id, matches)
        return matches, False

    async def get_or_compute(
        self, opportunity_id: str, compute_fn: ComputeFn
    ) -> List[ScoredMatch]:
        """
        Return cached matches, computing and storing them on a miss.

        Args:
            opportunity_id: Cache key
            compute_fn: Coroutine factory running retrieval, filter and scoring

        Returns:
            Ordered list of ScoredMatch
        """
        matches, _ = await self.lookup_or_compute(opportunity_id, compute_fn)
        return matches

    async def invalidate(self, opportunity_id: str) -> None:
        key = self.key(opportunity_id)
        await self.store.delete(key)
        logger.info(f"[CACHE DELETE] {key}")

    async def invalidate_all(self) -> int:
        removed = await self.store.delete_prefix(f"{CACHE_PREFIX}:")
        logger.info(f"[CACHE DELETE PATTERN] {CACHE_PREFIX}:* ({removed} keys)")
        return removed

    def stats(self) -> CacheStats:
        total = self.hits + self.misses
        hit_rate = (self.hits / total) * 100 if total > 0 else 0.0
        return CacheStats(
            hits=self.hits, misses=self.misses, hit_rate=round(hit_rate, 2)
        )

    def reset_stats(self) -> None:
        self.hits = 0
        self.misses = 0
