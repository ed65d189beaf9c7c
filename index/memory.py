"""
In-memory store backends.

Implements the vector, record, cache and notification-history interfaces
with plain dictionaries and numpy cosine similarity. Used by the test suite
and for local development (STORE_BACKEND=memory, CACHE_BACKEND=memory).
"""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from api.models import (
    CandidateRecord,
    CandidateStatus,
    HybridFilters,
    NotificationRecord,
    OpportunityRecord,
    OpportunityStatus,
)

from .base import (
    Collection,
    as_utc,
    candidate_matches_filters,
    discrete_candidate_order,
    discrete_opportunity_order,
    meets_floor,
    opportunity_matches_filters,
)

logger = logging.getLogger(__name__)


def cosine_similarities(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of every row of ``matrix`` against ``query``.

    Zero vectors get similarity 0. Results are clipped to [0, 1].
    """
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / np.where(norms > 0, norms, 1.0), 0.0)
    return np.clip(sims, 0.0, 1.0)


class InMemoryStore:
    """Vector store and record store over in-process dictionaries."""

    def __init__(self):
        self.candidates: Dict[str, CandidateRecord] = {}
        self.opportunities: Dict[str, OpportunityRecord] = {}

    async def upsert_candidates(self, candidates: List[CandidateRecord]) -> int:
        for candidate in candidates:
            self.candidates[candidate.id] = candidate
        logger.info(f"Stored {len(candidates)} candidates in memory")
        return len(candidates)

    async def upsert_opportunities(
        self, opportunities: List[OpportunityRecord]
    ) -> int:
        for opportunity in opportunities:
            self.opportunities[opportunity.id] = opportunity
        logger.info(f"Stored {len(opportunities)} opportunities in memory")
        return len(opportunities)

    async def get_candidate(self, candidate_id: str) -> Optional[CandidateRecord]:
        return self.candidates.get(candidate_id)

    async def get_opportunity(
        self, opportunity_id: str
    ) -> Optional[OpportunityRecord]:
        return self.opportunities.get(opportunity_id)

    async def get_candidates(
        self, candidate_ids: Iterable[str]
    ) -> Dict[str, CandidateRecord]:
        return {
            cid: self.candidates[cid] for cid in candidate_ids if cid in self.candidates
        }

    async def get_opportunities(
        self, opportunity_ids: Iterable[str]
    ) -> Dict[str, OpportunityRecord]:
        return {
            oid: self.opportunities[oid]
            for oid in opportunity_ids
            if oid in self.opportunities
        }

    async def filter_candidates(
        self, filters: HybridFilters, limit: int
    ) -> List[CandidateRecord]:
        matches = [
            c
            for c in self.candidates.values()
            if c.status == CandidateStatus.ACTIVE
            and candidate_matches_filters(c, filters)
        ]
        matches.sort(key=discrete_candidate_order)
        return matches[:limit]

    async def filter_opportunities(
        self, filters: HybridFilters, limit: int
    ) -> List[OpportunityRecord]:
        matches = [
            o
            for o in self.opportunities.values()
            if o.status == OpportunityStatus.ACTIVE
            and opportunity_matches_filters(o, filters)
        ]
        matches.sort(key=discrete_opportunity_order)
        return matches[:limit]

    def _searchable(
        self, collection: Collection, filters: Optional[HybridFilters], dim: int
    ) -> List[Tuple[str, List[float]]]:
        if collection == Collection.CANDIDATES:
            return [
                (c.id, c.embedding)
                for c in self.candidates.values()
                if c.embedding
                and len(c.embedding) == dim
                and c.status == CandidateStatus.ACTIVE
                and candidate_matches_filters(c, filters)
            ]
        return [
            (o.id, o.embedding)
            for o in self.opportunities.values()
            if o.embedding
            and len(o.embedding) == dim
            and o.status == OpportunityStatus.ACTIVE
            and opportunity_matches_filters(o, filters)
        ]

    async def query(
        self,
        collection: Collection,
        embedding: Sequence[float],
        similarity_floor: float,
        limit: int,
        filters: Optional[HybridFilters] = None,
    ) -> List[Tuple[str, float]]:
        query_vector = np.asarray(embedding, dtype=np.float64)
        rows = self._searchable(collection, filters, len(query_vector))
        if not rows:
            return []

        ids = [entity_id for entity_id, _ in rows]
        matrix = np.asarray([vector for _, vector in rows], dtype=np.float64)
        sims = cosine_similarities(matrix, query_vector)

        hits = [
            (entity_id, float(sim))
            for entity_id, sim in zip(ids, sims)
            if meets_floor(sim, similarity_floor)
        ]
        hits.sort(key=lambda hit: (-hit[1], hit[0]))
        return hits[:limit]


class InMemoryCacheStore:
    """
    Dictionary cache with per-key expiry.

    Expired entries are kept until overwritten or deleted so callers can see
    that a key existed but went stale.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Tuple[Optional[str], bool]:
        entry = self._entries.get(key)
        if entry is None:
            return None, False
        value, expires_at = entry
        return value, self._clock() >= expires_at

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)


class InMemoryNotificationHistory:
    """Append-only list of sent notifications."""

    def __init__(self, records: Optional[List[NotificationRecord]] = None):
        self._records: List[NotificationRecord] = list(records or [])

    async def record(self, notification: NotificationRecord) -> None:
        self._records.append(notification)

    async def recent_recipients(
        self, candidate_ids: Iterable[str], since: datetime
    ) -> Set[str]:
        wanted = set(candidate_ids)
        since = as_utc(since)
        return {
            r.candidate_id
            for r in self._records
            if r.candidate_id in wanted and as_utc(r.sent_at) >= since
        }
