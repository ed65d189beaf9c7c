"""
Store interfaces used by the matching engine.

The engine only talks to these protocols, so it runs unchanged against the
in-memory stores (tests, local development) or the Weaviate and Redis
backends.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from api.models import (
    CandidateRecord,
    HybridFilters,
    NotificationRecord,
    OpportunityRecord,
)


class Collection(str, Enum):
    """Embedding collections; both share one dimensionality."""

    CANDIDATES = "candidates"
    OPPORTUNITIES = "opportunities"


class VectorStore(Protocol):
    async def query(
        self,
        collection: Collection,
        embedding: Sequence[float],
        similarity_floor: float,
        limit: int,
        filters: Optional[HybridFilters] = None,
    ) -> List[Tuple[str, float]]:
        """Return (id, similarity) for ACTIVE entities at or above the floor."""
        ...


class RecordStore(Protocol):
    async def get_candidate(self, candidate_id: str) -> Optional[CandidateRecord]:
        ...

    async def get_opportunity(
        self, opportunity_id: str
    ) -> Optional[OpportunityRecord]:
        ...

    async def get_candidates(
        self, candidate_ids: Iterable[str]
    ) -> Dict[str, CandidateRecord]:
        ...

    async def get_opportunities(
        self, opportunity_ids: Iterable[str]
    ) -> Dict[str, OpportunityRecord]:
        ...

    async def filter_candidates(
        self, filters: HybridFilters, limit: int
    ) -> List[CandidateRecord]:
        """ACTIVE candidates matching the filters, best profiles first."""
        ...

    async def filter_opportunities(
        self, filters: HybridFilters, limit: int
    ) -> List[OpportunityRecord]:
        """ACTIVE opportunities matching the filters, best paid first."""
        ...

    async def upsert_candidates(self, candidates: List[CandidateRecord]) -> int:
        ...

    async def upsert_opportunities(
        self, opportunities: List[OpportunityRecord]
    ) -> int:
        ...


class CacheStore(Protocol):
    async def get(self, key: str) -> Tuple[Optional[str], bool]:
        """Return (value, is_expired); (None, False) when absent."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def delete_prefix(self, prefix: str) -> int:
        ...


class NotificationHistory(Protocol):
    async def recent_recipients(
        self, candidate_ids: Iterable[str], since: datetime
    ) -> Set[str]:
        ...

    async def record(self, notification: NotificationRecord) -> None:
        ...


# Covers float32 rounding in vector stores; the floor is inclusive.
SIMILARITY_TOLERANCE = 1e-6


def meets_floor(similarity: float, floor: float) -> bool:
    return similarity >= floor - SIMILARITY_TOLERANCE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def normalize_terms(values: Optional[Iterable[str]]) -> Set[str]:
    """Case- and whitespace-insensitive set of labels."""
    if not values:
        return set()
    return {value.strip().lower() for value in values if value and value.strip()}


def candidate_matches_filters(
    candidate: CandidateRecord, filters: Optional[HybridFilters]
) -> bool:
    if filters is None:
        return True

    if filters.countries and not (
        normalize_terms(candidate.preferred_countries)
        & normalize_terms(filters.countries)
    ):
        return False

    if filters.subjects and not (
        normalize_terms(candidate.subjects) & normalize_terms(filters.subjects)
    ):
        return False

    if (
        filters.min_experience is not None
        and candidate.years_experience < filters.min_experience
    ):
        return False

    if (
        filters.max_salary is not None
        and candidate.min_salary
        and candidate.min_salary > filters.max_salary
    ):
        return False

    return True


def opportunity_matches_filters(
    opportunity: OpportunityRecord, filters: Optional[HybridFilters]
) -> bool:
    if filters is None:
        return True

    if filters.countries and (
        opportunity.target_country.strip().lower()
        not in normalize_terms(filters.countries)
    ):
        return False

    if filters.subjects and not (
        normalize_terms(opportunity.required_subjects)
        & normalize_terms(filters.subjects)
    ):
        return False

    if filters.max_salary is not None and opportunity.salary > filters.max_salary:
        return False

    return True


def discrete_candidate_order(candidate: CandidateRecord):
    """Sort key for discrete-only search: quality desc, experience desc, id."""
    return (
        -(candidate.profile_quality or 0),
        -candidate.years_experience,
        candidate.id,
    )


def discrete_opportunity_order(opportunity: OpportunityRecord):
    """Sort key for discrete-only search: salary desc, id."""
    return (-opportunity.salary, opportunity.id)
