"""
Match orchestrator.

Composes retrieval, the eligibility filter, scoring, the match cache and
notification dedup into the public matching operations, and runs them in
batches with bounded parallelism, inter-group delay and cancellation.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from api.config import CacheBackend, MatchingConfig, StoreBackend
from api.errors import MatchingError, RetrievalTimeout, RetrievalUnavailable
from api.models import (
    BatchItemError,
    BatchSummary,
    CandidateRecord,
    FilterStats,
    HybridFilters,
    MatchCandidate,
    MatchIntent,
    MatchOpportunity,
    MatchReport,
    OpportunityRecord,
    QualityTier,
    ScoredMatch,
)
from index.memory import InMemoryCacheStore, InMemoryNotificationHistory, InMemoryStore
from index.redis_stores import (
    RedisCacheStore,
    RedisNotificationHistory,
    create_redis_client,
)
from index.weaviate_store import WeaviateStore

from .dedup import NotificationDeduplicator
from .eligibility import EligibilityFilter
from .match_cache import MatchCache
from .retrieval import VectorRetrievalService
from .scoring import ScoringEngine, rank_for_candidate, rank_for_opportunity

logger = logging.getLogger(__name__)

SIMILAR_CANDIDATES_LIMIT = 5
SIMILAR_OPPORTUNITIES_LIMIT = 5


def _at_least(matches: List[ScoredMatch], min_tier: Optional[QualityTier]):
    if min_tier is None:
        return matches
    return [m for m in matches if m.quality_tier.at_least(min_tier)]


class MatchOrchestrator:
    """Entry point for every matching operation."""

    def __init__(
        self,
        config: MatchingConfig,
        retrieval: VectorRetrievalService,
        cache: MatchCache,
        deduplicator: NotificationDeduplicator,
        eligibility: Optional[EligibilityFilter] = None,
        scoring: Optional[ScoringEngine] = None,
        on_startup: Optional[List[Callable[[], Awaitable[None]]]] = None,
        on_shutdown: Optional[List[Callable[[], Awaitable[None]]]] = None,
    ):
        self.config = config
        self.retrieval = retrieval
        self.cache = cache
        self.deduplicator = deduplicator
        self.eligibility = eligibility or EligibilityFilter(config.missing_visa_policy)
        self.scoring = scoring or ScoringEngine(config.weights, config.tiers)
        self._startup = list(on_startup or [])
        self._shutdown = list(on_shutdown or [])

    async def initialize(self) -> None:
        for hook in self._startup:
            await hook()

    async def close(self) -> None:
        for hook in self._shutdown:
            await hook()

    async def _call(self, operation: str, fn, *args, **kwargs):
        """
        Run a store call with a timeout, retrying transient failures.

        Timeouts and unavailable backends are retried with exponential
        backoff; anything else propagates immediately.
        """
        timeout = self.config.request_timeout_seconds
        attempts = self.config.retry_attempts

        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(fn(*args, **kwargs), timeout=timeout)
            except asyncio.TimeoutError:
                error = RetrievalTimeout(f"{operation} timed out after {timeout}s")
            except RetrievalUnavailable as e:
                error = e

            if attempt == attempts:
                logger.error(f"{operation} failed after {attempts} attempts: {error}")
                raise error

            delay = self.config.retry_backoff_seconds * (2 ** (attempt - 1))
            logger.warning(
                f"{operation} attempt {attempt}/{attempts} failed: {error}. "
                f"Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    async def _score_candidates(
        self, opportunity: OpportunityRecord
    ) -> Tuple[List[ScoredMatch], FilterStats]:
        retrieved = await self._call(
            "Candidate retrieval",
            self.retrieval.retrieve_for_opportunity,
            opportunity,
            self.config.min_similarity,
            self.config.max_candidates,
        )
        survivors, stats = self.eligibility.filter(retrieved, opportunity)
        scored = [
            self.scoring.score(match.candidate, opportunity, match.similarity)
            for match in survivors
        ]
        return rank_for_opportunity(scored), stats

    async def find_candidates_for_opportunity(
        self,
        opportunity_id: str,
        intent: MatchIntent = MatchIntent.PREVIEW,
        limit: Optional[int] = None,
        min_tier: Optional[QualityTier] = None,
    ) -> MatchReport:
        """
        Ranked candidates for an opportunity.

        Results are served through the match cache. With intent NOTIFY,
        candidates notified within the lookback window are removed after
        the cache, so previews and cached lists are never affected by dedup.

        Args:
            opportunity_id: Opportunity to match
            intent: PREVIEW to inspect, NOTIFY to contact
            limit: Maximum matches returned, applied last
            min_tier: Lowest quality tier to keep

        Returns:
            MatchReport with ranked matches and pipeline counts

        Raises:
            EntityNotFound: If the opportunity does not exist
            MissingEmbedding: If the opportunity has no embedding
        """
        opportunity = await self._call(
            "Opportunity lookup", self.retrieval.load_opportunity, opportunity_id
        )

        computed = {}

        async def compute() -> List[ScoredMatch]:
            matches, stats = await self._score_candidates(opportunity)
            computed["stats"] = stats
            return matches

        matches, from_cache = await self.cache.lookup_or_compute(
            opportunity_id, compute
        )
        matches = _at_least(matches, min_tier)

        removed = 0
        if intent == MatchIntent.NOTIFY:
            kept = await self._call(
                "Notification lookup", self.deduplicator.dedupe, matches
            )
            removed = len(matches) - len(kept)
            matches = kept

        if limit is not None:
            matches = matches[:limit]

        logger.info(
            f"Opportunity {opportunity_id}: {len(matches)} matches "
            f"(intent={intent.value}, cached={from_cache}, dedup_removed={removed})"
        )
        return MatchReport(
            matches=matches,
            from_cache=from_cache,
            filter_stats=computed.get("stats"),
            removed_by_dedup=removed,
        )

    async def find_opportunities_for_candidate(
        self,
        candidate_id: str,
        limit: Optional[int] = None,
        min_tier: Optional[QualityTier] = None,
    ) -> MatchReport:
        """Ranked opportunities for a candidate; never cached or deduped."""
        candidate = await self._call(
            "Candidate lookup", self.retrieval.load_candidate, candidate_id
        )
        retrieved = await self._call(
            "Opportunity retrieval",
            self.retrieval.retrieve_for_candidate,
            candidate,
            self.config.candidate_min_similarity,
            self.config.max_opportunities,
        )
        survivors, stats = self.eligibility.filter_opportunities(candidate, retrieved)
        scored = [
            self.scoring.score(candidate, match.opportunity, match.similarity)
            for match in survivors
        ]
        matches = _at_least(rank_for_candidate(scored), min_tier)
        if limit is not None:
            matches = matches[:limit]

        logger.info(f"Candidate {candidate_id}: {len(matches)} opportunity matches")
        return MatchReport(matches=matches, filter_stats=stats)

    async def find_similar_candidates(
        self, candidate_id: str, limit: Optional[int] = None
    ) -> List[MatchCandidate]:
        candidate = await self._call(
            "Candidate lookup", self.retrieval.load_candidate, candidate_id
        )
        return await self._call(
            "Similar candidate retrieval",
            self.retrieval.similar_candidates,
            candidate,
            0.0,
            limit or SIMILAR_CANDIDATES_LIMIT,
        )

    async def find_similar_opportunities(
        self, opportunity_id: str, limit: Optional[int] = None
    ) -> List[MatchOpportunity]:
        opportunity = await self._call(
            "Opportunity lookup", self.retrieval.load_opportunity, opportunity_id
        )
        return await self._call(
            "Similar opportunity retrieval",
            self.retrieval.similar_opportunities,
            opportunity,
            0.0,
            limit or SIMILAR_OPPORTUNITIES_LIMIT,
        )

    async def hybrid_search_candidates(
        self,
        filters: HybridFilters,
        opportunity_id: Optional[str] = None,
        min_similarity: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[MatchCandidate]:
        """
        Candidates matching discrete filters.

        With an opportunity id the results are ranked by similarity to its
        embedding; without one they come back in discrete order.
        """
        opportunity = None
        if opportunity_id is not None:
            opportunity = await self._call(
                "Opportunity lookup", self.retrieval.load_opportunity, opportunity_id
            )
        return await self._call(
            "Hybrid candidate search",
            self.retrieval.hybrid_candidates,
            filters,
            opportunity,
            self._hybrid_floor(min_similarity),
            limit or self.config.hybrid_search_limit,
        )

    async def hybrid_search_opportunities(
        self,
        filters: HybridFilters,
        candidate_id: Optional[str] = None,
        min_similarity: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[MatchOpportunity]:
        """
        Opportunities matching discrete filters, optionally ranked by a candidate.

        Raises:
            ValueError: If min_experience is set; postings carry no such field
        """
        if filters.min_experience is not None:
            raise ValueError("min_experience does not apply to opportunity search")

        candidate = None
        if candidate_id is not None:
            candidate = await self._call(
                "Candidate lookup", self.retrieval.load_candidate, candidate_id
            )
        return await self._call(
            "Hybrid opportunity search",
            self.retrieval.hybrid_opportunities,
            filters,
            candidate,
            self._hybrid_floor(min_similarity),
            limit or self.config.hybrid_search_limit,
        )

    def _hybrid_floor(self, min_similarity: Optional[float]) -> float:
        if min_similarity is None:
            return self.config.hybrid_min_similarity
        return min_similarity

    async def _run_batch(
        self,
        ids: List[str],
        worker: Callable[[str], Awaitable[List[ScoredMatch]]],
        cancel_event: Optional[asyncio.Event],
        label: str,
    ) -> BatchSummary:
        size = self.config.batch_size
        groups = [ids[i : i + size] for i in range(0, len(ids), size)]
        semaphore = asyncio.Semaphore(self.config.max_parallelism)
        summary = BatchSummary(total=len(ids))

        async def run_one(item_id: str):
            async with semaphore:
                try:
                    return item_id, await worker(item_id), None
                except MatchingError as e:
                    logger.warning(f"Batch {label} {item_id} failed: {e.message}")
                    return item_id, None, BatchItemError(
                        id=item_id, code=e.code, message=e.message
                    )
                except ValueError as e:
                    logger.warning(f"Batch {label} {item_id} rejected: {e}")
                    return item_id, None, BatchItemError(
                        id=item_id, code="VAL_INVALID_INPUT", message=str(e)
                    )
                except Exception as e:
                    logger.error(f"Batch {label} {item_id} failed unexpectedly: {e}")
                    return item_id, None, BatchItemError(
                        id=item_id, code="INTERNAL_ERROR", message=str(e)
                    )

        for index, group in enumerate(groups):
            if cancel_event is not None and cancel_event.is_set():
                summary.skipped = [item for rest in groups[index:] for item in rest]
                logger.info(
                    f"Batch {label} cancelled, skipping {len(summary.skipped)} ids"
                )
                break

            logger.info(
                f"Processing {label} group {index + 1}/{len(groups)} "
                f"({len(group)} ids)"
            )
            # Dispatched groups run to completion even if the caller is cancelled
            outcomes = await asyncio.shield(
                asyncio.gather(*(run_one(item_id) for item_id in group))
            )

            for item_id, matches, error in outcomes:
                if error is None:
                    summary.successful += 1
                    summary.results[item_id] = matches
                else:
                    summary.failed += 1
                    summary.errors.append(error)

            if index < len(groups) - 1 and self.config.batch_delay_seconds > 0:
                await asyncio.sleep(self.config.batch_delay_seconds)

        logger.info(
            f"Batch {label} complete: {summary.successful}/{summary.total} "
            f"succeeded, {summary.failed} failed, {len(summary.skipped)} skipped"
        )
        return summary

    async def match_opportunities_batch(
        self,
        opportunity_ids: List[str],
        intent: MatchIntent = MatchIntent.PREVIEW,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchSummary:
        """Match every opportunity; one failure never aborts the others."""

        async def worker(opportunity_id: str) -> List[ScoredMatch]:
            report = await self.find_candidates_for_opportunity(opportunity_id, intent)
            return report.matches

        return await self._run_batch(
            opportunity_ids, worker, cancel_event, "opportunities"
        )

    async def match_candidates_batch(
        self,
        candidate_ids: List[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchSummary:
        async def worker(candidate_id: str) -> List[ScoredMatch]:
            report = await self.find_opportunities_for_candidate(candidate_id)
            return report.matches

        return await self._run_batch(candidate_ids, worker, cancel_event, "candidates")

    async def invalidate_opportunity(self, opportunity_id: str) -> None:
        await self._call("Cache invalidation", self.cache.invalidate, opportunity_id)

    async def invalidate_all(self) -> int:
        return await self._call("Cache invalidation", self.cache.invalidate_all)

    async def ingest(
        self,
        opportunities: List[OpportunityRecord],
        candidates: List[CandidateRecord],
    ) -> Tuple[int, int]:
        """
        Load records into the record and vector stores.

        Re-ingesting an opportunity counts as a change event and drops its
        cached matches. Candidate updates leave the cache alone.
        """
        store = self.retrieval.record_store
        opportunities_loaded = 0
        candidates_loaded = 0

        if opportunities:
            opportunities_loaded = await self._call(
                "Opportunity ingest", store.upsert_opportunities, opportunities
            )
            for opportunity in opportunities:
                await self.invalidate_opportunity(opportunity.id)
        if candidates:
            candidates_loaded = await self._call(
                "Candidate ingest", store.upsert_candidates, candidates
            )

        return opportunities_loaded, candidates_loaded


def build_orchestrator(config: MatchingConfig) -> MatchOrchestrator:
    """
    Wire stores and services for the configured backends.

    Backend connections are opened by ``initialize`` and released by
    ``close`` on the returned orchestrator.
    """
    startup = []
    shutdown = []

    if config.store_backend == StoreBackend.WEAVIATE:
        store = WeaviateStore(config.weaviate_url)
        startup.append(store.initialize)

        async def close_store():
            store.close()

        shutdown.append(close_store)
    else:
        store = InMemoryStore()

    if config.cache_backend == CacheBackend.REDIS:
        client = create_redis_client(config.redis_url)
        cache_store = RedisCacheStore(client)
        history = RedisNotificationHistory(client)
        shutdown.append(client.aclose)
    else:
        cache_store = InMemoryCacheStore()
        history = InMemoryNotificationHistory()

    orchestrator = MatchOrchestrator(
        config=config,
        retrieval=VectorRetrievalService(store, store, config.vector_dimension),
        cache=MatchCache(cache_store, config.cache_ttl_seconds),
        deduplicator=NotificationDeduplicator(history, config.dedup_lookback_days),
        on_startup=startup,
        on_shutdown=shutdown,
    )

    logger.info(
        f"Built orchestrator: store={config.store_backend.value}, "
        f"cache={config.cache_backend.value}"
    )
    return orchestrator
