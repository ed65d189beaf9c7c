"""Tests for the match orchestrator over the in-memory stores."""

import asyncio
from datetime import timedelta

import pytest

from api.errors import (
    EntityNotFound,
    MissingEmbedding,
    RetrievalTimeout,
    RetrievalUnavailable,
)
from api.models import (
    HybridFilters,
    MatchIntent,
    MatchReport,
    NotificationRecord,
    QualityTier,
)
from index.base import utcnow
from tests.helpers import vector_at


@pytest.fixture
def populated(seed, make_opportunity, make_candidate):
    seed(
        opportunities=[
            make_opportunity(id="opp_1"),
            make_opportunity(id="opp_2", salary=2600),
            make_opportunity(id="opp_no_vector", embedding=None),
        ],
        candidates=[
            make_candidate(id="alice", similarity=0.95, profile_quality=95),
            make_candidate(id="bob", similarity=0.9),
            make_candidate(id="carol", similarity=0.88, min_salary=2500),
            make_candidate(id="dave", similarity=0.5),
        ],
    )


@pytest.mark.asyncio
async def test_preview_returns_ranked_eligible_matches(orchestrator, populated):
    report = await orchestrator.find_candidates_for_opportunity("opp_1")

    # carol wants more than 2000, dave is below the similarity floor
    assert [m.candidate_id for m in report.matches] == ["alice", "bob"]
    assert not report.from_cache
    assert report.filter_stats.total == 3
    assert report.filter_stats.passed_salary == 2
    assert report.filter_stats.final == 2
    scores = [m.recommendation_score for m in report.matches]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_second_call_is_served_from_cache(orchestrator, populated):
    await orchestrator.find_candidates_for_opportunity("opp_1")
    report = await orchestrator.find_candidates_for_opportunity("opp_1")

    assert report.from_cache
    assert report.filter_stats is None
    assert orchestrator.cache.stats().hits == 1


@pytest.mark.asyncio
async def test_notify_drops_recently_notified(orchestrator, populated, history):
    await history.record(
        NotificationRecord(
            candidate_id="alice",
            opportunity_id="some_other_opp",
            sent_at=utcnow() - timedelta(days=2),
        )
    )

    preview = await orchestrator.find_candidates_for_opportunity(
        "opp_1", intent=MatchIntent.PREVIEW
    )
    notify = await orchestrator.find_candidates_for_opportunity(
        "opp_1", intent=MatchIntent.NOTIFY
    )

    assert [m.candidate_id for m in preview.matches] == ["alice", "bob"]
    assert [m.candidate_id for m in notify.matches] == ["bob"]
    assert notify.removed_by_dedup == 1
    # Dedup never touches the cached list
    again = await orchestrator.find_candidates_for_opportunity("opp_1")
    assert [m.candidate_id for m in again.matches] == ["alice", "bob"]


@pytest.mark.asyncio
async def test_limit_and_min_tier(orchestrator, populated):
    report = await orchestrator.find_candidates_for_opportunity("opp_1", limit=1)
    assert [m.candidate_id for m in report.matches] == ["alice"]

    report = await orchestrator.find_candidates_for_opportunity(
        "opp_1", min_tier=QualityTier.EXCELLENT
    )
    assert report.matches == []


@pytest.mark.asyncio
async def test_missing_embedding_and_unknown_ids(orchestrator, populated):
    with pytest.raises(MissingEmbedding):
        await orchestrator.find_candidates_for_opportunity("opp_no_vector")

    with pytest.raises(EntityNotFound):
        await orchestrator.find_candidates_for_opportunity("nope")

    with pytest.raises(EntityNotFound):
        await orchestrator.find_opportunities_for_candidate("nope")


@pytest.mark.asyncio
async def test_opportunities_for_candidate(
    orchestrator, seed, make_candidate, make_opportunity
):
    seed(
        opportunities=[
            make_opportunity(id="cheap", salary=2000),
            make_opportunity(id="better", salary=2600),
            make_opportunity(id="best", salary=3600),
        ]
    )
    seed(
        candidates=[
            make_candidate(id="alice", embedding=[1.0, 0.0, 0.0, 0.0], min_salary=2500)
        ]
    )

    report = await orchestrator.find_opportunities_for_candidate("alice")

    assert [m.opportunity_id for m in report.matches] == ["best", "better"]
    assert not report.from_cache
    assert report.filter_stats.total == 3


@pytest.mark.asyncio
async def test_similar_candidates(orchestrator, populated):
    results = await orchestrator.find_similar_candidates("alice", limit=2)

    assert len(results) == 2
    assert all(m.candidate.id != "alice" for m in results)


@pytest.mark.asyncio
async def test_hybrid_search_without_source(orchestrator, populated):
    results = await orchestrator.hybrid_search_candidates(
        HybridFilters(subjects=["math"])
    )

    assert [m.candidate.id for m in results] == ["alice", "bob", "carol", "dave"]
    assert all(m.similarity == 1.0 for m in results)


@pytest.mark.asyncio
async def test_hybrid_search_with_source(orchestrator, populated):
    results = await orchestrator.hybrid_search_candidates(
        HybridFilters(max_salary=2000), opportunity_id="opp_1", min_similarity=0.85
    )

    assert [m.candidate.id for m in results] == ["alice", "bob"]

    with pytest.raises(MissingEmbedding):
        await orchestrator.hybrid_search_candidates(
            HybridFilters(), opportunity_id="opp_no_vector"
        )


@pytest.mark.asyncio
async def test_batch_reports_failures_per_id(orchestrator, populated):
    summary = await orchestrator.match_opportunities_batch(
        ["opp_1", "missing", "opp_no_vector", "opp_2"]
    )

    assert summary.total == 4
    assert summary.successful == 2
    assert summary.failed == 2
    assert summary.skipped == []
    assert set(summary.results) == {"opp_1", "opp_2"}
    assert {e.id: e.code for e in summary.errors} == {
        "missing": "DB_NOT_FOUND",
        "opp_no_vector": "MATCH_NO_EMBEDDING",
    }


@pytest.mark.asyncio
async def test_batch_groups_and_cancellation(orchestrator, config, monkeypatch):
    config.batch_size = 2
    cancel = asyncio.Event()
    processed = []

    async def fake_find(opportunity_id, intent=MatchIntent.PREVIEW):
        processed.append(opportunity_id)
        cancel.set()
        return MatchReport(matches=[])

    monkeypatch.setattr(orchestrator, "find_candidates_for_opportunity", fake_find)

    summary = await orchestrator.match_opportunities_batch(
        ["o1", "o2", "o3", "o4", "o5"], cancel_event=cancel
    )

    # The first group completes, the rest is skipped
    assert sorted(processed) == ["o1", "o2"]
    assert summary.successful == 2
    assert summary.skipped == ["o3", "o4", "o5"]


@pytest.mark.asyncio
async def test_batch_cancelled_before_start(orchestrator, populated):
    cancel = asyncio.Event()
    cancel.set()

    summary = await orchestrator.match_candidates_batch(["alice", "bob"], cancel)

    assert summary.successful == 0
    assert summary.skipped == ["alice", "bob"]


@pytest.mark.asyncio
async def test_batch_respects_parallelism(orchestrator, config, monkeypatch):
    config.batch_size = 10
    config.max_parallelism = 2
    running = 0
    peak = 0

    async def fake_find(candidate_id, limit=None, min_tier=None):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return MatchReport(matches=[])

    monkeypatch.setattr(orchestrator, "find_opportunities_for_candidate", fake_find)

    summary = await orchestrator.match_candidates_batch([f"c{i}" for i in range(6)])

    assert summary.successful == 6
    assert peak == 2


@pytest.mark.asyncio
async def test_transient_failures_are_retried(orchestrator):
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise RetrievalUnavailable("store restarting")
        return "ok"

    assert await orchestrator._call("Flaky call", flaky) == "ok"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retries_give_up(orchestrator):
    async def down():
        raise RetrievalUnavailable("store down")

    with pytest.raises(RetrievalUnavailable):
        await orchestrator._call("Down call", down)


@pytest.mark.asyncio
async def test_slow_calls_time_out(orchestrator, config):
    config.request_timeout_seconds = 0.01
    config.retry_attempts = 1

    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(RetrievalTimeout):
        await orchestrator._call("Slow call", slow)


@pytest.mark.asyncio
async def test_non_transient_errors_are_not_retried(orchestrator):
    attempts = []

    async def missing():
        attempts.append(1)
        raise EntityNotFound("Opportunity", "x")

    with pytest.raises(EntityNotFound):
        await orchestrator._call("Lookup", missing)
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_ingest_invalidates_opportunity_cache(
    orchestrator, populated, make_opportunity
):
    await orchestrator.find_candidates_for_opportunity("opp_1")

    loaded = await orchestrator.ingest([make_opportunity(id="opp_1", salary=1000)], [])
    assert loaded == (1, 0)

    report = await orchestrator.find_candidates_for_opportunity("opp_1")
    assert not report.from_cache
    # Everyone now wants more than the new salary
    assert report.matches == []


@pytest.mark.asyncio
async def test_similar_opportunities(orchestrator, seed, make_opportunity):
    seed(
        opportunities=[
            make_opportunity(id="source"),
            make_opportunity(id="close", embedding=vector_at(0.9)),
            make_opportunity(id="distant", embedding=vector_at(0.2)),
            make_opportunity(id="no_vector", embedding=None),
        ]
    )

    results = await orchestrator.find_similar_opportunities("source")

    assert [m.opportunity.id for m in results] == ["close", "distant"]

    with pytest.raises(MissingEmbedding):
        await orchestrator.find_similar_opportunities("no_vector")

    with pytest.raises(EntityNotFound):
        await orchestrator.find_similar_opportunities("nope")


@pytest.mark.asyncio
async def test_opportunity_search_rejects_min_experience(orchestrator, populated):
    with pytest.raises(ValueError):
        await orchestrator.hybrid_search_opportunities(
            HybridFilters(min_experience=2)
        )
