"""
Shared fixtures: a small-dimension config and an orchestrator wired to the
in-memory stores, plus record factories.
"""

import pytest

from api.config import MatchingConfig
from api.models import CandidateRecord, OpportunityRecord
from api.services import (
    MatchCache,
    MatchOrchestrator,
    NotificationDeduplicator,
    VectorRetrievalService,
)
from index.memory import InMemoryCacheStore, InMemoryNotificationHistory, InMemoryStore
from tests.helpers import DIM, QUERY_VECTOR, vector_at


@pytest.fixture
def config():
    return MatchingConfig(
        vector_dimension=DIM,
        batch_delay_seconds=0,
        retry_backoff_seconds=0,
        request_timeout_seconds=5,
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def cache_store():
    return InMemoryCacheStore()


@pytest.fixture
def history():
    return InMemoryNotificationHistory()


@pytest.fixture
def orchestrator(config, store, cache_store, history):
    return MatchOrchestrator(
        config=config,
        retrieval=VectorRetrievalService(store, store, DIM),
        cache=MatchCache(cache_store, config.cache_ttl_seconds),
        deduplicator=NotificationDeduplicator(history, config.dedup_lookback_days),
    )


@pytest.fixture
def make_opportunity():
    def factory(**overrides) -> OpportunityRecord:
        values = {
            "id": "opp_1",
            "embedding": QUERY_VECTOR,
            "title": "Math Teacher",
            "required_subjects": ["Math"],
            "min_experience": 2,
            "target_country": "Japan",
            "salary": 2000,
        }
        values.update(overrides)
        return OpportunityRecord(**values)

    return factory


@pytest.fixture
def make_candidate():
    def factory(**overrides) -> CandidateRecord:
        similarity = overrides.pop("similarity", 0.9)
        values = {
            "id": "cand_1",
            "embedding": vector_at(similarity),
            "name": "Test Candidate",
            "subjects": ["Math", "Science"],
            "years_experience": 5,
            "min_salary": 1800,
            "profile_quality": 90,
        }
        values.update(overrides)
        return CandidateRecord(**values)

    return factory


@pytest.fixture
def seed(store):
    """Put records straight into the in-memory store."""

    def load(opportunities=(), candidates=()):
        for opportunity in opportunities:
            store.opportunities[opportunity.id] = opportunity
        for candidate in candidates:
            store.candidates[candidate.id] = candidate

    return load
