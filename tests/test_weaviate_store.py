"""
Tests for the Weaviate store that do not need a running Weaviate instance:
property mapping, record round-trip and the uninitialized-client guard.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from api.errors import RetrievalUnavailable
from api.models import HybridFilters, VisaEligibilityVerdict
from index.base import Collection
from index.weaviate_store import WeaviateStore


@pytest.fixture
def weaviate_store():
    return WeaviateStore("http://weaviate.test:8080")


@pytest.fixture
def target():
    return MagicMock()


@pytest.fixture
def connected_store(weaviate_store, target):
    weaviate_store.client = MagicMock()
    weaviate_store.client.collections.get.return_value = target
    return weaviate_store


def test_candidate_properties_are_normalized(weaviate_store, make_candidate):
    candidate = make_candidate(
        subjects=[" Math ", "science"], preferred_countries=["Japan"], min_salary=None
    )

    properties = weaviate_store._candidate_properties(candidate)

    assert properties["entity_id"] == candidate.id
    assert properties["status"] == "ACTIVE"
    assert properties["subjects_norm"] == ["math", "science"]
    assert properties["preferred_countries_norm"] == ["japan"]
    # Unset minimum is stored as 0 so it passes any salary ceiling
    assert properties["min_salary"] == 0
    assert "embedding" not in properties["record_json"]


def test_opportunity_properties(weaviate_store, make_opportunity):
    properties = weaviate_store._opportunity_properties(
        make_opportunity(target_country=" South Korea ")
    )

    assert properties["target_country_norm"] == "south korea"
    assert properties["required_subjects_norm"] == ["math"]
    assert properties["salary"] == 2000


def test_records_round_trip(weaviate_store, make_candidate):
    candidate = make_candidate(
        visa_eligibility={"Japan": VisaEligibilityVerdict(eligible=True)}
    )
    properties = weaviate_store._candidate_properties(candidate)
    obj = SimpleNamespace(
        properties=properties, vector={"default": candidate.embedding}
    )

    restored = weaviate_store._to_candidate(obj)

    assert restored == candidate


def test_where_filter_builds_for_both_collections(weaviate_store):
    filters = HybridFilters(
        countries=["Japan", "Korea"],
        subjects=["Math"],
        min_experience=2,
        max_salary=3000,
    )

    build = weaviate_store._build_where_filter
    assert build(filters, Collection.CANDIDATES) is not None
    assert build(filters, Collection.OPPORTUNITIES) is not None
    assert build(None, Collection.CANDIDATES) is not None


@pytest.mark.asyncio
async def test_query_before_initialize_is_unavailable(weaviate_store):
    with pytest.raises(RetrievalUnavailable):
        await weaviate_store.query(Collection.CANDIDATES, [1.0, 0.0, 0.0, 0.0], 0.8, 5)


def _stored(store, candidate):
    return SimpleNamespace(
        properties=store._candidate_properties(candidate),
        vector={"default": candidate.embedding},
    )


@pytest.mark.asyncio
async def test_discrete_search_is_sorted_and_limited_by_weaviate(
    connected_store, target, make_candidate
):
    best = make_candidate(id="best", profile_quality=99)
    other = make_candidate(id="other", profile_quality=50)
    target.query.fetch_objects.return_value = SimpleNamespace(
        objects=[_stored(connected_store, best), _stored(connected_store, other)]
    )

    records = await connected_store.filter_candidates(HybridFilters(), 7)

    kwargs = target.query.fetch_objects.call_args.kwargs
    assert kwargs["limit"] == 7
    assert kwargs["sort"] is not None
    assert [r.id for r in records] == ["best", "other"]

    target.query.fetch_objects.return_value = SimpleNamespace(objects=[])
    await connected_store.filter_opportunities(HybridFilters(), 3)
    kwargs = target.query.fetch_objects.call_args.kwargs
    assert kwargs["limit"] == 3
    assert kwargs["sort"] is not None


@pytest.mark.asyncio
async def test_upsert_overwrites_without_deleting(
    connected_store, target, make_candidate
):
    target.data.insert_many.return_value = SimpleNamespace(
        has_errors=False, errors={}, all_responses=["uuid-1"]
    )

    loaded = await connected_store.upsert_candidates([make_candidate()])

    assert loaded == 1
    target.data.delete_many.assert_not_called()
    target.data.insert_many.assert_called_once()


@pytest.mark.asyncio
async def test_upsert_errors_are_raised(connected_store, target, make_candidate):
    target.data.insert_many.return_value = SimpleNamespace(
        has_errors=True, errors={0: "vector length mismatch"}, all_responses=[]
    )

    with pytest.raises(RetrievalUnavailable):
        await connected_store.upsert_candidates([make_candidate()])


@pytest.mark.asyncio
async def test_initialize_fails_when_not_ready(weaviate_store, monkeypatch):
    client = MagicMock()
    client.is_ready.return_value = False
    monkeypatch.setattr(
        "index.weaviate_store.weaviate.connect_to_local", lambda **kwargs: client
    )

    with pytest.raises(RetrievalUnavailable):
        await weaviate_store.initialize()

    client.is_ready.assert_called_once_with()
    client.collections.create.assert_not_called()
