"""
Hybrid search endpoints for candidates and opportunities.

Discrete filters (countries, subjects, experience, salary) are ANDed with a
similarity floor when a source entity is given, and used alone otherwise.
"""

import logging
import time
from typing import List

from fastapi import APIRouter, Depends

from api.models import (
    CandidateSearchResponse,
    HybridSearchRequest,
    MatchCandidate,
    MatchOpportunity,
    OpportunitySearchResponse,
)
from api.services import MatchOrchestrator

from .deps import get_orchestrator, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["Search"])


def strip_candidate_embeddings(results: List[MatchCandidate]) -> List[MatchCandidate]:
    return [
        r.model_copy(
            update={"candidate": r.candidate.model_copy(update={"embedding": None})}
        )
        for r in results
    ]


def strip_opportunity_embeddings(
    results: List[MatchOpportunity],
) -> List[MatchOpportunity]:
    return [
        r.model_copy(
            update={"opportunity": r.opportunity.model_copy(update={"embedding": None})}
        )
        for r in results
    ]


@router.post("/candidates", response_model=CandidateSearchResponse)
async def search_candidates(
    request: HybridSearchRequest,
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """
    Search candidates by discrete filters, optionally ranked by an opportunity.

    Args:
        request: Filters, optional source opportunity id, floor and k

    Returns:
        CandidateSearchResponse with matching candidates and metadata

    Raises:
        HTTPException: If the source is unknown or has no embedding
    """
    try:
        logger.info(
            f"Hybrid candidate search: source={request.source_id}, "
            f"filters={request.filters.model_dump(exclude_none=True)}"
        )
        start = time.perf_counter()

        results = await orchestrator.hybrid_search_candidates(
            request.filters,
            opportunity_id=request.source_id,
            min_similarity=request.min_similarity,
            limit=request.k,
        )

        return CandidateSearchResponse(
            results=strip_candidate_embeddings(results),
            total_results=len(results),
            vector_ranked=request.source_id is not None,
            query_time_ms=(time.perf_counter() - start) * 1000,
        )

    except Exception as e:
        raise to_http_exception(e, "Candidate search")


@router.post("/opportunities", response_model=OpportunitySearchResponse)
async def search_opportunities(
    request: HybridSearchRequest,
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """Search opportunities by discrete filters, optionally ranked by a candidate."""
    try:
        logger.info(
            f"Hybrid opportunity search: source={request.source_id}, "
            f"filters={request.filters.model_dump(exclude_none=True)}"
        )
        start = time.perf_counter()

        results = await orchestrator.hybrid_search_opportunities(
            request.filters,
            candidate_id=request.source_id,
            min_similarity=request.min_similarity,
            limit=request.k,
        )

        return OpportunitySearchResponse(
            results=strip_opportunity_embeddings(results),
            total_results=len(results),
            vector_ranked=request.source_id is not None,
            query_time_ms=(time.perf_counter() - start) * 1000,
        )

    except Exception as e:
        raise to_http_exception(e, "Opportunity search")
