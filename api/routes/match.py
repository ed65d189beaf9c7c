"""
Match endpoints.

Ranked, filtered and scored matches in both directions, similar candidates
and opportunities, and batch runs. Responses carry at most three match
reasons per match.
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.models import (
    BatchRequest,
    BatchSummary,
    CandidateSearchResponse,
    MatchIntent,
    MatchReport,
    MatchResponse,
    OpportunitySearchResponse,
    QualityTier,
)
from api.services import MatchOrchestrator, headline_reasons

from .deps import get_orchestrator, to_http_exception
from .search import strip_candidate_embeddings, strip_opportunity_embeddings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/match", tags=["Matching"])


def _response(report: MatchReport, start: float) -> MatchResponse:
    results = [headline_reasons(m) for m in report.matches]
    return MatchResponse(
        results=results,
        total_results=len(results),
        from_cache=report.from_cache,
        filter_stats=report.filter_stats,
        removed_by_dedup=report.removed_by_dedup,
        query_time_ms=(time.perf_counter() - start) * 1000,
    )


@router.get("/opportunities/{opportunity_id}/candidates", response_model=MatchResponse)
async def match_candidates_for_opportunity(
    opportunity_id: str,
    intent: MatchIntent = Query(
        MatchIntent.PREVIEW, description="preview to inspect, notify to contact"
    ),
    k: Optional[int] = Query(
        None, ge=1, le=100, description="Number of candidates to return"
    ),
    min_tier: Optional[QualityTier] = Query(
        None, description="Lowest quality tier to include"
    ),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """
    Find ranked candidates for an opportunity.

    Args:
        opportunity_id: Opportunity to match
        intent: With notify, recently notified candidates are removed
        k: Number of candidates to return
        min_tier: Lowest quality tier to include

    Returns:
        MatchResponse with ranked matches

    Raises:
        HTTPException: 404 for unknown ids, 409 when no embedding exists
    """
    try:
        logger.info(
            f"Matching candidates for opportunity: {opportunity_id}, "
            f"intent={intent.value}, k={k}, min_tier={min_tier}"
        )
        start = time.perf_counter()

        report = await orchestrator.find_candidates_for_opportunity(
            opportunity_id, intent=intent, limit=k, min_tier=min_tier
        )
        return _response(report, start)

    except Exception as e:
        raise to_http_exception(e, "Opportunity matching")


@router.get("/candidates/{candidate_id}/opportunities", response_model=MatchResponse)
async def match_opportunities_for_candidate(
    candidate_id: str,
    k: Optional[int] = Query(
        None, ge=1, le=100, description="Number of opportunities to return"
    ),
    min_tier: Optional[QualityTier] = Query(
        None, description="Lowest quality tier to include"
    ),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """Find ranked opportunities for a candidate."""
    try:
        logger.info(f"Matching opportunities for candidate: {candidate_id}, k={k}")
        start = time.perf_counter()

        report = await orchestrator.find_opportunities_for_candidate(
            candidate_id, limit=k, min_tier=min_tier
        )
        return _response(report, start)

    except Exception as e:
        raise to_http_exception(e, "Candidate matching")


@router.get(
    "/candidates/{candidate_id}/similar", response_model=CandidateSearchResponse
)
async def similar_candidates(
    candidate_id: str,
    k: int = Query(5, ge=1, le=100, description="Number of candidates to return"),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    try:
        start = time.perf_counter()
        results = await orchestrator.find_similar_candidates(candidate_id, limit=k)

        return CandidateSearchResponse(
            results=strip_candidate_embeddings(results),
            total_results=len(results),
            vector_ranked=True,
            query_time_ms=(time.perf_counter() - start) * 1000,
        )

    except Exception as e:
        raise to_http_exception(e, "Similar candidate search")


@router.get(
    "/opportunities/{opportunity_id}/similar", response_model=OpportunitySearchResponse
)
async def similar_opportunities(
    opportunity_id: str,
    k: int = Query(5, ge=1, le=100, description="Number of opportunities to return"),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """Active opportunities most similar to the given one, excluding itself."""
    try:
        start = time.perf_counter()
        results = await orchestrator.find_similar_opportunities(opportunity_id, limit=k)

        return OpportunitySearchResponse(
            results=strip_opportunity_embeddings(results),
            total_results=len(results),
            vector_ranked=True,
            query_time_ms=(time.perf_counter() - start) * 1000,
        )

    except Exception as e:
        raise to_http_exception(e, "Similar opportunity search")


def _trim_summary(summary: BatchSummary) -> BatchSummary:
    return summary.model_copy(
        update={
            "results": {
                item_id: [headline_reasons(m) for m in matches]
                for item_id, matches in summary.results.items()
            }
        }
    )


@router.post("/batch/opportunities", response_model=BatchSummary)
async def batch_match_opportunities(
    request: BatchRequest,
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """
    Match many opportunities in groups.

    Per-id failures are reported in the summary and never fail the request.
    """
    try:
        logger.info(f"Batch matching {len(request.ids)} opportunities")
        summary = await orchestrator.match_opportunities_batch(
            request.ids, intent=request.intent
        )
        return _trim_summary(summary)

    except Exception as e:
        raise to_http_exception(e, "Batch opportunity matching")


@router.post("/batch/candidates", response_model=BatchSummary)
async def batch_match_candidates(
    request: BatchRequest,
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """Match many candidates in groups; the request intent is ignored."""
    try:
        logger.info(f"Batch matching {len(request.ids)} candidates")
        summary = await orchestrator.match_candidates_batch(request.ids)
        return _trim_summary(summary)

    except Exception as e:
        raise to_http_exception(e, "Batch candidate matching")
