"""Match cache statistics and invalidation endpoints."""

import logging

from fastapi import APIRouter, Depends

from api.models import CacheStats
from api.services import MatchOrchestrator

from .deps import get_orchestrator, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache", tags=["Cache"])


@router.get("/stats", response_model=CacheStats)
async def cache_stats(orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    return orchestrator.cache.stats()


@router.delete("/{opportunity_id}", response_model=dict)
async def invalidate_opportunity(
    opportunity_id: str,
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """Drop cached matches for one opportunity (its change event)."""
    try:
        logger.info(f"Invalidating cached matches for opportunity: {opportunity_id}")
        await orchestrator.invalidate_opportunity(opportunity_id)
        return {"invalidated": opportunity_id}

    except Exception as e:
        raise to_http_exception(e, "Cache invalidation")


@router.delete("", response_model=dict)
async def invalidate_all(orchestrator: MatchOrchestrator = Depends(get_orchestrator)):
    try:
        removed = await orchestrator.invalidate_all()
        return {"removed": removed}

    except Exception as e:
        raise to_http_exception(e, "Cache invalidation")
