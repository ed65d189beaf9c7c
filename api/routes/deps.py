"""Shared route dependencies and error mapping."""

import logging

from fastapi import HTTPException, Request

from api.errors import (
    EntityNotFound,
    InvalidEmbedding,
    MatchingError,
    MissingEmbedding,
    RetrievalTimeout,
    RetrievalUnavailable,
)
from api.services import MatchOrchestrator

logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> MatchOrchestrator:
    return request.app.state.orchestrator


def to_http_exception(error: Exception, action: str) -> HTTPException:
    """Map an engine error to the HTTP status callers should see."""
    if isinstance(error, EntityNotFound):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, MissingEmbedding):
        return HTTPException(status_code=409, detail=error.message)
    if isinstance(error, InvalidEmbedding):
        return HTTPException(status_code=422, detail=error.message)
    if isinstance(error, ValueError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, (RetrievalTimeout, RetrievalUnavailable)):
        return HTTPException(status_code=503, detail=error.message)

    logger.error(f"{action} failed: {error}")
    if isinstance(error, MatchingError):
        return HTTPException(
            status_code=500, detail=f"{action} failed: {error.message}"
        )
    return HTTPException(status_code=500, detail=f"{action} failed: {str(error)}")
