"""API route modules."""

from .cache import router as cache_router
from .ingest import router as ingest_router
from .match import router as match_router
from .search import router as search_router

__all__ = [
    "cache_router",
    "ingest_router",
    "match_router",
    "search_router",
]
