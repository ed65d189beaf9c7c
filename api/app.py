"""
FastAPI application factory.

This module creates and configures the FastAPI application with all
routes, middleware, and lifecycle management.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import load_config
from .routes import cache_router, ingest_router, match_router, search_router
from .services import MatchOrchestrator, build_orchestrator

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager for startup and shutdown tasks.

    Builds the orchestrator from the environment unless one was injected,
    connects its backends on startup and releases them on shutdown. Invalid
    configuration aborts startup.
    """
    orchestrator = getattr(app.state, "orchestrator", None)
    try:
        logger.info("Starting up application...")
        if orchestrator is None:
            orchestrator = build_orchestrator(load_config())
            app.state.orchestrator = orchestrator
        await orchestrator.initialize()
        logger.info("Application startup complete")

        yield

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise
    finally:
        logger.info("Shutting down application...")
        if orchestrator is not None:
            await orchestrator.close()


def create_app(orchestrator: Optional[MatchOrchestrator] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        orchestrator: Prebuilt orchestrator; built from the environment at
            startup when omitted

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="Candidate-Opportunity Matching Service",
        description=(
            "Service for matching candidates and opportunities using vector "
            "retrieval, hard eligibility filters and weighted scoring"
        ),
        lifespan=lifespan,
    )
    if orchestrator is not None:
        app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", response_model=dict)
    async def root():
        return {
            "name": "Candidate-Opportunity Matching Service",
            "description": (
                "Service for matching candidates and opportunities using vector "
                "retrieval, hard eligibility filters and weighted scoring"
            ),
            "endpoints": {
                "POST /ingest": "Load opportunity and candidate records",
                "GET /match/opportunities/{id}/candidates": (
                    "Ranked candidates for an opportunity"
                ),
                "GET /match/candidates/{id}/opportunities": (
                    "Ranked opportunities for a candidate"
                ),
                "GET /match/candidates/{id}/similar": "Candidates similar to one",
                "GET /match/opportunities/{id}/similar": (
                    "Active opportunities similar to one"
                ),
                "POST /match/batch/opportunities": "Match many opportunities",
                "POST /match/batch/candidates": "Match many candidates",
                "POST /search/candidates": "Hybrid candidate search",
                "POST /search/opportunities": "Hybrid opportunity search",
                "GET /cache/stats": "Match cache hit statistics",
                "DELETE /cache/{opportunity_id}": "Invalidate one opportunity",
                "DELETE /cache": "Invalidate every cached match list",
            },
        }

    app.include_router(ingest_router)
    app.include_router(match_router)
    app.include_router(search_router)
    app.include_router(cache_router)

    return app
