"""
Data ingestion endpoints.

This module provides endpoints for loading opportunity and candidate records,
with their precomputed embeddings, into the configured stores.
"""

import json
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query

from api.models import CandidateRecord, IngestRequest, IngestResponse, OpportunityRecord
from api.services import MatchOrchestrator

from .deps import get_orchestrator, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ingest", tags=["Data Ingestion"])


@router.post("/", response_model=IngestResponse)
async def ingest_data(
    request: IngestRequest,
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """
    Ingest opportunities and candidates into the stores.

    Re-ingested opportunities have their cached matches invalidated.

    Args:
        request: IngestRequest containing opportunity and candidate records

    Returns:
        IngestResponse with ingestion statistics

    Raises:
        HTTPException: If ingestion fails
    """
    try:
        logger.info(
            f"Ingesting {len(request.opportunities)} opportunities and "
            f"{len(request.candidates)} candidates"
        )

        opportunities_loaded, candidates_loaded = await orchestrator.ingest(
            request.opportunities, request.candidates
        )

        return IngestResponse(
            opportunities_loaded=opportunities_loaded,
            candidates_loaded=candidates_loaded,
        )

    except Exception as e:
        raise to_http_exception(e, "Data ingestion")


def resolve_data_file(file_name: str, data_dir: str) -> Path:
    """
    Resolve a file name inside the configured data directory.

    Raises:
        HTTPException: 400 if the name points outside the data directory
    """
    base = Path(data_dir).resolve()
    path = (base / file_name).resolve()
    if path != base and base not in path.parents:
        raise HTTPException(
            status_code=400, detail=f"{file_name} is outside the data directory"
        )
    return path


def _load_records(path: Path, model, label: str) -> list:
    """Load a JSON list of records; a missing file is an empty list."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return [model(**item) for item in json.load(f)]
    except FileNotFoundError:
        logger.warning(f"{label} file {path} not found, using empty list")
        return []
    except Exception as e:
        logger.error(f"Error loading {label} file {path}: {e}")
        raise HTTPException(
            status_code=400, detail=f"Could not load {label} file {path.name}"
        )


@router.post("/from-json", response_model=IngestResponse)
async def ingest_from_files(
    opportunities_file: str = Query(
        "opportunities.json", description="Opportunities JSON file in DATA_DIR"
    ),
    candidates_file: str = Query(
        "candidates.json", description="Candidates JSON file in DATA_DIR"
    ),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """
    Load records from JSON files (utility endpoint for local development).

    Files are read from the configured data directory only. A missing file
    is treated as an empty list.
    """
    try:
        data_dir = orchestrator.config.data_dir
        logger.info(
            f"Loading data from {data_dir}: {opportunities_file}, {candidates_file}"
        )

        opportunities = _load_records(
            resolve_data_file(opportunities_file, data_dir),
            OpportunityRecord,
            "opportunities",
        )
        candidates = _load_records(
            resolve_data_file(candidates_file, data_dir),
            CandidateRecord,
            "candidates",
        )

        request = IngestRequest(opportunities=opportunities, candidates=candidates)
        return await ingest_data(request, orchestrator)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "File ingestion")
