"""Service modules for the API."""

from .dedup import NotificationDeduplicator
from .eligibility import EligibilityFilter
from .match_cache import MatchCache
from .orchestrator import MatchOrchestrator, build_orchestrator
from .retrieval import VectorRetrievalService
from .scoring import ScoringEngine, headline_reasons

__all__ = [
    "EligibilityFilter",
    "MatchCache",
    "MatchOrchestrator",
    "NotificationDeduplicator",
    "ScoringEngine",
    "VectorRetrievalService",
    "build_orchestrator",
    "headline_reasons",
]
