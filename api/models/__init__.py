"""API models for the candidate-opportunity matching service."""

from .schemas import (
    BatchItemError,
    BatchRequest,
    BatchSummary,
    CacheEntry,
    CacheStats,
    CandidateRecord,
    CandidateSearchResponse,
    CandidateStatus,
    FailedRequirement,
    FilterStage,
    FilterStats,
    HybridFilters,
    HybridSearchRequest,
    IngestRequest,
    IngestResponse,
    MatchCandidate,
    MatchIntent,
    MatchOpportunity,
    MatchReport,
    MatchResponse,
    NotificationRecord,
    OpportunityRecord,
    OpportunitySearchResponse,
    OpportunityStatus,
    QualityTier,
    RequirementPriority,
    ScoreBreakdown,
    ScoredMatch,
    StageResult,
    VisaEligibilityVerdict,
)

__all__ = [
    "OpportunityStatus",
    "CandidateStatus",
    "QualityTier",
    "MatchIntent",
    "RequirementPriority",
    "FailedRequirement",
    "VisaEligibilityVerdict",
    "OpportunityRecord",
    "CandidateRecord",
    "MatchCandidate",
    "MatchOpportunity",
    "ScoreBreakdown",
    "ScoredMatch",
    "CacheEntry",
    "NotificationRecord",
    "HybridFilters",
    "FilterStage",
    "StageResult",
    "FilterStats",
    "MatchReport",
    "BatchItemError",
    "BatchSummary",
    "CacheStats",
    "IngestRequest",
    "IngestResponse",
    "MatchResponse",
    "HybridSearchRequest",
    "CandidateSearchResponse",
    "OpportunitySearchResponse",
    "BatchRequest",
]
