"""
Data models for the candidate-opportunity matching service.

This module contains Pydantic models for opportunity and candidate records,
retrieval and scoring results, cache entries, notification records, hybrid
search predicates and the API request/response envelopes.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class OpportunityStatus(str, Enum):
    """Posting status of an opportunity."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CLOSED = "CLOSED"
    DRAFT = "DRAFT"


class CandidateStatus(str, Enum):
    """Activity status of a candidate profile."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    HIDDEN = "HIDDEN"


class QualityTier(str, Enum):
    """Discrete match quality levels, best first."""

    EXCELLENT = "EXCELLENT"
    GREAT = "GREAT"
    GOOD = "GOOD"
    FAIR = "FAIR"

    @property
    def rank(self) -> int:
        """Higher is better; FAIR is 0."""
        return _TIER_RANK[self]

    def at_least(self, other: "QualityTier") -> bool:
        return self.rank >= other.rank


_TIER_RANK = {
    QualityTier.FAIR: 0,
    QualityTier.GOOD: 1,
    QualityTier.GREAT: 2,
    QualityTier.EXCELLENT: 3,
}


class MatchIntent(str, Enum):
    """Why a caller asks for candidates: to look at them or to contact them."""

    PREVIEW = "preview"
    NOTIFY = "notify"


class RequirementPriority(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class FailedRequirement(BaseModel):
    """A visa requirement the candidate does not meet."""

    message: str = Field(..., description="Human-readable requirement")
    priority: RequirementPriority = Field(..., description="Requirement priority")


class VisaEligibilityVerdict(BaseModel):
    """Cached verdict of the external visa rules evaluator for one country."""

    eligible: bool = Field(..., description="Whether the candidate is eligible")
    failed_requirements: List[FailedRequirement] = Field(
        default_factory=list, description="Requirements not met, by priority"
    )
    disqualifications: List[str] = Field(
        default_factory=list, description="Hard disqualifiers that applied"
    )
    notes: Optional[str] = Field(None, description="Free-text notes")


class OpportunityRecord(BaseModel):
    """Job posting as seen by the matching engine."""

    id: str = Field(..., description="Unique opportunity identifier")
    embedding: Optional[List[float]] = Field(
        None, description="Posting embedding, absent until computed upstream"
    )
    title: Optional[str] = Field(None, description="Posting title")
    required_subjects: List[str] = Field(
        default_factory=list, description="Subjects the posting requires"
    )
    min_experience: Optional[float] = Field(
        None, ge=0, description="Minimum years of experience"
    )
    target_country: str = Field(..., description="Country of the position")
    salary: float = Field(..., ge=0, description="Offered salary per month")
    status: OpportunityStatus = Field(
        OpportunityStatus.ACTIVE, description="Posting status"
    )


class CandidateRecord(BaseModel):
    """Candidate profile as seen by the matching engine."""

    id: str = Field(..., description="Unique candidate identifier")
    embedding: Optional[List[float]] = Field(
        None, description="Profile embedding, absent until computed upstream"
    )
    name: Optional[str] = Field(None, description="Display name")
    subjects: List[str] = Field(default_factory=list, description="Subjects")
    years_experience: float = Field(0, ge=0, description="Years of experience")
    citizenship: Optional[str] = Field(None, description="Citizenship country")
    preferred_countries: List[str] = Field(
        default_factory=list, description="Countries the candidate prefers"
    )
    min_salary: Optional[float] = Field(
        None, ge=0, description="Minimum acceptable salary per month"
    )
    profile_quality: Optional[float] = Field(
        None, ge=0, le=100, description="Profile quality score (0-100)"
    )
    visa_eligibility: Dict[str, VisaEligibilityVerdict] = Field(
        default_factory=dict, description="Cached visa verdicts by country"
    )
    status: CandidateStatus = Field(
        CandidateStatus.ACTIVE, description="Activity status"
    )


class MatchCandidate(BaseModel):
    """Candidate joined with its similarity to a query embedding."""

    candidate: CandidateRecord
    similarity: float = Field(..., ge=0, le=1)
    distance: float = Field(..., ge=0)


class MatchOpportunity(BaseModel):
    """Opportunity joined with its similarity to a query embedding."""

    opportunity: OpportunityRecord
    similarity: float = Field(..., ge=0, le=1)
    distance: float = Field(..., ge=0)


class ScoreBreakdown(BaseModel):
    """Normalized sub-scores feeding the recommendation score."""

    similarity: float = Field(..., ge=0, le=1)
    subject: float = Field(..., ge=0, le=1)
    salary: float = Field(..., ge=0, le=1)
    profile_quality: float = Field(..., ge=0, le=1)
    experience: float = Field(..., ge=0, le=1)


class ScoredMatch(BaseModel):
    """A candidate-opportunity pair that passed every hard filter."""

    candidate_id: str
    opportunity_id: str
    similarity: float = Field(..., ge=0, le=1)
    distance: float = Field(..., ge=0)
    match_reasons: List[str] = Field(default_factory=list)
    quality_tier: QualityTier
    recommendation_score: int = Field(..., ge=0, le=100)
    scores: ScoreBreakdown


class CacheEntry(BaseModel):
    """Stored result set for one opportunity."""

    opportunity_id: str
    matches: List[ScoredMatch]
    created_at: datetime
    expires_at: datetime


class NotificationRecord(BaseModel):
    """A notification previously sent to a candidate."""

    candidate_id: str
    opportunity_id: str = Field(
        ..., description="Opportunity id or equivalence-class key"
    )
    sent_at: datetime


class HybridFilters(BaseModel):
    """
    Discrete predicates for hybrid search, ANDed together.

    On the candidates collection:
      countries      -- preferred countries overlap the set
      subjects       -- candidate subjects overlap the set
      min_experience -- years of experience >= value
      max_salary     -- minimum salary unset or <= value

    On the opportunities collection:
      countries      -- target country is in the set
      subjects       -- required subjects overlap the set
      max_salary     -- salary <= value
      min_experience -- rejected, postings carry no experience field
    """

    countries: Optional[List[str]] = None
    subjects: Optional[List[str]] = None
    min_experience: Optional[float] = Field(None, ge=0)
    max_salary: Optional[float] = Field(None, ge=0)

    model_config = {"extra": "forbid"}


class FilterStage(str, Enum):
    VISA = "visa"
    EXPERIENCE = "experience"
    SALARY = "salary"


class StageResult(BaseModel):
    """Outcome of one hard-filter stage for one candidate."""

    stage: FilterStage
    passed: bool
    reason: Optional[str] = None


class FilterStats(BaseModel):
    """Per-stage pass counts, for observability only."""

    total: int = 0
    passed_visa: int = 0
    passed_experience: int = 0
    passed_salary: int = 0
    final: int = 0


class MatchReport(BaseModel):
    """Ranked matches plus pipeline counts for one request."""

    matches: List[ScoredMatch]
    from_cache: bool = False
    filter_stats: Optional[FilterStats] = None
    removed_by_dedup: int = 0


class BatchItemError(BaseModel):
    id: str
    code: str
    message: str


class BatchSummary(BaseModel):
    """Outcome of a batch run; failures never abort the batch."""

    total: int
    successful: int = 0
    failed: int = 0
    skipped: List[str] = Field(default_factory=list)
    results: Dict[str, List[ScoredMatch]] = Field(default_factory=dict)
    errors: List[BatchItemError] = Field(default_factory=list)


class CacheStats(BaseModel):
    hits: int
    misses: int
    hit_rate: float = Field(..., description="Hit rate in percent")


class IngestRequest(BaseModel):
    """Request model for record ingestion endpoint."""

    opportunities: List[OpportunityRecord] = Field(
        default_factory=list, description="Opportunity records to load"
    )
    candidates: List[CandidateRecord] = Field(
        default_factory=list, description="Candidate records to load"
    )

    model_config = {"extra": "forbid"}


class IngestResponse(BaseModel):
    """Response model for record ingestion endpoint."""

    opportunities_loaded: int = Field(..., description="Opportunities stored")
    candidates_loaded: int = Field(..., description="Candidates stored")


class MatchResponse(BaseModel):
    """Response model for the match endpoints."""

    results: List[ScoredMatch] = Field(..., description="Ranked matches")
    total_results: int = Field(..., description="Number of matches returned")
    from_cache: bool = Field(..., description="Served from the match cache")
    filter_stats: Optional[FilterStats] = Field(
        None, description="Hard-filter pass counts when freshly computed"
    )
    removed_by_dedup: int = Field(
        0, description="Candidates hidden because they were notified recently"
    )
    query_time_ms: float = Field(..., description="Query time in milliseconds")


class HybridSearchRequest(BaseModel):
    """Hybrid search request; without a source id the search is discrete only."""

    source_id: Optional[str] = Field(
        None, description="Opportunity or candidate whose embedding is the query"
    )
    filters: HybridFilters = Field(default_factory=HybridFilters)
    min_similarity: Optional[float] = Field(None, ge=0, le=1)
    k: Optional[int] = Field(None, ge=1, le=100)

    model_config = {"extra": "forbid"}


class CandidateSearchResponse(BaseModel):
    results: List[MatchCandidate]
    total_results: int
    vector_ranked: bool = Field(..., description="False for discrete-only search")
    query_time_ms: float


class OpportunitySearchResponse(BaseModel):
    results: List[MatchOpportunity]
    total_results: int
    vector_ranked: bool = Field(..., description="False for discrete-only search")
    query_time_ms: float


class BatchRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1, max_length=500)
    intent: MatchIntent = MatchIntent.PREVIEW

    model_config = {"extra": "forbid"}
