"""
Scoring engine.

Turns an eligible candidate-opportunity pair and its retrieval similarity
into a ScoredMatch: five normalized sub-scores, a weighted 0-100
recommendation score, a quality tier and a deterministic list of reasons.
Everything here is pure.
"""

import math
from typing import List

from api.config import ScoringWeights, TierThresholds
from api.models import (
    CandidateRecord,
    OpportunityRecord,
    ScoreBreakdown,
    ScoredMatch,
)
from index.base import normalize_terms

from .eligibility import has_salary_floor, visa_verdict_for

EXPERIENCE_BONUS_SPAN = 5.0
EXPERIENCE_REASON_SURPLUS = 3
PROFILE_QUALITY_REASON_THRESHOLD = 85
NEUTRAL_SALARY_ATTRACTIVENESS = 0.5
MAX_MATCH_REASONS = 3


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


def matched_subjects(
    candidate: CandidateRecord, opportunity: OpportunityRecord
) -> List[str]:
    """Required subjects the candidate covers, in the posting's order."""
    covered = normalize_terms(candidate.subjects)
    seen = set()
    matched = []
    for subject in opportunity.required_subjects:
        key = subject.strip().lower()
        if key in covered and key not in seen:
            seen.add(key)
            matched.append(subject.strip())
    return matched


def subject_match(candidate: CandidateRecord, opportunity: OpportunityRecord) -> float:
    required = normalize_terms(opportunity.required_subjects)
    overlap = normalize_terms(candidate.subjects) & required
    return _clamp(len(overlap) / max(len(required), 1))


def salary_attractiveness(
    candidate: CandidateRecord, opportunity: OpportunityRecord
) -> float:
    if not has_salary_floor(candidate):
        return NEUTRAL_SALARY_ATTRACTIVENESS

    delta = opportunity.salary - candidate.min_salary
    if delta < 0:
        return 0.0
    return _clamp(delta / candidate.min_salary)


def profile_quality(candidate: CandidateRecord) -> float:
    if candidate.profile_quality is None:
        return 0.0
    return _clamp(candidate.profile_quality / 100.0)


def experience_bonus(
    candidate: CandidateRecord, opportunity: OpportunityRecord
) -> float:
    required = opportunity.min_experience or 0
    return _clamp((candidate.years_experience - required) / EXPERIENCE_BONUS_SPAN)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def match_reasons(
    candidate: CandidateRecord, opportunity: OpportunityRecord
) -> List[str]:
    """
    Human-readable reasons, always in the same order for the same inputs.

    Order: experience surplus, subjects, preferred country, salary headroom,
    profile quality, verified visa eligibility.
    """
    reasons = []
    required = opportunity.min_experience or 0

    if candidate.years_experience >= required + EXPERIENCE_REASON_SURPLUS:
        reasons.append(
            f"{candidate.years_experience:g}+ years of experience "
            f"(exceeds requirement)"
        )

    subjects = matched_subjects(candidate, opportunity)
    if subjects:
        reasons.append(f"Covers {', '.join(subjects)}")

    country = opportunity.target_country
    if country.strip().lower() in normalize_terms(candidate.preferred_countries):
        reasons.append(f"Specifically interested in {country}")

    if has_salary_floor(candidate):
        delta = opportunity.salary - candidate.min_salary
        if delta > 0:
            reasons.append(f"Salary is {delta:g}/mo above their minimum")

    if (
        candidate.profile_quality is not None
        and candidate.profile_quality >= PROFILE_QUALITY_REASON_THRESHOLD
    ):
        reasons.append("Top-decile profile quality")

    verdict = visa_verdict_for(candidate, country)
    if verdict is not None and verdict.eligible:
        reasons.append(f"Eligible for {country} visa")

    return reasons


def headline_reasons(match: ScoredMatch) -> ScoredMatch:
    """Copy of a match trimmed to the reasons shown outside the engine."""
    return match.model_copy(
        update={"match_reasons": match.match_reasons[:MAX_MATCH_REASONS]}
    )


class ScoringEngine:
    """Weighted soft scoring with a single tier ladder."""

    def __init__(self, weights: ScoringWeights, tiers: TierThresholds):
        self.weights = weights
        self.tiers = tiers

    def breakdown(
        self,
        candidate: CandidateRecord,
        opportunity: OpportunityRecord,
        similarity: float,
    ) -> ScoreBreakdown:
        return ScoreBreakdown(
            similarity=_clamp(similarity),
            subject=subject_match(candidate, opportunity),
            salary=salary_attractiveness(candidate, opportunity),
            profile_quality=profile_quality(candidate),
            experience=experience_bonus(candidate, opportunity),
        )

    def recommendation_score(self, scores: ScoreBreakdown) -> int:
        w = self.weights
        total = (
            scores.similarity * w.similarity
            + scores.subject * w.subject
            + scores.salary * w.salary
            + scores.profile_quality * w.profile_quality
            + scores.experience * w.experience
        )
        return min(max(round_half_up(total * 100), 0), 100)

    def score(
        self,
        candidate: CandidateRecord,
        opportunity: OpportunityRecord,
        similarity: float,
    ) -> ScoredMatch:
        """
        Score one pair that already passed the eligibility filter.

        Args:
            candidate: Candidate record
            opportunity: Opportunity record
            similarity: Retrieval similarity in [0, 1]

        Returns:
            ScoredMatch with score, tier, reasons and sub-score breakdown
        """
        scores = self.breakdown(candidate, opportunity, similarity)
        recommendation = self.recommendation_score(scores)

        return ScoredMatch(
            candidate_id=candidate.id,
            opportunity_id=opportunity.id,
            similarity=scores.similarity,
            distance=1.0 - scores.similarity,
            match_reasons=match_reasons(candidate, opportunity),
            quality_tier=self.tiers.tier_for(recommendation),
            recommendation_score=recommendation,
            scores=scores,
        )


def rank_for_opportunity(matches: List[ScoredMatch]) -> List[ScoredMatch]:
    """Score descending, ties by candidate id."""
    return sorted(matches, key=lambda m: (-m.recommendation_score, m.candidate_id))


def rank_for_candidate(matches: List[ScoredMatch]) -> List[ScoredMatch]:
    """Score descending, ties by opportunity id."""
    return sorted(matches, key=lambda m: (-m.recommendation_score, m.opportunity_id))
