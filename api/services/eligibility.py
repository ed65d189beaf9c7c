"""
Hard eligibility filter.

Each stage is a pure function returning a tagged StageResult. Stages are
independent: every stage runs for every pair so the per-stage counts are
meaningful, and any failed stage removes the pair from the results.
"""

import logging
from typing import Callable, List, Optional, Tuple

from api.config import MissingVisaPolicy
from api.models import (
    CandidateRecord,
    FilterStage,
    FilterStats,
    MatchCandidate,
    MatchOpportunity,
    OpportunityRecord,
    StageResult,
    VisaEligibilityVerdict,
)

logger = logging.getLogger(__name__)


def visa_verdict_for(
    candidate: CandidateRecord, country: str
) -> Optional[VisaEligibilityVerdict]:
    """Cached verdict for a country; keys are matched case-insensitively."""
    verdict = candidate.visa_eligibility.get(country)
    if verdict is not None:
        return verdict

    wanted = country.strip().lower()
    for key, value in candidate.visa_eligibility.items():
        if key.strip().lower() == wanted:
            return value
    return None


def has_salary_floor(candidate: CandidateRecord) -> bool:
    return candidate.min_salary is not None and candidate.min_salary > 0


def check_visa(
    candidate: CandidateRecord,
    opportunity: OpportunityRecord,
    missing_policy: MissingVisaPolicy = MissingVisaPolicy.ALLOW,
) -> StageResult:
    country = opportunity.target_country
    verdict = visa_verdict_for(candidate, country)

    if verdict is None:
        if missing_policy == MissingVisaPolicy.ALLOW:
            return StageResult(stage=FilterStage.VISA, passed=True)
        return StageResult(
            stage=FilterStage.VISA,
            passed=False,
            reason=f"No visa verdict cached for {country}",
        )

    if verdict.eligible:
        return StageResult(stage=FilterStage.VISA, passed=True)

    reason = (
        verdict.failed_requirements[0].message
        if verdict.failed_requirements
        else "Visa requirements not met"
    )
    return StageResult(stage=FilterStage.VISA, passed=False, reason=reason)


def check_experience(
    candidate: CandidateRecord, opportunity: OpportunityRecord
) -> StageResult:
    required = opportunity.min_experience
    if required and candidate.years_experience < required:
        return StageResult(
            stage=FilterStage.EXPERIENCE,
            passed=False,
            reason=(
                f"{candidate.years_experience:g} years of experience, "
                f"{required:g} required"
            ),
        )
    return StageResult(stage=FilterStage.EXPERIENCE, passed=True)


def check_salary(
    candidate: CandidateRecord, opportunity: OpportunityRecord
) -> StageResult:
    if has_salary_floor(candidate) and opportunity.salary < candidate.min_salary:
        return StageResult(
            stage=FilterStage.SALARY,
            passed=False,
            reason=(
                f"Salary {opportunity.salary:g} is below the minimum "
                f"{candidate.min_salary:g}"
            ),
        )
    return StageResult(stage=FilterStage.SALARY, passed=True)


class EligibilityFilter:
    """Applies the visa, experience and salary stages in that order."""

    def __init__(
        self, missing_visa_policy: MissingVisaPolicy = MissingVisaPolicy.ALLOW
    ):
        self.missing_visa_policy = missing_visa_policy

    def evaluate(
        self, candidate: CandidateRecord, opportunity: OpportunityRecord
    ) -> List[StageResult]:
        return [
            check_visa(candidate, opportunity, self.missing_visa_policy),
            check_experience(candidate, opportunity),
            check_salary(candidate, opportunity),
        ]

    def is_eligible(
        self, candidate: CandidateRecord, opportunity: OpportunityRecord
    ) -> bool:
        return all(result.passed for result in self.evaluate(candidate, opportunity))

    def _run(
        self,
        items: list,
        pair: Callable[[object], Tuple[CandidateRecord, OpportunityRecord]],
    ) -> Tuple[list, FilterStats]:
        stats = FilterStats(total=len(items))
        survivors = []

        for item in items:
            candidate, opportunity = pair(item)
            results = self.evaluate(candidate, opportunity)

            for result in results:
                if not result.passed:
                    continue
                if result.stage == FilterStage.VISA:
                    stats.passed_visa += 1
                elif result.stage == FilterStage.EXPERIENCE:
                    stats.passed_experience += 1
                elif result.stage == FilterStage.SALARY:
                    stats.passed_salary += 1

            if all(result.passed for result in results):
                survivors.append(item)
                stats.final += 1

        return survivors, stats

    def filter(
        self, candidates: List[MatchCandidate], opportunity: OpportunityRecord
    ) -> Tuple[List[MatchCandidate], FilterStats]:
        """
        Drop candidates failing any hard stage for one opportunity.

        Args:
            candidates: Retrieval output for the opportunity
            opportunity: The opportunity being matched

        Returns:
            Survivors in input order and per-stage pass counts
        """
        survivors, stats = self._run(
            candidates, lambda match: (match.candidate, opportunity)
        )
        logger.info(f"Filter stats for opportunity {opportunity.id}: {stats}")
        return survivors, stats

    def filter_opportunities(
        self, candidate: CandidateRecord, opportunities: List[MatchOpportunity]
    ) -> Tuple[List[MatchOpportunity], FilterStats]:
        """Mirror of filter for the candidate -> opportunities direction."""
        survivors, stats = self._run(
            opportunities, lambda match: (candidate, match.opportunity)
        )
        logger.info(f"Filter stats for candidate {candidate.id}: {stats}")
        return survivors, stats
