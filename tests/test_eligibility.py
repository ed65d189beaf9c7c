"""Tests for the hard eligibility filter."""

from api.config import MissingVisaPolicy
from api.models import (
    FailedRequirement,
    FilterStage,
    MatchCandidate,
    MatchOpportunity,
    RequirementPriority,
    VisaEligibilityVerdict,
)
from api.services import EligibilityFilter
from api.services.eligibility import check_experience, check_salary, check_visa


def _match(candidate, similarity=0.9):
    return MatchCandidate(candidate=candidate, similarity=similarity, distance=0.1)


def _ineligible(message="Bachelor's degree required"):
    return VisaEligibilityVerdict(
        eligible=False,
        failed_requirements=[
            FailedRequirement(message=message, priority=RequirementPriority.CRITICAL)
        ],
    )


def test_ineligible_visa_verdict_disqualifies(make_candidate, make_opportunity):
    candidate = make_candidate(visa_eligibility={"Japan": _ineligible()})

    result = check_visa(candidate, make_opportunity())

    assert result.stage == FilterStage.VISA
    assert not result.passed
    assert result.reason == "Bachelor's degree required"


def test_verdict_lookup_is_case_insensitive(make_candidate, make_opportunity):
    candidate = make_candidate(visa_eligibility={"japan": _ineligible()})
    assert not check_visa(candidate, make_opportunity(target_country="Japan")).passed


def test_missing_verdict_follows_policy(make_candidate, make_opportunity):
    candidate = make_candidate(visa_eligibility={})
    opportunity = make_opportunity()

    assert check_visa(candidate, opportunity, MissingVisaPolicy.ALLOW).passed

    denied = check_visa(candidate, opportunity, MissingVisaPolicy.DENY)
    assert not denied.passed
    assert "Japan" in denied.reason


def test_experience_floor(make_candidate, make_opportunity):
    opportunity = make_opportunity(min_experience=3)

    assert not check_experience(make_candidate(years_experience=2), opportunity).passed
    assert check_experience(make_candidate(years_experience=3), opportunity).passed
    # No minimum on the posting
    assert check_experience(
        make_candidate(years_experience=0), make_opportunity(min_experience=None)
    ).passed


def test_salary_floor_is_strict(make_candidate, make_opportunity):
    opportunity = make_opportunity(salary=2000)

    assert not check_salary(make_candidate(min_salary=2500), opportunity).passed
    assert check_salary(make_candidate(min_salary=2000), opportunity).passed
    assert check_salary(make_candidate(min_salary=None), opportunity).passed
    assert check_salary(make_candidate(min_salary=0), opportunity).passed


def test_filter_counts_every_stage(make_candidate, make_opportunity):
    opportunity = make_opportunity(min_experience=2, salary=2000)
    candidates = [
        _match(make_candidate(id="ok")),
        # Fails visa and salary; still counted for experience
        _match(
            make_candidate(
                id="visa_and_salary",
                visa_eligibility={"Japan": _ineligible()},
                min_salary=3000,
            )
        ),
        _match(make_candidate(id="junior", years_experience=1)),
    ]

    survivors, stats = EligibilityFilter().filter(candidates, opportunity)

    assert [m.candidate.id for m in survivors] == ["ok"]
    assert stats.total == 3
    assert stats.passed_visa == 2
    assert stats.passed_experience == 2
    assert stats.passed_salary == 2
    assert stats.final == 1


def test_filter_preserves_input_order(make_candidate, make_opportunity):
    candidates = [_match(make_candidate(id=cid)) for cid in ["z", "a", "m"]]

    survivors, _ = EligibilityFilter().filter(candidates, make_opportunity())

    assert [m.candidate.id for m in survivors] == ["z", "a", "m"]


def test_deny_policy_filters_unverified(make_candidate, make_opportunity):
    eligible = VisaEligibilityVerdict(eligible=True)
    candidates = [
        _match(make_candidate(id="verified", visa_eligibility={"Japan": eligible})),
        _match(make_candidate(id="unverified")),
    ]

    survivors, stats = EligibilityFilter(MissingVisaPolicy.DENY).filter(
        candidates, make_opportunity()
    )

    assert [m.candidate.id for m in survivors] == ["verified"]
    assert stats.passed_visa == 1


def test_filter_opportunities_mirrors_rules(make_candidate, make_opportunity):
    candidate = make_candidate(min_salary=2500)
    opportunities = [
        MatchOpportunity(
            opportunity=make_opportunity(id="low", salary=2000),
            similarity=0.9,
            distance=0.1,
        ),
        MatchOpportunity(
            opportunity=make_opportunity(id="high", salary=3000),
            similarity=0.85,
            distance=0.15,
        ),
    ]

    survivors, stats = EligibilityFilter().filter_opportunities(
        candidate, opportunities
    )

    assert [m.opportunity.id for m in survivors] == ["high"]
    assert stats.passed_salary == 1
    assert stats.final == 1
