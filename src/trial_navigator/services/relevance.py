"""Relevance scoring of trial candidates against a search query."""

from trial_navigator.constants import CONDITION_SYNONYMS
from trial_navigator.helpers.drug_helpers import mentions
from trial_navigator.helpers.trial_helpers import parse_age_years
from trial_navigator.models.model_clinical_trials import (
    TrialCandidate,
    TrialLocation,
    TrialSearchQuery,
    TrialStatus,
)

AGE_WEIGHT = 0.3
CONDITION_WEIGHT = 0.4
LOCATION_WEIGHT = 0.2
STATUS_WEIGHT = 0.1
COMPLETENESS_BONUS = 0.05

AGE_NEAR_MISS_YEARS = 5.0
AGE_NEAR_MISS_SCORE = 0.2
AGE_UNBOUNDED_SCORE = 0.15
CONDITION_SYNONYM_SCORE = 0.3
CONDITION_TOKEN_SCORE = 0.2
LOCATION_PARTIAL_SCORE = 0.1
COMPLETENESS_MIN_CHARS = 100


def location_parts(requested: str) -> list[str]:
    """The requested location text and its comma-separated parts, lower-cased."""
    text = requested.strip().lower()
    if not text:
        return []
    parts = [text]
    parts.extend(p.strip() for p in text.split(",") if p.strip() and p.strip() != text)
    return parts


def location_matches(requested: str, location: TrialLocation) -> bool:
    """True when a site's city, state or country contains the requested text
    or one of its comma-separated parts as a whole word.
    """
    fields = [f for f in (location.city, location.state, location.country) if f]
    return any(
        mentions(part, field) for part in location_parts(requested) for field in fields
    )


def synonym_group(text: str) -> set[str] | None:
    """The synonym group (key plus synonyms) that `text` belongs to, if any."""
    lower = text.lower()
    for key, synonyms in CONDITION_SYNONYMS.items():
        group = {key, *synonyms}
        if any(term in lower for term in group):
            return group
    return None


class RelevanceScorer:
    """Deterministic weighted score of how well a trial fits a query.

    Components: age 0.3, condition 0.4, location 0.2, status 0.1, plus a
    0.05 bonus for trials with substantial criteria text. The total is
    clamped to [0, 1].
    """

    def score(self, trial: TrialCandidate, query: TrialSearchQuery) -> float:
        total = (
            self.age_score(query.age, trial)
            + self.condition_score(query.condition, trial)
            + self.location_score(query.location, trial)
            + self.status_score(trial.status)
        )
        if len(trial.eligibility.combined_text()) > COMPLETENESS_MIN_CHARS:
            total += COMPLETENESS_BONUS
        return max(0.0, min(1.0, total))

    def age_score(self, age: int | None, trial: TrialCandidate) -> float:
        min_age = parse_age_years(trial.eligibility.min_age)
        max_age = parse_age_years(trial.eligibility.max_age)
        if age is None or (min_age is None and max_age is None):
            return AGE_UNBOUNDED_SCORE

        lower = min_age if min_age is not None else 0.0
        upper = max_age if max_age is not None else float("inf")
        if lower <= age <= upper:
            return AGE_WEIGHT
        distance = lower - age if age < lower else age - upper
        if distance <= AGE_NEAR_MISS_YEARS:
            return AGE_NEAR_MISS_SCORE
        return 0.0

    def condition_score(self, condition: str, trial: TrialCandidate) -> float:
        wanted = condition.strip().lower()
        if not wanted:
            return 0.0
        trial_conditions = [c.lower() for c in [trial.condition, *trial.conditions] if c]
        if not trial_conditions:
            trial_conditions = [trial.title.lower()]

        if any(wanted in c or c in wanted for c in trial_conditions):
            return CONDITION_WEIGHT

        group = synonym_group(wanted)
        if group and any(term in c for c in trial_conditions for term in group):
            return CONDITION_SYNONYM_SCORE

        wanted_tokens = {t for t in wanted.split() if len(t) > 2}
        trial_tokens = {t for c in trial_conditions for t in c.split()}
        if wanted_tokens & trial_tokens:
            return CONDITION_TOKEN_SCORE
        return 0.0

    def location_score(self, location: str | None, trial: TrialCandidate) -> float:
        if not trial.locations:
            return 0.0
        if not location:
            return LOCATION_PARTIAL_SCORE
        if any(location_matches(location, loc) for loc in trial.locations):
            return LOCATION_WEIGHT
        return LOCATION_PARTIAL_SCORE

    def status_score(self, status: TrialStatus) -> float:
        if status == TrialStatus.RECRUITING:
            return STATUS_WEIGHT
        if status == TrialStatus.ACTIVE_NOT_RECRUITING:
            return STATUS_WEIGHT / 2
        return 0.0
