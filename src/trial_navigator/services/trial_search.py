"""
Trial search with query expansion, local filtering and adaptive broadening.

Whole results are cached under the full query. When a search comes back with
fewer than three trials, one broadened fallback search is attempted.
"""

import asyncio
import functools
import logging
import time

from trial_navigator.constants import (
    CLINICAL_TRIALS_CACHE_TTL,
    CLINICAL_TRIALS_MAX_PAGE_SIZE,
    CONDITION_SYNONYMS,
    FALLBACK_MIN_RADIUS_MILES,
    FALLBACK_MIN_RESULTS,
    FALLBACK_TIMEOUT,
    MAX_CONDITION_SYNONYMS,
    MAX_SEARCH_TERMS,
    MIN_RELEVANCE_SCORE,
    SCORE_TIE_TOLERANCE,
    STATUS_PRIORITY,
)
from trial_navigator.data_sources.base_client import DataSourceError
from trial_navigator.data_sources.clinical_trials import ClinicalTrialsClient
from trial_navigator.helpers.trial_helpers import parse_age_years
from trial_navigator.models.model_clinical_trials import (
    QueryMetadata,
    TrialCandidate,
    TrialSearchQuery,
    TrialSearchResult,
    TrialStatus,
)
from trial_navigator.models.model_eligibility import SearchPreferences
from trial_navigator.models.model_patient import PatientProfile
from trial_navigator.services.relevance import RelevanceScorer
from trial_navigator.utils.cache import ResponseCache, cache_key

logger = logging.getLogger(__name__)


def expand_search_terms(query: TrialSearchQuery) -> list[str]:
    """Primary condition, up to two synonyms, then secondary conditions (max 3)."""
    primary = query.condition.strip()
    terms = [primary]
    lower = primary.lower()
    for key, synonyms in CONDITION_SYNONYMS.items():
        if key in lower:
            terms.extend(
                s for s in synonyms[:MAX_CONDITION_SYNONYMS] if s.lower() != lower
            )
            break
    for secondary in query.secondary_conditions:
        if secondary and secondary not in terms:
            terms.append(secondary)
    return terms[:MAX_SEARCH_TERMS]


def broaden_query(query: TrialSearchQuery) -> TrialSearchQuery:
    """The single fallback query used when a search returns too few trials."""
    statuses = list(query.statuses)
    if TrialStatus.RECRUITING in statuses:
        extra = [TrialStatus.ACTIVE_NOT_RECRUITING, TrialStatus.ENROLLING_BY_INVITATION]
    else:
        extra = [TrialStatus.RECRUITING]
    statuses.extend(s for s in extra if s not in statuses)

    return query.model_copy(
        update={
            "max_results": min(query.max_results * 2, CLINICAL_TRIALS_MAX_PAGE_SIZE),
            "radius_miles": max(query.radius_miles or 0, FALLBACK_MIN_RADIUS_MILES),
            "phases": [],
            "age": None,
            "gender": None,
            "statuses": statuses,
            "is_fallback": True,
        }
    )


def build_query(
    profile: PatientProfile, preferences: SearchPreferences | None = None
) -> TrialSearchQuery:
    """Search query for a patient: diagnosis, age, gender and location."""
    preferences = preferences or SearchPreferences()
    statuses = [TrialStatus.RECRUITING]
    if preferences.include_completed_trials:
        statuses += [TrialStatus.ACTIVE_NOT_RECRUITING, TrialStatus.COMPLETED]
    return TrialSearchQuery(
        condition=profile.diagnosis,
        age=profile.age,
        gender=profile.gender,
        location=profile.location,
        radius_miles=preferences.radius_miles,
        statuses=statuses,
        max_results=preferences.max_trials,
    )


def _status_rank(trial: TrialCandidate) -> int:
    return STATUS_PRIORITY.get(trial.status.value, len(STATUS_PRIORITY))


def _compare_ranked(a: TrialCandidate, b: TrialCandidate) -> int:
    """Descending score; near-equal scores ordered by status priority."""
    if abs(a.relevance_score - b.relevance_score) <= SCORE_TIE_TOLERANCE:
        return _status_rank(a) - _status_rank(b)
    return -1 if a.relevance_score > b.relevance_score else 1


class TrialSearchClient:
    """Search the trial registry for a query and rank what comes back."""

    def __init__(
        self,
        client: ClinicalTrialsClient,
        scorer: RelevanceScorer | None = None,
        cache: ResponseCache | None = None,
        cache_ttl: int = CLINICAL_TRIALS_CACHE_TTL,
        fallback_timeout: float = FALLBACK_TIMEOUT,
    ):
        self.client = client
        self.scorer = scorer or RelevanceScorer()
        self.cache = cache or client.cache
        self.cache_ttl = cache_ttl
        self.fallback_timeout = fallback_timeout

    async def search(self, query: TrialSearchQuery) -> TrialSearchResult:
        """Search, rank and cache the result for `query`.

        When fewer than FALLBACK_MIN_RESULTS trials come back, one broadened
        query is tried. It fetches up to twice as many records, which gives
        ranking a wider pool to choose from; the returned list is still capped
        at the caller's `query.max_results`.
        """
        start = time.monotonic()
        key = cache_key("trial_search", query.model_dump(mode="json"))
        terms = expand_search_terms(query)

        cached = self.cache.get(key, self.cache_ttl)
        if cached is not None:
            result = TrialSearchResult.model_validate(cached)
            result.query_metadata = result.query_metadata.model_copy(
                update={
                    "api_calls_made": 0,
                    "cache_hit_rate": 1.0,
                    "execution_time_ms": (time.monotonic() - start) * 1000,
                }
            )
            logger.info("Trial search cache hit for %r", query.condition)
            return result

        trials, complete = await self._execute(query, terms)
        api_calls = 1
        fallback_used = False

        if len(trials) < FALLBACK_MIN_RESULTS and not query.is_fallback:
            fallback = broaden_query(query)
            logger.info(
                "Only %d trials for %r, trying broadened search", len(trials), query.condition
            )
            api_calls += 1
            try:
                fallback_trials, fallback_complete = await asyncio.wait_for(
                    self._execute(fallback, terms), timeout=self.fallback_timeout
                )
            except asyncio.TimeoutError:
                logger.warning("Fallback search timed out after %.0fs", self.fallback_timeout)
                fallback_trials, fallback_complete = [], False
            if len(fallback_trials) > len(trials):
                trials, complete = fallback_trials, fallback_complete
                fallback_used = True

        ranked = self.rank(trials, query)[: query.max_results]
        result = TrialSearchResult(
            trials=ranked,
            total_found=len(ranked),
            query_metadata=QueryMetadata(
                search_terms=terms,
                filters={
                    "statuses": [s.value for s in query.statuses],
                    "location": query.location,
                    "radius_miles": query.radius_miles,
                    "age": query.age,
                    "gender": query.gender,
                    "phases": query.phases,
                },
                execution_time_ms=(time.monotonic() - start) * 1000,
                api_calls_made=api_calls,
                cache_hit_rate=0.0,
                fallback_used=fallback_used,
            ),
        )
        if complete:
            self.cache.set(key, result.model_dump(mode="json"))
        return result

    def rank(
        self, trials: list[TrialCandidate], query: TrialSearchQuery
    ) -> list[TrialCandidate]:
        """Score, drop low-relevance trials and sort best first."""
        scored = [
            t.model_copy(update={"relevance_score": self.scorer.score(t, query)})
            for t in trials
        ]
        kept = [t for t in scored if t.relevance_score >= MIN_RELEVANCE_SCORE]
        return sorted(kept, key=functools.cmp_to_key(_compare_ranked))

    async def _execute(
        self, query: TrialSearchQuery, terms: list[str]
    ) -> tuple[list[TrialCandidate], bool]:
        """One upstream search plus local filters; errors degrade to ([], False)."""
        try:
            trials = await self.client.search_studies(
                " OR ".join(terms),
                location=query.location,
                page_size=query.max_results,
            )
        except DataSourceError as e:
            logger.warning("Trial search failed for %r: %s", query.condition, e)
            return [], False
        return self.apply_filters(trials, query), True

    @staticmethod
    def apply_filters(
        trials: list[TrialCandidate], query: TrialSearchQuery
    ) -> list[TrialCandidate]:
        """Status, gender, phase and age filters applied to returned records."""
        kept = []
        wanted_phases = {p.upper().replace(" ", "") for p in query.phases}
        for trial in trials:
            if query.statuses and trial.status not in query.statuses:
                continue
            gender = (trial.eligibility.gender or "ALL").upper()
            if query.gender and gender not in ("ALL", query.gender.upper()):
                continue
            if wanted_phases:
                trial_phases = {p.upper() for p in trial.phase.split("/") if p}
                if not trial_phases & wanted_phases:
                    continue
            if query.age is not None:
                min_age = parse_age_years(trial.eligibility.min_age)
                max_age = parse_age_years(trial.eligibility.max_age)
                if min_age is not None and query.age < min_age:
                    continue
                if max_age is not None and query.age > max_age:
                    continue
            kept.append(trial)
        return kept
