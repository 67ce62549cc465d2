"""
End-to-end matching pipeline for one patient.

profile -> diagnosis code -> trial search -> semantic cross-check
        -> drug safety -> per-trial assessment -> supporting literature

Upstream calls within a run are made one after another. The rate limiter and
cache are shared service objects, so several runs may execute concurrently
against the same orchestrator.
"""

import asyncio
import logging
import time

from trial_navigator.config import Settings, get_settings
from trial_navigator.constants import LITERATURE_STEP_TIMEOUT, SEARCH_STEP_TIMEOUT
from trial_navigator.data_sources.clinical_trials import ClinicalTrialsClient
from trial_navigator.data_sources.fda import FDAClient
from trial_navigator.data_sources.icd10 import ICD10Client
from trial_navigator.data_sources.pubmed import PubMedClient
from trial_navigator.models.model_clinical_trials import (
    QueryMetadata,
    TrialCandidate,
    TrialSearchResult,
)
from trial_navigator.models.model_drug_safety import (
    DrugInteraction,
    SafetySignal,
)
from trial_navigator.models.model_eligibility import (
    AssessmentSummary,
    EligibilityAssessment,
    EligibilityStatus,
    PipelineResult,
    SearchPreferences,
)
from trial_navigator.models.model_patient import PatientProfile
from trial_navigator.models.model_pubmed import LiteratureArticle
from trial_navigator.services.drug_safety import DrugSafetyAnalyzer
from trial_navigator.services.eligibility import EligibilityAssessor, PipelineInputError
from trial_navigator.services.trial_corpus import build_patient_query, populate_corpus
from trial_navigator.services.trial_search import TrialSearchClient, build_query
from trial_navigator.services.vector_store import SemanticMatcher
from trial_navigator.utils.cache import ResponseCache
from trial_navigator.utils.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

_STATUS_ORDER = {
    EligibilityStatus.ELIGIBLE: 0,
    EligibilityStatus.POTENTIALLY_ELIGIBLE: 1,
    EligibilityStatus.REQUIRES_REVIEW: 2,
    EligibilityStatus.INELIGIBLE: 3,
}


def summarize(assessments: list[EligibilityAssessment]) -> AssessmentSummary:
    counts = {status: 0 for status in EligibilityStatus}
    for a in assessments:
        counts[a.status] += 1
    recommendations: list[str] = []
    for a in assessments:
        if a.status in (EligibilityStatus.ELIGIBLE, EligibilityStatus.POTENTIALLY_ELIGIBLE):
            for rec in a.recommendations[:1]:
                if rec not in recommendations:
                    recommendations.append(rec)
    return AssessmentSummary(
        total_trials_assessed=len(assessments),
        eligible=counts[EligibilityStatus.ELIGIBLE],
        potentially_eligible=counts[EligibilityStatus.POTENTIALLY_ELIGIBLE],
        ineligible=counts[EligibilityStatus.INELIGIBLE],
        requires_review=counts[EligibilityStatus.REQUIRES_REVIEW],
        average_match_score=(
            sum(a.match_score for a in assessments) / len(assessments) if assessments else 0.0
        ),
        top_recommendations=recommendations[:5],
    )


class PipelineOrchestrator:
    def __init__(
        self,
        trial_search: TrialSearchClient,
        safety_analyzer: DrugSafetyAnalyzer,
        assessor: EligibilityAssessor | None = None,
        matcher: SemanticMatcher | None = None,
        pubmed: PubMedClient | None = None,
        icd10: ICD10Client | None = None,
        settings: Settings | None = None,
        search_timeout: float = SEARCH_STEP_TIMEOUT,
        literature_timeout: float = LITERATURE_STEP_TIMEOUT,
    ):
        self.settings = settings or get_settings()
        self.trial_search = trial_search
        self.safety_analyzer = safety_analyzer
        self.assessor = assessor or EligibilityAssessor(
            eligible_threshold=self.settings.eligible_threshold,
            potential_threshold=self.settings.potential_threshold,
        )
        self.matcher = matcher
        self.pubmed = pubmed
        self.icd10 = icd10
        self.search_timeout = search_timeout
        self.literature_timeout = literature_timeout

    @classmethod
    def create(cls, settings: Settings | None = None) -> "PipelineOrchestrator":
        """Wire every client to one shared rate limiter and cache."""
        settings = settings or get_settings()
        limiter = SlidingWindowRateLimiter()
        cache = ResponseCache()
        shared = {"rate_limiter": limiter, "cache": cache}
        return cls(
            trial_search=TrialSearchClient(ClinicalTrialsClient(**shared)),
            safety_analyzer=DrugSafetyAnalyzer(
                FDAClient(api_key=settings.openfda_api_key, **shared),
                inter_call_delay=settings.inter_call_delay,
            ),
            matcher=SemanticMatcher(),
            pubmed=PubMedClient(api_key=settings.ncbi_api_key, **shared),
            icd10=ICD10Client(**shared),
            settings=settings,
        )

    async def close(self) -> None:
        await self.trial_search.client.close()
        await self.safety_analyzer.fda_client.close()
        if self.pubmed is not None:
            await self.pubmed.close()
        if self.icd10 is not None:
            await self.icd10.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # -- Steps ----------------------------------------------------------------

    async def _diagnosis_code(self, profile: PatientProfile) -> str | None:
        if profile.diagnosis_code or self.icd10 is None:
            return profile.diagnosis_code
        match = await self.icd10.best_match(profile.diagnosis)
        return match.code if match else None

    async def _search(
        self, profile: PatientProfile, preferences: SearchPreferences
    ) -> TrialSearchResult:
        query = build_query(profile, preferences)
        try:
            return await asyncio.wait_for(
                self.trial_search.search(query), timeout=self.search_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Trial search timed out after %.0fs", self.search_timeout)
            return TrialSearchResult(
                query_metadata=QueryMetadata(search_terms=[query.condition])
            )

    async def _semantic_similarity(
        self, profile: PatientProfile, candidates: list[TrialCandidate]
    ) -> dict[str, float]:
        if self.matcher is None or not candidates:
            return {}
        await populate_corpus(self.matcher, candidates)
        hits = await self.matcher.search(
            build_patient_query(profile),
            limit=max(len(self.matcher), 1),
            threshold=self.settings.semantic_threshold,
        )
        wanted = {t.nct_id for t in candidates}
        return {
            hit.document.metadata["trial_id"]: hit.similarity
            for hit in hits
            if hit.document.metadata.get("trial_id") in wanted
        }

    async def _literature(
        self, profile: PatientProfile, preferences: SearchPreferences
    ) -> list[LiteratureArticle]:
        if self.pubmed is None or not preferences.include_literature:
            return []
        try:
            return await asyncio.wait_for(
                self.pubmed.search_literature(
                    profile.diagnosis,
                    biomarkers=profile.biomarkers,
                    max_results=preferences.max_literature_results,
                ),
                timeout=self.literature_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Literature search timed out after %.0fs", self.literature_timeout)
            return []

    # -- Entry point ----------------------------------------------------------

    async def run(
        self,
        profile: PatientProfile | None,
        preferences: SearchPreferences | None = None,
    ) -> PipelineResult:
        """Match one patient against current trials."""
        if profile is None:
            raise PipelineInputError("A patient profile is required")
        preferences = preferences or SearchPreferences()
        start = time.monotonic()

        diagnosis_code = await self._diagnosis_code(profile)
        search_result = await self._search(profile, preferences)
        candidates = search_result.trials[: preferences.max_trials]
        logger.info("Assessing %d candidate trials for %r", len(candidates), profile.diagnosis)

        similarity = await self._semantic_similarity(profile, candidates)
        report = await self.safety_analyzer.analyze(profile)

        interactions_by_trial: dict[str, list[DrugInteraction]] = {}
        flags_by_trial: dict[str, list[SafetySignal]] = {}
        for trial in candidates:
            interactions, flags = await self.safety_analyzer.check_intervention(
                trial.intervention, profile
            )
            interactions_by_trial[trial.nct_id] = interactions
            flags_by_trial[trial.nct_id] = flags

        assessments = self.assessor.assess_candidates(
            profile,
            candidates,
            interactions_by_trial=interactions_by_trial,
            flags_by_trial=flags_by_trial,
            similarity_by_trial=similarity,
        )
        assessments.sort(key=lambda a: (_STATUS_ORDER[a.status], -a.match_score))

        literature = await self._literature(profile, preferences)

        concerns: list[SafetySignal] = []
        seen: set[str] = set()
        for signal in [*report.signals, *(f for a in assessments for f in a.safety_flags)]:
            if signal.description not in seen:
                seen.add(signal.description)
                concerns.append(signal)

        return PipelineResult(
            assessments=assessments,
            summary=summarize(assessments),
            safety_concerns=concerns,
            literature=literature,
            diagnosis_code=diagnosis_code,
            metadata={
                "query": search_result.query_metadata.model_dump(),
                "labels_missing": report.labels_missing,
                "execution_time_ms": (time.monotonic() - start) * 1000,
            },
        )
