"""Unit tests for services/orchestrator, with every upstream mocked."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from trial_navigator.config import Settings
from trial_navigator.data_sources.fda import FDAClient
from trial_navigator.models.model_clinical_trials import (
    TrialLocation,
    TrialSearchResult,
)
from trial_navigator.models.model_drug_safety import SignalType
from trial_navigator.models.model_eligibility import (
    AgeEligibility,
    BiomarkerEligibility,
    EligibilityAssessment,
    EligibilityStatus,
    LocationEligibility,
    SearchPreferences,
)
from trial_navigator.models.model_fda import DrugLabel
from trial_navigator.models.model_icd10 import DiagnosisCode
from trial_navigator.models.model_pubmed import LiteratureArticle
from trial_navigator.services.drug_safety import DrugSafetyAnalyzer
from trial_navigator.services.eligibility import EligibilityAssessor, PipelineInputError
from trial_navigator.services.orchestrator import PipelineOrchestrator, summarize
from trial_navigator.services.vector_store import SemanticMatcher


async def _constant_embedder(texts: list[str]) -> list[list[float]]:
    return [[1.0, 0.5] for _ in texts]


@pytest.fixture
def trials(trial_factory):
    return [
        trial_factory(
            "NCT_EXCLUDED", title="Insulin Study", exclusion=["History of hypertension"]
        ),
        trial_factory(
            "NCT_FAR",
            title="Tirzepatide Study",
            locations=[TrialLocation(city="Boston", state="Massachusetts")],
        ),
        trial_factory("NCT_GOOD"),
    ]


@pytest.fixture
def labels():
    return {
        "metformin": DrugLabel(
            drug_name="metformin", warnings="Use with care in elderly patients."
        )
    }


@pytest.fixture
def orchestrator(trials, labels):
    trial_search = MagicMock()
    trial_search.search = AsyncMock(
        return_value=TrialSearchResult(trials=trials, total_found=len(trials))
    )
    fda = FDAClient()
    fda.get_label = AsyncMock(side_effect=lambda name: labels.get(name))
    pubmed = MagicMock()
    pubmed.search_literature = AsyncMock(
        return_value=[LiteratureArticle(pmid="111", title="GLP-1 agonists in T2D")]
    )
    icd10 = MagicMock()
    icd10.best_match = AsyncMock(
        return_value=DiagnosisCode(code="E11.9", description="Type 2 diabetes mellitus")
    )
    settings = Settings(semantic_threshold=0.5)
    return PipelineOrchestrator(
        trial_search=trial_search,
        safety_analyzer=DrugSafetyAnalyzer(fda, inter_call_delay=0),
        assessor=EligibilityAssessor(eligible_threshold=0.7, potential_threshold=0.4),
        matcher=SemanticMatcher(embedder=_constant_embedder),
        pubmed=pubmed,
        icd10=icd10,
        settings=settings,
    )


async def test_run_end_to_end(orchestrator, diabetes_patient):
    result = await orchestrator.run(diabetes_patient)

    assert [a.nct_id for a in result.assessments] == ["NCT_GOOD", "NCT_FAR", "NCT_EXCLUDED"]
    assert [a.status for a in result.assessments] == [
        EligibilityStatus.ELIGIBLE,
        EligibilityStatus.POTENTIALLY_ELIGIBLE,
        EligibilityStatus.INELIGIBLE,
    ]
    assert result.summary.total_trials_assessed == 3
    assert result.summary.eligible == 1
    assert result.summary.potentially_eligible == 1
    assert result.summary.ineligible == 1
    assert result.diagnosis_code == "E11.9"
    assert [a.pmid for a in result.literature] == ["111"]
    assert set(result.metadata) == {"query", "labels_missing", "execution_time_ms"}
    assert result.metadata["labels_missing"] == ["lisinopril"]


async def test_semantic_similarity_attached(orchestrator, diabetes_patient):
    result = await orchestrator.run(diabetes_patient)

    assert all(a.semantic_similarity == pytest.approx(1.0) for a in result.assessments)


async def test_patient_safety_signals_reported_once(orchestrator, diabetes_patient):
    result = await orchestrator.run(diabetes_patient)

    age_warnings = [
        s for s in result.safety_concerns if s.signal_type == SignalType.AGE_WARNING
    ]
    assert len(age_warnings) == 1
    assert age_warnings[0].affected_drugs == ["metformin"]


async def test_run_without_profile(orchestrator):
    with pytest.raises(PipelineInputError):
        await orchestrator.run(None)


async def test_max_trials_preference(orchestrator, diabetes_patient):
    result = await orchestrator.run(diabetes_patient, SearchPreferences(max_trials=1))

    assert [a.nct_id for a in result.assessments] == ["NCT_EXCLUDED"]


async def test_literature_skipped_when_not_requested(orchestrator, diabetes_patient):
    result = await orchestrator.run(
        diabetes_patient, SearchPreferences(include_literature=False)
    )

    assert result.literature == []
    orchestrator.pubmed.search_literature.assert_not_awaited()


async def test_existing_diagnosis_code_is_kept(orchestrator, diabetes_patient):
    profile = diabetes_patient.model_copy(update={"diagnosis_code": "E11.65"})

    result = await orchestrator.run(profile)

    assert result.diagnosis_code == "E11.65"
    orchestrator.icd10.best_match.assert_not_awaited()


async def test_search_timeout_yields_empty_result(orchestrator, diabetes_patient):
    async def _slow_search(query):
        await asyncio.sleep(1)

    orchestrator.trial_search.search = _slow_search
    orchestrator.search_timeout = 0.01

    result = await orchestrator.run(diabetes_patient)

    assert result.assessments == []
    assert result.summary.total_trials_assessed == 0
    assert result.summary.average_match_score == 0.0


async def test_literature_timeout_yields_no_articles(orchestrator, diabetes_patient):
    async def _slow_literature(*args, **kwargs):
        await asyncio.sleep(1)

    orchestrator.pubmed.search_literature = _slow_literature
    orchestrator.literature_timeout = 0.01

    result = await orchestrator.run(diabetes_patient)

    assert result.literature == []
    assert len(result.assessments) == 3


async def test_create_shares_limiter_and_cache():
    orchestrator = PipelineOrchestrator.create(Settings())

    async with orchestrator:
        trials_client = orchestrator.trial_search.client
        fda_client = orchestrator.safety_analyzer.fda_client
        assert trials_client.rate_limiter is fda_client.rate_limiter
        assert trials_client.cache is orchestrator.pubmed.cache
        assert orchestrator.icd10.rate_limiter is trials_client.rate_limiter


def _assessment(nct_id, status, score, recommendations):
    return EligibilityAssessment(
        nct_id=nct_id,
        status=status,
        match_score=score,
        age_eligibility=AgeEligibility(eligible=True, reason="ok", patient_age=50),
        location_eligibility=LocationEligibility(eligible=True, reason="ok"),
        biomarker_eligibility=BiomarkerEligibility(eligible=True, reason="ok"),
        recommendations=recommendations,
    )


def test_summarize():
    summary = summarize(
        [
            _assessment("NCT1", EligibilityStatus.ELIGIBLE, 0.9, ["Contact NCT1", "extra"]),
            _assessment("NCT2", EligibilityStatus.POTENTIALLY_ELIGIBLE, 0.5, ["Discuss NCT2"]),
            _assessment("NCT3", EligibilityStatus.INELIGIBLE, 0.1, ["never shown"]),
        ]
    )

    assert summary.total_trials_assessed == 3
    assert summary.eligible == 1
    assert summary.potentially_eligible == 1
    assert summary.ineligible == 1
    assert summary.requires_review == 0
    assert summary.average_match_score == pytest.approx(0.5)
    assert summary.top_recommendations == ["Contact NCT1", "Discuss NCT2"]


def test_summarize_empty():
    summary = summarize([])

    assert summary.total_trials_assessed == 0
    assert summary.average_match_score == 0.0
