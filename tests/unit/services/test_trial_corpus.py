"""Unit tests for services/trial_corpus."""

import asyncio

from trial_navigator.services.trial_corpus import (
    build_patient_query,
    build_trial_document,
    populate_corpus,
    required_labs,
    required_medications,
)
from trial_navigator.services.vector_store import SemanticMatcher


async def _length_embedder(texts: list[str]) -> list[list[float]]:
    return [[float(len(t)), 1.0] for t in texts]


def test_required_labs():
    criteria = ["HbA1c between 7.0% and 10.5%", "eGFR >= 45", "Serum creatinine normal"]

    assert required_labs(criteria) == ["hba1c", "egfr", "creatinine"]


def test_required_labs_none():
    assert required_labs(["Adults aged 18 or older"]) == []


def test_required_medications():
    criteria = ["On a stable dose of metformin for 90 days", "Currently taking insulin"]

    assert required_medications(criteria) == ["metformin", "insulin"]


def test_build_trial_document(trial_factory):
    doc_id, content, metadata = build_trial_document(trial_factory("NCT123"))

    assert doc_id == "trial_NCT123"
    assert content.startswith("Condition: Type 2 Diabetes.")
    assert "Inclusion Criteria: Diagnosed with type 2 diabetes" in content
    assert "Exclusion Criteria: Type 1 diabetes" in content
    assert "Interventions: Semaglutide." in content
    assert metadata["trial_id"] == "NCT123"
    assert metadata["age_range"] == {"min": 18.0, "max": 75.0}
    assert metadata["required_labs"] == ["hba1c"]
    assert metadata["locations"] == ["Emory University Hospital, Atlanta, Georgia, United States"]


def test_build_patient_query(diabetes_patient):
    query = build_patient_query(diabetes_patient)

    assert query.startswith("Condition: Type 2 Diabetes. Age: 65.")
    assert "Medications: Metformin 500 mg, Lisinopril." in query
    assert "Comorbidities: Hypertension." in query
    assert "Biomarkers" not in query


async def test_populate_corpus_is_idempotent(trial_factory):
    matcher = SemanticMatcher(embedder=_length_embedder)
    trials = [trial_factory("NCT1"), trial_factory("NCT2")]

    assert await populate_corpus(matcher, trials) == 2
    assert await populate_corpus(matcher, trials) == 0
    assert len(matcher) == 2


async def test_populate_corpus_skips_failed_embeddings(trial_factory):
    calls = 0

    async def _flaky_embedder(texts):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise asyncio.TimeoutError()
        return [[1.0, 0.0] for _ in texts]

    matcher = SemanticMatcher(embedder=_flaky_embedder)

    added = await populate_corpus(matcher, [trial_factory("NCT1"), trial_factory("NCT2")])

    assert added == 1
    assert matcher.get_document("trial_NCT1") is None
    assert matcher.get_document("trial_NCT2") is not None
