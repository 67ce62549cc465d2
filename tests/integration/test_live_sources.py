"""Integration tests against the live registry, label, literature and ICD-10 APIs."""

import pytest

from trial_navigator.models.model_clinical_trials import TrialStatus

pytestmark = pytest.mark.integration


async def test_search_studies_returns_parsed_trials(clinical_trials_client):
    trials = await clinical_trials_client.search_studies("type 2 diabetes", page_size=5)

    assert 1 <= len(trials) <= 5
    first = trials[0]
    assert first.nct_id.startswith("NCT")
    assert first.title != ""
    assert isinstance(first.status, TrialStatus)


async def test_get_study_round_trip(clinical_trials_client):
    [trial] = await clinical_trials_client.search_studies("asthma", page_size=1)

    fetched = await clinical_trials_client.get_study(trial.nct_id)

    assert fetched is not None
    assert fetched.nct_id == trial.nct_id


async def test_get_study_unknown_id(clinical_trials_client):
    assert await clinical_trials_client.get_study("NCT99999999") is None


async def test_get_label_for_common_drug(fda_client):
    label = await fda_client.get_label("metformin")

    assert label is not None
    assert "metformin" in label.names()
    assert label.warnings or label.boxed_warning


async def test_get_label_unknown_drug(fda_client):
    assert await fda_client.get_label("notarealdrugname") is None


async def test_pubmed_search_and_fetch(pubmed_client):
    pmids = await pubmed_client.search("metformin type 2 diabetes", max_results=3)

    assert len(pmids) == 3
    article = await pubmed_client.fetch_article(pmids[0])
    assert article is not None
    assert article.pmid == pmids[0]
    assert article.title != ""


async def test_icd10_best_match(icd10_client):
    match = await icd10_client.best_match("type 2 diabetes")

    assert match is not None
    assert match.code.startswith("E11")
    assert match.category == "Endocrine, nutritional and metabolic diseases"
