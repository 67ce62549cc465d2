"""Shared fixtures for integration tests.

These hit the live public APIs. Run them explicitly with ``pytest -m integration``.
"""

import pytest

from trial_navigator.data_sources.clinical_trials import ClinicalTrialsClient
from trial_navigator.data_sources.fda import FDAClient
from trial_navigator.data_sources.icd10 import ICD10Client
from trial_navigator.data_sources.pubmed import PubMedClient


@pytest.fixture
async def clinical_trials_client():
    """Create and tear down a ClinicalTrialsClient."""
    c = ClinicalTrialsClient()
    yield c
    await c.close()


@pytest.fixture
async def fda_client():
    c = FDAClient()
    yield c
    await c.close()


@pytest.fixture
async def pubmed_client():
    """Create and tear down a PubMedClient."""
    c = PubMedClient()
    yield c
    await c.close()


@pytest.fixture
async def icd10_client():
    c = ICD10Client()
    yield c
    await c.close()
