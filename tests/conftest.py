"""Pytest configuration and fixtures."""

import pytest

from trial_navigator.models.model_clinical_trials import (
    EligibilityCriteria,
    TrialCandidate,
    TrialLocation,
    TrialStatus,
)
from trial_navigator.models.model_patient import LabValues, PatientProfile


class FakeClock:
    """Manually advanced clock for rate limiter and cache tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def diabetes_patient() -> PatientProfile:
    """65-year-old with type 2 diabetes in Atlanta."""
    return PatientProfile(
        diagnosis="Type 2 Diabetes",
        age=65,
        gender="FEMALE",
        medications=["Metformin 500 mg", "Lisinopril"],
        lab_values=LabValues(hba1c=8.1, egfr=72),
        comorbidities=["Hypertension"],
        location="Atlanta, Georgia",
    )


def make_trial(
    nct_id: str = "NCT00000001",
    *,
    title: str = "Semaglutide in Adults With Type 2 Diabetes",
    status: TrialStatus = TrialStatus.RECRUITING,
    condition: str = "Type 2 Diabetes",
    min_age: str | None = "18 Years",
    max_age: str | None = "75 Years",
    gender: str | None = "ALL",
    inclusion: list[str] | None = None,
    exclusion: list[str] | None = None,
    locations: list[TrialLocation] | None = None,
    interventions: list[str] | None = None,
    phase: str = "PHASE3",
) -> TrialCandidate:
    return TrialCandidate(
        nct_id=nct_id,
        title=title,
        status=status,
        phase=phase,
        condition=condition,
        conditions=[condition],
        eligibility=EligibilityCriteria(
            inclusion=(
                inclusion
                if inclusion is not None
                else [
                    "Diagnosed with type 2 diabetes for at least 180 days",
                    "HbA1c between 7.0% and 10.5%",
                ]
            ),
            exclusion=(
                exclusion
                if exclusion is not None
                else ["Type 1 diabetes", "Pregnancy or breastfeeding"]
            ),
            min_age=min_age,
            max_age=max_age,
            gender=gender,
        ),
        locations=(
            locations
            if locations is not None
            else [
                TrialLocation(
                    facility="Emory University Hospital",
                    city="Atlanta",
                    state="Georgia",
                    country="United States",
                )
            ]
        ),
        interventions=interventions if interventions is not None else ["Semaglutide"],
    )


@pytest.fixture
def trial_factory():
    return make_trial
