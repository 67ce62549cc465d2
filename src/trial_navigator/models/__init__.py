"""Data models for Trial Navigator."""

from trial_navigator.models.model_clinical_trials import (
    TrialCandidate,
    TrialSearchQuery,
    TrialSearchResult,
    TrialStatus,
)
from trial_navigator.models.model_drug_safety import (
    DrugInteraction,
    DrugSafetyReport,
    SafetySignal,
)
from trial_navigator.models.model_eligibility import (
    EligibilityAssessment,
    EligibilityStatus,
    PipelineResult,
    SearchPreferences,
)
from trial_navigator.models.model_patient import LabValues, PatientProfile

__all__ = [
    "DrugInteraction",
    "DrugSafetyReport",
    "EligibilityAssessment",
    "EligibilityStatus",
    "LabValues",
    "PatientProfile",
    "PipelineResult",
    "SafetySignal",
    "SearchPreferences",
    "TrialCandidate",
    "TrialSearchQuery",
    "TrialSearchResult",
    "TrialStatus",
]
