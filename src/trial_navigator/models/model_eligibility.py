"""
Pydantic models for eligibility assessment and pipeline output.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from trial_navigator.models.model_drug_safety import DrugInteraction, SafetySignal
from trial_navigator.models.model_pubmed import LiteratureArticle


class EligibilityStatus(str, Enum):
    ELIGIBLE = "eligible"
    POTENTIALLY_ELIGIBLE = "potentially_eligible"
    INELIGIBLE = "ineligible"
    REQUIRES_REVIEW = "requires_review"


class AgeEligibility(BaseModel):
    eligible: bool
    reason: str
    patient_age: int
    min_age: float | None = None  # years
    max_age: float | None = None
    parseable: bool = True


class LocationEligibility(BaseModel):
    eligible: bool
    reason: str
    available_locations: list[str] = []


class BiomarkerEligibility(BaseModel):
    eligible: bool
    reason: str
    required_biomarkers: list[str] = []
    patient_biomarkers: list[str] = []


class EligibilityAssessment(BaseModel):
    """Final, per-trial verdict for one patient."""

    nct_id: str
    title: str = ""
    status: EligibilityStatus
    match_score: float = Field(ge=0.0, le=1.0)
    inclusion_matches: list[str] = []
    exclusion_conflicts: list[str] = []
    age_eligibility: AgeEligibility
    location_eligibility: LocationEligibility
    biomarker_eligibility: BiomarkerEligibility
    drug_interactions: list[DrugInteraction] = []
    safety_flags: list[SafetySignal] = []
    semantic_similarity: float | None = None
    reasoning: str = ""
    recommendations: list[str] = []


class SearchPreferences(BaseModel):
    max_trials: int = Field(default=10, ge=1, le=20)
    include_completed_trials: bool = False
    include_literature: bool = True
    max_literature_results: int = Field(default=5, ge=1, le=10)
    radius_miles: int | None = None


class AssessmentSummary(BaseModel):
    total_trials_assessed: int = 0
    eligible: int = 0
    potentially_eligible: int = 0
    ineligible: int = 0
    requires_review: int = 0
    average_match_score: float = 0.0
    top_recommendations: list[str] = []


class PipelineResult(BaseModel):
    """Everything one pipeline run produces for a patient."""

    assessments: list[EligibilityAssessment] = []
    summary: AssessmentSummary = AssessmentSummary()
    safety_concerns: list[SafetySignal] = []
    literature: list[LiteratureArticle] = []
    diagnosis_code: str | None = None
    metadata: dict[str, Any] = {}
