"""
Pydantic models for ClinicalTrials.gov data.

These are the data contracts between the ClinicalTrials.gov client and the
matching services. Services receive these models; they never see raw API
responses.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class TrialStatus(str, Enum):
    RECRUITING = "RECRUITING"
    ACTIVE_NOT_RECRUITING = "ACTIVE_NOT_RECRUITING"
    ENROLLING_BY_INVITATION = "ENROLLING_BY_INVITATION"
    NOT_YET_RECRUITING = "NOT_YET_RECRUITING"
    COMPLETED = "COMPLETED"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"
    WITHDRAWN = "WITHDRAWN"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_raw(cls, value: str | None) -> "TrialStatus":
        """Map a registry status string ("Recruiting", "RECRUITING") to the enum."""
        if not value or not isinstance(value, str):
            return cls.UNKNOWN
        normalized = value.strip().upper().replace(" ", "_").replace(",", "")
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


# ------------------------------------------------------------------
# Trial-level models
# ------------------------------------------------------------------


class TrialLocation(BaseModel):
    """A recruiting site for a trial."""

    facility: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    zip_code: str | None = None

    def describe(self) -> str:
        return ", ".join(p for p in (self.facility, self.city, self.state, self.country) if p)


class EligibilityCriteria(BaseModel):
    """Parsed eligibility block of a trial record."""

    inclusion: list[str] = []
    exclusion: list[str] = []
    min_age: str | None = None  # free text, e.g. "18 Years"
    max_age: str | None = None
    gender: str | None = None  # "ALL", "MALE", "FEMALE"
    raw_text: str | None = None

    @model_validator(mode="before")
    @classmethod
    def coerce_nones(cls, values: dict) -> dict:
        if not isinstance(values, dict):
            return values
        for field_name, field_info in cls.model_fields.items():
            if field_info.is_required():
                continue
            if values.get(field_name) is None and field_info.default is not None:
                values[field_name] = field_info.default
        return values

    def is_parseable(self) -> bool:
        return bool(self.inclusion or self.exclusion)

    def combined_text(self) -> str:
        return " ".join(self.inclusion + self.exclusion)


class TrialCandidate(BaseModel):
    """A single trial returned by the registry, plus its relevance score."""

    nct_id: str
    title: str
    status: TrialStatus = TrialStatus.UNKNOWN
    phase: str = ""  # "PHASE2", "PHASE2/PHASE3", "" when not applicable
    condition: str = ""  # primary condition
    conditions: list[str] = []
    eligibility: EligibilityCriteria = EligibilityCriteria()
    locations: list[TrialLocation] = []
    relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    study_type: str | None = None
    interventions: list[str] = []
    biomarkers: list[str] = []
    brief_summary: str | None = None
    enrollment: int | None = None
    url: str | None = None

    @property
    def intervention(self) -> str | None:
        return self.interventions[0] if self.interventions else None


# ------------------------------------------------------------------
# Search request / response
# ------------------------------------------------------------------


class TrialSearchQuery(BaseModel):
    """Search request for the trial registry.

    Only ``condition`` (expanded) and ``location`` are sent upstream; status,
    age, gender and phase are applied to the returned records locally.
    """

    condition: str = Field(min_length=1)
    secondary_conditions: list[str] = []
    age: int | None = None
    statuses: list[TrialStatus] = [TrialStatus.RECRUITING]
    location: str | None = None
    radius_miles: int | None = None
    gender: str | None = None
    phases: list[str] = []
    max_results: int = Field(default=10, ge=1, le=50)
    is_fallback: bool = False


class QueryMetadata(BaseModel):
    search_terms: list[str] = []
    filters: dict[str, Any] = {}
    execution_time_ms: float = 0.0
    api_calls_made: int = 0
    cache_hit_rate: float = 0.0
    fallback_used: bool = False


class TrialSearchResult(BaseModel):
    trials: list[TrialCandidate] = []
    total_found: int = 0
    query_metadata: QueryMetadata = QueryMetadata()
