"""
Pydantic models for the patient profile.

The profile is produced upstream (record extraction is not part of this
package) and is treated as read-only for the whole pipeline run.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BloodPressure(BaseModel):
    model_config = ConfigDict(frozen=True)

    systolic: int | None = None
    diastolic: int | None = None


class LabValues(BaseModel):
    """Most recent laboratory results. Units follow common US reporting."""

    model_config = ConfigDict(frozen=True)

    hba1c: float | None = None  # %
    egfr: float | None = None  # mL/min/1.73m2
    creatinine: float | None = None  # mg/dL
    glucose: float | None = None  # mg/dL
    cholesterol: float | None = None  # mg/dL
    blood_pressure: BloodPressure | None = None

    def has_values(self) -> bool:
        return any(value is not None for value in self.model_dump().values())


class PatientProfile(BaseModel):
    """A patient's clinical profile used as the matching input."""

    model_config = ConfigDict(frozen=True)

    diagnosis: str = Field(min_length=1)
    diagnosis_code: str | None = None  # ICD-10-CM, e.g. "E11.9"
    age: int = Field(gt=0)
    gender: str | None = None  # "MALE" / "FEMALE"
    medications: list[str] = []  # ordered, may repeat
    lab_values: LabValues = LabValues()
    comorbidities: list[str] = []
    location: str | None = None  # free text, e.g. "Atlanta, Georgia"
    biomarkers: list[str] = []
    prior_treatments: list[str] = []
    allergies: list[str] = []

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
