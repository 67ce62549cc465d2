"""Drug interaction and safety signal models."""

from enum import Enum

from pydantic import BaseModel


class InteractionSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CONTRAINDICATED = "contraindicated"


class SignalType(str, Enum):
    CONTRAINDICATION = "contraindication"
    WARNING = "warning"
    AGE_WARNING = "age_warning"
    DRUG_INTERACTION = "drug_interaction"


class SignalSeverity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class DrugInteraction(BaseModel):
    """An interaction found between two drugs via label text."""

    drug1: str
    drug2: str
    severity: InteractionSeverity
    description: str
    management: str | None = None
    clinical_effects: list[str] = []


class SafetySignal(BaseModel):
    signal_type: SignalType
    severity: SignalSeverity
    description: str
    affected_drugs: list[str] = []
    patient_factors: list[str] = []
    recommendations: list[str] = []


class DrugSafetyReport(BaseModel):
    """Output of one safety analysis over a patient's medication list."""

    medications_checked: list[str] = []
    labels_found: list[str] = []
    labels_missing: list[str] = []
    interactions: list[DrugInteraction] = []
    signals: list[SafetySignal] = []

    def has_contraindication(self) -> bool:
        return any(
            i.severity == InteractionSeverity.CONTRAINDICATED for i in self.interactions
        )
