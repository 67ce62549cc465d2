"""Build semantic-matcher documents from trials and a query from a patient."""

import logging
import re
from typing import Any

from trial_navigator.helpers.trial_helpers import parse_age_years
from trial_navigator.models.model_clinical_trials import TrialCandidate
from trial_navigator.models.model_patient import PatientProfile
from trial_navigator.services.vector_store import EMBEDDING_ERRORS, SemanticMatcher

logger = logging.getLogger(__name__)

LAB_KEYWORDS: dict[str, str] = {
    "hba1c": "hba1c",
    "a1c": "hba1c",
    "egfr": "egfr",
    "glomerular filtration": "egfr",
    "creatinine": "creatinine",
    "glucose": "glucose",
    "cholesterol": "cholesterol",
    "ldl": "cholesterol",
    "blood pressure": "blood_pressure",
}

_MEDICATION_RE = re.compile(
    r"\b(?:receiving|taking|treated with|on stable(?: dose of)?|on a stable dose of)\s+"
    r"([a-z][\w-]+)",
    re.IGNORECASE,
)
_MAX_LOCATIONS = 10


def required_labs(criteria: list[str]) -> list[str]:
    text = " ".join(criteria).lower()
    labs: list[str] = []
    for keyword, lab in LAB_KEYWORDS.items():
        if keyword in text and lab not in labs:
            labs.append(lab)
    return labs


def required_medications(criteria: list[str]) -> list[str]:
    meds: list[str] = []
    for match in _MEDICATION_RE.finditer(" ".join(criteria)):
        name = match.group(1).lower()
        if name not in meds and name not in ("a", "the", "any"):
            meds.append(name)
    return meds


def build_trial_document(trial: TrialCandidate) -> tuple[str, str, dict[str, Any]]:
    """(doc_id, content, metadata) for one trial."""
    elig = trial.eligibility
    sections = [
        f"Condition: {trial.condition or ', '.join(trial.conditions)}.",
        f"Title: {trial.title}.",
    ]
    if trial.phase:
        sections.append(f"Phase: {trial.phase}.")
    sections.append(f"Status: {trial.status.value}.")
    if elig.inclusion:
        sections.append("Inclusion Criteria: " + " ".join(elig.inclusion))
    if elig.exclusion:
        sections.append("Exclusion Criteria: " + " ".join(elig.exclusion))
    if elig.min_age:
        sections.append(f"Minimum Age: {elig.min_age}.")
    if elig.max_age:
        sections.append(f"Maximum Age: {elig.max_age}.")
    if trial.study_type:
        sections.append(f"Study Type: {trial.study_type}.")
    if trial.interventions:
        sections.append("Interventions: " + ", ".join(trial.interventions) + ".")

    metadata = {
        "trial_id": trial.nct_id,
        "condition": trial.condition,
        "title": trial.title,
        "phase": trial.phase,
        "status": trial.status.value,
        "age_range": {
            "min": parse_age_years(elig.min_age),
            "max": parse_age_years(elig.max_age),
        },
        "inclusion_criteria": elig.inclusion,
        "exclusion_criteria": elig.exclusion,
        "required_labs": required_labs(elig.inclusion),
        "required_medications": required_medications(elig.inclusion),
        "biomarkers": trial.biomarkers,
        "locations": [loc.describe() for loc in trial.locations[:_MAX_LOCATIONS]],
    }
    return f"trial_{trial.nct_id}", " ".join(sections), metadata


def build_patient_query(profile: PatientProfile) -> str:
    """Free-text patient summary used as the semantic search query."""
    parts = [f"Condition: {profile.diagnosis}.", f"Age: {profile.age}."]
    if profile.gender:
        parts.append(f"Gender: {profile.gender}.")
    if profile.medications:
        parts.append("Medications: " + ", ".join(profile.medications) + ".")
    if profile.comorbidities:
        parts.append("Comorbidities: " + ", ".join(profile.comorbidities) + ".")
    if profile.biomarkers:
        parts.append("Biomarkers: " + ", ".join(profile.biomarkers) + ".")
    if profile.prior_treatments:
        parts.append("Prior treatments: " + ", ".join(profile.prior_treatments) + ".")
    return " ".join(parts)


async def populate_corpus(matcher: SemanticMatcher, trials: list[TrialCandidate]) -> int:
    """Add trials to the matcher; returns how many were new.

    Re-populating with the same trials adds nothing. A trial whose embedding
    fails is logged and skipped.
    """
    added = 0
    for trial in trials:
        doc_id, content, metadata = build_trial_document(trial)
        try:
            if await matcher.add_document(doc_id, content, metadata):
                added += 1
        except EMBEDDING_ERRORS as e:
            logger.warning("Could not embed trial %s: %s", trial.nct_id, e)
    logger.info("Corpus populated: %d new of %d trials", added, len(trials))
    return added
