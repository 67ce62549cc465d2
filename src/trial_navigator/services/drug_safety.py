"""
Drug safety screening from openFDA label text.

Labels are fetched once per distinct medication, one at a time, with a delay
between lookups. Interactions are found by looking for one drug's name in
another drug's "drug interactions" section and classifying the sentence that
mentions it.
"""

import asyncio
import logging
import re

from trial_navigator.config import get_settings
from trial_navigator.constants import (
    CLINICAL_EFFECT_PATTERNS,
    MANAGEMENT_PATTERNS,
    ORGAN_FUNCTION_KEYWORDS,
    SEVERITY_KEYWORDS,
)
from trial_navigator.data_sources.base_client import DataSourceError
from trial_navigator.data_sources.fda import FDAClient
from trial_navigator.helpers.drug_helpers import (
    mentions,
    normalize_drug_name,
    unique_medications,
)
from trial_navigator.models.model_drug_safety import (
    DrugInteraction,
    DrugSafetyReport,
    InteractionSeverity,
    SafetySignal,
    SignalSeverity,
    SignalType,
)
from trial_navigator.models.model_fda import DrugLabel
from trial_navigator.models.model_patient import PatientProfile

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.;])\s+")
_NON_DRUG_INTERVENTIONS = {"placebo", "standard of care", "usual care", "observation"}

SIGNAL_SEVERITY_FOR_INTERACTION: dict[InteractionSeverity, SignalSeverity] = {
    InteractionSeverity.CONTRAINDICATED: SignalSeverity.CRITICAL,
    InteractionSeverity.MAJOR: SignalSeverity.HIGH,
    InteractionSeverity.MODERATE: SignalSeverity.MODERATE,
    InteractionSeverity.MINOR: SignalSeverity.LOW,
}


def classify_severity(text: str) -> InteractionSeverity:
    """Severity from the first keyword tier found in `text`."""
    lower = text.lower()
    for severity, keywords in SEVERITY_KEYWORDS:
        if any(k in lower for k in keywords):
            return InteractionSeverity(severity)
    return InteractionSeverity.MINOR


def management_advice(text: str) -> str | None:
    lower = text.lower()
    for keyword, advice in MANAGEMENT_PATTERNS:
        if keyword in lower:
            return advice
    return None


def clinical_effects(text: str) -> list[str]:
    effects = []
    for pattern in CLINICAL_EFFECT_PATTERNS:
        for match in re.finditer(pattern, text, re.IGNORECASE):
            effect = match.group(0).strip()
            if effect not in effects:
                effects.append(effect)
    return effects


def _sentence_mentioning(text: str, names: set[str]) -> str | None:
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        if any(mentions(name, sentence) for name in names):
            return sentence.strip()
    return None


_SEVERITY_RANK = {
    InteractionSeverity.MINOR: 0,
    InteractionSeverity.MODERATE: 1,
    InteractionSeverity.MAJOR: 2,
    InteractionSeverity.CONTRAINDICATED: 3,
}


def _more_severe(
    current: DrugInteraction | None, candidate: DrugInteraction | None
) -> DrugInteraction | None:
    """The higher-severity interaction; `current` wins ties."""
    if candidate is None:
        return current
    if current is None:
        return candidate
    if _SEVERITY_RANK[candidate.severity] > _SEVERITY_RANK[current.severity]:
        return candidate
    return current


class DrugSafetyAnalyzer:
    """Pairwise interaction and patient-specific safety screening."""

    def __init__(self, fda_client: FDAClient, inter_call_delay: float | None = None):
        self.fda_client = fda_client
        self.inter_call_delay = (
            inter_call_delay
            if inter_call_delay is not None
            else get_settings().inter_call_delay
        )
        # normalized name -> label (None when openFDA has no label for it)
        self._labels: dict[str, DrugLabel | None] = {}

    # -- Label lookup ---------------------------------------------------------

    async def fetch_labels(self, medications: list[str]) -> dict[str, DrugLabel]:
        """Labels keyed by normalized name for every medication that has one.

        A medication is looked up at most once per analyzer once openFDA has
        answered for it. Failed lookups are not remembered and are retried on
        the next call.
        """
        labels: dict[str, DrugLabel] = {}
        fetched_any = False
        for med in unique_medications(medications):
            key = normalize_drug_name(med)
            if key not in self._labels:
                if fetched_any and self.inter_call_delay > 0:
                    await asyncio.sleep(self.inter_call_delay)
                fetched_any = True
                try:
                    self._labels[key] = await self.fda_client.get_label(key)
                except DataSourceError as e:
                    logger.warning("Label lookup failed for %s: %s", key, e)
                    continue
            label = self._labels[key]
            if label is not None:
                labels[key] = label
        return labels

    # -- Interactions ---------------------------------------------------------

    def find_interactions(
        self, medications: list[str], labels: dict[str, DrugLabel]
    ) -> list[DrugInteraction]:
        """Check every ordered pair; the most severe finding per unordered pair."""
        names = [normalize_drug_name(m) for m in unique_medications(medications)]
        found: dict[frozenset[str], DrugInteraction | None] = {}
        for drug_a in names:
            label_a = labels.get(drug_a)
            if label_a is None or not label_a.drug_interactions:
                continue
            for drug_b in names:
                if drug_a == drug_b:
                    continue
                pair = frozenset((drug_a, drug_b))
                interaction = self._interaction_from_label(
                    drug_a, label_a, drug_b, labels.get(drug_b)
                )
                found[pair] = _more_severe(found.get(pair), interaction)
        return [i for i in found.values() if i is not None]

    @staticmethod
    def _interaction_from_label(
        drug_a: str, label_a: DrugLabel, drug_b: str, label_b: DrugLabel | None
    ) -> DrugInteraction | None:
        names_b = {drug_b}
        if label_b is not None:
            names_b |= {n.lower() for n in label_b.generic_names}
        sentence = _sentence_mentioning(label_a.drug_interactions, names_b)
        if sentence is None:
            return None
        return DrugInteraction(
            drug1=drug_a,
            drug2=drug_b,
            severity=classify_severity(sentence),
            description=sentence,
            management=management_advice(sentence),
            clinical_effects=clinical_effects(sentence),
        )

    # -- Patient-specific signals --------------------------------------------

    def patient_signals(
        self, profile: PatientProfile, labels: dict[str, DrugLabel]
    ) -> list[SafetySignal]:
        signals: list[SafetySignal] = []
        for name, label in labels.items():
            signals.extend(self._allergy_signals(profile, name, label))
            warning_text = f"{label.warnings} {label.boxed_warning}".lower()

            elderly = "elderly" in warning_text or "geriatric" in warning_text
            if profile.age >= 65 and elderly:
                signals.append(
                    SafetySignal(
                        signal_type=SignalType.AGE_WARNING,
                        severity=SignalSeverity.MODERATE,
                        description=f"{name} label carries warnings for elderly patients",
                        affected_drugs=[name],
                        patient_factors=[f"age {profile.age}"],
                        recommendations=["Review dosing for elderly patients"],
                    )
                )
            if profile.age < 18 and "pediatric" in warning_text:
                signals.append(
                    SafetySignal(
                        signal_type=SignalType.AGE_WARNING,
                        severity=SignalSeverity.HIGH,
                        description=f"{name} label carries pediatric warnings",
                        affected_drugs=[name],
                        patient_factors=[f"age {profile.age}"],
                        recommendations=["Confirm pediatric use is appropriate"],
                    )
                )
            organs = [k for k in ORGAN_FUNCTION_KEYWORDS if k in warning_text]
            if organs and profile.lab_values.has_values():
                signals.append(
                    SafetySignal(
                        signal_type=SignalType.WARNING,
                        severity=SignalSeverity.MODERATE,
                        description=f"{name} label warns about {', '.join(organs)} function",
                        affected_drugs=[name],
                        patient_factors=["lab values on file"],
                        recommendations=["Review liver and kidney function results"],
                    )
                )
        return signals

    @staticmethod
    def _allergy_signals(
        profile: PatientProfile, name: str, label: DrugLabel
    ) -> list[SafetySignal]:
        signals = []
        for allergy in profile.allergies:
            if (
                mentions(allergy, label.contraindications)
                or normalize_drug_name(allergy) in label.names()
            ):
                signals.append(
                    SafetySignal(
                        signal_type=SignalType.CONTRAINDICATION,
                        severity=SignalSeverity.CRITICAL,
                        description=(
                            f"{name} is contraindicated with declared allergy to {allergy}"
                        ),
                        affected_drugs=[name],
                        patient_factors=[f"allergy: {allergy}"],
                        recommendations=["Do not administer; review allergy history"],
                    )
                )
        return signals

    @staticmethod
    def interaction_signals(interactions: list[DrugInteraction]) -> list[SafetySignal]:
        return [
            SafetySignal(
                signal_type=SignalType.DRUG_INTERACTION,
                severity=SIGNAL_SEVERITY_FOR_INTERACTION[i.severity],
                description=f"{i.drug1} / {i.drug2}: {i.description}",
                affected_drugs=[i.drug1, i.drug2],
                recommendations=[i.management] if i.management else [],
            )
            for i in interactions
        ]

    # -- Entry points ---------------------------------------------------------

    async def analyze(self, profile: PatientProfile) -> DrugSafetyReport:
        """Screen a patient's medication list."""
        medications = unique_medications(profile.medications)
        labels = await self.fetch_labels(medications)
        interactions = self.find_interactions(medications, labels)
        signals = self.patient_signals(profile, labels)
        signals.extend(
            self.interaction_signals(
                [i for i in interactions if i.severity != InteractionSeverity.MINOR]
            )
        )
        checked = [normalize_drug_name(m) for m in medications]
        return DrugSafetyReport(
            medications_checked=checked,
            labels_found=[m for m in checked if m in labels],
            labels_missing=[m for m in checked if m not in labels],
            interactions=interactions,
            signals=signals,
        )

    async def check_intervention(
        self, intervention: str | None, profile: PatientProfile
    ) -> tuple[list[DrugInteraction], list[SafetySignal]]:
        """Interactions and flags between a trial's intervention and the patient.

        Both directions are checked: the intervention's label mentioning a
        medication, and a medication's label mentioning the intervention. The
        more severe of the two is kept.
        """
        if not intervention:
            return [], []
        drug = normalize_drug_name(intervention)
        if drug in _NON_DRUG_INTERVENTIONS:
            return [], []
        medications = [
            m
            for m in unique_medications(profile.medications)
            if normalize_drug_name(m) != drug
        ]
        labels = await self.fetch_labels([drug, *medications])

        interactions = []
        for med in medications:
            med_name = normalize_drug_name(med)
            found = None
            if drug in labels:
                found = self._interaction_from_label(
                    drug, labels[drug], med_name, labels.get(med_name)
                )
            if med_name in labels:
                found = _more_severe(
                    found,
                    self._interaction_from_label(
                        med_name, labels[med_name], drug, labels.get(drug)
                    ),
                )
            if found is not None:
                interactions.append(found)

        flags = self.interaction_signals(
            [i for i in interactions if i.severity != InteractionSeverity.MINOR]
        )
        for allergy in profile.allergies:
            if mentions(allergy, intervention):
                flags.append(
                    SafetySignal(
                        signal_type=SignalType.CONTRAINDICATION,
                        severity=SignalSeverity.CRITICAL,
                        description=(
                            f"Trial intervention {intervention} matches "
                            f"declared allergy to {allergy}"
                        ),
                        affected_drugs=[drug],
                        patient_factors=[f"allergy: {allergy}"],
                    )
                )
        if drug in labels and not any(
            f.signal_type == SignalType.CONTRAINDICATION for f in flags
        ):
            flags.extend(self._allergy_signals(profile, drug, labels[drug]))
        return interactions, flags
