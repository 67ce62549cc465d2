"""
Per-trial eligibility assessment.

Age, location and biomarker eligibility are recomputed from the trial record,
then a single ordered decision is taken:

  1. INELIGIBLE           any exclusion conflict or contraindicated interaction
  2. REQUIRES_REVIEW      criteria or age bounds cannot be read
  3. ELIGIBLE             all checks pass, score >= eligible threshold,
                          and no high or critical safety flag
  4. POTENTIALLY_ELIGIBLE score >= potential threshold, age eligible,
                          and no critical safety flag
  5. REQUIRES_REVIEW      everything else
"""

import logging

from trial_navigator.config import get_settings
from trial_navigator.helpers.drug_helpers import mentions, normalize_drug_name
from trial_navigator.helpers.trial_helpers import (
    extract_biomarkers,
    normalize_biomarker,
    parse_age_years,
)
from trial_navigator.models.model_clinical_trials import (
    TrialCandidate,
    TrialSearchQuery,
)
from trial_navigator.models.model_drug_safety import (
    DrugInteraction,
    InteractionSeverity,
    SafetySignal,
    SignalSeverity,
)
from trial_navigator.models.model_eligibility import (
    AgeEligibility,
    BiomarkerEligibility,
    EligibilityAssessment,
    EligibilityStatus,
    LocationEligibility,
)
from trial_navigator.models.model_patient import PatientProfile
from trial_navigator.services.relevance import (
    RelevanceScorer,
    location_matches,
    synonym_group,
)

logger = logging.getLogger(__name__)

_NO_BOUND = {"", "N/A", "NA", "NONE"}


class PipelineInputError(ValueError):
    """A required pipeline input (profile, candidate list) is missing."""


class EligibilityAssessor:
    def __init__(
        self,
        scorer: RelevanceScorer | None = None,
        eligible_threshold: float | None = None,
        potential_threshold: float | None = None,
    ):
        settings = get_settings()
        self.scorer = scorer or RelevanceScorer()
        if eligible_threshold is None:
            eligible_threshold = settings.eligible_threshold
        if potential_threshold is None:
            potential_threshold = settings.potential_threshold
        self.eligible_threshold = eligible_threshold
        self.potential_threshold = potential_threshold

    # -- Sub-checks -----------------------------------------------------------

    @staticmethod
    def age_eligibility(profile: PatientProfile, trial: TrialCandidate) -> AgeEligibility:
        bounds: list[float | None] = []
        parseable = True
        for text in (trial.eligibility.min_age, trial.eligibility.max_age):
            if text is None or text.strip().upper() in _NO_BOUND:
                bounds.append(None)
                continue
            value = parse_age_years(text)
            if value is None:
                parseable = False
            bounds.append(value)
        min_age, max_age = bounds

        if not parseable:
            return AgeEligibility(
                eligible=False,
                reason="Trial age limits could not be read",
                patient_age=profile.age,
                min_age=min_age,
                max_age=max_age,
                parseable=False,
            )
        if min_age is not None and profile.age < min_age:
            reason, eligible = f"Patient is younger than the minimum age of {min_age:g}", False
        elif max_age is not None and profile.age > max_age:
            reason, eligible = f"Patient is older than the maximum age of {max_age:g}", False
        elif min_age is None and max_age is None:
            reason, eligible = "Trial has no age limits", True
        else:
            reason, eligible = "Patient age is within the trial's range", True
        return AgeEligibility(
            eligible=eligible,
            reason=reason,
            patient_age=profile.age,
            min_age=min_age,
            max_age=max_age,
        )

    @staticmethod
    def location_eligibility(
        profile: PatientProfile, trial: TrialCandidate
    ) -> LocationEligibility:
        sites = [loc.describe() for loc in trial.locations]
        if not profile.location:
            return LocationEligibility(
                eligible=True,
                reason="No location preference given",
                available_locations=sites[:5],
            )
        if not trial.locations:
            return LocationEligibility(eligible=False, reason="Trial lists no sites")
        nearby = [
            loc.describe()
            for loc in trial.locations
            if location_matches(profile.location, loc)
        ]
        if nearby:
            return LocationEligibility(
                eligible=True,
                reason=f"{len(nearby)} site(s) near {profile.location}",
                available_locations=nearby,
            )
        return LocationEligibility(
            eligible=False,
            reason=f"No sites near {profile.location}",
            available_locations=sites[:5],
        )

    @staticmethod
    def biomarker_eligibility(
        profile: PatientProfile, trial: TrialCandidate
    ) -> BiomarkerEligibility:
        required = extract_biomarkers(" ".join(trial.eligibility.inclusion))
        patient = {normalize_biomarker(b) for b in profile.biomarkers}
        patient |= {
            normalize_biomarker(b) for b in extract_biomarkers(" ".join(profile.biomarkers))
        }
        if not required:
            return BiomarkerEligibility(
                eligible=True,
                reason="Trial requires no specific biomarkers",
                patient_biomarkers=profile.biomarkers,
            )
        missing = [b for b in required if normalize_biomarker(b) not in patient]
        return BiomarkerEligibility(
            eligible=not missing,
            reason=(
                "Patient has all required biomarkers"
                if not missing
                else f"Missing biomarkers: {', '.join(missing)}"
            ),
            required_biomarkers=required,
            patient_biomarkers=profile.biomarkers,
        )

    @staticmethod
    def _patient_terms(profile: PatientProfile) -> list[str]:
        terms = list(profile.comorbidities)
        terms += [normalize_drug_name(m) for m in profile.medications]
        terms += profile.prior_treatments
        terms += profile.allergies
        unique: list[str] = []
        for term in terms:
            if term and term.lower() not in (t.lower() for t in unique):
                unique.append(term)
        return unique

    def exclusion_conflicts(self, profile: PatientProfile, trial: TrialCandidate) -> list[str]:
        conflicts = []
        terms = self._patient_terms(profile)
        for criterion in trial.eligibility.exclusion:
            hits = [t for t in terms if mentions(t, criterion)]
            if hits:
                conflicts.append(f"{criterion} (patient: {', '.join(hits)})")
        return conflicts

    def inclusion_matches(self, profile: PatientProfile, trial: TrialCandidate) -> list[str]:
        terms = [profile.diagnosis, *self._patient_terms(profile), *profile.biomarkers]
        group = synonym_group(profile.diagnosis)
        if group:
            terms += sorted(group)
        return [
            criterion
            for criterion in trial.eligibility.inclusion
            if any(mentions(t, criterion) for t in terms)
        ]

    # -- Assessment -----------------------------------------------------------

    def match_score(self, profile: PatientProfile, trial: TrialCandidate) -> float:
        query = TrialSearchQuery(
            condition=profile.diagnosis,
            age=profile.age,
            gender=profile.gender,
            location=profile.location,
        )
        return self.scorer.score(trial, query)

    def assess(
        self,
        profile: PatientProfile,
        trial: TrialCandidate,
        *,
        drug_interactions: list[DrugInteraction] | None = None,
        safety_flags: list[SafetySignal] | None = None,
        semantic_similarity: float | None = None,
    ) -> EligibilityAssessment:
        drug_interactions = drug_interactions or []
        safety_flags = safety_flags or []

        age = self.age_eligibility(profile, trial)
        location = self.location_eligibility(profile, trial)
        biomarkers = self.biomarker_eligibility(profile, trial)
        conflicts = self.exclusion_conflicts(profile, trial)
        matches = self.inclusion_matches(profile, trial)
        score = self.match_score(profile, trial)

        contraindicated = [
            i for i in drug_interactions if i.severity == InteractionSeverity.CONTRAINDICATED
        ]
        severities = {f.severity for f in safety_flags}
        has_critical = SignalSeverity.CRITICAL in severities
        has_high = has_critical or SignalSeverity.HIGH in severities

        if conflicts or contraindicated:
            status = EligibilityStatus.INELIGIBLE
        elif not trial.eligibility.is_parseable() or not age.parseable:
            status = EligibilityStatus.REQUIRES_REVIEW
        elif (
            age.eligible
            and location.eligible
            and biomarkers.eligible
            and score >= self.eligible_threshold
            and not has_high
        ):
            status = EligibilityStatus.ELIGIBLE
        elif score >= self.potential_threshold and age.eligible and not has_critical:
            status = EligibilityStatus.POTENTIALLY_ELIGIBLE
        else:
            status = EligibilityStatus.REQUIRES_REVIEW

        logger.debug("Assessed %s: %s (score=%.2f)", trial.nct_id, status.value, score)
        return EligibilityAssessment(
            nct_id=trial.nct_id,
            title=trial.title,
            status=status,
            match_score=score,
            inclusion_matches=matches,
            exclusion_conflicts=conflicts,
            age_eligibility=age,
            location_eligibility=location,
            biomarker_eligibility=biomarkers,
            drug_interactions=drug_interactions,
            safety_flags=safety_flags,
            semantic_similarity=semantic_similarity,
            reasoning=self._reasoning(
                status,
                score,
                age,
                location,
                biomarkers,
                conflicts,
                contraindicated,
                semantic_similarity,
            ),
            recommendations=self._recommendations(status, trial, location, safety_flags),
        )

    def assess_candidates(
        self,
        profile: PatientProfile | None,
        candidates: list[TrialCandidate] | None,
        *,
        interactions_by_trial: dict[str, list[DrugInteraction]] | None = None,
        flags_by_trial: dict[str, list[SafetySignal]] | None = None,
        similarity_by_trial: dict[str, float] | None = None,
    ) -> list[EligibilityAssessment]:
        """Assess each candidate in order. A missing input is a fatal error."""
        if profile is None:
            raise PipelineInputError("A patient profile is required")
        if candidates is None:
            raise PipelineInputError("A candidate trial list is required")
        interactions_by_trial = interactions_by_trial or {}
        flags_by_trial = flags_by_trial or {}
        similarity_by_trial = similarity_by_trial or {}
        return [
            self.assess(
                profile,
                trial,
                drug_interactions=interactions_by_trial.get(trial.nct_id),
                safety_flags=flags_by_trial.get(trial.nct_id),
                semantic_similarity=similarity_by_trial.get(trial.nct_id),
            )
            for trial in candidates
        ]

    # -- Narrative ------------------------------------------------------------

    @staticmethod
    def _reasoning(
        status: EligibilityStatus,
        score: float,
        age: AgeEligibility,
        location: LocationEligibility,
        biomarkers: BiomarkerEligibility,
        conflicts: list[str],
        contraindicated: list[DrugInteraction],
        semantic_similarity: float | None,
    ) -> str:
        parts = [f"Match score {score:.2f}.", f"{age.reason}.", f"{location.reason}."]
        parts.append(f"{biomarkers.reason}.")
        if conflicts:
            parts.append(f"{len(conflicts)} exclusion criterion conflict(s).")
        for interaction in contraindicated:
            parts.append(
                f"{interaction.drug1} is contraindicated with {interaction.drug2}."
            )
        if semantic_similarity is not None:
            parts.append(f"Criteria text similarity {semantic_similarity:.2f}.")
        parts.append(f"Status: {status.value.replace('_', ' ')}.")
        return " ".join(parts)

    @staticmethod
    def _recommendations(
        status: EligibilityStatus,
        trial: TrialCandidate,
        location: LocationEligibility,
        flags: list[SafetySignal],
    ) -> list[str]:
        recs: list[str] = []
        if status == EligibilityStatus.ELIGIBLE:
            recs.append(f"Contact the study team for {trial.nct_id} to begin screening")
        elif status == EligibilityStatus.POTENTIALLY_ELIGIBLE:
            recs.append(f"Discuss {trial.nct_id} with the care team to confirm eligibility")
        elif status == EligibilityStatus.REQUIRES_REVIEW:
            recs.append(f"Have a clinician review the criteria for {trial.nct_id}")
        if location.available_locations and status != EligibilityStatus.INELIGIBLE:
            recs.append(f"Nearest listed site: {location.available_locations[0]}")
        for flag in flags:
            recs.extend(r for r in flag.recommendations if r not in recs)
        return recs
