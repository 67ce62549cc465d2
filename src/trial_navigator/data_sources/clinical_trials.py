"""
ClinicalTrials.gov REST API v2 client.

Two methods:
  1. search_studies: condition text (+ optional location text) → trial records
  2. get_study     : a single trial record by NCT id

Only the condition and location text are sent upstream; every other filter
is applied by the caller on the parsed records.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from trial_navigator.constants import (
    CLINICAL_TRIALS_BASE_URL,
    CLINICAL_TRIALS_CACHE_TTL,
    CLINICAL_TRIALS_MAX_PAGE_SIZE,
    CLINICAL_TRIALS_RATE_LIMIT,
    CLINICAL_TRIALS_STUDY_URL,
    CLINICAL_TRIALS_TIMEOUT,
)
from trial_navigator.data_sources.base_client import (
    BaseClient,
    ClientConfig,
    DataSourceError,
    RequestContext,
    ResponseParseError,
)
from trial_navigator.helpers.trial_helpers import (
    extract_biomarkers,
    parse_eligibility_criteria,
)
from trial_navigator.models.model_clinical_trials import (
    EligibilityCriteria,
    TrialCandidate,
    TrialLocation,
    TrialStatus,
)
from trial_navigator.utils.cache import ResponseCache
from trial_navigator.utils.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger("trial_navigator.data_sources.clinical_trials")


class ClinicalTrialsClient(BaseClient):
    BASE_URL = CLINICAL_TRIALS_BASE_URL

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        cache: ResponseCache | None = None,
        max_retries: int | None = None,
    ) -> None:
        super().__init__(
            config
            or ClientConfig(
                timeout_seconds=CLINICAL_TRIALS_TIMEOUT,
                requests_per_second=CLINICAL_TRIALS_RATE_LIMIT,
                cache_ttl_seconds=CLINICAL_TRIALS_CACHE_TTL,
            ),
            rate_limiter=rate_limiter,
            cache=cache,
            max_retries=max_retries,
        )

    @property
    def _source_name(self) -> str:
        return "clinical_trials"

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def search_studies(
        self,
        condition_query: str,
        location: str | None = None,
        page_size: int = 10,
    ) -> list[TrialCandidate]:
        """Search studies by condition text and optional location text.

        Records that fail validation are logged and skipped.
        """
        params: dict[str, Any] = {
            "query.cond": condition_query,
            "format": "json",
            "pageSize": max(1, min(page_size, CLINICAL_TRIALS_MAX_PAGE_SIZE)),
        }
        if location:
            params["query.locn"] = location

        data = await self._rest_get(
            self.BASE_URL,
            params,
            cache_namespace="search_studies",
            context=RequestContext(
                source=self._source_name, method="search_studies", params=params
            ),
        )
        if not isinstance(data, dict) or not isinstance(data.get("studies", []), list):
            raise ResponseParseError(self._source_name, "Expected a 'studies' list")

        trials: list[TrialCandidate] = []
        for raw in data.get("studies", []):
            try:
                trials.append(self._parse_study(raw))
            except ResponseParseError as e:
                logger.warning("Skipping malformed study record: %s", e)
        return trials

    async def get_study(self, nct_id: str) -> TrialCandidate | None:
        """Fetch a single study; None when the registry has no such id."""
        try:
            data = await self._rest_get(
                f"{self.BASE_URL}/{nct_id}",
                {"format": "json"},
                cache_namespace=f"get_study:{nct_id}",
                context=RequestContext(source=self._source_name, method="get_study"),
            )
        except DataSourceError as e:
            if e.status_code == 404:
                return None
            raise
        return self._parse_study(data)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _module(section: dict[str, Any], name: str) -> dict[str, Any]:
        """A nested object of a study record; {} when absent."""
        value = section.get(name) or {}
        if not isinstance(value, dict):
            raise ResponseParseError("clinical_trials", f"{name} is not an object")
        return value

    @staticmethod
    def _list(section: dict[str, Any], name: str) -> list[Any]:
        value = section.get(name) or []
        if not isinstance(value, list):
            raise ResponseParseError("clinical_trials", f"{name} is not a list")
        return value

    @classmethod
    def _parse_study(cls, raw: Any) -> TrialCandidate:
        """Map one v2 study record to a TrialCandidate.

        Raises ResponseParseError when the record has no protocol section or
        no NCT id, or when any part of it has the wrong shape.
        """
        if not isinstance(raw, dict):
            raise ResponseParseError("clinical_trials", "Study record is not an object")
        protocol = raw.get("protocolSection")
        if not isinstance(protocol, dict):
            raise ResponseParseError("clinical_trials", "Missing protocolSection")

        ident = cls._module(protocol, "identificationModule")
        nct_id = ident.get("nctId")
        if not nct_id:
            raise ResponseParseError("clinical_trials", "Missing nctId")

        status_mod = cls._module(protocol, "statusModule")
        design = cls._module(protocol, "designModule")
        conditions_mod = cls._module(protocol, "conditionsModule")
        eligibility_mod = cls._module(protocol, "eligibilityModule")
        contacts = cls._module(protocol, "contactsLocationsModule")
        arms = cls._module(protocol, "armsInterventionsModule")
        description = cls._module(protocol, "descriptionModule")
        enrollment = cls._module(design, "enrollmentInfo").get("count")

        criteria_text = eligibility_mod.get("eligibilityCriteria") or ""
        if not isinstance(criteria_text, str):
            raise ResponseParseError(
                "clinical_trials", f"{nct_id}: eligibilityCriteria is not text"
            )
        inclusion, exclusion = parse_eligibility_criteria(criteria_text)
        phases = [p for p in cls._list(design, "phases") if isinstance(p, str)]

        try:
            conditions = [c for c in cls._list(conditions_mod, "conditions") if c]
            locations = [
                cls._parse_location(loc)
                for loc in cls._list(contacts, "locations")
                if isinstance(loc, dict)
            ]
            interventions = [
                i["name"]
                for i in cls._list(arms, "interventions")
                if isinstance(i, dict) and i.get("name")
            ]
            return TrialCandidate(
                nct_id=nct_id,
                title=ident.get("briefTitle") or ident.get("officialTitle") or "",
                status=TrialStatus.from_raw(status_mod.get("overallStatus")),
                phase="/".join(phases),
                condition=conditions[0] if conditions else "",
                conditions=conditions,
                eligibility=EligibilityCriteria(
                    inclusion=inclusion,
                    exclusion=exclusion,
                    min_age=eligibility_mod.get("minimumAge"),
                    max_age=eligibility_mod.get("maximumAge"),
                    gender=eligibility_mod.get("sex"),
                    raw_text=criteria_text or None,
                ),
                locations=locations,
                study_type=design.get("studyType"),
                interventions=interventions,
                biomarkers=extract_biomarkers(criteria_text),
                brief_summary=description.get("briefSummary"),
                enrollment=enrollment if isinstance(enrollment, int) else None,
                url=f"{CLINICAL_TRIALS_STUDY_URL}/{nct_id}",
            )
        except ValidationError as e:
            raise ResponseParseError(
                "clinical_trials", f"{nct_id}: {e.error_count()} invalid field(s)"
            ) from e

    @staticmethod
    def _parse_location(raw: dict[str, Any]) -> TrialLocation:
        return TrialLocation(
            facility=raw.get("facility"),
            city=raw.get("city"),
            state=raw.get("state"),
            country=raw.get("country"),
            zip_code=raw.get("zip"),
        )
