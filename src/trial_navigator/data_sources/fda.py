"""
openFDA drug label client.

One method:
  1. get_label: structured product label sections for a drug name
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from trial_navigator.config import get_settings
from trial_navigator.constants import (
    OPENFDA_CACHE_TTL,
    OPENFDA_LABEL_URL,
    OPENFDA_RATE_LIMIT,
    OPENFDA_TIMEOUT,
)
from trial_navigator.data_sources.base_client import (
    BaseClient,
    ClientConfig,
    DataSourceError,
    RequestContext,
    ResponseParseError,
)
from trial_navigator.models.model_fda import DrugLabel
from trial_navigator.utils.cache import ResponseCache
from trial_navigator.utils.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger("trial_navigator.data_sources.fda")


class FDAClient(BaseClient):
    """Client for querying the openFDA drug label API."""

    def __init__(
        self,
        api_key: str | None = None,
        config: ClientConfig | None = None,
        *,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        cache: ResponseCache | None = None,
        max_retries: int | None = None,
    ) -> None:
        super().__init__(
            config
            or ClientConfig(
                timeout_seconds=OPENFDA_TIMEOUT,
                requests_per_second=OPENFDA_RATE_LIMIT,
                cache_ttl_seconds=OPENFDA_CACHE_TTL,
            ),
            rate_limiter=rate_limiter,
            cache=cache,
            max_retries=max_retries,
        )
        self._api_key = api_key if api_key is not None else get_settings().openfda_api_key

    @property
    def _source_name(self) -> str:
        return "openfda"

    # -- Public methods -------------------------------------------------------

    async def get_label(self, drug_name: str) -> DrugLabel | None:
        """Return the first label matching brand or generic name, or None.

        openFDA answers 404 when nothing matches; that is reported as None.
        """
        params = self._build_params(drug_name)
        try:
            data = await self._rest_get(
                OPENFDA_LABEL_URL,
                params,
                cache_namespace="label",
                context=RequestContext(source=self._source_name, method="get_label"),
            )
        except DataSourceError as e:
            if e.status_code == 404:
                logger.info("No label found for %s", drug_name)
                return None
            raise

        if not isinstance(data, dict):
            raise ResponseParseError(self._source_name, "Label response is not an object")
        results = data.get("results") or []
        if not isinstance(results, list):
            raise ResponseParseError(self._source_name, "Label results is not a list")
        if not results:
            return None
        return self._parse_label(drug_name, results[0])

    # -- Private helpers ------------------------------------------------------

    def _build_params(self, drug_name: str) -> dict[str, str]:
        name = drug_name.strip().replace('"', "")
        params: dict[str, str] = {
            "search": f'openfda.brand_name:"{name}" OR openfda.generic_name:"{name}"',
            "limit": "1",
        }
        if self._api_key:
            params["api_key"] = self._api_key
        return params

    @staticmethod
    def _join(section: Any) -> str:
        if isinstance(section, list):
            return " ".join(str(s) for s in section if s)
        return str(section) if section else ""

    @classmethod
    def _parse_label(cls, drug_name: str, raw: Any) -> DrugLabel:
        if not isinstance(raw, dict):
            raise ResponseParseError("openfda", "Label record is not an object")
        openfda = raw.get("openfda") or {}
        if not isinstance(openfda, dict):
            raise ResponseParseError("openfda", "openfda section is not an object")
        try:
            return DrugLabel(
                drug_name=drug_name,
                brand_names=openfda.get("brand_name"),
                generic_names=openfda.get("generic_name"),
                indications=cls._join(raw.get("indications_and_usage")),
                contraindications=cls._join(raw.get("contraindications")),
                warnings=cls._join(
                    raw.get("warnings") or raw.get("warnings_and_cautions")
                ),
                boxed_warning=cls._join(raw.get("boxed_warning")),
                adverse_reactions=cls._join(raw.get("adverse_reactions")),
                drug_interactions=cls._join(raw.get("drug_interactions")),
                dosage_forms=openfda.get("dosage_form"),
                routes=openfda.get("route"),
            )
        except ValidationError as e:
            raise ResponseParseError(
                "openfda", f"Invalid label for {drug_name}: {e.error_count()} field(s)"
            ) from e
