"""
ICD-10-CM lookup via the NLM Clinical Tables search service.

Two methods:
  1. search    : free-text diagnosis → candidate codes (degrades to [])
  2. best_match: the top code for a diagnosis, or None
"""

from __future__ import annotations

import logging
from typing import Any

from trial_navigator.constants import (
    CONDITION_ABBREVIATIONS,
    CONDITION_SYNONYMS,
    ICD10_CACHE_TTL,
    ICD10_CATEGORIES,
    ICD10_RATE_LIMIT,
    ICD10_SEARCH_URL,
    ICD10_TIMEOUT,
    MAX_SEARCH_TERMS,
)
from trial_navigator.data_sources.base_client import (
    BaseClient,
    ClientConfig,
    RequestContext,
)
from trial_navigator.models.model_icd10 import DiagnosisCode
from trial_navigator.utils.cache import ResponseCache
from trial_navigator.utils.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger("trial_navigator.data_sources.icd10")


def expand_diagnosis_terms(text: str) -> list[str]:
    """The diagnosis, its expanded abbreviation and one synonym (max 3 terms)."""
    base = " ".join(text.lower().split())
    terms = [base]
    expanded = CONDITION_ABBREVIATIONS.get(base)
    if expanded:
        terms.append(expanded)
    for key, synonyms in CONDITION_SYNONYMS.items():
        if key in base or (expanded and key in expanded):
            terms.extend(s for s in synonyms if s not in terms)
            break
    return terms[:MAX_SEARCH_TERMS]


def code_category(code: str) -> str:
    return ICD10_CATEGORIES.get(code[:1].upper(), "Unknown") if code else "Unknown"


def parent_codes(code: str) -> list[str]:
    """Ancestors of a code, nearest first: "E11.65" -> ["E11.6", "E11"]."""
    if "." not in code:
        return []
    stem, suffix = code.split(".", 1)
    parents = [f"{stem}.{suffix[:i]}" for i in range(len(suffix) - 1, 0, -1)]
    parents.append(stem)
    return parents


class ICD10Client(BaseClient):
    """Client for the NLM ICD-10-CM search endpoint."""

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
                timeout_seconds=ICD10_TIMEOUT,
                requests_per_second=ICD10_RATE_LIMIT,
                cache_ttl_seconds=ICD10_CACHE_TTL,
            ),
            rate_limiter=rate_limiter,
            cache=cache,
            max_retries=max_retries,
        )

    @property
    def _source_name(self) -> str:
        return "icd10"

    async def search(self, diagnosis: str, max_results: int = 5) -> list[DiagnosisCode]:
        """Search codes for a diagnosis across its expanded terms."""
        codes: list[DiagnosisCode] = []
        seen: set[str] = set()
        for term in expand_diagnosis_terms(diagnosis):
            params = {"sf": "code,name", "terms": term, "maxList": max_results}
            result = await self._request(
                ICD10_SEARCH_URL,
                params,
                cache_namespace="search",
                context=RequestContext(source=self._source_name, method="search"),
            )
            if not result.is_complete:
                continue
            for code in self._parse_response(result.data):
                if code.code not in seen:
                    seen.add(code.code)
                    codes.append(code)
            if len(codes) >= max_results:
                break
        return codes[:max_results]

    async def best_match(self, diagnosis: str) -> DiagnosisCode | None:
        codes = await self.search(diagnosis, max_results=1)
        return codes[0] if codes else None

    @staticmethod
    def _parse_response(data: Any) -> list[DiagnosisCode]:
        """Parse `[total, [codes], extra, [[code, name], ...]]`.

        Anything not in that shape yields no codes.
        """
        if not isinstance(data, list) or len(data) < 4 or not isinstance(data[3], list):
            logger.warning("Unexpected ICD-10 response shape")
            return []
        codes = []
        for row in data[3]:
            if not isinstance(row, list) or len(row) < 2 or not row[0]:
                continue
            code = str(row[0])
            codes.append(
                DiagnosisCode(
                    code=code,
                    description=str(row[1]),
                    category=code_category(code),
                    parent_codes=parent_codes(code),
                )
            )
        return codes
