"""
PubMed API client.

Three methods:
  1. search           : Find PMIDs matching a query (cached, degrades to [])
  2. fetch_articles   : Fetch articles one PMID at a time, skipping failures
  3. search_literature: Build queries for a condition, fetch and rank articles
"""

from __future__ import annotations

import asyncio
import logging
import re
import xml.etree.ElementTree as ET
from datetime import date
from typing import Any

from trial_navigator.config import get_settings
from trial_navigator.constants import (
    PUBMED_CACHE_TTL,
    PUBMED_FETCH_DELAY,
    PUBMED_FETCH_URL,
    PUBMED_MAX_QUERIES,
    PUBMED_RATE_LIMIT,
    PUBMED_SEARCH_URL,
    PUBMED_TIMEOUT,
)
from trial_navigator.data_sources.base_client import (
    BaseClient,
    ClientConfig,
    DataSourceError,
    RequestContext,
    ResponseParseError,
)
from trial_navigator.models.model_pubmed import LiteratureArticle
from trial_navigator.utils.cache import ResponseCache
from trial_navigator.utils.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger("trial_navigator.data_sources.pubmed")


def build_queries(
    condition: str,
    intervention: str | None = None,
    biomarkers: list[str] | None = None,
    recent_years: int | None = None,
    current_year: int | None = None,
) -> list[str]:
    """Build up to three PubMed queries for a condition, most specific first."""
    condition = condition.strip()
    queries: list[str] = []
    if intervention:
        queries.append(f"{condition} AND {intervention}[Title/Abstract]")
    for marker in biomarkers or []:
        queries.append(f"{condition} AND {marker} AND prognosis")
        break
    queries.append(f"{condition}[Title/Abstract]")
    queries.append(f"{condition} clinical trial[Title/Abstract]")
    if recent_years:
        year = current_year or date.today().year
        queries.append(f"{condition} AND {year - recent_years}:{year}[dp]")
    return queries[:PUBMED_MAX_QUERIES]


def score_article(
    article: LiteratureArticle,
    condition: str,
    intervention: str | None = None,
    current_year: int | None = None,
) -> float:
    """Heuristic relevance of an article to the patient's condition, in [0, 1]."""
    score = 0.0
    condition_lower = condition.lower()
    if condition_lower and condition_lower in article.title.lower():
        score += 0.3
    if intervention and intervention.lower() in article.abstract.lower():
        score += 0.4
    if article.year is not None:
        age = (current_year or date.today().year) - article.year
        if age < 2:
            score += 0.2
        if age < 1:
            score += 0.1
    condition_words = {w for w in re.findall(r"\w+", condition_lower) if len(w) > 3}
    if any(
        word in term.lower() for term in article.mesh_terms for word in condition_words
    ):
        score += 0.1
    return min(score, 1.0)


class PubMedClient(BaseClient):
    """Client for querying PubMed/NCBI APIs."""

    SEARCH_URL = PUBMED_SEARCH_URL
    FETCH_URL = PUBMED_FETCH_URL

    def __init__(
        self,
        api_key: str | None = None,
        config: ClientConfig | None = None,
        *,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        cache: ResponseCache | None = None,
        max_retries: int | None = None,
        fetch_delay: float = PUBMED_FETCH_DELAY,
    ) -> None:
        super().__init__(
            config
            or ClientConfig(
                timeout_seconds=PUBMED_TIMEOUT,
                requests_per_second=PUBMED_RATE_LIMIT,
                cache_ttl_seconds=PUBMED_CACHE_TTL,
            ),
            rate_limiter=rate_limiter,
            cache=cache,
            max_retries=max_retries,
        )
        self._api_key = api_key if api_key is not None else get_settings().ncbi_api_key
        self.fetch_delay = fetch_delay

    @property
    def _source_name(self) -> str:
        return "pubmed"

    def _with_key(self, params: dict[str, Any]) -> dict[str, Any]:
        if self._api_key:
            return {**params, "api_key": self._api_key}
        return params

    async def search(self, query: str, max_results: int = 10) -> list[str]:
        """Search PubMed and return list of PMIDs. Failures yield []."""
        params = self._with_key(
            {
                "db": "pubmed",
                "term": query,
                "retmax": max_results,
                "retmode": "json",
                "sort": "relevance",
            }
        )
        result = await self._request(
            self.SEARCH_URL,
            params,
            cache_namespace="search",
            context=RequestContext(source=self._source_name, method="search"),
        )
        if not result.is_complete or not isinstance(result.data, dict):
            return []
        esearch = result.data.get("esearchresult") or {}
        pmids = None
        if isinstance(esearch, dict):
            pmids = esearch.get("idlist") or []
        if not isinstance(pmids, list):
            logger.warning("Unexpected esearch payload for %r", query)
            return []
        return [str(p) for p in pmids if isinstance(p, (str, int))]

    async def fetch_article(self, pmid: str) -> LiteratureArticle | None:
        """Fetch one article; None if the fetch or parse fails."""
        params = self._with_key(
            {"db": "pubmed", "id": pmid, "retmode": "xml", "rettype": "abstract"}
        )
        try:
            xml_text = await self._rest_get_xml(
                self.FETCH_URL,
                params,
                cache_namespace="efetch",
                context=RequestContext(source=self._source_name, method="fetch_article"),
            )
            articles = self._parse_pubmed_xml(xml_text)
        except DataSourceError as e:
            logger.warning("Skipping PMID %s: %s", pmid, e)
            return None
        return articles[0] if articles else None

    async def fetch_articles(self, pmids: list[str]) -> list[LiteratureArticle]:
        """Fetch articles sequentially with a fixed delay between PMIDs."""
        articles: list[LiteratureArticle] = []
        for i, pmid in enumerate(pmids):
            if i > 0 and self.fetch_delay > 0:
                await asyncio.sleep(self.fetch_delay)
            article = await self.fetch_article(pmid)
            if article is not None:
                articles.append(article)
        return articles

    async def search_literature(
        self,
        condition: str,
        intervention: str | None = None,
        biomarkers: list[str] | None = None,
        max_results: int = 5,
    ) -> list[LiteratureArticle]:
        """Find, fetch and rank supporting articles for a condition.

        Runs the built queries in order until enough distinct PMIDs are found.
        """
        pmids: list[str] = []
        for query in build_queries(condition, intervention, biomarkers, recent_years=5):
            for pmid in await self.search(query, max_results=max_results):
                if pmid not in pmids:
                    pmids.append(pmid)
            if len(pmids) >= max_results:
                break

        articles = await self.fetch_articles(pmids[:max_results])
        scored = [
            a.model_copy(
                update={"relevance_score": score_article(a, condition, intervention)}
            )
            for a in articles
        ]
        scored.sort(key=lambda a: a.relevance_score, reverse=True)
        return scored

    # -- XML parsing ----------------------------------------------------------

    def _parse_pubmed_xml(self, xml_text: str) -> list[LiteratureArticle]:
        """Parse PubMed efetch XML into LiteratureArticle objects."""
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise ResponseParseError(self._source_name, f"Failed to parse XML: {e}")

        articles = []
        for article_elem in root.findall(".//PubmedArticle"):
            pmid = self._xml_text(article_elem, ".//PMID")
            if not pmid:
                continue

            title_elem = article_elem.find(".//ArticleTitle")
            title = "".join(title_elem.itertext()) if title_elem is not None else ""

            # Abstract - may have multiple sections
            abstract_parts = []
            for abs_elem in article_elem.findall(".//AbstractText"):
                label = abs_elem.get("Label", "")
                text = "".join(abs_elem.itertext())
                if label:
                    abstract_parts.append(f"{label}: {text}")
                elif text:
                    abstract_parts.append(text)

            authors = []
            for author in article_elem.findall(".//Author"):
                last_name = self._xml_text(author, "LastName")
                fore_name = self._xml_text(author, "ForeName")
                if last_name:
                    authors.append(f"{last_name}, {fore_name}" if fore_name else last_name)

            year_text = self._xml_text(article_elem, ".//PubDate/Year")
            if year_text is None:
                medline = self._xml_text(article_elem, ".//PubDate/MedlineDate")
                year_text = medline[:4] if medline else None

            doi = None
            for id_elem in article_elem.findall(".//ArticleId"):
                if id_elem.get("IdType") == "doi" and id_elem.text:
                    doi = id_elem.text
                    break

            articles.append(
                LiteratureArticle(
                    pmid=pmid,
                    title=title,
                    abstract=" ".join(abstract_parts),
                    authors=authors,
                    journal=self._xml_text(article_elem, ".//Journal/ISOAbbreviation")
                    or self._xml_text(article_elem, ".//Journal/Title"),
                    year=int(year_text) if year_text and year_text.isdigit() else None,
                    mesh_terms=[
                        name
                        for mesh in article_elem.findall(".//MeshHeading")
                        if (name := self._xml_text(mesh, "DescriptorName"))
                    ],
                    doi=doi,
                )
            )
        return articles

    @staticmethod
    def _xml_text(elem: ET.Element, path: str) -> str | None:
        """Safely extract text from an XML element."""
        found = elem.find(path)
        return found.text if found is not None and found.text else None
