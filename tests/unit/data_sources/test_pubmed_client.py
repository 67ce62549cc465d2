"""Unit tests for PubMedClient."""

from unittest.mock import AsyncMock, patch

import pytest

from trial_navigator.data_sources.base_client import PartialResult, RateLimitError
from trial_navigator.data_sources.pubmed import (
    PubMedClient,
    build_queries,
    score_article,
)
from trial_navigator.models.model_pubmed import LiteratureArticle

ARTICLE_XML = """<?xml version="1.0"?>
<PubmedArticleSet>
  <PubmedArticle>
    <MedlineCitation>
      <PMID>38472913</PMID>
      <Article>
        <Journal>
          <Title>The New England Journal of Medicine</Title>
          <ISOAbbreviation>N Engl J Med</ISOAbbreviation>
          <JournalIssue><PubDate><Year>2024</Year><Month>Mar</Month></PubDate></JournalIssue>
        </Journal>
        <ArticleTitle>Semaglutide in type 2 diabetes</ArticleTitle>
        <Abstract>
          <AbstractText Label="BACKGROUND">Glucose control matters.</AbstractText>
          <AbstractText Label="RESULTS">Semaglutide lowered HbA1c.</AbstractText>
        </Abstract>
        <AuthorList>
          <Author><LastName>Smith</LastName><ForeName>Jane</ForeName></Author>
          <Author><LastName>Doe</LastName></Author>
        </AuthorList>
      </Article>
      <MeshHeadingList>
        <MeshHeading><DescriptorName>Diabetes Mellitus, Type 2</DescriptorName></MeshHeading>
      </MeshHeadingList>
    </MedlineCitation>
    <PubmedData>
      <ArticleIdList><ArticleId IdType="doi">10.1056/test</ArticleId></ArticleIdList>
    </PubmedData>
  </PubmedArticle>
</PubmedArticleSet>
"""


def _client() -> PubMedClient:
    return PubMedClient(api_key="", fetch_delay=0)


# --- build_queries ---


def test_build_queries_caps_at_three():
    queries = build_queries(
        "breast cancer",
        intervention="olaparib",
        biomarkers=["BRCA1"],
        recent_years=5,
        current_year=2026,
    )

    assert queries == [
        "breast cancer AND olaparib[Title/Abstract]",
        "breast cancer AND BRCA1 AND prognosis",
        "breast cancer[Title/Abstract]",
    ]


def test_build_queries_condition_only():
    assert build_queries("asthma") == [
        "asthma[Title/Abstract]",
        "asthma clinical trial[Title/Abstract]",
    ]


# --- score_article ---


def test_score_article_components():
    article = LiteratureArticle(
        pmid="1",
        title="Outcomes in type 2 diabetes",
        abstract="Patients received semaglutide weekly.",
        year=2026,
        mesh_terms=["Diabetes Mellitus, Type 2"],
    )

    score = score_article(
        article, "type 2 diabetes", intervention="semaglutide", current_year=2026
    )

    # title 0.3 + intervention 0.4 + recency 0.2 + 0.1 + mesh 0.1, capped
    assert score == 1.0


def test_score_article_old_unrelated_is_zero():
    article = LiteratureArticle(pmid="1", title="Unrelated", year=2001)

    assert score_article(article, "asthma", current_year=2026) == 0.0


# --- XML parsing ---


def test_parse_pubmed_xml():
    [article] = _client()._parse_pubmed_xml(ARTICLE_XML)

    assert article.pmid == "38472913"
    assert article.title == "Semaglutide in type 2 diabetes"
    assert article.abstract == (
        "BACKGROUND: Glucose control matters. RESULTS: Semaglutide lowered HbA1c."
    )
    assert article.authors == ["Smith, Jane", "Doe"]
    assert article.journal == "N Engl J Med"
    assert article.year == 2024
    assert article.mesh_terms == ["Diabetes Mellitus, Type 2"]
    assert article.doi == "10.1056/test"


# --- search / fetch ---


async def test_search_returns_pmids():
    client = _client()
    result = PartialResult(data={"esearchresult": {"idlist": ["1", "2"]}})

    with patch.object(client, "_request", new=AsyncMock(return_value=result)):
        assert await client.search("diabetes") == ["1", "2"]


@pytest.mark.parametrize(
    "data",
    [
        {"esearchresult": "error"},
        {"esearchresult": ["1", "2"]},
        {"esearchresult": {"idlist": "12345"}},
        {"esearchresult": {"idlist": {"id": "1"}}},
    ],
)
async def test_search_unexpected_payload_is_empty(data):
    client = _client()

    with patch.object(
        client, "_request", new=AsyncMock(return_value=PartialResult(data=data))
    ):
        assert await client.search("diabetes") == []


async def test_search_degrades_to_empty_list():
    client = _client()
    result = PartialResult(data=None, is_complete=False, errors=["boom"])

    with patch.object(client, "_request", new=AsyncMock(return_value=result)):
        assert await client.search("diabetes") == []


async def test_fetch_articles_skips_failed_pmids():
    client = _client()
    responses = [
        ARTICLE_XML,
        RateLimitError("pubmed", "HTTP 429", status_code=429),
        ARTICLE_XML.replace("38472913", "11111111"),
    ]

    with patch.object(client, "_rest_get_xml", new=AsyncMock(side_effect=responses)):
        articles = await client.fetch_articles(["38472913", "22222222", "11111111"])

    assert [a.pmid for a in articles] == ["38472913", "11111111"]


async def test_fetch_articles_waits_between_requests():
    client = PubMedClient(api_key="", fetch_delay=0.2)
    sleep = AsyncMock()

    with patch.object(client, "_rest_get_xml", new=AsyncMock(return_value=ARTICLE_XML)):
        with patch("trial_navigator.data_sources.pubmed.asyncio.sleep", sleep):
            await client.fetch_articles(["1", "2", "3"])

    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.2)


async def test_fetch_article_malformed_xml_is_skipped():
    client = _client()

    with patch.object(client, "_rest_get_xml", new=AsyncMock(return_value="<not xml")):
        assert await client.fetch_article("1") is None


async def test_search_literature_dedupes_and_ranks():
    client = _client()
    client.search = AsyncMock(side_effect=[["1", "2"], ["2", "3"]])
    low = LiteratureArticle(pmid="1", title="Other topic")
    high = LiteratureArticle(pmid="2", title="Asthma in adults")
    client.fetch_articles = AsyncMock(return_value=[low, high])

    articles = await client.search_literature("asthma", max_results=3)

    client.fetch_articles.assert_awaited_once_with(["1", "2", "3"])
    assert [a.pmid for a in articles] == ["2", "1"]
    assert articles[0].relevance_score > articles[1].relevance_score
