"""Unit tests for FDAClient."""

from unittest.mock import AsyncMock, patch

import pytest

from trial_navigator.data_sources.base_client import DataSourceError, ResponseParseError
from trial_navigator.data_sources.fda import FDAClient

WARFARIN_LABEL = {
    "openfda": {
        "brand_name": ["Coumadin"],
        "generic_name": ["WARFARIN SODIUM"],
        "dosage_form": ["TABLET"],
        "route": ["ORAL"],
    },
    "indications_and_usage": ["Prophylaxis of venous thrombosis."],
    "contraindications": ["Pregnancy.", "Hemorrhagic tendencies."],
    "warnings": ["Bleeding risk is higher in elderly patients."],
    "drug_interactions": ["Aspirin: increased risk of bleeding."],
}


# --- _parse_label ---


def test_parse_label_joins_sections():
    label = FDAClient._parse_label("warfarin", WARFARIN_LABEL)

    assert label.drug_name == "warfarin"
    assert label.brand_names == ["Coumadin"]
    assert label.contraindications == "Pregnancy. Hemorrhagic tendencies."
    assert label.drug_interactions == "Aspirin: increased risk of bleeding."
    assert label.boxed_warning == ""
    assert label.routes == ["ORAL"]
    assert "coumadin" in label.names()


def test_parse_label_without_openfda_block():
    label = FDAClient._parse_label("x", {"warnings": "Text"})

    assert label.brand_names == []
    assert label.warnings == "Text"


@pytest.mark.parametrize(
    "raw",
    [
        {"openfda": ["Coumadin"]},
        {"openfda": {"brand_name": [{"name": "Coumadin"}]}},
        {"openfda": {"route": 1}},
    ],
)
def test_parse_label_rejects_mistyped_records(raw):
    with pytest.raises(ResponseParseError):
        FDAClient._parse_label("warfarin", raw)


# --- get_label ---


async def test_get_label_searches_brand_and_generic_name():
    client = FDAClient(api_key="")
    mock_get = AsyncMock(return_value={"results": [WARFARIN_LABEL]})

    with patch.object(client, "_rest_get", new=mock_get):
        label = await client.get_label("warfarin")

    params = mock_get.call_args.args[1]
    assert params["search"] == (
        'openfda.brand_name:"warfarin" OR openfda.generic_name:"warfarin"'
    )
    assert params["limit"] == "1"
    assert "api_key" not in params
    assert label.generic_names == ["WARFARIN SODIUM"]


async def test_get_label_includes_api_key():
    client = FDAClient(api_key="secret")
    mock_get = AsyncMock(return_value={"results": []})

    with patch.object(client, "_rest_get", new=mock_get):
        assert await client.get_label("x") is None

    assert mock_get.call_args.args[1]["api_key"] == "secret"


async def test_get_label_404_means_no_label():
    client = FDAClient(api_key="")
    error = DataSourceError("openfda", "HTTP 404", status_code=404)

    with patch.object(client, "_rest_get", new=AsyncMock(side_effect=error)):
        assert await client.get_label("unknowndrug") is None


async def test_get_label_propagates_server_errors():
    client = FDAClient(api_key="")
    error = DataSourceError("openfda", "HTTP 503", status_code=503)

    with patch.object(client, "_rest_get", new=AsyncMock(side_effect=error)):
        with pytest.raises(DataSourceError):
            await client.get_label("warfarin")


async def test_get_label_rejects_unexpected_results_shape():
    client = FDAClient(api_key="")
    payload = {"results": {"openfda": {}}}

    with patch.object(client, "_rest_get", new=AsyncMock(return_value=payload)):
        with pytest.raises(ResponseParseError):
            await client.get_label("warfarin")
