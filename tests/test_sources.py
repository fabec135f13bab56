"""Tests for source definitions, the registry and source-specific fetchers."""

import httpx
import pytest

from conftest import NO_RETRY, mock_client
from regiq.dedupe.manager import DuplicatePolicy
from regiq.ingest.base import FetchConfig
from regiq.ingest.registry import SourceRegistry
from regiq.ingest.sources.cdc import CDCOutbreakFetcher
from regiq.ingest.sources.fda import OpenFDAEnforcementFetcher
from regiq.ingest.sources.fsis import FSIS_RECALLS, FSISRecallFetcher
from regiq.ingest.sources.noaa import NOAA_FISHERIES
from regiq.ingest.sources.base import keyword_weights


def test_registry_lists_sources_in_sync_order():
    names = SourceRegistry.list_sources()
    assert names[:3] == ["fda_enforcement", "fsis_recalls", "cdc_outbreaks"]
    assert "noaa_fisheries" in names
    assert len(names) == len(set(names))


def test_registry_rejects_unknown_source():
    with pytest.raises(ValueError):
        SourceRegistry.get_source("does_not_exist")


def test_registry_resolve_all_when_empty():
    assert [s.name for s in SourceRegistry.resolve([])] == SourceRegistry.list_sources()


def test_recall_sources_use_strong_key():
    assert SourceRegistry.get_source("fda_enforcement").duplicate_policy == DuplicatePolicy.UPSERT_BY_STRONG_KEY
    assert FSIS_RECALLS.duplicate_policy == DuplicatePolicy.UPSERT_BY_STRONG_KEY
    assert NOAA_FISHERIES.duplicate_policy == DuplicatePolicy.SKIP_ONLY
    assert NOAA_FISHERIES.duplicate_window_days == 30


def test_fetch_config_lookback_precedence():
    cdc = SourceRegistry.get_source("cdc_outbreaks")
    assert cdc.fetch_config().lookback_days == 365
    assert cdc.fetch_config(days=10).lookback_days == 10
    assert FSIS_RECALLS.fetch_config().lookback_days == 30


def test_keyword_weights_extend_defaults():
    weights = keyword_weights(["closure", "listeria"])
    assert weights["closure"] == 2
    assert weights["listeria"] == 2
    assert weights["recall"] == 2


@pytest.mark.asyncio
async def test_openfda_not_found_means_no_results():
    config = FetchConfig(
        source="fda_enforcement",
        urls=["https://api.fda.gov/drug/enforcement.json"],
        retry=NO_RETRY,
    )
    async with mock_client({}) as client:
        records = [r async for r in OpenFDAEnforcementFetcher(client=client).fetch(config)]
    assert records == []


@pytest.mark.asyncio
async def test_fsis_single_document_not_paginated():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=[
            {"field_recall_number": "001-2025", "field_title": "Ground beef products"},
            {"field_recall_number": "002-2025", "field_title": "Chicken sausage products"},
        ])

    config = FSIS_RECALLS.fetch_config()
    config.retry = NO_RETRY
    async with mock_client({"www.fsis.usda.gov/fsis-content/api/recalls": handler}) as client:
        records = [r async for r in FSISRecallFetcher(client=client).fetch(config)]

    assert len(calls) == 1
    assert [r.recall_number for r in records] == ["001-2025", "002-2025"]


@pytest.mark.asyncio
async def test_cdc_rows_collapsed_by_outbreak_key():
    rows = [
        {"year": "2024", "state": "Ohio", "etiology": "Norovirus", "food_vehicle": "Salad"},
        {"year": "2024", "state": "Ohio", "etiology": "Norovirus", "food_vehicle": "Sandwich"},
        {"year": "2024", "state": "Texas", "etiology": "Salmonella", "food_vehicle": "Eggs"},
    ]
    config = FetchConfig(
        source="cdc_outbreaks",
        urls=["https://data.cdc.gov/resource/5xkq-dg7x.json"],
        retry=NO_RETRY,
        page_size=1000,
        lookback_days=365,
    )
    async with mock_client({"data.cdc.gov/resource/5xkq-dg7x.json": httpx.Response(200, json=rows)}) as client:
        records = [r async for r in CDCOutbreakFetcher(client=client).fetch(config)]

    assert [r.outbreak_key for r in records] == ["2024-Ohio-Norovirus", "2024-Texas-Salmonella"]


@pytest.mark.asyncio
async def test_malformed_json_is_permanent_error():
    from regiq.ingest.http_client import PermanentSourceError

    config = FetchConfig(source="fsis_recalls", urls=["https://www.fsis.usda.gov/fsis-content/api/recalls"], retry=NO_RETRY)
    routes = {"www.fsis.usda.gov/fsis-content/api/recalls": httpx.Response(200, text="<html>maintenance</html>")}
    async with mock_client(routes) as client:
        with pytest.raises(PermanentSourceError):
            async for _ in FSISRecallFetcher(client=client).fetch(config):
                pass


def test_json_fetcher_requires_record_hook():
    from regiq.ingest.fetchers.json_api import JSONAPIFetcher

    class Incomplete(JSONAPIFetcher):
        pass

    with pytest.raises(TypeError):
        Incomplete()
