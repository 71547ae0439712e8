"""Tests for nutrition service."""

import asyncio

import httpx
import pytest

from nutrition_pipeline.services.cache import InMemoryCache
from nutrition_pipeline.services.nutrition import NutritionService
from tests.conftest import FakeFdcClient


def test_lookup_prefers_reference_data_and_fetches_details() -> None:
    client = FakeFdcClient()
    service = NutritionService(client, InMemoryCache())

    record = asyncio.run(service.lookup("chicken_breast"))

    assert record is not None
    assert record.source == "canonical"
    assert record.calories == 120
    assert record.protein == 22.5
    assert client.search_calls == ["chicken breast"]
    assert client.food_calls == [171077]


def test_lookup_uses_cache_as_hotpath() -> None:
    client = FakeFdcClient()
    service = NutritionService(client, InMemoryCache())

    first = asyncio.run(service.lookup("chicken_breast"))
    second = asyncio.run(service.lookup("chicken_breast"))

    assert first is not None
    assert second is not None
    assert second.source == "hotpath"
    assert second.calories == first.calories
    assert len(client.search_calls) == 1


def test_search_nutrients_skip_detail_fetch() -> None:
    client = FakeFdcClient(
        search_payload={
            "foods": [
                {
                    "fdcId": 5,
                    "description": "Protein bar",
                    "dataType": "Branded",
                    "foodNutrients": [
                        {"nutrientId": 2047, "value": 400},
                        {"nutrientId": 1003, "value": 30},
                        {"nutrientId": 1004, "value": 12},
                        {"nutrientId": 1005, "value": 40},
                    ],
                }
            ]
        }
    )
    service = NutritionService(client, InMemoryCache())

    record = asyncio.run(service.lookup("protein_bar"))

    assert record is not None
    assert record.source == "fallback"
    assert record.calories == 400
    assert client.food_calls == []


def test_lookup_without_matches_returns_none() -> None:
    client = FakeFdcClient(search_payload={"foods": []})
    service = NutritionService(client, InMemoryCache())

    assert asyncio.run(service.lookup("unobtainium")) is None


def test_lookup_retries_then_raises() -> None:
    calls = 0

    class FailingClient(FakeFdcClient):
        async def search_foods(
            self, query: str, page_size: int = 5
        ) -> dict[str, object]:
            nonlocal calls
            calls += 1
            request = httpx.Request("POST", "https://api.test/foods/search")
            response = httpx.Response(503, request=request)
            raise httpx.HTTPStatusError("boom", request=request, response=response)

    service = NutritionService(
        FailingClient(), InMemoryCache(), retry_attempts=1, retry_delay_seconds=0
    )

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(service.lookup("rice"))
    assert calls == 2


def test_in_memory_cache_expires_and_evicts() -> None:
    cache = InMemoryCache(max_entries=2)

    cache.set("a", 1, ttl_seconds=60)
    cache.set("b", 2, ttl_seconds=60)
    cache.set("c", 3, ttl_seconds=60)
    cache.set("expired", 4, ttl_seconds=-1)

    assert cache.get("a") is None
    assert cache.get("c") == 3
    assert cache.get("expired") is None
