"""Tests for HTTP-based adapters."""

import asyncio
import json
from dataclasses import dataclass, field

import httpx
import pytest

from nutrition_pipeline.adapters.fdc_client import HttpxFdcClient
from nutrition_pipeline.adapters.openai_meal_client import OpenAIMealClient
from nutrition_pipeline.adapters.supabase_alert_repository import (
    SupabaseAlertRepository,
)
from nutrition_pipeline.domain.alerts import AlertEvent, AlertLevel, AlertType


class _FakeResponses:
    def __init__(self, output_text: str) -> None:
        self.output_text = output_text
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        return type("Resp", (), {"output_text": self.output_text})()


class _FakeOpenAI:
    def __init__(self, output_text: str = json.dumps({"meals": []})) -> None:
        self.responses = _FakeResponses(output_text)


def _generate(client: OpenAIMealClient) -> dict[str, object]:
    return asyncio.run(
        client.generate(
            model="gpt-5.2",
            reasoning_effort="high",
            store=False,
            schema={"type": "object"},
            instructions="Return meals",
            prompt="High protein day",
        )
    )


def test_openai_meal_client_parses_output() -> None:
    fake = _FakeOpenAI()
    client = OpenAIMealClient(client=fake)

    result = _generate(client)

    assert result == {"meals": []}
    payload = fake.responses.last_payload
    assert payload is not None
    assert payload["text"]["format"]["strict"] is True
    assert payload["reasoning"] == {"effort": "high"}


def test_openai_meal_client_rejects_empty_output() -> None:
    client = OpenAIMealClient(client=_FakeOpenAI(output_text=""))

    with pytest.raises(RuntimeError):
        _generate(client)


def test_fdc_client_search_and_get() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/foods/search"):
            return httpx.Response(200, json={"foods": []})
        return httpx.Response(200, json={"fdcId": 1, "foodNutrients": []})

    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    client = HttpxFdcClient(
        api_key="key",
        base_url="https://api.test",
        http_client=async_client,
    )

    search = asyncio.run(client.search_foods("rice", page_size=3))
    food = asyncio.run(client.get_food(1))

    assert search == {"foods": []}
    assert food["fdcId"] == 1
    body = json.loads(seen[0].content.decode())
    assert body["query"] == "rice"
    assert body["pageSize"] == 3
    assert "Foundation" in body["dataType"]
    assert seen[0].url.params["api_key"] == "key"
    assert seen[1].url.path == "/food/1"


def test_fdc_client_raises_on_error_status() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    client = HttpxFdcClient(
        api_key="key",
        base_url="https://api.test",
        http_client=httpx.AsyncClient(transport=transport),
    )

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.get_food(1))


@dataclass
class _FakeQuery:
    rows: list[dict[str, object]] = field(default_factory=list)

    def insert(self, row: dict[str, object]) -> "_FakeQuery":
        self.rows.append(row)
        return self

    def execute(self) -> None:
        return None


@dataclass
class _FakeSupabase:
    query: _FakeQuery = field(default_factory=_FakeQuery)
    tables: list[str] = field(default_factory=list)

    def table(self, name: str) -> _FakeQuery:
        self.tables.append(name)
        return self.query


def test_supabase_alert_repository_inserts_row() -> None:
    supabase = _FakeSupabase()
    repository = SupabaseAlertRepository(supabase)

    repository.send(
        AlertEvent(
            level=AlertLevel.WARNING,
            type=AlertType.YIELD_UNMAPPED,
            payload={"itemKey": "stew"},
            trace_id="trace-1",
        )
    )

    assert supabase.tables == ["pipeline_alerts"]
    row = supabase.query.rows[0]
    assert row["type"] == "yield_unmapped"
    assert row["level"] == "warning"
    assert row["trace_id"] == "trace-1"
    assert row["payload"] == {"itemKey": "stew"}
