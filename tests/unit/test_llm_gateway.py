import json
from typing import Any, Dict, List

import httpx
import pytest
from pydantic import BaseModel

import llm_gateway.llm_gateway as gateway
from config import LlmRoute
from llm_gateway import LlmGatewayError, api_key_available, call, chat_text, check_connection

VALID_KEY = "pplx-" + "a" * 40


class Reply(BaseModel):
    answer: str


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("not json")
        return self._payload


class FakeClient:
    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    async def post(self, url, *, json, headers, timeout):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _completion(content: str) -> FakeResponse:
    return FakeResponse(payload={"choices": [{"message": {"content": content}}]})


def _route(**overrides) -> LlmRoute:
    data = dict(
        name="test",
        base_url="http://llm",
        endpoint="/chat",
        model="primary",
        fallback_models=["backup"],
        timeout_s=5,
        max_retries=1,
        api_key_env="TEST_LLM_KEY",
        api_key_prefix="pplx-",
    )
    data.update(overrides)
    return LlmRoute(**data)


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setenv("TEST_LLM_KEY", VALID_KEY)


@pytest.mark.parametrize(
    "value",
    [None, "undefined", "   ", "your_api_key_here", "sk-" + "a" * 40, "pplx-short"],
)
def test_api_key_rejected(monkeypatch, value):
    if value is None:
        monkeypatch.delenv("TEST_LLM_KEY")
    else:
        monkeypatch.setenv("TEST_LLM_KEY", value)
    assert api_key_available(_route()) is False


def test_api_key_accepted():
    assert api_key_available(_route()) is True
    assert api_key_available(_route(api_key_env=None)) is True


@pytest.mark.asyncio
async def test_call_validates_and_sends_auth_header():
    client = FakeClient([_completion('{"answer": "42"}')])

    reply = await call("What is the answer?", Reply, cfg=_route(), client=client)

    assert reply.answer == "42"
    request = client.requests[0]
    assert request["url"] == "http://llm/chat"
    assert request["headers"]["Authorization"] == f"Bearer {VALID_KEY}"
    assert request["json"]["model"] == "primary"
    assert request["json"]["messages"][0]["role"] == "system"
    assert request["json"]["messages"][-1] == {"role": "user", "content": "What is the answer?"}


@pytest.mark.asyncio
async def test_code_fences_are_stripped():
    client = FakeClient([_completion('```json\n{"answer": "fenced"}\n```')])
    reply = await call("q", Reply, cfg=_route(), client=client)
    assert reply.answer == "fenced"


@pytest.mark.asyncio
async def test_falls_back_to_next_model():
    client = FakeClient([
        FakeResponse(status_code=503, text="overloaded"),
        _completion('{"answer": "from backup"}'),
    ])

    reply = await call("q", Reply, cfg=_route(), client=client)

    assert reply.answer == "from backup"
    assert [r["json"]["model"] for r in client.requests] == ["primary", "backup"]


@pytest.mark.asyncio
async def test_transport_error_and_bad_json_fall_through():
    client = FakeClient([
        httpx.ConnectError("refused"),
        FakeResponse(status_code=200, payload=None),
    ])
    with pytest.raises(LlmGatewayError):
        await chat_text([{"role": "user", "content": "hi"}], cfg=_route(), client=client)
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_invalid_output_retries_with_hint():
    client = FakeClient([_completion("not json at all"), _completion('{"answer": "ok"}')])

    reply = await call("q", Reply, cfg=_route(), client=client)

    assert reply.answer == "ok"
    retry_messages = client.requests[1]["json"]["messages"]
    assert retry_messages[-1]["role"] == "system"
    assert "failed validation" in retry_messages[-1]["content"]


@pytest.mark.asyncio
async def test_invalid_output_exhausts_retries():
    client = FakeClient([_completion("nope"), _completion("still nope")])
    with pytest.raises(LlmGatewayError):
        await call("q", Reply, cfg=_route(), client=client)


@pytest.mark.asyncio
async def test_missing_key_fails_before_request(monkeypatch):
    monkeypatch.delenv("TEST_LLM_KEY")
    client = FakeClient([])
    with pytest.raises(LlmGatewayError):
        await call("q", Reply, cfg=_route(), client=client)
    assert client.requests == []


@pytest.mark.asyncio
async def test_chat_text_passes_options():
    client = FakeClient([_completion("Plain text reply")])
    text = await chat_text(
        [{"role": "user", "content": "hi"}],
        cfg=_route(enforce_json=False),
        client=client,
        options={"temperature": 0.7},
    )
    assert text == "Plain text reply"
    assert client.requests[0]["json"]["temperature"] == 0.7


@pytest.mark.asyncio
async def test_sequential_route_serializes_calls():
    client = FakeClient([_completion("one"), _completion("two")])
    route = _route(sequential=True, name="sequential-test")
    first = await chat_text([{"role": "user", "content": "a"}], cfg=route, client=client)
    second = await chat_text([{"role": "user", "content": "b"}], cfg=route, client=client)
    assert (first, second) == ("one", "two")


@pytest.mark.asyncio
async def test_check_connection_reports_success_and_failure():
    ok = await check_connection(_route(), client=FakeClient([_completion("Test successful")]))
    assert ok == {"success": True, "message": "Test successful"}

    client = FakeClient([FakeResponse(status_code=401, text="bad key")])
    failed = await check_connection(_route(), client=client)
    assert failed["success"] is False
    assert len(client.requests) == 1


def test_retry_hint_mentions_reason():
    hint = gateway._retry_hint(json.dumps({"error": "x"}), True)
    assert "Reason:" in hint
    assert hint.endswith("matches the schema.")
