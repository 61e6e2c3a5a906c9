from __future__ import annotations

import json

import httpx
import pytest
from pydantic import AnyHttpUrl, SecretStr

from rolechat.config import Settings
from rolechat.letta import (
    USER_INPUT_END,
    USER_INPUT_START,
    LettaClient,
    LettaError,
    extract_text_delta,
    memory_block,
    wrap_user_input,
)


def make_client(handler) -> LettaClient:
    settings = Settings(
        letta_api_key=SecretStr("letta-test"),
        letta_base_url=AnyHttpUrl("https://letta.example.com/"),
    )
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LettaClient(settings, http_client=http_client)


def test_parse_event_supports_multiple_data_lines() -> None:
    client = make_client(lambda request: httpx.Response(200))

    event = client._parse_event(  # type: ignore[attr-defined]
        ["event: chunk", "id: 7", "data: part one", "data: part two"]
    )

    assert event.asdict() == {"event": "chunk", "data": "part one\npart two", "id": "7"}


def test_wrap_user_input_fences_text() -> None:
    assert wrap_user_input("hi") == f"{USER_INPUT_START}\nhi\n{USER_INPUT_END}"


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"choices": [{"delta": {"content": "Hel"}}]}, "Hel"),
        ({"message_type": "assistant_message", "content": "lo"}, "lo"),
        ({"content": "plain"}, "plain"),
        ({"message_type": "reasoning_message", "content": "thinking"}, ""),
        ({"choices": []}, ""),
        (["not", "a", "dict"], ""),
    ],
)
def test_extract_text_delta(payload, expected: str) -> None:
    assert extract_text_delta(payload) == expected


def test_memory_block_reads_labelled_values() -> None:
    agent = {"memory": {"blocks": [{"label": "persona", "value": "a cat"}]}}

    assert memory_block(agent, "persona") == "a cat"
    assert memory_block(agent, "human") == ""
    assert memory_block({"memory_blocks": [{"label": "human", "value": "Ken"}]}, "human") == "Ken"


@pytest.mark.anyio
async def test_list_agents_sends_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "agent-1", "name": "Mayu"}, "junk"])

    agents = await make_client(handler).list_agents()

    assert agents == [{"id": "agent-1", "name": "Mayu"}]
    assert str(seen[0].url) == "https://letta.example.com/v1/agents/"
    assert seen[0].headers["Authorization"] == "Bearer letta-test"


@pytest.mark.anyio
async def test_create_agent_posts_memory_blocks() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "agent-42"})

    agent = await make_client(handler).create_agent("Mayu", "cheerful", "a student")

    assert agent["id"] == "agent-42"
    assert bodies[0]["memory_blocks"] == [
        {"label": "persona", "value": "cheerful"},
        {"label": "human", "value": "a student"},
    ]
    assert bodies[0]["model"] == "openai/gpt-4o-mini"


@pytest.mark.anyio
async def test_error_response_raises_letta_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"detail": "bad key"})

    with pytest.raises(LettaError) as excinfo:
        await make_client(handler).list_agents()

    assert excinfo.value.status_code == 401
    assert excinfo.value.detail == "bad key"


@pytest.mark.anyio
async def test_transport_failure_maps_to_bad_gateway() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LettaError) as excinfo:
        await make_client(handler).list_agents()

    assert excinfo.value.status_code == 502


@pytest.mark.anyio
async def test_stream_message_yields_events() -> None:
    requests: list[httpx.Request] = []
    body = (
        ": keep-alive\n\n"
        'data: {"message_type": "assistant_message", "content": "Hi"}\n\n'
        "event: usage\ndata: {}\n\n"
        "data: [DONE]\n\n"
    )

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200, content=body, headers={"Content-Type": "text/event-stream"}
        )

    client = make_client(handler)
    events = [event async for event in client.stream_message("agent-1", "hello")]

    assert [event.event for event in events] == ["message", "usage", "message"]
    assert events[-1].data == "[DONE]"
    sent = json.loads(requests[0].content)
    assert sent["stream_tokens"] is True
    assert sent["messages"][0]["content"] == wrap_user_input("hello")
    assert requests[0].url.path == "/v1/agents/agent-1/messages/stream"


@pytest.mark.anyio
async def test_stream_message_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="agent not found")

    client = make_client(handler)
    with pytest.raises(LettaError) as excinfo:
        async for _ in client.stream_message("missing", "hello"):
            pass

    assert excinfo.value.status_code == 404
    assert excinfo.value.detail == "agent not found"
