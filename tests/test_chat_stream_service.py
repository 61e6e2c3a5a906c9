from __future__ import annotations

import json

import httpx
import pytest
from pydantic import AnyHttpUrl, SecretStr

from rolechat.config import Settings
from rolechat.letta import LettaClient
from rolechat.repository import RoleRepository
from rolechat.services.chat_stream import DONE_DATA, ChatStreamService


@pytest.fixture
async def repository(tmp_path):
    repo = RoleRepository(tmp_path / "rolechat.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


def make_letta(handler) -> LettaClient:
    settings = Settings(
        letta_api_key=SecretStr("letta-test"),
        letta_base_url=AnyHttpUrl("https://letta.example.com"),
    )
    return LettaClient(
        settings,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def sse(*payloads: object) -> bytes:
    chunks = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        chunks.append(f"data: {data}\n\n")
    return "".join(chunks).encode()


@pytest.mark.anyio
async def test_stream_relays_events_and_records_exchange(
    repository: RoleRepository,
) -> None:
    body = sse(
        {"message_type": "reasoning_message", "reasoning": "hmm"},
        {"message_type": "assistant_message", "content": "Hello"},
        {"message_type": "assistant_message", "content": " there."},
        DONE_DATA,
    )
    service = ChatStreamService(
        repository,
        make_letta(lambda request: httpx.Response(200, content=body)),
    )
    role = await repository.create_role(name="Aki", agent_id="agent-1")

    events = [event async for event in service.stream(role, "hi")]

    assert [event["data"] for event in events][-1] == DONE_DATA
    assert len(events) == 4
    assert [event["data"] for event in events].count(DONE_DATA) == 1
    history = await service.history(role["id"])
    assert [(item["role"], item["content"]) for item in history] == [
        ("user", "hi"),
        ("assistant", "Hello there."),
    ]


@pytest.mark.anyio
async def test_upstream_error_becomes_error_event(repository: RoleRepository) -> None:
    service = ChatStreamService(
        repository,
        make_letta(
            lambda request: httpx.Response(401, json={"detail": "bad key"})
        ),
    )
    role = await repository.create_role(name="Aki", agent_id="agent-1")

    events = [event async for event in service.stream(role, "hi")]

    assert json.loads(events[0]["data"]) == {
        "error": "Upstream error",
        "detail": "bad key",
    }
    assert events[-1]["data"] == DONE_DATA
    history = await service.history(role["id"])
    assert [item["role"] for item in history] == ["user"]


@pytest.mark.anyio
async def test_delete_history_counts_messages(repository: RoleRepository) -> None:
    service = ChatStreamService(
        repository, make_letta(lambda request: httpx.Response(200))
    )
    role = await repository.create_role(name="Aki", agent_id="agent-1")
    await repository.add_message(role["id"], "user", "a")
    await repository.add_message(role["id"], "assistant", "b")

    assert await service.delete_history(role["id"]) == 2
    assert await service.history(role["id"]) == []
