"""Letta Cloud agent client utilities."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Iterable, Mapping, Optional

import httpx
from fastapi import status

from .config import Settings

logger = logging.getLogger(__name__)

USER_INPUT_START = "<<<USER_INPUT_START>>>"
USER_INPUT_END = "<<<USER_INPUT_END>>>"


class LettaError(Exception):
    """Wrap transport or API failures when communicating with Letta."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


@dataclass
class ServerSentEvent:
    """Represents a parsed Server-Sent Event."""

    data: str
    event: str = "message"
    event_id: Optional[str] = None

    def asdict(self) -> dict[str, Optional[str]]:
        payload: dict[str, Optional[str]] = {"event": self.event, "data": self.data}
        if self.event_id is not None:
            payload["id"] = self.event_id
        return payload


def wrap_user_input(text: str) -> str:
    """Fence user text so the agent cannot confuse it with instructions."""

    return f"{USER_INPUT_START}\n{text}\n{USER_INPUT_END}"


def extract_text_delta(payload: Any) -> str:
    """Return the assistant text carried by one parsed stream payload."""

    if not isinstance(payload, Mapping):
        return ""
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, Mapping):
            delta = first.get("delta")
            if isinstance(delta, Mapping):
                content = delta.get("content")
                if isinstance(content, str):
                    return content
    message_type = payload.get("message_type")
    if message_type not in (None, "assistant_message"):
        return ""
    content = payload.get("content")
    return content if isinstance(content, str) else ""


def memory_block(agent: Mapping[str, Any], label: str) -> str:
    """Return the value of a labelled core-memory block on an agent payload."""

    blocks = agent.get("memory_blocks") or agent.get("blocks")
    if blocks is None:
        memory = agent.get("memory")
        if isinstance(memory, Mapping):
            blocks = memory.get("blocks")
    for block in blocks or []:
        if isinstance(block, Mapping) and block.get("label") == label:
            value = block.get("value")
            return value if isinstance(value, str) else ""
    return ""


class LettaClient:
    """Client for the Letta agents API (list, create, stream messages)."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(
        self, settings: Settings, *, http_client: httpx.AsyncClient | None = None
    ):
        self._settings = settings
        self._http_client = http_client

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client

        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(timeout=timeout, limits=limits)
                self.__class__._client_pool[key] = client
        return client

    @classmethod
    async def close_http_clients(cls) -> None:
        """Close pooled HTTP clients. Call on app shutdown."""

        clients = list(cls._client_pool.values())
        cls._client_pool.clear()
        for client in clients:
            await client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.letta_api_key is not None:
            token = self._settings.letta_api_key.get_secret_value()
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @property
    def _base_url(self) -> str:
        """Return the Letta API base URL without a trailing slash."""

        return str(self._settings.letta_base_url).rstrip("/")

    async def _request_json(
        self, method: str, path: str, *, json_body: Any = None
    ) -> Any:
        client = await self._get_http_client()
        try:
            response = await client.request(
                method,
                f"{self._base_url}{path}",
                headers=self._headers,
                json=json_body,
            )
        except httpx.HTTPError as exc:
            raise LettaError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            raise LettaError(response.status_code, detail)

        try:
            return response.json()
        except ValueError as exc:  # pragma: no cover - unexpected payload
            raise LettaError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def list_agents(self) -> list[dict[str, Any]]:
        """Return every agent visible to the configured API key."""

        payload = await self._request_json("GET", "/v1/agents/")
        if isinstance(payload, Mapping):
            payload = payload.get("data") or payload.get("agents") or []
        if not isinstance(payload, list):
            raise LettaError(
                status.HTTP_502_BAD_GATEWAY, "Agent listing was not a list"
            )
        return [agent for agent in payload if isinstance(agent, dict)]

    async def create_agent(self, name: str, persona: str, human: str) -> dict[str, Any]:
        """Create an agent whose core memory holds the persona and human blocks."""

        body = {
            "name": name,
            "memory_blocks": [
                {"label": "persona", "value": persona},
                {"label": "human", "value": human},
            ],
            "model": self._settings.letta_model,
            "embedding": self._settings.letta_embedding,
        }
        agent = await self._request_json("POST", "/v1/agents/", json_body=body)
        if not isinstance(agent, dict) or not agent.get("id"):
            raise LettaError(status.HTTP_502_BAD_GATEWAY, "Agent creation returned no id")
        logger.info("Created Letta agent %s for role %s", agent["id"], name)
        return agent

    async def update_memory_block(self, agent_id: str, label: str, value: str) -> None:
        await self._request_json(
            "PATCH",
            f"/v1/agents/{agent_id}/core-memory/blocks/{label}",
            json_body={"value": value},
        )

    async def stream_message(
        self, agent_id: str, text: str
    ) -> AsyncGenerator[ServerSentEvent, None]:
        """Send a user message and yield the agent's token stream as SSE events."""

        url = f"{self._base_url}/v1/agents/{agent_id}/messages/stream"
        payload = {
            "messages": [{"role": "user", "content": wrap_user_input(text)}],
            "stream_tokens": True,
        }
        headers = dict(self._headers)
        headers["Accept"] = "text/event-stream"

        client = await self._get_http_client()
        try:
            async with client.stream(
                "POST", url, headers=headers, json=payload
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    detail = self._extract_error_detail(body)
                    raise LettaError(response.status_code, detail)

                async for event in self._iter_events(response):
                    yield event
        except httpx.HTTPError as exc:
            raise LettaError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def _iter_events(
        self, response: httpx.Response
    ) -> AsyncGenerator[ServerSentEvent, None]:
        buffer: list[str] = []
        async for line in response.aiter_lines():
            if not line:
                if buffer:
                    yield self._parse_event(buffer)
                    buffer.clear()
                continue
            if line.startswith(":"):
                continue
            buffer.append(line)
        if buffer:
            yield self._parse_event(buffer)

    def _parse_event(self, lines: Iterable[str]) -> ServerSentEvent:
        event_name: Optional[str] = None
        event_id: Optional[str] = None
        data_lines: list[str] = []

        for line in lines:
            field, _, value = line.partition(":")
            value = value.lstrip(" ")
            if field == "event":
                event_name = value or None
            elif field == "data":
                data_lines.append(value)
            elif field == "id":
                event_id = value or None

        data = "\n".join(data_lines)
        return ServerSentEvent(
            data=data, event=event_name or "message", event_id=event_id
        )

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "Letta returned an empty error response."
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict):
            return payload.get("detail") or payload.get("error") or payload
        return payload


__all__ = [
    "LettaClient",
    "LettaError",
    "ServerSentEvent",
    "extract_text_delta",
    "memory_block",
    "wrap_user_input",
]
