"""Relay a role's Letta reply as Server-Sent Events and record the exchange."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator

from ..letta import LettaClient, LettaError, extract_text_delta
from ..repository import MessageRecord, RoleRecord, RoleRepository

logger = logging.getLogger(__name__)

DONE_DATA = "[DONE]"


class ChatStreamService:
    """Persist the user turn, pass Letta's stream through, then persist the reply."""

    def __init__(self, repository: RoleRepository, letta: LettaClient):
        self._repo = repository
        self._letta = letta

    async def stream(
        self, role: RoleRecord, text: str
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield ``{"event", "data"}`` dicts for ``EventSourceResponse``.

        The stream always ends with a ``[DONE]`` message. The assistant text
        is stored only when some was received.
        """

        role_id = role["id"]
        await self._repo.add_message(role_id, "user", text)

        parts: list[str] = []
        try:
            async for event in self._letta.stream_message(role["agent_id"], text):
                if event.data.strip() == DONE_DATA:
                    continue
                parts.append(_text_from_event_data(event.data))
                yield event.asdict()
        except LettaError as exc:
            detail = exc.detail if isinstance(exc.detail, str) else json.dumps(exc.detail)
            logger.warning("Letta stream for role %s failed: %s", role_id, detail)
            yield {
                "event": "message",
                "data": json.dumps({"error": "Upstream error", "detail": detail}),
            }
        finally:
            content = "".join(parts)
            if content:
                await self._repo.add_message(role_id, "assistant", content)

        yield {"event": "message", "data": DONE_DATA}

    async def history(self, role_id: str) -> list[MessageRecord]:
        return await self._repo.get_messages(role_id)

    async def delete_history(self, role_id: str) -> int:
        return await self._repo.delete_messages(role_id)


def _text_from_event_data(data: str) -> str:
    try:
        payload = json.loads(data)
    except (TypeError, ValueError):
        return ""
    return extract_text_delta(payload)


__all__ = ["ChatStreamService", "DONE_DATA"]
