"""Role management backed by Letta agents and the local repository."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..letta import LettaClient, memory_block
from ..repository import RoleRecord, RoleRepository
from .tts.synthesis_cache import VoiceConfig

logger = logging.getLogger(__name__)


class RoleService:
    """Keep local roles and their cloud agents in step."""

    def __init__(self, repository: RoleRepository, letta: LettaClient):
        self._repo = repository
        self._letta = letta

    async def create_role(
        self,
        *,
        name: str,
        persona: str = "",
        human: str = "",
        voice: Optional[str] = None,
        speed: Optional[float] = None,
        pitch: Optional[str] = None,
        style: Optional[str] = None,
    ) -> RoleRecord:
        """Create the cloud agent first, then store the role locally."""

        agent = await self._letta.create_agent(name, persona, human)
        return await self._repo.create_role(
            name=name,
            persona=persona,
            human=human,
            agent_id=agent["id"],
            voice=voice,
            speed=speed,
            pitch=pitch,
            style=style,
        )

    async def list_roles(self) -> list[RoleRecord]:
        return await self._repo.list_roles()

    async def get_role(self, role_id: str) -> RoleRecord | None:
        return await self._repo.get_role(role_id)

    async def update_role(self, role_id: str, **fields: Any) -> RoleRecord | None:
        """Update local fields; changed persona/human text is pushed to the agent."""

        current = await self._repo.get_role(role_id)
        if current is None:
            return None

        agent_id = current.get("agent_id")
        if agent_id:
            for label in ("persona", "human"):
                value = fields.get(label)
                if value is not None and value != (current.get(label) or ""):
                    await self._letta.update_memory_block(agent_id, label, value)

        return await self._repo.update_role(role_id, **fields)

    async def delete_role(self, role_id: str) -> bool:
        return await self._repo.delete_role(role_id)

    async def sync_from_cloud(self, prune_deleted: bool = True) -> dict[str, Any]:
        """
        Mirror every cloud agent into the local roles table.

        Local roles whose agent no longer exists are removed only after the
        cloud listing succeeded, so a failed listing never empties the table.
        """

        agents = await self._letta.list_agents()
        cloud_ids: set[str] = set()
        for agent in agents:
            agent_id = agent.get("id")
            if not agent_id:
                continue
            cloud_ids.add(agent_id)
            await self._repo.upsert_agent(
                agent_id=agent_id,
                name=agent.get("name") or agent_id,
                persona=memory_block(agent, "persona"),
                human=memory_block(agent, "human"),
            )

        deleted_count = 0
        if prune_deleted:
            local_ids = await self._repo.list_agent_ids()
            stale = [agent_id for agent_id in local_ids if agent_id not in cloud_ids]
            if stale:
                deleted_count = await self._repo.delete_roles_by_agent_ids(stale)
                logger.info("Pruned %d role(s) whose agents were deleted", deleted_count)

        logger.info("Synced %d agent(s) from Letta", len(agents))
        return {
            "success": True,
            "count": len(agents),
            "pruned": prune_deleted,
            "deleted_count": deleted_count,
        }

    @staticmethod
    def voice_config(role: RoleRecord) -> VoiceConfig:
        return VoiceConfig(
            voice=role.get("voice"),
            speed=role.get("speed"),
            pitch=role.get("pitch"),
            style=role.get("style"),
        )


__all__ = ["RoleService"]
