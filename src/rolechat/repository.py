"""SQLite-backed repository for roles and their chat history."""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import Any, Iterable

import aiosqlite

RoleRecord = dict[str, Any]
MessageRecord = dict[str, Any]

DEFAULT_VOICE = "ja-JP-MayuNeural"
DEFAULT_SPEED = 1.0
DEFAULT_PITCH = "15"
DEFAULT_STYLE = "chat"

_DELETE_BATCH = 500
_ROLE_COLUMNS = (
    "id",
    "name",
    "persona",
    "human",
    "agent_id",
    "voice",
    "speed",
    "pitch",
    "style",
    "created_at",
)
_UPDATABLE_ROLE_FIELDS = ("name", "persona", "human", "voice", "speed", "pitch", "style")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _row_to_role(row: aiosqlite.Row) -> RoleRecord:
    return {column: row[column] for column in _ROLE_COLUMNS}


class RoleRepository:
    """Persist roles (agent personas) and the messages exchanged with them."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA foreign_keys=ON;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            f"""
            CREATE TABLE IF NOT EXISTS roles (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                persona TEXT,
                human TEXT,
                agent_id TEXT UNIQUE,
                voice TEXT DEFAULT '{DEFAULT_VOICE}',
                speed REAL DEFAULT {DEFAULT_SPEED},
                pitch TEXT DEFAULT '{DEFAULT_PITCH}',
                style TEXT DEFAULT '{DEFAULT_STYLE}',
                created_at INTEGER
            );

            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                role_id TEXT NOT NULL REFERENCES roles(id) ON DELETE CASCADE,
                role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                content TEXT NOT NULL,
                timestamp INTEGER
            );

            CREATE INDEX IF NOT EXISTS idx_messages_role_id ON messages(role_id);
            CREATE INDEX IF NOT EXISTS idx_roles_created_at ON roles(created_at);
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def create_role(
        self,
        *,
        name: str,
        persona: str = "",
        human: str = "",
        agent_id: str | None = None,
        voice: str | None = None,
        speed: float | None = None,
        pitch: str | None = None,
        style: str | None = None,
    ) -> RoleRecord:
        """Insert a role, filling voice defaults for missing settings."""

        assert self._connection is not None
        record: RoleRecord = {
            "id": str(uuid.uuid4()),
            "name": name,
            "persona": persona,
            "human": human,
            "agent_id": agent_id,
            "voice": voice or DEFAULT_VOICE,
            "speed": speed if speed is not None else DEFAULT_SPEED,
            "pitch": pitch or DEFAULT_PITCH,
            "style": style or DEFAULT_STYLE,
            "created_at": _now_ms(),
        }
        placeholders = ", ".join("?" for _ in _ROLE_COLUMNS)
        await self._connection.execute(
            f"INSERT INTO roles ({', '.join(_ROLE_COLUMNS)}) VALUES ({placeholders})",
            tuple(record[column] for column in _ROLE_COLUMNS),
        )
        await self._connection.commit()
        return record

    async def list_roles(self) -> list[RoleRecord]:
        """Return all roles, newest first."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            f"SELECT {', '.join(_ROLE_COLUMNS)} FROM roles ORDER BY created_at DESC"
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [_row_to_role(row) for row in rows]

    async def get_role(self, role_id: str) -> RoleRecord | None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            f"SELECT {', '.join(_ROLE_COLUMNS)} FROM roles WHERE id = ? LIMIT 1",
            (role_id,),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return _row_to_role(row) if row is not None else None

    async def update_role(self, role_id: str, **fields: Any) -> RoleRecord | None:
        """Apply non-None ``fields`` to a role and return the updated record."""

        assert self._connection is not None
        changes = {
            key: value
            for key, value in fields.items()
            if key in _UPDATABLE_ROLE_FIELDS and value is not None
        }
        if changes:
            assignments = ", ".join(f"{key} = ?" for key in changes)
            await self._connection.execute(
                f"UPDATE roles SET {assignments} WHERE id = ?",
                (*changes.values(), role_id),
            )
            await self._connection.commit()
        return await self.get_role(role_id)

    async def delete_role(self, role_id: str) -> bool:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "DELETE FROM roles WHERE id = ?", (role_id,)
        )
        await self._connection.commit()
        deleted = cursor.rowcount > 0
        await cursor.close()
        return deleted

    async def upsert_agent(
        self, *, agent_id: str, name: str, persona: str, human: str
    ) -> RoleRecord:
        """Insert a role for a cloud agent, or refresh the one already linked."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT id FROM roles WHERE agent_id = ? LIMIT 1", (agent_id,)
        )
        row = await cursor.fetchone()
        await cursor.close()

        if row is None:
            return await self.create_role(
                name=name, persona=persona, human=human, agent_id=agent_id
            )

        await self._connection.execute(
            "UPDATE roles SET name = ?, persona = ?, human = ? WHERE agent_id = ?",
            (name, persona, human, agent_id),
        )
        await self._connection.commit()
        role = await self.get_role(row["id"])
        assert role is not None
        return role

    async def list_agent_ids(self) -> list[str]:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT agent_id FROM roles WHERE agent_id IS NOT NULL"
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [row["agent_id"] for row in rows]

    async def delete_roles_by_agent_ids(self, agent_ids: Iterable[str]) -> int:
        """Delete roles linked to ``agent_ids`` in batches; return rows removed."""

        assert self._connection is not None
        ids = list(agent_ids)
        deleted = 0
        for start in range(0, len(ids), _DELETE_BATCH):
            batch = ids[start : start + _DELETE_BATCH]
            placeholders = ", ".join("?" for _ in batch)
            cursor = await self._connection.execute(
                f"DELETE FROM roles WHERE agent_id IN ({placeholders})", batch
            )
            deleted += max(cursor.rowcount, 0)
            await cursor.close()
        await self._connection.commit()
        return deleted

    async def add_message(
        self, role_id: str, role: str, content: str
    ) -> MessageRecord:
        """Persist a single chat message."""

        assert self._connection is not None
        record: MessageRecord = {
            "id": str(uuid.uuid4()),
            "role": role,
            "content": content,
            "timestamp": _now_ms(),
        }
        await self._connection.execute(
            """
            INSERT INTO messages(id, role_id, role, content, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (record["id"], role_id, role, content, record["timestamp"]),
        )
        await self._connection.commit()
        return record

    async def get_messages(self, role_id: str) -> list[MessageRecord]:
        """Return a role's messages, oldest first."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            SELECT id, role, content, timestamp
            FROM messages
            WHERE role_id = ?
            ORDER BY timestamp ASC, rowid ASC
            """,
            (role_id,),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [
            {
                "id": row["id"],
                "role": row["role"],
                "content": row["content"],
                "timestamp": row["timestamp"],
            }
            for row in rows
        ]

    async def delete_messages(self, role_id: str) -> int:
        """Remove every message for a role and return how many were deleted."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            "DELETE FROM messages WHERE role_id = ?", (role_id,)
        )
        await self._connection.commit()
        deleted = max(cursor.rowcount, 0)
        await cursor.close()
        return deleted


__all__ = ["RoleRepository", "RoleRecord", "MessageRecord"]
