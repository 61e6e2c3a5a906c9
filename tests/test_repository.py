from __future__ import annotations

import pytest

from rolechat.repository import (
    DEFAULT_PITCH,
    DEFAULT_SPEED,
    DEFAULT_STYLE,
    DEFAULT_VOICE,
    RoleRepository,
)


@pytest.fixture
async def repository(tmp_path):
    repo = RoleRepository(tmp_path / "rolechat.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


@pytest.mark.anyio
async def test_create_role_fills_voice_defaults(repository: RoleRepository) -> None:
    role = await repository.create_role(name="Mayu", persona="cheerful", agent_id="agent-1")

    assert role["voice"] == DEFAULT_VOICE
    assert role["speed"] == DEFAULT_SPEED
    assert role["pitch"] == DEFAULT_PITCH
    assert role["style"] == DEFAULT_STYLE
    assert await repository.get_role(role["id"]) == role


@pytest.mark.anyio
async def test_list_roles_newest_first(repository: RoleRepository) -> None:
    first = await repository.create_role(name="first")
    second = await repository.create_role(name="second")
    await repository._connection.execute(  # type: ignore[union-attr]
        "UPDATE roles SET created_at = created_at + 1000 WHERE id = ?", (second["id"],)
    )

    roles = await repository.list_roles()

    assert [role["id"] for role in roles] == [second["id"], first["id"]]


@pytest.mark.anyio
async def test_update_role_ignores_none_fields(repository: RoleRepository) -> None:
    role = await repository.create_role(name="Aki", voice="nova")

    updated = await repository.update_role(role["id"], name="Aki 2", voice=None, speed=1.5)

    assert updated is not None
    assert updated["name"] == "Aki 2"
    assert updated["voice"] == "nova"
    assert updated["speed"] == 1.5
    assert await repository.update_role("missing", name="x") is None


@pytest.mark.anyio
async def test_upsert_agent_inserts_then_refreshes(repository: RoleRepository) -> None:
    created = await repository.upsert_agent(
        agent_id="agent-9", name="Old", persona="p1", human="h1"
    )
    refreshed = await repository.upsert_agent(
        agent_id="agent-9", name="New", persona="p2", human="h2"
    )

    assert refreshed["id"] == created["id"]
    assert (refreshed["name"], refreshed["persona"], refreshed["human"]) == ("New", "p2", "h2")
    assert len(await repository.list_roles()) == 1


@pytest.mark.anyio
async def test_delete_roles_by_agent_ids_batches(repository: RoleRepository) -> None:
    for index in range(3):
        await repository.create_role(name=f"r{index}", agent_id=f"agent-{index}")
    await repository.create_role(name="local only")

    deleted = await repository.delete_roles_by_agent_ids(
        ["agent-0", "agent-2"] + [f"ghost-{n}" for n in range(600)]
    )

    assert deleted == 2
    assert await repository.list_agent_ids() == ["agent-1"]
    assert len(await repository.list_roles()) == 2


@pytest.mark.anyio
async def test_messages_are_ordered_and_deleted(repository: RoleRepository) -> None:
    role = await repository.create_role(name="Chatty")
    await repository.add_message(role["id"], "user", "hi")
    await repository.add_message(role["id"], "assistant", "hello!")

    messages = await repository.get_messages(role["id"])

    assert [(m["role"], m["content"]) for m in messages] == [
        ("user", "hi"),
        ("assistant", "hello!"),
    ]
    assert await repository.delete_messages(role["id"]) == 2
    assert await repository.get_messages(role["id"]) == []


@pytest.mark.anyio
async def test_deleting_role_cascades_to_messages(repository: RoleRepository) -> None:
    role = await repository.create_role(name="Gone")
    await repository.add_message(role["id"], "user", "bye")

    assert await repository.delete_role(role["id"]) is True
    assert await repository.delete_role(role["id"]) is False
    assert await repository.get_messages(role["id"]) == []
