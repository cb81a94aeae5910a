"""Tests for the undo/redo command log.

Verifies:
- Undo/redo of every recorded action, in memory and in storage
- updated_at is restored to the value recorded with the command
- Empty stacks are a no-op that returns False
- A new mutation discards the redo stack
"""

from pathlib import Path

import pytest
import pytest_asyncio

from db.migrations import init_db
from db.storage import SQLiteStorage
from schemax.diagram import DiagramSession
from schemax.history import Command, CommandLog, UnknownActionError
from schemax.models import Cardinality, DataType, Field, Table

INT = DataType(id="integer", name="integer")


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture()
def storage(tmp_path: Path) -> SQLiteStorage:
    path = tmp_path / "test.db"
    conn = init_db(path)
    conn.close()
    return SQLiteStorage(path)


@pytest_asyncio.fixture()
async def session(storage: SQLiteStorage) -> DiagramSession:
    return await DiagramSession.create(storage, "History")


async def _reopen(session: DiagramSession) -> DiagramSession:
    return await DiagramSession.open(session.storage, session.diagram_id)


# ── TestCommandLog ────────────────────────────────────────


class TestCommandLog:
    def test_starts_empty(self) -> None:
        log = CommandLog()
        assert not log.can_undo
        assert not log.can_redo

    def test_add_clears_redo(self) -> None:
        log = CommandLog()
        log.redo_stack.append(Command("addTables", {}, {}))
        log.add_undo_action(Command("addTables", {}, {}))
        assert log.can_undo
        assert not log.can_redo

    def test_unknown_action_rejected(self) -> None:
        with pytest.raises(UnknownActionError):
            CommandLog().add_undo_action(Command("teleport", {}, {}))

    def test_reset_clears_both(self) -> None:
        log = CommandLog()
        log.undo_stack.append(Command("addTables", {}, {}))
        log.redo_stack.append(Command("addTables", {}, {}))
        log.reset()
        assert log.undo_stack == []
        assert log.redo_stack == []


# ── TestUndoRedo ──────────────────────────────────────────


class TestUndoRedo:
    @pytest.mark.asyncio
    async def test_empty_stacks_are_noop(self, session: DiagramSession) -> None:
        assert await session.undo() is False
        assert await session.redo() is False

    @pytest.mark.asyncio
    async def test_add_table_undo_redo(self, session: DiagramSession) -> None:
        before = session.current_diagram.updated_at
        table = await session.create_table({"name": "users"})
        after = session.current_diagram.updated_at

        assert await session.undo() is True
        assert session.get_table(table.id) is None
        assert session.current_diagram.updated_at == before
        reopened = await _reopen(session)
        assert reopened.tables == []
        assert reopened.current_diagram.updated_at == before

        assert await session.redo() is True
        assert session.get_table(table.id) == table
        assert session.current_diagram.updated_at == after
        assert (await _reopen(session)).get_table(table.id) == table

    @pytest.mark.asyncio
    async def test_new_mutation_discards_redo(self, session: DiagramSession) -> None:
        await session.create_table()
        await session.undo()
        assert session.history.can_redo

        await session.create_table()
        assert not session.history.can_redo

    @pytest.mark.asyncio
    async def test_remove_table_undo_restores_relationships(
        self, session: DiagramSession
    ) -> None:
        a = await session.create_table({"name": "a"})
        b = await session.create_table({"name": "b"})
        rel = await session.create_relationship(a.id, a.fields[0].id, b.id, b.fields[0].id)
        dependency = await session.create_dependency(a.id, b.id)

        await session.remove_table(a.id)
        await session.undo()

        assert session.get_table(a.id) == a
        assert session.relationships == [rel]
        assert session.dependencies == [dependency]
        reopened = await _reopen(session)
        assert reopened.relationships == [rel]
        assert reopened.dependencies == [dependency]

        await session.redo()
        assert session.get_table(a.id) is None
        assert session.relationships == []

    @pytest.mark.asyncio
    async def test_update_table_undo(self, session: DiagramSession) -> None:
        table = await session.create_table({"name": "users"})
        await session.update_table(table.id, {"name": "people", "x": 100})

        await session.undo()
        restored = session.get_table(table.id)
        assert restored is not None
        assert (restored.name, restored.x) == ("users", 0)

        await session.redo()
        redone = session.get_table(table.id)
        assert redone is not None
        assert (redone.name, redone.x) == ("people", 100)

    @pytest.mark.asyncio
    async def test_field_undo(self, session: DiagramSession) -> None:
        table = await session.create_table()
        field = Field(name="email", type=INT)
        await session.add_field(table.id, field)
        await session.update_field(table.id, field.id, {"name": "mail"})
        await session.remove_field(table.id, field.id)

        await session.undo()
        assert session.get_field(table.id, field.id) == field.model_copy(update={"name": "mail"})
        await session.undo()
        assert session.get_field(table.id, field.id) == field
        await session.undo()
        assert session.get_field(table.id, field.id) is None
        assert (await _reopen(session)).get_field(table.id, field.id) is None

    @pytest.mark.asyncio
    async def test_index_undo(self, session: DiagramSession) -> None:
        table = await session.create_table()
        index = await session.create_index(table.id)
        assert index is not None
        await session.update_index(table.id, index.id, {"unique": True})
        await session.remove_index(table.id, index.id)

        await session.undo()
        restored = session.get_index(table.id, index.id)
        assert restored is not None
        assert restored.unique is True
        await session.undo()
        assert session.get_index(table.id, index.id) == index
        await session.undo()
        assert session.get_index(table.id, index.id) is None

    @pytest.mark.asyncio
    async def test_relationship_undo(self, session: DiagramSession) -> None:
        a = await session.create_table({"name": "a"})
        b = await session.create_table({"name": "b"})
        rel = await session.create_relationship(a.id, a.fields[0].id, b.id, b.fields[0].id)
        await session.update_relationship(rel.id, {"target_cardinality": Cardinality.MANY})
        await session.remove_relationship(rel.id)

        await session.undo()
        restored = session.get_relationship(rel.id)
        assert restored is not None
        assert restored.target_cardinality == Cardinality.MANY
        await session.undo()
        assert session.get_relationship(rel.id) == rel
        await session.undo()
        assert session.relationships == []

    @pytest.mark.asyncio
    async def test_dependency_undo(self, session: DiagramSession) -> None:
        a = await session.create_table({"name": "a"})
        b = await session.create_table({"name": "b"})
        dependency = await session.create_dependency(a.id, b.id)
        await session.remove_dependency(dependency.id)

        await session.undo()
        assert session.dependencies == [dependency]
        await session.undo()
        assert session.dependencies == []

    @pytest.mark.asyncio
    async def test_diagram_name_undo(self, session: DiagramSession) -> None:
        await session.update_diagram_name("Renamed")
        await session.undo()
        assert session.current_diagram.name == "History"
        assert (await _reopen(session)).current_diagram.name == "History"

    @pytest.mark.asyncio
    async def test_undo_does_not_record(self, session: DiagramSession) -> None:
        await session.add_tables([Table(name="a"), Table(name="b")])
        await session.undo()
        assert session.history.undo_stack == []
        assert len(session.history.redo_stack) == 1

    @pytest.mark.asyncio
    async def test_clear_resets_history(self, session: DiagramSession) -> None:
        await session.create_table()
        await session.undo()
        await session.create_table()
        await session.clear_diagram_data()
        assert not session.history.can_undo
        assert not session.history.can_redo
