"""Tests for CodeEditorSession, the text side of a diagram session."""

from pathlib import Path

import pytest
import pytest_asyncio

from db.migrations import init_db
from db.storage import SQLiteStorage
from schemax.code.editor import CodeEditorSession
from schemax.diagram import DiagramSession


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def storage(tmp_path: Path) -> SQLiteStorage:
    path = tmp_path / "test.db"
    conn = init_db(path)
    conn.close()
    return SQLiteStorage(path)


@pytest_asyncio.fixture()
async def session(storage: SQLiteStorage) -> DiagramSession:
    return await DiagramSession.create(storage, "Editor")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def editor(session: DiagramSession, clock: FakeClock) -> CodeEditorSession:
    return CodeEditorSession(session, quiet_window=1.0, clock=clock)


class TestInitialText:
    @pytest.mark.asyncio
    async def test_empty_diagram_generates_empty_text(self, editor: CodeEditorSession) -> None:
        assert editor.code == ""
        assert editor.is_quiet

    @pytest.mark.asyncio
    async def test_existing_tables_are_generated(self, session: DiagramSession) -> None:
        await session.create_table({"name": "users"})
        editor = CodeEditorSession(session)
        assert editor.code.startswith("Table users {")


class TestCodeChanges:
    @pytest.mark.asyncio
    async def test_text_edit_reconciles_model(
        self, editor: CodeEditorSession, session: DiagramSession
    ) -> None:
        text = "Table users {\n\tid integer [primary key]\n}"
        report = await editor.on_code_changed(text)

        assert report.created_tables == ["users"]
        assert [t.name for t in session.tables] == ["users"]
        # The typed text stays as typed while the user is inside the quiet window
        assert editor.code == text

    @pytest.mark.asyncio
    async def test_uses_session_dialect(self, storage: SQLiteStorage) -> None:
        session = await DiagramSession.create(storage, "My", database_type="mysql")
        editor = CodeEditorSession(session)

        await editor.on_code_changed("Table t {\n\tid INT\n}")

        assert session.tables[0].fields[0].type.name == "int"


class TestQuietWindow:
    @pytest.mark.asyncio
    async def test_model_change_during_typing_is_deferred(
        self, editor: CodeEditorSession, session: DiagramSession, clock: FakeClock
    ) -> None:
        await editor.on_code_changed("Table a {\n\tid integer\n}")
        typed = editor.code

        clock.now += 0.5
        await session.create_table({"name": "b"})

        assert not editor.is_quiet
        assert editor.code == typed

    @pytest.mark.asyncio
    async def test_deferred_change_shows_once_quiet(
        self, editor: CodeEditorSession, session: DiagramSession, clock: FakeClock
    ) -> None:
        await editor.on_code_changed("Table a {\n\tid integer\n}")
        clock.now += 0.5
        await session.create_table({"name": "b"})
        assert editor.stale

        # No further event arrives; the window simply passes
        clock.now += 1.0

        assert "Table b {" in editor.code
        assert not editor.stale

    @pytest.mark.asyncio
    async def test_new_text_clears_deferred_change(
        self, editor: CodeEditorSession, session: DiagramSession, clock: FakeClock
    ) -> None:
        await editor.on_code_changed("Table a {\n\tid integer\n}")
        clock.now += 0.5
        await session.create_table({"name": "b"})

        text = "Table a {\n\tid integer\n\tname text\n}"
        await editor.on_code_changed(text)

        assert editor.code == text

    @pytest.mark.asyncio
    async def test_model_change_after_quiet_window_regenerates(
        self, editor: CodeEditorSession, session: DiagramSession, clock: FakeClock
    ) -> None:
        await editor.on_code_changed("Table a {\n\tid integer\n}")

        clock.now += 1.0
        await session.create_table({"name": "b"})

        assert editor.is_quiet
        assert "Table b {" in editor.code
        assert editor.code.startswith("Table a {")

    @pytest.mark.asyncio
    async def test_explicit_refresh_reports_deferral(
        self, editor: CodeEditorSession, clock: FakeClock
    ) -> None:
        await editor.on_code_changed("Table a {\n\tid integer")
        assert editor.on_model_changed() is False
        clock.now += 2
        assert editor.on_model_changed() is True
        assert editor.code == ""

    @pytest.mark.asyncio
    async def test_undo_regenerates_when_quiet(
        self, editor: CodeEditorSession, session: DiagramSession, clock: FakeClock
    ) -> None:
        await editor.on_code_changed("Table a {\n\tid integer\n}")
        clock.now += 5

        await session.undo()

        assert editor.code == ""


class TestClose:
    @pytest.mark.asyncio
    async def test_close_stops_following_model(
        self, editor: CodeEditorSession, session: DiagramSession
    ) -> None:
        editor.close()
        await session.create_table({"name": "ignored"})
        assert editor.code == ""
