"""Async persistence adapter backed by SQLite.

Each operation opens its own connection and runs on a worker thread via
``asyncio.to_thread``, so independent writes can be issued together with
``asyncio.gather``. There is no cross-operation atomicity.
"""

import asyncio
import json
import sqlite3
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel

from db.client import get_connection
from db.migrations import run_migrations
from schemax.models import Dependency, Diagram, Relationship, Table

T = TypeVar("T")

DIAGRAM_COLUMNS = ["name", "database_type", "database_edition", "updated_at"]


class StorageError(Exception):
    """Raised when the persistence layer rejects a read or write."""


class SQLiteStorage:
    """Key-based store exposing CRUD per entity type, keyed by diagram and entity id."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)

    def _run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        try:
            result = operation(conn)
            conn.commit()
            return result
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        finally:
            conn.close()

    async def _call(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        return await asyncio.to_thread(self._run, operation)

    async def migrate(self) -> None:
        await self._call(run_migrations)

    # ── Diagrams ──────────────────────────────────────────────

    async def add_diagram(self, diagram: Diagram) -> None:
        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                """INSERT INTO diagrams (id, name, database_type, database_edition, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    diagram.id,
                    diagram.name,
                    diagram.database_type.value,
                    diagram.database_edition,
                    diagram.created_at,
                    diagram.updated_at,
                ),
            )

        await self._call(op)

    async def get_diagram(
        self,
        diagram_id: str,
        include_tables: bool = False,
        include_relationships: bool = False,
        include_dependencies: bool = False,
    ) -> Diagram | None:
        def op(conn: sqlite3.Connection) -> Diagram | None:
            row = conn.execute(
                "SELECT * FROM diagrams WHERE id = ?", (diagram_id,)
            ).fetchone()
            if row is None:
                return None

            diagram = Diagram(**dict(row))
            if include_tables:
                diagram.tables = _load_records(conn, "db_tables", diagram_id, Table)
            if include_relationships:
                diagram.relationships = _load_records(
                    conn, "db_relationships", diagram_id, Relationship
                )
            if include_dependencies:
                diagram.dependencies = _load_records(
                    conn, "db_dependencies", diagram_id, Dependency
                )
            return diagram

        return await self._call(op)

    async def list_diagrams(self) -> list[Diagram]:
        def op(conn: sqlite3.Connection) -> list[Diagram]:
            rows = conn.execute(
                "SELECT * FROM diagrams ORDER BY created_at DESC"
            ).fetchall()
            return [Diagram(**dict(row)) for row in rows]

        return await self._call(op)

    async def update_diagram(self, diagram_id: str, attributes: dict[str, Any]) -> None:
        updates: list[str] = []
        params: list[Any] = []
        for column in DIAGRAM_COLUMNS:
            if column in attributes:
                value = attributes[column]
                updates.append(f"{column} = ?")
                params.append(value.value if hasattr(value, "value") else value)
        if not updates:
            return
        params.append(diagram_id)

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                f"UPDATE diagrams SET {', '.join(updates)} WHERE id = ?",  # noqa: S608
                params,
            )

        await self._call(op)

    async def delete_diagram(self, diagram_id: str) -> None:
        def op(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM diagrams WHERE id = ?", (diagram_id,))

        await self._call(op)

    # ── Tables ────────────────────────────────────────────────

    async def add_tables(self, diagram_id: str, tables: Sequence[Table]) -> None:
        """Append tables in the given order."""
        await self._call(lambda conn: _insert_records(conn, "db_tables", diagram_id, tables))

    async def add_table(self, diagram_id: str, table: Table) -> None:
        await self.add_tables(diagram_id, [table])

    async def get_table(self, diagram_id: str, table_id: str) -> Table | None:
        def op(conn: sqlite3.Connection) -> Table | None:
            row = conn.execute(
                "SELECT data FROM db_tables WHERE diagram_id = ? AND id = ?",
                (diagram_id, table_id),
            ).fetchone()
            return Table.model_validate_json(row["data"]) if row else None

        return await self._call(op)

    async def update_table(self, table_id: str, attributes: dict[str, Any]) -> None:
        await self._call(lambda conn: _merge_record(conn, "db_tables", table_id, attributes))

    async def delete_table(self, diagram_id: str, table_id: str) -> None:
        await self._call(lambda conn: _delete_record(conn, "db_tables", diagram_id, table_id))

    async def delete_diagram_tables(self, diagram_id: str) -> None:
        await self._call(lambda conn: _delete_all(conn, "db_tables", diagram_id))

    async def reorder_tables(self, diagram_id: str, table_ids: Sequence[str]) -> None:
        await self._call(lambda conn: _reorder(conn, "db_tables", diagram_id, table_ids))

    # ── Relationships ─────────────────────────────────────────

    async def add_relationships(
        self, diagram_id: str, relationships: Sequence[Relationship]
    ) -> None:
        await self._call(
            lambda conn: _insert_records(conn, "db_relationships", diagram_id, relationships)
        )

    async def add_relationship(self, diagram_id: str, relationship: Relationship) -> None:
        await self.add_relationships(diagram_id, [relationship])

    async def update_relationship(
        self, relationship_id: str, attributes: dict[str, Any]
    ) -> None:
        await self._call(
            lambda conn: _merge_record(conn, "db_relationships", relationship_id, attributes)
        )

    async def delete_relationship(self, diagram_id: str, relationship_id: str) -> None:
        await self._call(
            lambda conn: _delete_record(conn, "db_relationships", diagram_id, relationship_id)
        )

    async def delete_diagram_relationships(self, diagram_id: str) -> None:
        await self._call(lambda conn: _delete_all(conn, "db_relationships", diagram_id))

    async def reorder_relationships(
        self, diagram_id: str, relationship_ids: Sequence[str]
    ) -> None:
        await self._call(
            lambda conn: _reorder(conn, "db_relationships", diagram_id, relationship_ids)
        )

    # ── Dependencies ──────────────────────────────────────────

    async def add_dependencies(self, diagram_id: str, dependencies: Sequence[Dependency]) -> None:
        await self._call(
            lambda conn: _insert_records(conn, "db_dependencies", diagram_id, dependencies)
        )

    async def add_dependency(self, diagram_id: str, dependency: Dependency) -> None:
        await self.add_dependencies(diagram_id, [dependency])

    async def update_dependency(self, dependency_id: str, attributes: dict[str, Any]) -> None:
        await self._call(
            lambda conn: _merge_record(conn, "db_dependencies", dependency_id, attributes)
        )

    async def delete_dependency(self, diagram_id: str, dependency_id: str) -> None:
        await self._call(
            lambda conn: _delete_record(conn, "db_dependencies", diagram_id, dependency_id)
        )

    async def delete_diagram_dependencies(self, diagram_id: str) -> None:
        await self._call(lambda conn: _delete_all(conn, "db_dependencies", diagram_id))

    async def reorder_dependencies(
        self, diagram_id: str, dependency_ids: Sequence[str]
    ) -> None:
        await self._call(
            lambda conn: _reorder(conn, "db_dependencies", diagram_id, dependency_ids)
        )


# ── Record helpers ────────────────────────────────────────────
# `table` is always one of db.schema.ENTITY_TABLES, never user input.


def _insert_records(
    conn: sqlite3.Connection, table: str, diagram_id: str, records: Sequence[BaseModel]
) -> None:
    # Each record lands after the diagram's current last position.
    for record in records:
        conn.execute(
            f"""INSERT INTO {table} (id, diagram_id, data, created_at, position)
                VALUES (?, ?, ?, ?, (
                    SELECT COALESCE(MAX(position), -1) + 1 FROM {table} WHERE diagram_id = ?
                ))""",  # noqa: S608
            (
                record.id,  # type: ignore[attr-defined]
                diagram_id,
                record.model_dump_json(),
                record.created_at,  # type: ignore[attr-defined]
                diagram_id,
            ),
        )


def _reorder(
    conn: sqlite3.Connection, table: str, diagram_id: str, record_ids: Sequence[str]
) -> None:
    conn.executemany(
        f"UPDATE {table} SET position = ? WHERE diagram_id = ? AND id = ?",  # noqa: S608
        [(position, diagram_id, record_id) for position, record_id in enumerate(record_ids)],
    )


def _merge_record(
    conn: sqlite3.Connection, table: str, record_id: str, attributes: dict[str, Any]
) -> None:
    row = conn.execute(
        f"SELECT data FROM {table} WHERE id = ?", (record_id,)  # noqa: S608
    ).fetchone()
    if row is None:
        return
    data = json.loads(row["data"])
    data.update(attributes)
    conn.execute(
        f"UPDATE {table} SET data = ? WHERE id = ?",  # noqa: S608
        (json.dumps(data), record_id),
    )


def _delete_record(
    conn: sqlite3.Connection, table: str, diagram_id: str, record_id: str
) -> None:
    conn.execute(
        f"DELETE FROM {table} WHERE diagram_id = ? AND id = ?",  # noqa: S608
        (diagram_id, record_id),
    )


def _delete_all(conn: sqlite3.Connection, table: str, diagram_id: str) -> None:
    conn.execute(f"DELETE FROM {table} WHERE diagram_id = ?", (diagram_id,))  # noqa: S608


def _load_records(
    conn: sqlite3.Connection, table: str, diagram_id: str, model: type[BaseModel]
) -> list[Any]:
    rows = conn.execute(
        f"SELECT data FROM {table} WHERE diagram_id = ? ORDER BY position, rowid",  # noqa: S608
        (diagram_id,),
    ).fetchall()
    return [model.model_validate_json(row["data"]) for row in rows]
