"""In-memory diagram session.

DiagramSession owns one loaded diagram and is the only writer of its
state. Every mutation follows the same order:

    1. replace the affected entities in memory (models are never edited in place)
    2. bump ``updated_at``
    3. persist the delta, issuing independent writes together
    4. record a Command, unless ``options.record_history`` is false
    5. publish a DiagramEvent

Persistence failures propagate after memory has already changed; there is
no rollback.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel

from db.storage import SQLiteStorage
from schemax.data_types import (
    DATABASES_WITH_SCHEMAS,
    DEFAULT_SCHEMAS,
    DatabaseType,
    default_id_type,
)
from schemax.events import DiagramEvent, EventBus
from schemax.history import Command, CommandLog
from schemax.layout import LayoutMode, adjust_table_positions
from schemax.models import (
    Cardinality,
    DataType,
    DBSchema,
    Dependency,
    Diagram,
    Field,
    Index,
    Relationship,
    Table,
    now_iso,
    schema_name_to_schema_id,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class MutationOptions:
    """Per-call mutation context."""

    record_history: bool = True


DEFAULT_OPTIONS = MutationOptions()
NO_HISTORY = MutationOptions(record_history=False)


class DiagramNotFoundError(Exception):
    """Raised when a diagram id does not exist or no diagram is loaded."""


def _merged(model: M, attributes: dict[str, Any]) -> M:
    """Return a validated copy of model with attributes applied."""
    known = {k: v for k, v in attributes.items() if k in type(model).model_fields and k != "id"}
    return type(model).model_validate({**dict(model), **known})


def _previous_values(model: BaseModel, attributes: dict[str, Any]) -> dict[str, Any]:
    return {
        key: getattr(model, key)
        for key in attributes
        if key in type(model).model_fields and key != "id"
    }


def _dump_all(models: Iterable[BaseModel]) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json") for m in models]


class DiagramSession:
    def __init__(
        self,
        storage: SQLiteStorage,
        diagram: Diagram | None = None,
        history: CommandLog | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.storage = storage
        self.diagram = diagram
        self.history = history or CommandLog()
        self.events = events or EventBus()
        # Text edits reconcile one at a time per session.
        self.reconcile_lock = asyncio.Lock()

    @classmethod
    async def open(
        cls,
        storage: SQLiteStorage,
        diagram_id: str,
        history: CommandLog | None = None,
        events: EventBus | None = None,
    ) -> DiagramSession:
        session = cls(storage, history=history, events=events)
        await session.load_diagram(diagram_id)
        return session

    @classmethod
    async def create(
        cls,
        storage: SQLiteStorage,
        name: str,
        database_type: DatabaseType | str = DatabaseType.GENERIC,
        database_edition: str | None = None,
        events: EventBus | None = None,
    ) -> DiagramSession:
        """Persist a new empty diagram and return a session bound to it."""
        diagram = Diagram(
            name=name,
            database_type=DatabaseType(database_type),
            database_edition=database_edition,
        )
        await storage.add_diagram(diagram)
        logger.info("Created diagram %s (%s)", diagram.id, diagram.name)
        return cls(storage, diagram=diagram, events=events)

    # ── State access ──────────────────────────────────────────

    def _require(self) -> Diagram:
        if self.diagram is None:
            raise DiagramNotFoundError("No diagram loaded")
        return self.diagram

    @property
    def diagram_id(self) -> str:
        return self._require().id

    @property
    def database_type(self) -> DatabaseType:
        return self._require().database_type

    @property
    def tables(self) -> list[Table]:
        return self._require().tables

    @property
    def relationships(self) -> list[Relationship]:
        return self._require().relationships

    @property
    def dependencies(self) -> list[Dependency]:
        return self._require().dependencies

    @property
    def current_diagram(self) -> Diagram:
        """A detached copy of the loaded diagram with all collections."""
        diagram = self._require()
        return diagram.model_copy(
            update={
                "tables": list(diagram.tables),
                "relationships": list(diagram.relationships),
                "dependencies": list(diagram.dependencies),
            }
        )

    @property
    def schemas(self) -> list[DBSchema]:
        """Schema names in use, default schema first, for dialects that have schemas."""
        if self.database_type not in DATABASES_WITH_SCHEMAS:
            return []
        default_name = DEFAULT_SCHEMAS.get(self.database_type)
        names = sorted(
            {t.schema_name for t in self.tables if t.schema_name},
            key=lambda name: (name != default_name, name),
        )
        return [
            DBSchema(
                id=schema_name_to_schema_id(name),
                name=name,
                table_count=sum(1 for t in self.tables if t.schema_name == name),
            )
            for name in names
        ]

    def _touch(self) -> str:
        diagram = self._require()
        diagram.updated_at = now_iso()
        return diagram.updated_at

    def _persist_updated_at(self) -> Awaitable[None]:
        diagram = self._require()
        return self.storage.update_diagram(diagram.id, {"updated_at": diagram.updated_at})

    def _record(
        self,
        options: MutationOptions,
        action: str,
        redo_data: dict[str, Any],
        undo_data: dict[str, Any],
    ) -> None:
        if options.record_history:
            self.history.add_undo_action(Command(action, redo_data, undo_data))

    async def _emit(self, action: str, data: dict[str, Any]) -> None:
        await self.events.emit(DiagramEvent(action, data, diagram_id=self.diagram_id))

    async def restore_updated_at(self, updated_at: str | None) -> None:
        """Put back a recorded timestamp after undo or redo."""
        if updated_at is None or self.diagram is None:
            return
        self.diagram.updated_at = updated_at
        await self._persist_updated_at()

    # ── Diagram ───────────────────────────────────────────────

    async def load_diagram(self, diagram_id: str) -> Diagram:
        diagram = await self.storage.get_diagram(
            diagram_id,
            include_tables=True,
            include_relationships=True,
            include_dependencies=True,
        )
        if diagram is None:
            raise DiagramNotFoundError(f"Diagram '{diagram_id}' not found")

        self.diagram = diagram
        self.history.reset()
        await self._emit("load_diagram", {"diagram": diagram})
        return diagram

    async def update_diagram_name(
        self, name: str, options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        diagram = self._require()
        previous_name, previous_updated_at = diagram.name, diagram.updated_at
        diagram.name = name
        updated_at = self._touch()
        await self.storage.update_diagram(diagram.id, {"name": name, "updated_at": updated_at})

        self._record(
            options,
            "updateDiagramName",
            redo_data={"name": name, "updated_at": updated_at},
            undo_data={"name": previous_name, "updated_at": previous_updated_at},
        )
        await self._emit("update_diagram", {"name": name})

    async def update_database_type(self, database_type: DatabaseType | str) -> None:
        diagram = self._require()
        diagram.database_type = DatabaseType(database_type)
        await self.storage.update_diagram(diagram.id, {"database_type": diagram.database_type})
        await self._emit("update_diagram", {"database_type": diagram.database_type})

    async def update_database_edition(self, database_edition: str | None) -> None:
        diagram = self._require()
        diagram.database_edition = database_edition
        await self.storage.update_diagram(diagram.id, {"database_edition": database_edition})
        await self._emit("update_diagram", {"database_edition": database_edition})

    async def clear_diagram_data(self) -> None:
        """Drop every table, relationship and dependency. Not undoable."""
        diagram = self._require()
        diagram.tables = []
        diagram.relationships = []
        diagram.dependencies = []
        self._touch()
        self.history.reset()

        await asyncio.gather(
            self._persist_updated_at(),
            self.storage.delete_diagram_tables(diagram.id),
            self.storage.delete_diagram_relationships(diagram.id),
            self.storage.delete_diagram_dependencies(diagram.id),
        )
        await self._emit("clear_diagram", {})

    async def delete_diagram(self) -> None:
        diagram = self._require()
        self.history.reset()
        await asyncio.gather(
            self.storage.delete_diagram_tables(diagram.id),
            self.storage.delete_diagram_relationships(diagram.id),
            self.storage.delete_diagram_dependencies(diagram.id),
            self.storage.delete_diagram(diagram.id),
        )
        await self._emit("clear_diagram", {"deleted": True})
        logger.info("Deleted diagram %s", diagram.id)
        self.diagram = None

    # ── Tables ────────────────────────────────────────────────

    def get_table(self, table_id: str) -> Table | None:
        return next((t for t in self.tables if t.id == table_id), None)

    def get_table_by_name(self, name: str) -> Table | None:
        return next((t for t in self.tables if t.name == name), None)

    def _replace_table(self, table: Table) -> None:
        diagram = self._require()
        diagram.tables = [table if t.id == table.id else t for t in diagram.tables]

    async def add_tables(
        self, tables: Sequence[Table], options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        diagram = self._require()
        tables = list(tables)
        previous_updated_at = diagram.updated_at
        diagram.tables = [*diagram.tables, *tables]
        updated_at = self._touch()

        await asyncio.gather(
            self._persist_updated_at(),
            self.storage.add_tables(diagram.id, tables),
        )

        self._record(
            options,
            "addTables",
            redo_data={"tables": tables, "updated_at": updated_at},
            undo_data={"table_ids": [t.id for t in tables], "updated_at": previous_updated_at},
        )
        await self._emit("add_tables", {"tables": tables})

    async def add_table(self, table: Table, options: MutationOptions = DEFAULT_OPTIONS) -> None:
        await self.add_tables([table], options)

    async def create_table(
        self,
        attributes: dict[str, Any] | None = None,
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Table:
        """Create a table seeded with a single primary-key ``id`` field."""
        id_type = default_id_type(self.database_type)
        values: dict[str, Any] = {
            "name": f"table_{len(self.tables) + 1}",
            "schema_name": DEFAULT_SCHEMAS.get(self.database_type),
            "fields": [
                Field(
                    name="id",
                    type=DataType(**id_type),
                    unique=True,
                    nullable=False,
                    primary_key=True,
                )
            ],
        }
        values.update(attributes or {})
        table = Table.model_validate(values)
        await self.add_table(table, options)
        return table

    async def remove_tables(
        self, table_ids: Sequence[str], options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        """Remove tables along with every relationship and dependency touching them."""
        diagram = self._require()
        ids = set(table_ids)
        removed_tables = [t for t in diagram.tables if t.id in ids]
        removed_relationships = [
            r
            for r in diagram.relationships
            if r.source_table_id in ids or r.target_table_id in ids
        ]
        removed_dependencies = [
            d for d in diagram.dependencies if d.table_id in ids or d.dependent_table_id in ids
        ]

        previous_updated_at = diagram.updated_at
        diagram.tables = [t for t in diagram.tables if t.id not in ids]
        diagram.relationships = [r for r in diagram.relationships if r not in removed_relationships]
        diagram.dependencies = [d for d in diagram.dependencies if d not in removed_dependencies]
        updated_at = self._touch()

        await asyncio.gather(
            self._persist_updated_at(),
            *(self.storage.delete_relationship(diagram.id, r.id) for r in removed_relationships),
            *(self.storage.delete_dependency(diagram.id, d.id) for d in removed_dependencies),
            *(self.storage.delete_table(diagram.id, table_id) for table_id in table_ids),
        )

        if removed_tables:
            self._record(
                options,
                "removeTables",
                redo_data={"table_ids": list(table_ids), "updated_at": updated_at},
                undo_data={
                    "tables": removed_tables,
                    "relationships": removed_relationships,
                    "dependencies": removed_dependencies,
                    "updated_at": previous_updated_at,
                },
            )
        await self._emit(
            "remove_tables",
            {
                "table_ids": list(table_ids),
                "relationship_ids": [r.id for r in removed_relationships],
                "dependency_ids": [d.id for d in removed_dependencies],
            },
        )

    async def remove_table(self, table_id: str, options: MutationOptions = DEFAULT_OPTIONS) -> None:
        await self.remove_tables([table_id], options)

    async def update_table(
        self,
        table_id: str,
        attributes: dict[str, Any],
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Table | None:
        """Apply a partial update. Returns the new table, or None if the id is unknown."""
        previous = self.get_table(table_id)
        if previous is None:
            return None

        diagram = self._require()
        previous_updated_at = diagram.updated_at
        table = _merged(previous, attributes)
        self._replace_table(table)
        updated_at = self._touch()

        await asyncio.gather(
            self._persist_updated_at(),
            self.storage.update_table(table_id, table.model_dump(mode="json")),
        )

        self._record(
            options,
            "updateTable",
            redo_data={
                "table_id": table_id,
                "table": _previous_values(table, attributes),
                "updated_at": updated_at,
            },
            undo_data={
                "table_id": table_id,
                "table": _previous_values(previous, attributes),
                "updated_at": previous_updated_at,
            },
        )
        await self._emit("update_table", {"id": table_id, "table": table})
        return table

    async def arrange_tables(
        self,
        mode: LayoutMode = "byId",
        table_ids: Sequence[str] | None = None,
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> None:
        """Run the layout pass and move every table whose position changed."""
        placed = adjust_table_positions(self.tables, self.relationships, mode, table_ids)
        for table in placed:
            current = self.get_table(table.id)
            if current is not None and (current.x, current.y) != (table.x, table.y):
                await self.update_table(table.id, {"x": table.x, "y": table.y}, options)

    async def focus_table(self, table_id: str) -> None:
        await self._emit("focus_table", {"table_id": table_id})

    # ── Fields ────────────────────────────────────────────────

    def get_field(self, table_id: str, field_id: str) -> Field | None:
        table = self.get_table(table_id)
        return table.field_by_id(field_id) if table else None

    async def _write_table_part(self, table: Table, part: str) -> str:
        """Swap in a table whose ``fields`` or ``indexes`` changed and persist that part."""
        self._replace_table(table)
        updated_at = self._touch()
        await asyncio.gather(
            self._persist_updated_at(),
            self.storage.update_table(table.id, {part: _dump_all(getattr(table, part))}),
        )
        return updated_at

    async def add_field(
        self, table_id: str, field: Field, options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        table = self.get_table(table_id)
        if table is None:
            return
        previous_updated_at = self._require().updated_at
        table = table.model_copy(update={"fields": [*table.fields, field]})
        updated_at = await self._write_table_part(table, "fields")

        self._record(
            options,
            "addField",
            redo_data={"table_id": table_id, "field": field, "updated_at": updated_at},
            undo_data={"table_id": table_id, "field_id": field.id, "updated_at": previous_updated_at},
        )
        await self._emit("add_field", {"table_id": table_id, "fields": table.fields})

    async def create_field(
        self,
        table_id: str,
        attributes: dict[str, Any] | None = None,
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Field | None:
        table = self.get_table(table_id)
        if table is None:
            return None
        id_type = default_id_type(self.database_type)
        values: dict[str, Any] = {
            "name": f"field_{len(table.fields) + 1}",
            "type": DataType(**id_type),
            "nullable": True,
        }
        values.update(attributes or {})
        field = Field.model_validate(values)
        await self.add_field(table_id, field, options)
        return field

    async def update_field(
        self,
        table_id: str,
        field_id: str,
        attributes: dict[str, Any],
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Field | None:
        table = self.get_table(table_id)
        previous = table.field_by_id(field_id) if table else None
        if table is None or previous is None:
            return None

        previous_updated_at = self._require().updated_at
        field = _merged(previous, attributes)
        table = table.model_copy(
            update={"fields": [field if f.id == field_id else f for f in table.fields]}
        )
        updated_at = await self._write_table_part(table, "fields")

        self._record(
            options,
            "updateField",
            redo_data={
                "table_id": table_id,
                "field_id": field_id,
                "field": _previous_values(field, attributes),
                "updated_at": updated_at,
            },
            undo_data={
                "table_id": table_id,
                "field_id": field_id,
                "field": _previous_values(previous, attributes),
                "updated_at": previous_updated_at,
            },
        )
        await self._emit("update_field", {"table_id": table_id, "field": field})
        return field

    async def remove_field(
        self, table_id: str, field_id: str, options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        """Remove a field. Relationships pointing at it are left dangling."""
        table = self.get_table(table_id)
        previous = table.field_by_id(field_id) if table else None
        if table is None:
            return

        previous_updated_at = self._require().updated_at
        table = table.model_copy(update={"fields": [f for f in table.fields if f.id != field_id]})
        updated_at = await self._write_table_part(table, "fields")

        if previous is not None:
            self._record(
                options,
                "removeField",
                redo_data={"table_id": table_id, "field_id": field_id, "updated_at": updated_at},
                undo_data={"table_id": table_id, "field": previous, "updated_at": previous_updated_at},
            )
        await self._emit("remove_field", {"table_id": table_id, "fields": table.fields})

    # ── Indexes ───────────────────────────────────────────────

    def get_index(self, table_id: str, index_id: str) -> Index | None:
        table = self.get_table(table_id)
        if table is None:
            return None
        return next((i for i in table.indexes if i.id == index_id), None)

    async def add_index(
        self, table_id: str, index: Index, options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        table = self.get_table(table_id)
        if table is None:
            return
        previous_updated_at = self._require().updated_at
        table = table.model_copy(update={"indexes": [*table.indexes, index]})
        updated_at = await self._write_table_part(table, "indexes")

        self._record(
            options,
            "addIndex",
            redo_data={"table_id": table_id, "index": index, "updated_at": updated_at},
            undo_data={"table_id": table_id, "index_id": index.id, "updated_at": previous_updated_at},
        )
        await self._emit("add_index", {"table_id": table_id, "index": index})

    async def create_index(
        self,
        table_id: str,
        attributes: dict[str, Any] | None = None,
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Index | None:
        table = self.get_table(table_id)
        if table is None:
            return None
        values: dict[str, Any] = {"name": f"index_{len(table.indexes) + 1}"}
        values.update(attributes or {})
        index = Index.model_validate(values)
        await self.add_index(table_id, index, options)
        return index

    async def update_index(
        self,
        table_id: str,
        index_id: str,
        attributes: dict[str, Any],
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Index | None:
        table = self.get_table(table_id)
        previous = self.get_index(table_id, index_id)
        if table is None or previous is None:
            return None

        previous_updated_at = self._require().updated_at
        index = _merged(previous, attributes)
        table = table.model_copy(
            update={"indexes": [index if i.id == index_id else i for i in table.indexes]}
        )
        updated_at = await self._write_table_part(table, "indexes")

        self._record(
            options,
            "updateIndex",
            redo_data={
                "table_id": table_id,
                "index_id": index_id,
                "index": _previous_values(index, attributes),
                "updated_at": updated_at,
            },
            undo_data={
                "table_id": table_id,
                "index_id": index_id,
                "index": _previous_values(previous, attributes),
                "updated_at": previous_updated_at,
            },
        )
        await self._emit("update_index", {"table_id": table_id, "index": index})
        return index

    async def remove_index(
        self, table_id: str, index_id: str, options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        table = self.get_table(table_id)
        previous = self.get_index(table_id, index_id)
        if table is None:
            return

        previous_updated_at = self._require().updated_at
        table = table.model_copy(update={"indexes": [i for i in table.indexes if i.id != index_id]})
        updated_at = await self._write_table_part(table, "indexes")

        if previous is not None:
            self._record(
                options,
                "removeIndex",
                redo_data={"table_id": table_id, "index_id": index_id, "updated_at": updated_at},
                undo_data={"table_id": table_id, "index": previous, "updated_at": previous_updated_at},
            )
        await self._emit("remove_index", {"table_id": table_id, "index_id": index_id})

    # ── Relationships ─────────────────────────────────────────

    def get_relationship(self, relationship_id: str) -> Relationship | None:
        return next((r for r in self.relationships if r.id == relationship_id), None)

    async def add_relationships(
        self, relationships: Sequence[Relationship], options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        diagram = self._require()
        relationships = list(relationships)
        previous_updated_at = diagram.updated_at
        diagram.relationships = [*diagram.relationships, *relationships]
        updated_at = self._touch()

        await asyncio.gather(
            self._persist_updated_at(),
            self.storage.add_relationships(diagram.id, relationships),
        )

        self._record(
            options,
            "addRelationships",
            redo_data={"relationships": relationships, "updated_at": updated_at},
            undo_data={
                "relationship_ids": [r.id for r in relationships],
                "updated_at": previous_updated_at,
            },
        )
        await self._emit("add_relationships", {"relationships": relationships})

    async def add_relationship(
        self, relationship: Relationship, options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        await self.add_relationships([relationship], options)

    async def create_relationship(
        self,
        source_table_id: str,
        source_field_id: str,
        target_table_id: str,
        target_field_id: str,
        source_cardinality: Cardinality = Cardinality.ONE,
        target_cardinality: Cardinality = Cardinality.ONE,
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Relationship:
        source_table = self.get_table(source_table_id)
        source_field = source_table.field_by_id(source_field_id) if source_table else None
        source_table_name = source_table.name if source_table else ""
        source_field_name = source_field.name if source_field else ""
        schema = source_table.schema_name if source_table else None

        relationship = Relationship(
            name=f"{source_table_name}_{source_field_name}_fk",
            source_schema=schema,
            source_table_id=source_table_id,
            source_field_id=source_field_id,
            target_schema=schema,
            target_table_id=target_table_id,
            target_field_id=target_field_id,
            source_cardinality=source_cardinality,
            target_cardinality=target_cardinality,
        )
        await self.add_relationship(relationship, options)
        return relationship

    async def remove_relationships(
        self, relationship_ids: Sequence[str], options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        diagram = self._require()
        ids = set(relationship_ids)
        removed = [r for r in diagram.relationships if r.id in ids]
        previous_updated_at = diagram.updated_at
        diagram.relationships = [r for r in diagram.relationships if r.id not in ids]
        updated_at = self._touch()

        await asyncio.gather(
            self._persist_updated_at(),
            *(self.storage.delete_relationship(diagram.id, r_id) for r_id in relationship_ids),
        )

        if removed:
            self._record(
                options,
                "removeRelationships",
                redo_data={"relationship_ids": list(relationship_ids), "updated_at": updated_at},
                undo_data={"relationships": removed, "updated_at": previous_updated_at},
            )
        await self._emit("remove_relationships", {"relationship_ids": list(relationship_ids)})

    async def remove_relationship(
        self, relationship_id: str, options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        await self.remove_relationships([relationship_id], options)

    async def update_relationship(
        self,
        relationship_id: str,
        attributes: dict[str, Any],
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Relationship | None:
        previous = self.get_relationship(relationship_id)
        if previous is None:
            return None

        diagram = self._require()
        previous_updated_at = diagram.updated_at
        relationship = _merged(previous, attributes)
        diagram.relationships = [
            relationship if r.id == relationship_id else r for r in diagram.relationships
        ]
        updated_at = self._touch()

        await asyncio.gather(
            self._persist_updated_at(),
            self.storage.update_relationship(relationship_id, relationship.model_dump(mode="json")),
        )

        self._record(
            options,
            "updateRelationship",
            redo_data={
                "relationship_id": relationship_id,
                "relationship": _previous_values(relationship, attributes),
                "updated_at": updated_at,
            },
            undo_data={
                "relationship_id": relationship_id,
                "relationship": _previous_values(previous, attributes),
                "updated_at": previous_updated_at,
            },
        )
        await self._emit("update_relationship", {"id": relationship_id, "relationship": relationship})
        return relationship

    # ── Dependencies ──────────────────────────────────────────

    def get_dependency(self, dependency_id: str) -> Dependency | None:
        return next((d for d in self.dependencies if d.id == dependency_id), None)

    async def add_dependencies(
        self, dependencies: Sequence[Dependency], options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        diagram = self._require()
        dependencies = list(dependencies)
        previous_updated_at = diagram.updated_at
        diagram.dependencies = [*diagram.dependencies, *dependencies]
        updated_at = self._touch()

        await asyncio.gather(
            self._persist_updated_at(),
            self.storage.add_dependencies(diagram.id, dependencies),
        )

        self._record(
            options,
            "addDependencies",
            redo_data={"dependencies": dependencies, "updated_at": updated_at},
            undo_data={
                "dependency_ids": [d.id for d in dependencies],
                "updated_at": previous_updated_at,
            },
        )
        await self._emit("add_dependencies", {"dependencies": dependencies})

    async def add_dependency(
        self, dependency: Dependency, options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        await self.add_dependencies([dependency], options)

    async def create_dependency(
        self,
        table_id: str,
        dependent_table_id: str,
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Dependency:
        table = self.get_table(table_id)
        dependent_table = self.get_table(dependent_table_id)
        dependency = Dependency(
            schema_name=table.schema_name if table else None,
            table_id=table_id,
            dependent_schema=dependent_table.schema_name if dependent_table else None,
            dependent_table_id=dependent_table_id,
        )
        await self.add_dependency(dependency, options)
        return dependency

    async def remove_dependencies(
        self, dependency_ids: Sequence[str], options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        diagram = self._require()
        ids = set(dependency_ids)
        removed = [d for d in diagram.dependencies if d.id in ids]
        previous_updated_at = diagram.updated_at
        diagram.dependencies = [d for d in diagram.dependencies if d.id not in ids]
        updated_at = self._touch()

        await asyncio.gather(
            self._persist_updated_at(),
            *(self.storage.delete_dependency(diagram.id, d_id) for d_id in dependency_ids),
        )

        if removed:
            self._record(
                options,
                "removeDependencies",
                redo_data={"dependency_ids": list(dependency_ids), "updated_at": updated_at},
                undo_data={"dependencies": removed, "updated_at": previous_updated_at},
            )
        await self._emit("remove_dependencies", {"dependency_ids": list(dependency_ids)})

    async def remove_dependency(
        self, dependency_id: str, options: MutationOptions = DEFAULT_OPTIONS
    ) -> None:
        await self.remove_dependencies([dependency_id], options)

    async def update_dependency(
        self,
        dependency_id: str,
        attributes: dict[str, Any],
        options: MutationOptions = DEFAULT_OPTIONS,
    ) -> Dependency | None:
        previous = self.get_dependency(dependency_id)
        if previous is None:
            return None

        diagram = self._require()
        previous_updated_at = diagram.updated_at
        dependency = _merged(previous, attributes)
        diagram.dependencies = [
            dependency if d.id == dependency_id else d for d in diagram.dependencies
        ]
        updated_at = self._touch()

        await asyncio.gather(
            self._persist_updated_at(),
            self.storage.update_dependency(dependency_id, dependency.model_dump(mode="json")),
        )

        self._record(
            options,
            "updateDependency",
            redo_data={
                "dependency_id": dependency_id,
                "dependency": _previous_values(dependency, attributes),
                "updated_at": updated_at,
            },
            undo_data={
                "dependency_id": dependency_id,
                "dependency": _previous_values(previous, attributes),
                "updated_at": previous_updated_at,
            },
        )
        await self._emit("update_dependency", {"id": dependency_id, "dependency": dependency})
        return dependency

    # ── History ───────────────────────────────────────────────

    async def undo(self) -> bool:
        return await self.history.undo(self)

    async def redo(self) -> bool:
        return await self.history.redo(self)

    def snapshot(self) -> dict[str, list[Any]]:
        """Capture the entity collections. Entities are immutable so lists are enough."""
        return {
            "tables": list(self.tables),
            "relationships": list(self.relationships),
            "dependencies": list(self.dependencies),
        }

    async def restore_snapshot(self, state: dict[str, list[Any]]) -> None:
        """Make the session match a snapshot, writing only entities that differ."""
        diagram = self._require()
        writes: list[Awaitable[None]] = []

        writes += _diff_writes(
            diagram.tables,
            state["tables"],
            add=lambda t: self.storage.add_table(diagram.id, t),
            update=lambda t: self.storage.update_table(t.id, t.model_dump(mode="json")),
            delete=lambda t: self.storage.delete_table(diagram.id, t.id),
        )
        writes += _diff_writes(
            diagram.relationships,
            state["relationships"],
            add=lambda r: self.storage.add_relationship(diagram.id, r),
            update=lambda r: self.storage.update_relationship(r.id, r.model_dump(mode="json")),
            delete=lambda r: self.storage.delete_relationship(diagram.id, r.id),
        )
        writes += _diff_writes(
            diagram.dependencies,
            state["dependencies"],
            add=lambda d: self.storage.add_dependency(diagram.id, d),
            update=lambda d: self.storage.update_dependency(d.id, d.model_dump(mode="json")),
            delete=lambda d: self.storage.delete_dependency(diagram.id, d.id),
        )

        diagram.tables = list(state["tables"])
        diagram.relationships = list(state["relationships"])
        diagram.dependencies = list(state["dependencies"])
        self._touch()

        await asyncio.gather(self._persist_updated_at(), *writes)
        # Re-added entities were appended; put storage back in snapshot order.
        await asyncio.gather(
            self.storage.reorder_tables(diagram.id, [t.id for t in diagram.tables]),
            self.storage.reorder_relationships(diagram.id, [r.id for r in diagram.relationships]),
            self.storage.reorder_dependencies(diagram.id, [d.id for d in diagram.dependencies]),
        )
        await self._emit("restore_state", {"diagram": self.current_diagram})


def _diff_writes(current, target, add, update, delete) -> list[Awaitable[None]]:
    current_by_id = {m.id: m for m in current}
    target_ids = {m.id for m in target}
    writes = [delete(m) for m in current if m.id not in target_ids]
    for model in target:
        existing = current_by_id.get(model.id)
        if existing is None:
            writes.append(add(model))
        elif existing != model:
            writes.append(update(model))
    return writes
