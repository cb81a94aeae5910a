"""Apply parsed schema text to a live diagram session.

Two passes run in order, tables first and relationships second, because
relationships resolve against the table and field identities the first
pass leaves behind.

Names drive matching. A live entity whose name vanished from the text is
either deleted or, when the text holds exactly as many entities as the
session, rescued as a rename: the parsed entity with the same content hash
and the smallest name edit distance takes over its id.

Individual mutations are not recorded; one ``updateFromCode`` command with
before and after snapshots covers the whole pass.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from rapidfuzz.distance import Levenshtein

from schemax.code.hashing import relationship_content_hash, table_content_hash
from schemax.code.parser import (
    ParsedIndex,
    ParsedRelationship,
    ParsedTable,
    ParseResult,
    parse_code,
)
from schemax.data_types import DEFAULT_SCHEMAS
from schemax.diagram import NO_HISTORY, DiagramSession
from schemax.history import Command
from schemax.models import Field, Index, Relationship, Table

logger = logging.getLogger(__name__)

P = TypeVar("P", ParsedTable, ParsedRelationship)


@dataclass
class ReconcileReport:
    created_tables: list[str] = field(default_factory=list)
    updated_tables: list[str] = field(default_factory=list)
    removed_tables: list[str] = field(default_factory=list)
    renamed_tables: list[tuple[str, str]] = field(default_factory=list)
    created_relationships: list[str] = field(default_factory=list)
    updated_relationships: list[str] = field(default_factory=list)
    removed_relationships: list[str] = field(default_factory=list)
    renamed_relationships: list[tuple[str, str]] = field(default_factory=list)
    skipped_relationships: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(
            [
                self.created_tables,
                self.updated_tables,
                self.removed_tables,
                self.created_relationships,
                self.updated_relationships,
                self.removed_relationships,
            ]
        )


def find_rename_candidate(
    old_name: str,
    content_hash: int,
    parsed: Sequence[P],
    live_names: set[str],
) -> P | None:
    """Pick the parsed entity that most plausibly is old_name renamed.

    Candidates share the content hash, are not already claimed, and do not
    carry a name that still exists live. The smallest edit distance wins;
    ties go to the first candidate in parse order.
    """
    best: P | None = None
    best_distance = 0
    for candidate in parsed:
        if candidate.existing_id is not None:
            continue
        if candidate.name in live_names or candidate.content_hash != content_hash:
            continue
        distance = Levenshtein.distance(old_name, candidate.name)
        if best is None or distance < best_distance:
            best, best_distance = candidate, distance
    return best


# ── Table pass ────────────────────────────────────────────────


def _build_fields(parsed: ParsedTable, live: Table | None) -> list[Field]:
    fields: list[Field] = []
    for parsed_field in parsed.fields:
        values = {
            "name": parsed_field.name,
            "type": parsed_field.type,
            "nullable": parsed_field.nullable,
            "unique": parsed_field.primary_key or parsed_field.unique,
            "primary_key": parsed_field.primary_key,
            "comments": parsed_field.note,
        }
        existing = live.field_by_name(parsed_field.name) if live else None
        if existing is not None:
            fields.append(existing.model_copy(update=values))
        else:
            fields.append(Field(**values))
    return fields


def _build_indexes(
    parsed_indexes: list[ParsedIndex], fields: list[Field], existing: list[Index]
) -> list[Index]:
    fields_by_name = {f.name: f for f in fields}
    existing_by_name = {i.name: i for i in existing if not i.is_primary_key}
    indexes = [i for i in existing if i.is_primary_key]

    for parsed_index in parsed_indexes:
        missing = [name for name in parsed_index.fields if name not in fields_by_name]
        if missing:
            logger.debug("Dropping index %s: unknown fields %s", parsed_index.name, missing)
            continue
        field_ids = [fields_by_name[name].id for name in parsed_index.fields]
        previous = existing_by_name.get(parsed_index.name)
        if previous is not None:
            indexes.append(
                previous.model_copy(update={"unique": parsed_index.unique, "field_ids": field_ids})
            )
        else:
            indexes.append(
                Index(name=parsed_index.name, unique=parsed_index.unique, field_ids=field_ids)
            )
    return indexes


async def _reconcile_tables(
    session: DiagramSession, parsed_tables: list[ParsedTable], report: ReconcileReport
) -> None:
    live_tables = list(session.tables)
    live_names = {t.name for t in live_tables}
    parsed_names = {p.name for p in parsed_tables}
    # Renames are only trusted in a one-for-one edit, never during bulk add/remove.
    one_for_one = len(parsed_tables) == len(live_tables)

    to_remove: list[Table] = []
    for live in live_tables:
        if live.name in parsed_names:
            continue
        candidate = None
        if one_for_one:
            candidate = find_rename_candidate(
                live.name, table_content_hash(live), parsed_tables, live_names
            )
        if candidate is not None:
            candidate.existing_id = live.id
            report.renamed_tables.append((live.name, candidate.name))
        else:
            to_remove.append(live)

    if to_remove:
        await session.remove_tables([t.id for t in to_remove], NO_HISTORY)
        report.removed_tables.extend(t.name for t in to_remove)

    new_tables: list[Table] = []
    for parsed in parsed_tables:
        if parsed.existing_id is not None:
            live = session.get_table(parsed.existing_id)
        else:
            live = session.get_table_by_name(parsed.name)

        fields = _build_fields(parsed, live)
        if live is None:
            new_tables.append(
                Table(
                    name=parsed.name,
                    schema_name=DEFAULT_SCHEMAS.get(session.database_type),
                    fields=fields,
                    indexes=_build_indexes(parsed.indexes, fields, []),
                    comments=parsed.comments,
                )
            )
            continue

        attributes: dict = {}
        if live.name != parsed.name:
            attributes["name"] = parsed.name
        if live.fields != fields:
            attributes["fields"] = fields
        if live.comments != parsed.comments:
            attributes["comments"] = parsed.comments
        if parsed.indexes:
            indexes = _build_indexes(parsed.indexes, fields, live.indexes)
            if indexes != live.indexes:
                attributes["indexes"] = indexes

        if attributes:
            await session.update_table(live.id, attributes, NO_HISTORY)
            report.updated_tables.append(parsed.name)

    if new_tables:
        await session.add_tables(new_tables, NO_HISTORY)
        await session.arrange_tables("byId", [t.id for t in new_tables], NO_HISTORY)
        await session.focus_table(new_tables[-1].id)
        report.created_tables.extend(t.name for t in new_tables)


# ── Relationship pass ─────────────────────────────────────────


def _resolve_relationship(
    session: DiagramSession, parsed: ParsedRelationship
) -> dict | None:
    source_table = session.get_table_by_name(parsed.source_table_name)
    target_table = session.get_table_by_name(parsed.target_table_name)
    if source_table is None or target_table is None:
        return None
    source_field = source_table.field_by_name(parsed.source_field_name)
    target_field = target_table.field_by_name(parsed.target_field_name)
    if source_field is None or target_field is None:
        return None

    return {
        "name": parsed.name,
        "source_schema": source_table.schema_name,
        "source_table_id": source_table.id,
        "source_field_id": source_field.id,
        "target_schema": target_table.schema_name,
        "target_table_id": target_table.id,
        "target_field_id": target_field.id,
        "source_cardinality": parsed.source_cardinality,
        "target_cardinality": parsed.target_cardinality,
    }


async def _reconcile_relationships(
    session: DiagramSession,
    parsed_relationships: list[ParsedRelationship],
    report: ReconcileReport,
) -> None:
    tables = session.tables
    live_relationships = list(session.relationships)
    live_names = {r.name for r in live_relationships}
    parsed_names = {p.name for p in parsed_relationships}
    one_for_one = len(parsed_relationships) == len(live_relationships)

    to_remove: list[Relationship] = []
    for live in live_relationships:
        if live.name in parsed_names:
            continue
        candidate = None
        content_hash = relationship_content_hash(live, tables)
        if one_for_one and content_hash is not None:
            candidate = find_rename_candidate(
                live.name, content_hash, parsed_relationships, live_names
            )
        if candidate is not None:
            candidate.existing_id = live.id
            report.renamed_relationships.append((live.name, candidate.name))
        else:
            to_remove.append(live)

    if to_remove:
        await session.remove_relationships([r.id for r in to_remove], NO_HISTORY)
        report.removed_relationships.extend(r.name for r in to_remove)

    new_relationships: list[Relationship] = []
    for parsed in parsed_relationships:
        attributes = _resolve_relationship(session, parsed)
        if attributes is None:
            logger.debug("Skipping relationship %s: unresolved table or field", parsed.name)
            report.skipped_relationships.append(parsed.name)
            continue

        if parsed.existing_id is not None:
            live = session.get_relationship(parsed.existing_id)
        else:
            live = next((r for r in session.relationships if r.name == parsed.name), None)

        if live is None:
            new_relationships.append(Relationship(**attributes))
            continue

        changed = {k: v for k, v in attributes.items() if getattr(live, k) != v}
        if changed:
            await session.update_relationship(live.id, changed, NO_HISTORY)
            report.updated_relationships.append(parsed.name)

    if new_relationships:
        await session.add_relationships(new_relationships, NO_HISTORY)
        report.created_relationships.extend(r.name for r in new_relationships)


# ── Entry points ──────────────────────────────────────────────


async def reconcile(session: DiagramSession, parsed: ParseResult) -> ReconcileReport:
    """Bring the session in line with parsed text.

    Args:
        session: Session holding the live diagram.
        parsed: Output of parse_code for the current editor text.

    Returns:
        ReconcileReport naming what was created, updated, removed and renamed.
    """
    async with session.reconcile_lock:
        before = session.snapshot()
        before_updated_at = session.current_diagram.updated_at
        report = ReconcileReport()

        await _reconcile_tables(session, parsed.tables, report)
        await _reconcile_relationships(session, parsed.relationships, report)

        if report.changed:
            session.history.add_undo_action(
                Command(
                    "updateFromCode",
                    redo_data={
                        "state": session.snapshot(),
                        "updated_at": session.current_diagram.updated_at,
                    },
                    undo_data={"state": before, "updated_at": before_updated_at},
                )
            )
            logger.info(
                "Applied code to diagram %s: +%d ~%d -%d tables, +%d ~%d -%d relationships",
                session.diagram_id,
                len(report.created_tables),
                len(report.updated_tables),
                len(report.removed_tables),
                len(report.created_relationships),
                len(report.updated_relationships),
                len(report.removed_relationships),
            )
        return report


async def apply_code(session: DiagramSession, code: str) -> ReconcileReport:
    """Parse text in the session's dialect and reconcile it."""
    return await reconcile(session, parse_code(code, session.database_type))
