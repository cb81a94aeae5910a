"""Parse DBML-like schema text into transient parsed records.

The parser is purely structural: it never resolves identities and never
raises. Blocks or lines that do not match their pattern are skipped so that
half-typed text keeps parsing everything else.
"""

import re
from dataclasses import dataclass, field
from typing import NamedTuple

from schemax.code.hashing import field_names_hash, relationship_identity
from schemax.data_types import DatabaseType, resolve_data_type
from schemax.models import Cardinality, DataType

# Structural patterns run over masked text (see _mask_quoted), so braces and
# keywords inside quoted strings never end a block. A table body runs up to
# the first closing brace, so an Indexes sub-block is read up to the end of
# the body rather than up to its own brace.
TABLE_RE = re.compile(r"\bTable\s+(\w+)\s*\{([^}]*)\}")
FIELD_RE = re.compile(r"^[ \t]*(\w+)[ \t]+([\w()]+)(?:[ \t]+\[(.*)\])?[ \t]*$", re.M)
QUOTED = r"(?:\"((?:\\.|[^\"\\\n])*)\"|'((?:\\.|[^'\\\n])*)')"
QUOTED_RE = re.compile(QUOTED)
TABLE_NOTE_RE = re.compile(rf"^[ \t]*Note[ \t]*:[ \t]*{QUOTED}[ \t]*$", re.M | re.I)
INDEXES_RE = re.compile(r"\bIndexes\s*\{([^}]*)")
INDEX_LINE_RE = re.compile(r"^[ \t]*\(([^)]*)\)(?:[ \t]*\[(.*)\])?[ \t]*$", re.M)
RELATIONSHIP_RE = re.compile(
    r"\bRel[ \t]+(\w+)[ \t]*:[ \t]*(\w+)[ \t]+(\w+)\.(\w+)[ \t]*,[ \t]*(\w+)[ \t]+(\w+)\.(\w+)"
)
NOTE_TAG_RE = re.compile(rf"note[ \t]*:[ \t]*{QUOTED}", re.I)
NAME_TAG_RE = re.compile(rf"name[ \t]*:[ \t]*{QUOTED}", re.I)
ESCAPE_RE = re.compile(r"\\(.)")
UNESCAPES = {"n": "\n", "r": "\r"}


@dataclass
class ParsedField:
    name: str
    type: DataType
    primary_key: bool = False
    unique: bool = False
    nullable: bool = False
    note: str | None = None


@dataclass
class ParsedIndex:
    name: str
    fields: list[str]
    unique: bool = False


@dataclass
class ParsedTable:
    name: str
    fields: list[ParsedField]
    content_hash: int
    indexes: list[ParsedIndex] = field(default_factory=list)
    comments: str | None = None
    existing_id: str | None = None


@dataclass
class ParsedRelationship:
    name: str
    source_table_name: str
    source_field_name: str
    target_table_name: str
    target_field_name: str
    source_cardinality: Cardinality
    target_cardinality: Cardinality
    content_hash: int
    existing_id: str | None = None


class ParseResult(NamedTuple):
    tables: list[ParsedTable]
    relationships: list[ParsedRelationship]


def _quoted(match: re.Match[str]) -> str:
    raw = match.group(1) if match.group(1) is not None else match.group(2)
    return ESCAPE_RE.sub(lambda m: UNESCAPES.get(m.group(1), m.group(1)), raw)


def _mask_quoted(text: str) -> str:
    """Blank out the inside of quoted strings, keeping every offset unchanged."""
    return QUOTED_RE.sub(
        lambda m: m.group(0)[0] + " " * (len(m.group(0)) - 2) + m.group(0)[-1], text
    )


def _split_tags(raw: str, quoted_tag: re.Pattern[str]) -> tuple[set[str], str | None]:
    """Split a bracket tag list into normalized flags plus one quoted value.

    The quoted value is cut out first so commas or keywords inside it do
    not leak into the flags.
    """
    value = None
    match = quoted_tag.search(raw)
    if match:
        value = _quoted(match)
        raw = raw[: match.start()] + raw[match.end() :]

    flags = {
        re.sub(r"\s+", " ", tag.strip().lower()) for tag in raw.split(",") if tag.strip()
    }
    return flags, value


def _span_text(text: str, match: re.Match[str], group: int) -> str | None:
    """Read a group matched on masked text back from the unmasked text."""
    if match.start(group) == -1:
        return None
    return text[match.start(group) : match.end(group)]


def parse_field(
    name: str, type_name: str, modifiers: str | None, database_type: DatabaseType | str
) -> ParsedField:
    flags, note = _split_tags(modifiers or "", NOTE_TAG_RE)

    nullable = "null" in flags and "not null" not in flags
    return ParsedField(
        name=name,
        type=DataType(**resolve_data_type(type_name, database_type)),
        primary_key="primary key" in flags or "pk" in flags,
        unique="unique" in flags,
        nullable=nullable,
        note=note,
    )


def parse_indexes(block: str) -> list[ParsedIndex]:
    indexes: list[ParsedIndex] = []
    for match in INDEX_LINE_RE.finditer(_mask_quoted(block)):
        fields = [f.strip() for f in match.group(1).split(",") if f.strip()]
        if not fields:
            continue
        flags, name = _split_tags(_span_text(block, match, 2) or "", NAME_TAG_RE)
        indexes.append(
            ParsedIndex(
                name=name or "_".join(fields),
                fields=fields,
                unique="unique" in flags,
            )
        )
    return indexes


def parse_table(name: str, body: str, database_type: DatabaseType | str) -> ParsedTable:
    masked = _mask_quoted(body)
    fields_end = len(body)
    indexes: list[ParsedIndex] = []
    indexes_match = INDEXES_RE.search(masked)
    if indexes_match:
        fields_end = indexes_match.start()
        indexes = parse_indexes(_span_text(body, indexes_match, 1) or "")

    comments = None
    note_match = TABLE_NOTE_RE.search(body, 0, fields_end)
    if note_match:
        comments = _quoted(note_match)

    fields = [
        parse_field(m.group(1), m.group(2), _span_text(body, m, 3), database_type)
        for m in FIELD_RE.finditer(masked, 0, fields_end)
    ]
    return ParsedTable(
        name=name,
        fields=fields,
        indexes=indexes,
        comments=comments,
        content_hash=field_names_hash(f.name for f in fields),
    )


def parse_relationship(match: re.Match[str]) -> ParsedRelationship:
    (
        name,
        source_cardinality,
        source_table_name,
        source_field_name,
        target_cardinality,
        target_table_name,
        target_field_name,
    ) = match.groups()

    return ParsedRelationship(
        name=name,
        source_table_name=source_table_name,
        source_field_name=source_field_name,
        target_table_name=target_table_name,
        target_field_name=target_field_name,
        source_cardinality=Cardinality.ONE if source_cardinality == "1" else Cardinality.MANY,
        target_cardinality=Cardinality.ONE if target_cardinality == "1" else Cardinality.MANY,
        content_hash=relationship_identity(
            source_table_name, source_field_name, target_table_name, target_field_name
        ),
    )


def parse_code(
    code: str, database_type: DatabaseType | str = DatabaseType.GENERIC
) -> ParseResult:
    """Parse schema text into parsed tables and relationships.

    Args:
        code: Full editor text.
        database_type: Dialect whose type table resolves field types.

    Returns:
        ParseResult with tables and relationships in text order.
    """
    masked = _mask_quoted(code)
    tables = [
        parse_table(m.group(1), _span_text(code, m, 2) or "", database_type)
        for m in TABLE_RE.finditer(masked)
    ]
    relationships = [parse_relationship(m) for m in RELATIONSHIP_RE.finditer(masked)]
    return ParseResult(tables=tables, relationships=relationships)
