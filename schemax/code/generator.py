"""Serialize the diagram model into DBML-like schema text.

Output format:
    Table <name> {
        Note: "<table comment>"
        <field> <type> [unique, primary key, null, note: "..."]
        Indexes {
            (<field>, <field>) [unique, name: "<index name>"]
        }
    }

    Rel <name>: <1|N> <table>.<field>, <1|N> <table>.<field>

Output is deterministic for a given model state and ordering.
"""

from collections.abc import Sequence

from schemax.models import Cardinality, Field, Index, Relationship, Table


ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r"}


def quote(text: str) -> str:
    """Double-quote a note or name so it stays on one line and parses back intact."""
    return '"' + "".join(ESCAPES.get(char, char) for char in text) + '"'


def cardinality_token(cardinality: Cardinality) -> str:
    return "1" if cardinality == Cardinality.ONE else "N"


def field_tags(field: Field) -> list[str]:
    tags: list[str] = []
    if field.unique and not field.primary_key:
        tags.append("unique")
    if field.primary_key:
        tags.append("primary key")
    if field.nullable:
        tags.append("null")
    if field.comments:
        tags.append(f"note: {quote(field.comments)}")
    return tags


def _field_line(field: Field) -> str:
    line = f"\t{field.name} {field.type.name}"
    tags = field_tags(field)
    if tags:
        line += f" [{', '.join(tags)}]"
    return line


def _index_line(table: Table, index: Index) -> str:
    names = []
    for field_id in index.field_ids:
        field = table.field_by_id(field_id)
        if field is not None:
            names.append(field.name)

    tags: list[str] = []
    if index.unique:
        tags.append("unique")
    tags.append(f"name: {quote(index.name)}")
    return f"\t\t({', '.join(names)}) [{', '.join(tags)}]"


def generate_table(table: Table) -> str:
    lines = [f"Table {table.name} {{"]
    if table.comments:
        lines.append(f"\tNote: {quote(table.comments)}")
    for field in table.fields:
        lines.append(_field_line(field))

    indexes = [i for i in table.indexes if not i.is_primary_key]
    if indexes:
        lines.append("\tIndexes {")
        for index in indexes:
            lines.append(_index_line(table, index))
        lines.append("\t}")

    lines.append("}")
    return "\n".join(lines) + "\n"


def generate_relationship(
    relationship: Relationship, tables_by_id: dict[str, Table]
) -> str | None:
    """Return the Rel line, or None when either end cannot be resolved."""
    source_table = tables_by_id.get(relationship.source_table_id)
    target_table = tables_by_id.get(relationship.target_table_id)
    if source_table is None or target_table is None:
        return None

    source_field = source_table.field_by_id(relationship.source_field_id)
    target_field = target_table.field_by_id(relationship.target_field_id)
    if source_field is None or target_field is None:
        return None

    return (
        f"Rel {relationship.name}: "
        f"{cardinality_token(relationship.source_cardinality)} "
        f"{source_table.name}.{source_field.name}, "
        f"{cardinality_token(relationship.target_cardinality)} "
        f"{target_table.name}.{target_field.name}"
    )


def generate_dbml(tables: Sequence[Table], relationships: Sequence[Relationship]) -> str:
    """Generate schema text for the given tables and relationships.

    Tables come first in model order, each followed by a blank line, then
    one Rel line per resolvable relationship. A single trailing newline is
    stripped; text that does not end in a newline is returned untouched.
    """
    code = ""
    for table in tables:
        code += generate_table(table)
        code += "\n"

    tables_by_id = {t.id: t for t in tables}
    for relationship in relationships:
        line = generate_relationship(relationship, tables_by_id)
        if line is not None:
            code += line + "\n"

    if code.endswith("\n"):
        code = code[:-1]
    return code
