"""Content hashes used to shortlist rename candidates.

A hash is a pre-filter, not a key: collisions are expected and are
disambiguated by name edit distance in the reconciler.
"""

from collections.abc import Iterable, Sequence

from schemax.models import Relationship, Table

DELIMITER = ":"


def string_hash_code(text: str) -> int:
    """Polynomial rolling hash (h * 31 + c) wrapped to a signed 32-bit int.

    Iterates UTF-16 code units so the value matches JavaScript's
    ``String.prototype.charCodeAt`` based implementation.
    """
    hash_value = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        hash_value = (hash_value * 31 + code_unit) & 0xFFFFFFFF
    if hash_value >= 0x80000000:
        hash_value -= 0x100000000
    return hash_value


def hash_strings(strings: Sequence[str]) -> int:
    return string_hash_code(DELIMITER.join(strings))


def field_names_hash(field_names: Iterable[str]) -> int:
    """Hash a field-name set; ordering of the input does not matter."""
    return hash_strings(sorted(field_names))


def table_content_hash(table: Table) -> int:
    return field_names_hash(f.name for f in table.fields)


def relationship_identity(
    source_table_name: str,
    source_field_name: str,
    target_table_name: str,
    target_field_name: str,
) -> int:
    # Order is meaningful: source before target.
    return hash_strings(
        [source_table_name, source_field_name, target_table_name, target_field_name]
    )


def relationship_content_hash(
    relationship: Relationship, tables: Sequence[Table]
) -> int | None:
    """Hash a live relationship by the names it points at.

    Returns None when the relationship references a table or field that no
    longer exists.
    """
    by_id = {t.id: t for t in tables}
    source_table = by_id.get(relationship.source_table_id)
    target_table = by_id.get(relationship.target_table_id)
    if source_table is None or target_table is None:
        return None

    source_field = source_table.field_by_id(relationship.source_field_id)
    target_field = target_table.field_by_id(relationship.target_field_id)
    if source_field is None or target_field is None:
        return None

    return relationship_identity(
        source_table.name, source_field.name, target_table.name, target_field.name
    )
