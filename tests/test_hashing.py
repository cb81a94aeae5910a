"""Tests for content hashing.

Verifies:
- 32-bit signed wrap-around matches the JavaScript/Java string hash
- Table hash ignores field order and tracks the field-name set
- Relationship hash is order sensitive and None for dangling references
"""

from schemax.code.hashing import (
    field_names_hash,
    hash_strings,
    relationship_content_hash,
    relationship_identity,
    string_hash_code,
    table_content_hash,
)
from schemax.models import DataType, Field, Relationship, Table

INT = DataType(id="integer", name="integer")


def _table(name: str, *field_names: str) -> Table:
    return Table(name=name, fields=[Field(name=n, type=INT) for n in field_names])


class TestStringHashCode:
    def test_empty_string_is_zero(self) -> None:
        assert string_hash_code("") == 0

    def test_single_character(self) -> None:
        assert string_hash_code("a") == 97

    def test_polynomial(self) -> None:
        assert string_hash_code("ab") == 97 * 31 + 98

    def test_matches_known_value(self) -> None:
        assert string_hash_code("hello") == 99162322

    def test_wraps_to_signed_32_bit(self) -> None:
        assert string_hash_code("polygenelubricants") == -(2**31)

    def test_collisions_are_possible(self) -> None:
        assert string_hash_code("Aa") == string_hash_code("BB")

    def test_non_bmp_characters_hash_as_surrogate_pairs(self) -> None:
        high, low = 0xD83D, 0xDE00
        assert string_hash_code("\U0001F600") == high * 31 + low


class TestHashStrings:
    def test_joins_with_delimiter(self) -> None:
        assert hash_strings(["a", "b"]) == string_hash_code("a:b")

    def test_field_names_hash_is_order_independent(self) -> None:
        assert field_names_hash(["id", "name", "email"]) == field_names_hash(
            ["email", "id", "name"]
        )


class TestTableContentHash:
    def test_invariant_under_field_reordering(self) -> None:
        assert table_content_hash(_table("users", "id", "email")) == table_content_hash(
            _table("people", "email", "id")
        )

    def test_changes_when_field_set_changes(self) -> None:
        assert table_content_hash(_table("users", "id", "email")) != table_content_hash(
            _table("users", "id", "mail")
        )

    def test_matches_parsed_field_hash(self) -> None:
        table = _table("users", "id", "email")
        assert table_content_hash(table) == field_names_hash(["email", "id"])


class TestRelationshipContentHash:
    def test_resolves_names(self) -> None:
        a = _table("a", "id")
        b = _table("b", "id", "a_id")
        rel = Relationship(
            name="b_a_id_fk",
            source_table_id=a.id,
            source_field_id=a.fields[0].id,
            target_table_id=b.id,
            target_field_id=b.fields[1].id,
        )
        assert relationship_content_hash(rel, [a, b]) == relationship_identity(
            "a", "id", "b", "a_id"
        )

    def test_order_is_meaningful(self) -> None:
        assert relationship_identity("a", "id", "b", "a_id") != relationship_identity(
            "b", "a_id", "a", "id"
        )

    def test_dangling_table_returns_none(self) -> None:
        a = _table("a", "id")
        rel = Relationship(
            name="r",
            source_table_id=a.id,
            source_field_id=a.fields[0].id,
            target_table_id="missing",
            target_field_id="missing",
        )
        assert relationship_content_hash(rel, [a]) is None

    def test_dangling_field_returns_none(self) -> None:
        a = _table("a", "id")
        rel = Relationship(
            name="r",
            source_table_id=a.id,
            source_field_id="gone",
            target_table_id=a.id,
            target_field_id=a.fields[0].id,
        )
        assert relationship_content_hash(rel, [a]) is None
