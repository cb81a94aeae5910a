"""Tests for the schema text generator.

Verifies:
- Table, field, note and index block layout
- Fixed modifier tag order
- Rel lines with cardinality tokens, dangling relationships skipped
- Only one trailing newline is removed, and only when present
- Deterministic output
"""

from schemax.code.generator import field_tags, generate_dbml, generate_table, quote
from schemax.models import Cardinality, DataType, Field, Index, Relationship, Table

INT = DataType(id="integer", name="integer")
VARCHAR = DataType(id="varchar(255)", name="varchar(255)")


def _pk(name: str = "id") -> Field:
    return Field(name=name, type=INT, primary_key=True, unique=True, nullable=False)


def _example_model() -> tuple[list[Table], list[Relationship]]:
    a = Table(name="a", fields=[_pk()])
    b = Table(name="b", fields=[_pk(), Field(name="a_id", type=INT, nullable=False)])
    rel = Relationship(
        name="b_a_id_fk",
        source_table_id=a.id,
        source_field_id=a.fields[0].id,
        target_table_id=b.id,
        target_field_id=b.fields[1].id,
        source_cardinality=Cardinality.ONE,
        target_cardinality=Cardinality.MANY,
    )
    return [a, b], [rel]


class TestQuote:
    def test_plain_text(self) -> None:
        assert quote("hello") == '"hello"'

    def test_escapes_double_quotes_and_backslashes(self) -> None:
        assert quote('say "hi" \\o/') == '"say \\"hi\\" \\\\o/"'

    def test_keeps_single_quotes_and_braces(self) -> None:
        assert quote("it's {json}, ok") == "\"it's {json}, ok\""

    def test_escapes_line_breaks(self) -> None:
        assert quote("a\nb\r") == '"a\\nb\\r"'


class TestFieldTags:
    def test_fixed_order(self) -> None:
        field = Field(name="x", type=INT, unique=True, nullable=True, comments="c")
        assert field_tags(field) == ["unique", "null", 'note: "c"']

    def test_unique_suppressed_for_primary_key(self) -> None:
        assert field_tags(_pk()) == ["primary key"]

    def test_no_tags(self) -> None:
        assert field_tags(Field(name="x", type=INT, nullable=False)) == []


class TestGenerateTable:
    def test_full_block(self) -> None:
        email = Field(name="email", type=VARCHAR, unique=True, nullable=False, comments="login")
        table = Table(
            name="users",
            comments="People",
            fields=[_pk(), email],
            indexes=[Index(name="users_email", unique=True, field_ids=[email.id])],
        )
        assert generate_table(table) == (
            "Table users {\n"
            '\tNote: "People"\n'
            "\tid integer [primary key]\n"
            '\temail varchar(255) [unique, note: "login"]\n'
            "\tIndexes {\n"
            '\t\t(email) [unique, name: "users_email"]\n'
            "\t}\n"
            "}\n"
        )

    def test_primary_key_index_is_not_emitted(self) -> None:
        pk = _pk()
        table = Table(
            name="t",
            fields=[pk],
            indexes=[Index(name="pk", field_ids=[pk.id], is_primary_key=True)],
        )
        assert "Indexes" not in generate_table(table)

    def test_index_keeps_field_order(self) -> None:
        first = Field(name="first", type=INT, nullable=False)
        last = Field(name="last", type=INT, nullable=False)
        table = Table(
            name="t",
            fields=[first, last],
            indexes=[Index(name="ix", field_ids=[last.id, first.id])],
        )
        assert '\t\t(last, first) [name: "ix"]' in generate_table(table)


class TestGenerateDbml:
    def test_example_model(self) -> None:
        tables, relationships = _example_model()
        code = generate_dbml(tables, relationships)

        assert "Table a {" in code
        assert "id integer [primary key]" in code
        assert "Rel b_a_id_fk: 1 a.id, N b.a_id" in code

    def test_exact_layout(self) -> None:
        tables, relationships = _example_model()
        assert generate_dbml(tables, relationships) == (
            "Table a {\n"
            "\tid integer [primary key]\n"
            "}\n"
            "\n"
            "Table b {\n"
            "\tid integer [primary key]\n"
            "\ta_id integer\n"
            "}\n"
            "\n"
            "Rel b_a_id_fk: 1 a.id, N b.a_id"
        )

    def test_trailing_newline_removed_once(self) -> None:
        tables, _ = _example_model()
        code = generate_dbml(tables, [])
        assert code.endswith("}\n")
        assert not code.endswith("}\n\n")

    def test_empty_model(self) -> None:
        assert generate_dbml([], []) == ""

    def test_skips_dangling_relationship(self) -> None:
        tables, relationships = _example_model()
        relationships[0] = relationships[0].model_copy(update={"target_table_id": "missing"})
        assert "Rel" not in generate_dbml(tables, relationships)

    def test_idempotent(self) -> None:
        tables, relationships = _example_model()
        assert generate_dbml(tables, relationships) == generate_dbml(tables, relationships)
