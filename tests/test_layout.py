"""Tests for table placement."""

from schemax.layout import (
    COLUMN_GAP,
    MARGIN,
    TABLE_WIDTH,
    adjust_table_positions,
    table_height,
)
from schemax.models import DataType, Field, Relationship, Table

INT = DataType(id="integer", name="integer")


def _table(name: str, x: float = 0, y: float = 0, fields: int = 1) -> Table:
    return Table(
        name=name,
        x=x,
        y=y,
        fields=[Field(name=f"f{i}", type=INT) for i in range(fields)],
    )


def _link(parent: Table, child: Table) -> Relationship:
    return Relationship(
        name=f"{child.name}_fk",
        source_table_id=parent.id,
        source_field_id=parent.fields[0].id,
        target_table_id=child.id,
        target_field_id=child.fields[0].id,
    )


def _overlap(a: Table, b: Table) -> bool:
    return not (
        a.x + TABLE_WIDTH <= b.x
        or b.x + TABLE_WIDTH <= a.x
        or a.y + table_height(a) <= b.y
        or b.y + table_height(b) <= a.y
    )


class TestTableHeight:
    def test_grows_with_fields(self) -> None:
        assert table_height(_table("a", fields=3)) > table_height(_table("b", fields=1))

    def test_empty_table_has_one_row(self) -> None:
        assert table_height(Table(name="e")) == table_height(_table("one", fields=1))


class TestLayoutAll:
    def test_columns_follow_relationship_depth(self) -> None:
        root, child, grandchild = _table("root"), _table("child"), _table("grandchild")
        placed = adjust_table_positions(
            [grandchild, child, root], [_link(root, child), _link(child, grandchild)]
        )

        by_name = {t.name: t for t in placed}
        assert by_name["root"].x == MARGIN
        assert by_name["child"].x == MARGIN + TABLE_WIDTH + COLUMN_GAP
        assert by_name["grandchild"].x == MARGIN + 2 * (TABLE_WIDTH + COLUMN_GAP)

    def test_siblings_stack_without_overlap(self) -> None:
        tables = [_table(name, fields=4) for name in ("a", "b", "c")]
        placed = adjust_table_positions(tables, [])

        assert [t.name for t in placed] == ["a", "b", "c"]
        assert len({t.x for t in placed}) == 1
        for i, a in enumerate(placed):
            for b in placed[i + 1 :]:
                assert not _overlap(a, b)

    def test_cycle_falls_back_to_first_column(self) -> None:
        a, b = _table("a"), _table("b")
        placed = adjust_table_positions([a, b], [_link(a, b), _link(b, a)])
        assert all(t.x == MARGIN for t in placed)

    def test_inputs_not_mutated(self) -> None:
        table = _table("a", x=500, y=500)
        adjust_table_positions([table], [])
        assert (table.x, table.y) == (500, 500)


class TestLayoutById:
    def test_only_listed_tables_move(self) -> None:
        fixed = _table("fixed", x=MARGIN, y=MARGIN)
        new = _table("new")
        placed = adjust_table_positions([fixed, new], [], "byId", [new.id])

        assert placed[0] is fixed
        assert not _overlap(placed[0], placed[1])

    def test_new_tables_avoid_each_other(self) -> None:
        existing = [_table(f"t{i}", x=MARGIN, y=MARGIN + i * 400, fields=5) for i in range(3)]
        new = [_table(f"n{i}", fields=3) for i in range(5)]
        placed = adjust_table_positions(
            existing + new, [], "byId", [t.id for t in new]
        )

        for i, a in enumerate(placed):
            for b in placed[i + 1 :]:
                assert not _overlap(a, b), (a.name, b.name)

    def test_no_ids_changes_nothing(self) -> None:
        tables = [_table("a"), _table("b")]
        assert adjust_table_positions(tables, [], "byId") == tables
