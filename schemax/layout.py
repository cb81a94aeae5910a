"""Table placement for the diagram canvas.

Two modes:
    all   re-lays every table in columns by relationship depth
    byId  moves only the listed tables to the first free grid slot that
          overlaps no other table

Pure functions: they return repositioned copies and never touch a session.
"""

from collections.abc import Sequence
from typing import Literal

from schemax.models import Relationship, Table

TABLE_WIDTH = 224
HEADER_HEIGHT = 42
FIELD_HEIGHT = 32
COLUMN_GAP = 96
ROW_GAP = 48
MARGIN = 32

LayoutMode = Literal["all", "byId"]


def table_height(table: Table) -> int:
    return HEADER_HEIGHT + max(1, len(table.fields)) * FIELD_HEIGHT


def _rect(table: Table, x: float, y: float) -> tuple[float, float, float, float]:
    return (x, y, x + TABLE_WIDTH, y + table_height(table))


def _overlaps(
    a: tuple[float, float, float, float], b: tuple[float, float, float, float]
) -> bool:
    # Gaps count as part of a table so neighbours never touch.
    return not (
        a[2] + COLUMN_GAP <= b[0]
        or b[2] + COLUMN_GAP <= a[0]
        or a[3] + ROW_GAP <= b[1]
        or b[3] + ROW_GAP <= a[1]
    )


def _table_levels(tables: Sequence[Table], relationships: Sequence[Relationship]) -> dict[str, int]:
    """Depth of each table, treating relationship sources as parents."""
    ids = [t.id for t in tables]
    parents_by_child: dict[str, set[str]] = {table_id: set() for table_id in ids}
    for rel in relationships:
        if rel.source_table_id in parents_by_child and rel.target_table_id in parents_by_child:
            if rel.source_table_id != rel.target_table_id:
                parents_by_child[rel.target_table_id].add(rel.source_table_id)

    levels = {table_id: 0 for table_id in ids if not parents_by_child[table_id]}
    progress = True
    while progress:
        progress = False
        for table_id in ids:
            if table_id in levels:
                continue
            parents = parents_by_child[table_id]
            if all(parent in levels for parent in parents):
                levels[table_id] = max(levels[parent] for parent in parents) + 1
                progress = True

    # Cycles fall back to the first column
    for table_id in ids:
        levels.setdefault(table_id, 0)
    return levels


def _layout_all(tables: Sequence[Table], relationships: Sequence[Relationship]) -> list[Table]:
    levels = _table_levels(tables, relationships)
    next_y: dict[int, float] = {}
    placed: list[Table] = []
    for table in tables:
        level = levels[table.id]
        x = MARGIN + level * (TABLE_WIDTH + COLUMN_GAP)
        y = next_y.get(level, MARGIN)
        placed.append(table.model_copy(update={"x": x, "y": y}))
        next_y[level] = y + table_height(table) + ROW_GAP
    return placed


def _first_free_slot(
    table: Table, occupied: list[tuple[float, float, float, float]], columns: int
) -> tuple[float, float]:
    row = 0
    while True:
        for column in range(columns):
            x = MARGIN + column * (TABLE_WIDTH + COLUMN_GAP)
            y = MARGIN + row * (HEADER_HEIGHT + FIELD_HEIGHT + ROW_GAP)
            candidate = _rect(table, x, y)
            if not any(_overlaps(candidate, other) for other in occupied):
                return x, y
        row += 1


def adjust_table_positions(
    tables: Sequence[Table],
    relationships: Sequence[Relationship],
    mode: LayoutMode = "all",
    ids_to_update: Sequence[str] | None = None,
) -> list[Table]:
    """Return tables with recomputed positions.

    Args:
        tables: Every visible table, in model order.
        relationships: Relationships between them.
        mode: "all" to re-lay everything, "byId" to move only ids_to_update.
        ids_to_update: Table ids to place in "byId" mode.

    Returns:
        New Table copies in the input order; untouched tables are returned as is.
    """
    if mode == "all":
        return _layout_all(tables, relationships)

    to_update = set(ids_to_update or [])
    occupied = [_rect(t, t.x, t.y) for t in tables if t.id not in to_update]
    columns = max(4, len(tables) // 4 + 1)

    result: list[Table] = []
    for table in tables:
        if table.id not in to_update:
            result.append(table)
            continue
        x, y = _first_free_slot(table, occupied, columns)
        occupied.append(_rect(table, x, y))
        result.append(table.model_copy(update={"x": x, "y": y}))
    return result
