"""Undo/redo command log.

Every history-tracked mutation pushes one Command holding an inverse pair
of payloads. Undo pops the newest command, applies its undo payload through
the session with history recording disabled, restores the diagram's
previous ``updated_at`` and moves the command to the redo stack. Redo is
the mirror.

Import CommandLog from here. The session records into it; it never keeps
its own copy of the stacks.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from schemax.diagram import DiagramSession

logger = logging.getLogger(__name__)


@dataclass
class Command:
    action: str
    redo_data: dict[str, Any]
    undo_data: dict[str, Any]


Handler = Callable[["DiagramSession", dict[str, Any]], Awaitable[None]]


class UnknownActionError(Exception):
    """Raised when a command names an action with no inverse handler."""


class CommandLog:
    """Two stacks of commands: undo (older to newer) and redo."""

    def __init__(self) -> None:
        self.undo_stack: list[Command] = []
        self.redo_stack: list[Command] = []

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def add_undo_action(self, command: Command) -> None:
        """Record a new command. A new branch of history discards redo."""
        if command.action not in UNDO_HANDLERS:
            raise UnknownActionError(f"No undo handler for action '{command.action}'")
        self.undo_stack.append(command)
        self.redo_stack.clear()

    def reset_undo_stack(self) -> None:
        self.undo_stack.clear()

    def reset_redo_stack(self) -> None:
        self.redo_stack.clear()

    def reset(self) -> None:
        self.reset_undo_stack()
        self.reset_redo_stack()

    async def undo(self, session: DiagramSession) -> bool:
        """Reverse the newest command. Returns False when there is nothing to undo."""
        if not self.undo_stack:
            return False
        command = self.undo_stack.pop()
        logger.debug("Undo %s", command.action)
        await UNDO_HANDLERS[command.action](session, command.undo_data)
        await session.restore_updated_at(command.undo_data.get("updated_at"))
        self.redo_stack.append(command)
        return True

    async def redo(self, session: DiagramSession) -> bool:
        """Re-apply the newest undone command. Returns False when there is nothing to redo."""
        if not self.redo_stack:
            return False
        command = self.redo_stack.pop()
        logger.debug("Redo %s", command.action)
        await REDO_HANDLERS[command.action](session, command.redo_data)
        await session.restore_updated_at(command.redo_data.get("updated_at"))
        self.undo_stack.append(command)
        return True


# ── Inverse handlers ──────────────────────────────────────
# Handlers call session operations with history disabled so applying a
# command never records another one.


def _no_history() -> Any:
    from schemax.diagram import NO_HISTORY

    return NO_HISTORY


async def _set_diagram_name(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.update_diagram_name(data["name"], _no_history())


async def _add_tables(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.add_tables(data["tables"], _no_history())


async def _remove_tables(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.remove_tables(data["table_ids"], _no_history())


async def _restore_removed_tables(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.add_tables(data["tables"], _no_history())
    if data.get("relationships"):
        await session.add_relationships(data["relationships"], _no_history())
    if data.get("dependencies"):
        await session.add_dependencies(data["dependencies"], _no_history())


async def _update_table(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.update_table(data["table_id"], data["table"], _no_history())


async def _add_field(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.add_field(data["table_id"], data["field"], _no_history())


async def _remove_field(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.remove_field(data["table_id"], data["field_id"], _no_history())


async def _update_field(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.update_field(
        data["table_id"], data["field_id"], data["field"], _no_history()
    )


async def _add_index(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.add_index(data["table_id"], data["index"], _no_history())


async def _remove_index(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.remove_index(data["table_id"], data["index_id"], _no_history())


async def _update_index(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.update_index(
        data["table_id"], data["index_id"], data["index"], _no_history()
    )


async def _add_relationships(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.add_relationships(data["relationships"], _no_history())


async def _remove_relationships(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.remove_relationships(data["relationship_ids"], _no_history())


async def _update_relationship(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.update_relationship(
        data["relationship_id"], data["relationship"], _no_history()
    )


async def _add_dependencies(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.add_dependencies(data["dependencies"], _no_history())


async def _remove_dependencies(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.remove_dependencies(data["dependency_ids"], _no_history())


async def _update_dependency(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.update_dependency(
        data["dependency_id"], data["dependency"], _no_history()
    )


async def _restore_snapshot(session: DiagramSession, data: dict[str, Any]) -> None:
    await session.restore_snapshot(data["state"])


UNDO_HANDLERS: dict[str, Handler] = {
    "updateDiagramName": _set_diagram_name,
    "addTables": _remove_tables,
    "removeTables": _restore_removed_tables,
    "updateTable": _update_table,
    "addField": _remove_field,
    "removeField": _add_field,
    "updateField": _update_field,
    "addIndex": _remove_index,
    "removeIndex": _add_index,
    "updateIndex": _update_index,
    "addRelationships": _remove_relationships,
    "removeRelationships": _add_relationships,
    "updateRelationship": _update_relationship,
    "addDependencies": _remove_dependencies,
    "removeDependencies": _add_dependencies,
    "updateDependency": _update_dependency,
    "updateFromCode": _restore_snapshot,
}

REDO_HANDLERS: dict[str, Handler] = {
    "updateDiagramName": _set_diagram_name,
    "addTables": _add_tables,
    "removeTables": _remove_tables,
    "updateTable": _update_table,
    "addField": _add_field,
    "removeField": _remove_field,
    "updateField": _update_field,
    "addIndex": _add_index,
    "removeIndex": _remove_index,
    "updateIndex": _update_index,
    "addRelationships": _add_relationships,
    "removeRelationships": _remove_relationships,
    "updateRelationship": _update_relationship,
    "addDependencies": _add_dependencies,
    "removeDependencies": _remove_dependencies,
    "updateDependency": _update_dependency,
    "updateFromCode": _restore_snapshot,
}
