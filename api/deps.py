"""FastAPI dependency injection and session registry for schemax."""

import asyncio
import logging
from typing import Any

from fastapi import HTTPException

from api.ws import manager
from db.storage import SQLiteStorage
from schemax.code.editor import DEFAULT_QUIET_WINDOW, CodeEditorSession
from schemax.diagram import DiagramNotFoundError, DiagramSession

logger = logging.getLogger(__name__)

# Module-level DB path and config, set by app startup
_db_path: str = ""
_config: dict[str, Any] = {}


def set_db_path(path: str) -> None:
    """Set the database path used by the storage dependency."""
    global _db_path  # noqa: PLW0603
    _db_path = path


def set_config(config: dict[str, Any] | None) -> None:
    global _config  # noqa: PLW0603
    _config = config or {}


def get_config() -> dict[str, Any]:
    return _config


def get_storage() -> SQLiteStorage:
    """FastAPI dependency returning the storage adapter."""
    return SQLiteStorage(_db_path)


class SessionRegistry:
    """One live editor session per open diagram, shared by all requests."""

    def __init__(self) -> None:
        self._editors: dict[str, CodeEditorSession] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, diagram_id: str) -> bool:
        return diagram_id in self._editors

    async def get(self, storage: SQLiteStorage, diagram_id: str) -> CodeEditorSession:
        """Return the editor for a diagram, loading it on first use.

        Raises:
            DiagramNotFoundError: If the diagram does not exist.
        """
        async with self._lock:
            editor = self._editors.get(diagram_id)
            if editor is None:
                session = DiagramSession(storage)
                session.events.subscribe(manager.send_event)
                await session.load_diagram(diagram_id)
                editor = CodeEditorSession(
                    session,
                    quiet_window=_config.get("quiet_window_seconds", DEFAULT_QUIET_WINDOW),
                )
                self._editors[diagram_id] = editor
                logger.info("Opened session for diagram %s", diagram_id)
            return editor

    def drop(self, diagram_id: str) -> None:
        editor = self._editors.pop(diagram_id, None)
        if editor is not None:
            editor.close()

    def clear(self) -> None:
        for diagram_id in list(self._editors):
            self.drop(diagram_id)


registry = SessionRegistry()


async def get_editor(diagram_id: str) -> CodeEditorSession:
    """FastAPI dependency resolving the editor session for a path's diagram_id."""
    try:
        return await registry.get(get_storage(), diagram_id)
    except DiagramNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
