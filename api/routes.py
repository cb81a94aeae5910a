"""REST route handlers for the schemax API.

Routes wrap DiagramSession operations with HTTP semantics. Every model
mutation goes through the session so history, persistence and websocket
broadcast stay in step.
"""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.websockets import WebSocket, WebSocketDisconnect

from api.deps import get_config, get_editor, get_storage, registry
from api.models import (
    CodeResponse,
    CodeUpdateResponse,
    CreateDiagramRequest,
    CreateRelationshipRequest,
    CreateTableRequest,
    DiagramDetailResponse,
    DiagramResponse,
    HistoryResponse,
    LanguageResponse,
    ReconcileReportResponse,
    UpdateCodeRequest,
    UpdateTableRequest,
)
from api.ws import manager
from db.storage import SQLiteStorage
from schemax.code.editor import CodeEditorSession
from schemax.code.language import (
    EDITOR_OPTIONS,
    LANGUAGE_CONFIGURATION,
    TYPE_ALIASES,
    build_language_def,
)
from schemax.data_types import DatabaseType
from schemax.diagram import DiagramNotFoundError, DiagramSession
from schemax.models import Diagram

router = APIRouter()


def _diagram_response(diagram: Diagram) -> DiagramResponse:
    return DiagramResponse.model_validate(
        diagram.model_dump(exclude={"tables", "relationships", "dependencies"})
    )


def _history_response(session: DiagramSession, applied: bool) -> HistoryResponse:
    return HistoryResponse(
        applied=applied,
        can_undo=session.history.can_undo,
        can_redo=session.history.can_redo,
        updated_at=session.current_diagram.updated_at,
    )


def _require_table(session: DiagramSession, table_id: str) -> None:
    if session.get_table(table_id) is None:
        raise HTTPException(status_code=404, detail=f"Table '{table_id}' not found")


# ── Diagrams ────────────────────────────────────────────


@router.post("/diagrams", status_code=201, response_model=DiagramResponse)
async def create_diagram_endpoint(
    body: CreateDiagramRequest,
    storage: SQLiteStorage = Depends(get_storage),
) -> Any:
    database_type = body.database_type or get_config().get(
        "database_type", DatabaseType.GENERIC
    )
    session = await DiagramSession.create(
        storage, body.name, database_type, body.database_edition
    )
    return _diagram_response(session.current_diagram)


@router.get("/diagrams", response_model=list[DiagramResponse])
async def list_diagrams(storage: SQLiteStorage = Depends(get_storage)) -> Any:
    return [_diagram_response(d) for d in await storage.list_diagrams()]


@router.get("/diagrams/{diagram_id}", response_model=DiagramDetailResponse)
async def get_diagram(editor: CodeEditorSession = Depends(get_editor)) -> Any:
    session = editor.session
    diagram = session.current_diagram
    return DiagramDetailResponse(
        **_diagram_response(diagram).model_dump(),
        tables=diagram.tables,
        relationships=diagram.relationships,
        dependencies=diagram.dependencies,
        schemas=session.schemas,
    )


@router.delete("/diagrams/{diagram_id}")
async def delete_diagram(
    diagram_id: str, editor: CodeEditorSession = Depends(get_editor)
) -> dict[str, str]:
    await editor.session.delete_diagram()
    registry.drop(diagram_id)
    return {"deleted": diagram_id}


# ── Code ────────────────────────────────────────────────


@router.get("/diagrams/{diagram_id}/code", response_model=CodeResponse)
async def get_code(
    diagram_id: str, editor: CodeEditorSession = Depends(get_editor)
) -> Any:
    return CodeResponse(diagram_id=diagram_id, code=editor.code)


@router.put("/diagrams/{diagram_id}/code", response_model=CodeUpdateResponse)
async def update_code(
    diagram_id: str,
    body: UpdateCodeRequest,
    editor: CodeEditorSession = Depends(get_editor),
) -> Any:
    report = await editor.on_code_changed(body.code)
    return CodeUpdateResponse(
        diagram_id=diagram_id,
        code=editor.code,
        report=ReconcileReportResponse(changed=report.changed, **asdict(report)),
    )


# ── Tables ──────────────────────────────────────────────


@router.post("/diagrams/{diagram_id}/tables", status_code=201)
async def create_table(
    body: CreateTableRequest, editor: CodeEditorSession = Depends(get_editor)
) -> dict[str, Any]:
    table = await editor.session.create_table(body.model_dump(exclude_none=True))
    return table.model_dump(mode="json")


@router.patch("/diagrams/{diagram_id}/tables/{table_id}")
async def update_table(
    table_id: str,
    body: UpdateTableRequest,
    editor: CodeEditorSession = Depends(get_editor),
) -> dict[str, Any]:
    attributes = body.model_dump(exclude_unset=True)
    if not attributes:
        raise HTTPException(status_code=422, detail="No fields to update")
    table = await editor.session.update_table(table_id, attributes)
    if table is None:
        raise HTTPException(status_code=404, detail=f"Table '{table_id}' not found")
    return table.model_dump(mode="json")


@router.delete("/diagrams/{diagram_id}/tables/{table_id}")
async def delete_table(
    table_id: str, editor: CodeEditorSession = Depends(get_editor)
) -> dict[str, str]:
    _require_table(editor.session, table_id)
    await editor.session.remove_table(table_id)
    return {"deleted": table_id}


# ── Relationships ───────────────────────────────────────


@router.post("/diagrams/{diagram_id}/relationships", status_code=201)
async def create_relationship(
    body: CreateRelationshipRequest, editor: CodeEditorSession = Depends(get_editor)
) -> dict[str, Any]:
    session = editor.session
    for table_id, field_id in (
        (body.source_table_id, body.source_field_id),
        (body.target_table_id, body.target_field_id),
    ):
        _require_table(session, table_id)
        if session.get_field(table_id, field_id) is None:
            raise HTTPException(status_code=404, detail=f"Field '{field_id}' not found")

    relationship = await session.create_relationship(
        body.source_table_id,
        body.source_field_id,
        body.target_table_id,
        body.target_field_id,
        source_cardinality=body.source_cardinality,
        target_cardinality=body.target_cardinality,
    )
    return relationship.model_dump(mode="json")


@router.delete("/diagrams/{diagram_id}/relationships/{relationship_id}")
async def delete_relationship(
    relationship_id: str, editor: CodeEditorSession = Depends(get_editor)
) -> dict[str, str]:
    if editor.session.get_relationship(relationship_id) is None:
        raise HTTPException(
            status_code=404, detail=f"Relationship '{relationship_id}' not found"
        )
    await editor.session.remove_relationship(relationship_id)
    return {"deleted": relationship_id}


# ── History ─────────────────────────────────────────────


@router.post("/diagrams/{diagram_id}/undo", response_model=HistoryResponse)
async def undo(editor: CodeEditorSession = Depends(get_editor)) -> Any:
    applied = await editor.session.undo()
    return _history_response(editor.session, applied)


@router.post("/diagrams/{diagram_id}/redo", response_model=HistoryResponse)
async def redo(editor: CodeEditorSession = Depends(get_editor)) -> Any:
    applied = await editor.session.redo()
    return _history_response(editor.session, applied)


# ── Editor language ─────────────────────────────────────


@router.get("/language", response_model=LanguageResponse)
async def get_language(database_type: DatabaseType = DatabaseType.GENERIC) -> Any:
    return LanguageResponse(
        language_def=build_language_def(database_type),
        configuration=LANGUAGE_CONFIGURATION,
        type_aliases=TYPE_ALIASES,
        options=EDITOR_OPTIONS,
    )


# ── WebSocket ───────────────────────────────────────────


@router.websocket("/diagrams/{diagram_id}/ws")
async def websocket_endpoint(websocket: WebSocket, diagram_id: str) -> None:
    """WebSocket endpoint for live diagram updates."""
    try:
        await registry.get(get_storage(), diagram_id)
    except DiagramNotFoundError:
        await websocket.close(code=4404)
        return

    await manager.connect(diagram_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(diagram_id, websocket)
