"""Pydantic request/response models for the schemax API."""

from typing import Any

from pydantic import BaseModel

from schemax.data_types import DatabaseType
from schemax.models import Cardinality, DBSchema, Dependency, Relationship, Table


# ── Request models ──────────────────────────────────────


class CreateDiagramRequest(BaseModel):
    name: str
    database_type: DatabaseType | None = None
    database_edition: str | None = None


class UpdateCodeRequest(BaseModel):
    code: str


class CreateTableRequest(BaseModel):
    name: str | None = None
    schema_name: str | None = None
    color: str | None = None
    x: float | None = None
    y: float | None = None
    comments: str | None = None


class UpdateTableRequest(BaseModel):
    name: str | None = None
    schema_name: str | None = None
    color: str | None = None
    x: float | None = None
    y: float | None = None
    is_view: bool | None = None
    comments: str | None = None


class CreateRelationshipRequest(BaseModel):
    source_table_id: str
    source_field_id: str
    target_table_id: str
    target_field_id: str
    source_cardinality: Cardinality = Cardinality.ONE
    target_cardinality: Cardinality = Cardinality.ONE


# ── Response models ─────────────────────────────────────


class DiagramResponse(BaseModel):
    id: str
    name: str
    database_type: DatabaseType
    database_edition: str | None = None
    created_at: str
    updated_at: str


class DiagramDetailResponse(DiagramResponse):
    tables: list[Table]
    relationships: list[Relationship]
    dependencies: list[Dependency]
    schemas: list[DBSchema]


class CodeResponse(BaseModel):
    diagram_id: str
    code: str


class ReconcileReportResponse(BaseModel):
    changed: bool
    created_tables: list[str]
    updated_tables: list[str]
    removed_tables: list[str]
    renamed_tables: list[tuple[str, str]]
    created_relationships: list[str]
    updated_relationships: list[str]
    removed_relationships: list[str]
    renamed_relationships: list[tuple[str, str]]
    skipped_relationships: list[str]


class CodeUpdateResponse(CodeResponse):
    report: ReconcileReportResponse


class HistoryResponse(BaseModel):
    applied: bool
    can_undo: bool
    can_redo: bool
    updated_at: str


class LanguageResponse(BaseModel):
    language_def: dict[str, Any]
    configuration: dict[str, Any]
    type_aliases: dict[str, str]
    options: dict[str, Any]
