"""Domain models for SchemaX diagrams.

Entities live in flat, id-keyed collections on the diagram. Relationships
and dependencies hold table/field ids, never object references.
"""

import random
import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field as PydanticField

from schemax.data_types import DatabaseType


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_id() -> str:
    return str(uuid.uuid4())


COLORS = [
    "#ff6363",
    "#ff6b8a",
    "#b067e9",
    "#8a61f5",
    "#7175fa",
    "#42e0c0",
    "#4dee8a",
    "#9ef07a",
    "#f6f683",
    "#ff9f74",
    "#ffe374",
    "#8eb7ff",
]


def random_color() -> str:
    return random.choice(COLORS)


class Cardinality(str, Enum):
    ONE = "one"
    MANY = "many"


class DataType(BaseModel):
    id: str
    name: str


class Field(BaseModel):
    id: str = PydanticField(default_factory=generate_id)
    name: str
    type: DataType
    nullable: bool = True
    unique: bool = False
    primary_key: bool = False
    comments: str | None = None
    created_at: str = PydanticField(default_factory=now_iso)


class Index(BaseModel):
    id: str = PydanticField(default_factory=generate_id)
    name: str
    unique: bool = False
    field_ids: list[str] = []
    is_primary_key: bool = False
    created_at: str = PydanticField(default_factory=now_iso)


class Table(BaseModel):
    id: str = PydanticField(default_factory=generate_id)
    name: str
    schema_name: str | None = None
    fields: list[Field] = []
    indexes: list[Index] = []
    color: str = PydanticField(default_factory=random_color)
    x: float = 0
    y: float = 0
    is_view: bool = False
    comments: str | None = None
    created_at: str = PydanticField(default_factory=now_iso)

    def field_by_id(self, field_id: str) -> Field | None:
        return next((f for f in self.fields if f.id == field_id), None)

    def field_by_name(self, name: str) -> Field | None:
        return next((f for f in self.fields if f.name == name), None)


class Relationship(BaseModel):
    id: str = PydanticField(default_factory=generate_id)
    name: str
    source_schema: str | None = None
    source_table_id: str
    source_field_id: str
    target_schema: str | None = None
    target_table_id: str
    target_field_id: str
    source_cardinality: Cardinality = Cardinality.ONE
    target_cardinality: Cardinality = Cardinality.ONE
    created_at: str = PydanticField(default_factory=now_iso)


class Dependency(BaseModel):
    """A view-depends-on-table edge."""

    id: str = PydanticField(default_factory=generate_id)
    schema_name: str | None = None
    table_id: str
    dependent_schema: str | None = None
    dependent_table_id: str
    created_at: str = PydanticField(default_factory=now_iso)


class DBSchema(BaseModel):
    id: str
    name: str
    table_count: int


class Diagram(BaseModel):
    id: str = PydanticField(default_factory=generate_id)
    name: str
    database_type: DatabaseType = DatabaseType.GENERIC
    database_edition: str | None = None
    created_at: str = PydanticField(default_factory=now_iso)
    updated_at: str = PydanticField(default_factory=now_iso)
    tables: list[Table] = []
    relationships: list[Relationship] = []
    dependencies: list[Dependency] = []


def schema_name_to_schema_id(schema: str) -> str:
    return schema.lower().strip()
