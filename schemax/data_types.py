"""Per-dialect data type tables.

The parser resolves written type names against these lists. Anything not
listed is kept as a literal type rather than rejected.
"""

from enum import Enum
from typing import Any


class DatabaseType(str, Enum):
    GENERIC = "generic"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    SQLITE = "sqlite"
    SQL_SERVER = "sql_server"


# Dialects whose tables can be grouped under a schema name
DATABASES_WITH_SCHEMAS = [DatabaseType.POSTGRESQL, DatabaseType.SQL_SERVER]

DEFAULT_SCHEMAS: dict[DatabaseType, str | None] = {
    DatabaseType.GENERIC: None,
    DatabaseType.POSTGRESQL: "public",
    DatabaseType.MYSQL: None,
    DatabaseType.MARIADB: None,
    DatabaseType.SQLITE: None,
    DatabaseType.SQL_SERVER: "dbo",
}


def _types(*names: str) -> list[dict[str, str]]:
    return [{"id": name.replace(" ", "_"), "name": name} for name in names]


_GENERIC = _types(
    "bigint",
    "binary",
    "blob",
    "boolean",
    "char",
    "date",
    "datetime",
    "decimal",
    "double",
    "enum",
    "float",
    "int",
    "integer",
    "json",
    "numeric",
    "real",
    "set",
    "smallint",
    "text",
    "time",
    "timestamp",
    "uuid",
    "varbinary",
    "varchar",
)

_POSTGRESQL = _types(
    "bigint",
    "bigserial",
    "bit",
    "boolean",
    "bytea",
    "char",
    "cidr",
    "date",
    "decimal",
    "float8",
    "inet",
    "integer",
    "interval",
    "json",
    "jsonb",
    "money",
    "numeric",
    "real",
    "serial",
    "smallint",
    "smallserial",
    "text",
    "time",
    "timestamp",
    "timestamptz",
    "tsvector",
    "uuid",
    "varchar",
    "xml",
)

_MYSQL = _types(
    "bigint",
    "binary",
    "bit",
    "blob",
    "boolean",
    "char",
    "date",
    "datetime",
    "decimal",
    "double",
    "enum",
    "float",
    "int",
    "integer",
    "json",
    "longblob",
    "longtext",
    "mediumint",
    "mediumtext",
    "set",
    "smallint",
    "text",
    "time",
    "timestamp",
    "tinyint",
    "varbinary",
    "varchar",
    "year",
)

_SQLITE = _types(
    "blob",
    "boolean",
    "date",
    "datetime",
    "integer",
    "numeric",
    "real",
    "text",
    "timestamp",
)

_SQL_SERVER = _types(
    "bigint",
    "binary",
    "bit",
    "char",
    "date",
    "datetime",
    "datetime2",
    "datetimeoffset",
    "decimal",
    "float",
    "int",
    "money",
    "nchar",
    "ntext",
    "numeric",
    "nvarchar",
    "real",
    "smallint",
    "text",
    "time",
    "tinyint",
    "uniqueidentifier",
    "varbinary",
    "varchar",
    "xml",
)

DATA_TYPE_MAP: dict[DatabaseType, list[dict[str, str]]] = {
    DatabaseType.GENERIC: _GENERIC,
    DatabaseType.POSTGRESQL: _POSTGRESQL,
    DatabaseType.MYSQL: _MYSQL,
    DatabaseType.MARIADB: _MYSQL,
    DatabaseType.SQLITE: _SQLITE,
    DatabaseType.SQL_SERVER: _SQL_SERVER,
}


def data_types_for(database_type: DatabaseType | str) -> list[dict[str, str]]:
    """Return the type table for a dialect. Unknown dialects get the generic table."""
    try:
        return DATA_TYPE_MAP[DatabaseType(database_type)]
    except ValueError:
        return DATA_TYPE_MAP[DatabaseType.GENERIC]


def resolve_data_type(type_name: str, database_type: DatabaseType | str) -> dict[str, Any]:
    """Resolve a written type name to its canonical descriptor.

    Lookup is case-insensitive. Unrecognized names are kept literally with
    a lowercased id.
    """
    lowered = type_name.lower()
    for data_type in data_types_for(database_type):
        if data_type["name"].lower() == lowered:
            return dict(data_type)
    return {"id": lowered, "name": type_name}


def default_id_type(database_type: DatabaseType | str) -> dict[str, str]:
    """Type used for the seeded primary-key column of a new table."""
    if database_type == DatabaseType.SQLITE:
        return {"id": "integer", "name": "integer"}
    return {"id": "bigint", "name": "bigint"}
