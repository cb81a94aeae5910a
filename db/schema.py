"""Table definitions for the SchemaX store.

Diagrams keep explicit columns. Tables, relationships and dependencies are
key-based records: an id, the owning diagram, the entity serialized as JSON
and its position in the diagram. Partial updates merge attributes without
schema changes; loads return records in position order.
"""

TABLES = {
    "diagrams": """
        CREATE TABLE IF NOT EXISTS diagrams (
            id               TEXT PRIMARY KEY,
            name             TEXT NOT NULL,
            database_type    TEXT NOT NULL DEFAULT 'generic',
            database_edition TEXT,
            created_at       TEXT NOT NULL,
            updated_at       TEXT NOT NULL
        )
    """,
    "db_tables": """
        CREATE TABLE IF NOT EXISTS db_tables (
            id          TEXT PRIMARY KEY,
            diagram_id  TEXT NOT NULL REFERENCES diagrams(id) ON DELETE CASCADE,
            data        TEXT NOT NULL,
            position    INTEGER NOT NULL DEFAULT 0,
            created_at  TEXT NOT NULL
        )
    """,
    "db_relationships": """
        CREATE TABLE IF NOT EXISTS db_relationships (
            id          TEXT PRIMARY KEY,
            diagram_id  TEXT NOT NULL REFERENCES diagrams(id) ON DELETE CASCADE,
            data        TEXT NOT NULL,
            position    INTEGER NOT NULL DEFAULT 0,
            created_at  TEXT NOT NULL
        )
    """,
    "db_dependencies": """
        CREATE TABLE IF NOT EXISTS db_dependencies (
            id          TEXT PRIMARY KEY,
            diagram_id  TEXT NOT NULL REFERENCES diagrams(id) ON DELETE CASCADE,
            data        TEXT NOT NULL,
            position    INTEGER NOT NULL DEFAULT 0,
            created_at  TEXT NOT NULL
        )
    """,
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_db_tables_diagram ON db_tables(diagram_id)",
    "CREATE INDEX IF NOT EXISTS idx_db_relationships_diagram ON db_relationships(diagram_id)",
    "CREATE INDEX IF NOT EXISTS idx_db_dependencies_diagram ON db_dependencies(diagram_id)",
]

# Creation order follows foreign key dependencies
TABLE_CREATION_ORDER = [
    "diagrams",
    "db_tables",
    "db_relationships",
    "db_dependencies",
]

# Tables holding per-diagram JSON records
ENTITY_TABLES = ["db_tables", "db_relationships", "db_dependencies"]
