"""Editor language definition for schema text.

Plain data consumed by the browser editor widget: a keyword list, a
tokenizer table and bracket/comment configuration. Regular expressions are
kept as strings so the whole definition serializes to JSON.
"""

from typing import Any

from schemax.data_types import DatabaseType, data_types_for

TYPE_ALIASES = {
    "string": "varchar(255)",
    "int": "integer",
}

EDITOR_OPTIONS = {
    "lineNumbers": False,
    "scrollBeyondLastLine": False,
    "readOnly": False,
    "fontSize": 12,
}

LANGUAGE_CONFIGURATION = {
    "comments": {"lineComment": "#"},
    "brackets": [["{", "}"], ["[", "]"], ["(", ")"]],
}


def build_language_def(database_type: DatabaseType | str = DatabaseType.GENERIC) -> dict[str, Any]:
    """Tokenizer rules with the dialect's type names as keywords."""
    keywords = [
        "Table",
        "Ref",
        "Rel",
        "Indexes",
        "Note",
        *TYPE_ALIASES,
        *(data_type["name"] for data_type in data_types_for(database_type)),
        "primary key",
        "note",
    ]
    return {
        "defaultToken": "",
        "number": r"\d+(\.\d+)?",
        "keywords": list(dict.fromkeys(keywords)),
        "tokenizer": {
            "root": [
                {"include": "@whitespace"},
                {"include": "@numbers"},
                {"include": "@strings"},
                {"include": "@tags"},
                [r"(@|)[\w]+", {"cases": {"@keywords": "keyword"}}],
            ],
            "whitespace": [
                [r"\/\/.*", "comment"],
                [r"\s+", "white"],
            ],
            "numbers": [[r"@number", "number"]],
            "strings": [
                [r"\".*\"", "string.escape"],
                [r"\'.*\'", "string.escape"],
            ],
            "tags": [
                [r"^%[a-zA-Z]\w*", "tag"],
                [r"#[a-zA-Z]\w*", "tag"],
            ],
        },
    }
