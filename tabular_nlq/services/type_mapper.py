"""Mapping between schema primitive types and storage column types.

Booleans are stored as INTEGER 0/1, so the boolean origin of a column cannot
be recovered from storage alone; see ``result_formatter`` for how it is
reconstructed on the way out.
"""
from __future__ import annotations

import re
from typing import Any

SCHEMA_TO_STORAGE = {
    "string": "TEXT",
    "number": "REAL",
    "integer": "INTEGER",
    "boolean": "INTEGER",
}

STORAGE_TO_SCHEMA = {
    "TEXT": "string",
    "REAL": "number",
    "INTEGER": "integer",
}

NUMERIC_STORAGE_TYPES = frozenset({"INTEGER", "REAL"})

DEFAULT_STORAGE_TYPE = "TEXT"

_TYPE_ARGS = re.compile(r"\(.*\)$")


def to_storage_type(schema_type: str) -> str:
    """Unknown schema types fall back to TEXT."""
    return SCHEMA_TO_STORAGE.get(schema_type, DEFAULT_STORAGE_TYPE)


def normalize_storage_type(storage_type: Any) -> str:
    # Reflected types may be SQLAlchemy type objects or strings like "VARCHAR(20)".
    name = str(storage_type or "").strip().upper()
    return _TYPE_ARGS.sub("", name).strip()


def to_schema_type(storage_type: Any) -> str:
    return STORAGE_TO_SCHEMA.get(normalize_storage_type(storage_type), "string")


def is_numeric_storage_type(storage_type: Any) -> bool:
    return normalize_storage_type(storage_type) in NUMERIC_STORAGE_TYPES


def to_storage_value(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    return value
