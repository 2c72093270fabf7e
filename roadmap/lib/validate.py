"""
Schema validation for roadmap documents.

Structured documents are checked against the JSON Schemas in roadmap/schemas/
when read and before they are written. A mismatch raises ValidationError
naming the schema and the failing field path. Documents are never patched up
to make them pass.
"""

import json
from pathlib import Path
from typing import Any

import jsonschema


class ValidationError(Exception):
    """Schema validation failed."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


# schema name -> parsed schema
_schema_cache: dict[str, dict] = {}


def _get_schemas_dir() -> Path:
    """roadmap/schemas/, shipped as package data."""
    return Path(__file__).parent.parent / "schemas"


def _load_schema(schema_name: str) -> dict:
    """Parse <name>.schema.json once and reuse it."""
    if schema_name not in _schema_cache:
        schema_path = _get_schemas_dir() / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
        _schema_cache[schema_name] = json.loads(schema_path.read_text())
    return _schema_cache[schema_name]


def validate(data: Any, schema_name: str) -> None:
    """
    Validate data against named schema.

    Args:
        data: Parsed document to validate
        schema_name: Schema name (e.g., "project", "epic", "lock")

    Raises:
        ValidationError: If validation fails
    """
    schema = _load_schema(schema_name)

    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else "(root)"
        raise ValidationError(schema_name, e.message, path) from None


def validate_before_write(data: Any, schema_name: str, key: str) -> None:
    """
    Check a document that is about to be stored at key.

    The error names the key, so a refused write points at the file the caller
    was building rather than at the schema alone.

    Args:
        data: Document about to be written
        schema_name: Schema name to validate against
        key: Store key the data will be written to (for error context)

    Raises:
        ValidationError: The document does not match the schema; nothing was written
    """
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(
            schema_name,
            f"Refusing to write invalid data to {key}: {e}"
        ) from None
