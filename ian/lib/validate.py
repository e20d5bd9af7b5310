"""
Schema validation for persisted data.

Every JSON document written to a storage backend is checked against a
schema in ian/schemas/ first, so a bad write fails loudly instead of
producing a job that can't be loaded later.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"


class ValidationError(Exception):
    """Schema validation failed."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


@lru_cache(maxsize=16)
def _load_schema(schema_name: str) -> dict:
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
    return json.loads(schema_path.read_text(encoding="utf-8"))


def validate(data: Any, schema_name: str) -> None:
    """
    Validate data against named schema.

    Args:
        data: Parsed JSON value to validate
        schema_name: Schema name (e.g., "job", "grading_job", "storage_config")

    Raises:
        ValidationError: If validation fails
    """
    schema = _load_schema(schema_name)

    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else "(root)"
        raise ValidationError(schema_name, e.message, path) from None


def validate_before_write(data: Any, schema_name: str, target: str) -> None:
    """
    Validate data before persisting it. Ensures we never write invalid data.

    Raises:
        ValidationError: If data doesn't match schema
    """
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(
            schema_name,
            f"Refusing to write invalid data to {target}: {e}"
        ) from None
