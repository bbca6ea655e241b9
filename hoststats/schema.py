from __future__ import annotations

from importlib import resources
import json
from typing import Any

from jsonschema import Draft202012Validator

SCHEMA_RESOURCE = "schemas/stats-snapshot.schema.json"


def load_schema() -> dict[str, Any]:
    schema_file = resources.files("hoststats").joinpath(SCHEMA_RESOURCE)
    return json.loads(schema_file.read_text(encoding="utf-8"))


def get_validator() -> Draft202012Validator:
    schema = load_schema()
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema=schema)


def validate_payload(payload: dict[str, Any]) -> list[str]:
    validator = get_validator()
    errors = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    return [f"{'/'.join(str(p) for p in error.path) or '<root>'}: {error.message}" for error in errors]
