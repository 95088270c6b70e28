"""JSON schema check applied to every stored-article record before it is written."""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import ValidationError

SCHEMA_RESOURCE = "schemas/stored_article.json"


@lru_cache(maxsize=1)
def load_schema() -> Dict[str, Any]:
    """The stored-article schema shipped as package data."""
    text = resources.files(__package__).joinpath(SCHEMA_RESOURCE).read_text(encoding="utf-8")
    return json.loads(text)


def _describe(error: ValidationError) -> str:
    field = ".".join(str(piece) for piece in error.absolute_path) or "<record>"
    return f"{field}: {error.message}"


class RecordValidator:
    """
    A schema compiled once and reused for every record.

    Problems are reported sorted by field so messages are stable.
    """

    def __init__(self, schema: Optional[Dict[str, Any]] = None) -> None:
        self.schema = schema if schema is not None else load_schema()
        Draft202012Validator.check_schema(self.schema)
        self._validator = Draft202012Validator(self.schema, format_checker=FormatChecker())

    def problems(self, record: Dict[str, Any]) -> List[str]:
        errors = self._validator.iter_errors(record)
        return [
            _describe(error)
            for error in sorted(errors, key=lambda err: [str(p) for p in err.absolute_path])
        ]

    def validate(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Return `record` unchanged, or raise ValueError listing every problem."""
        problems = self.problems(record)
        if problems:
            raise ValueError(f"Stored article rejected: {'; '.join(problems)}")
        return record
