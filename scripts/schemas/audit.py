"""
Audit Schemas - Typed models for the AI audit response.

The audit capability must answer with a JSON object matching ``AuditReport``.
Anything else is a schema violation: ``parse_audit_response`` raises
``SchemaValidationError`` and the audit adapter falls back to heuristics only.

Hierarchy:
    AuditConcern   - one concern reported by the model
    AuditReport    - the whole response (concerns + narrative summary)
"""

from __future__ import annotations

import json
import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from exceptions import SchemaValidationError

EMPTY_AUDIT_TEXT = '{"concerns": [], "summary": "Clear."}'

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class AuditConcern(BaseModel):
    """One suspicious fragment reported by the audit model."""

    type: str
    description: str
    threat_level: str = Field(alias="threatLevel")
    snippet: str

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("type", "threat_level")
    @classmethod
    def normalize_tag(cls, v: str) -> str:
        """Tags are compared upper-case and trimmed."""
        return v.strip().upper()


class AuditReport(BaseModel):
    """Structured audit response: concerns plus a narrative summary."""

    concerns: List[AuditConcern]
    summary: str

    @classmethod
    def fallback(cls, summary: str) -> "AuditReport":
        return cls(concerns=[], summary=summary)


def audit_response_schema() -> dict:
    """JSON schema sent to the model so it knows the expected shape."""
    return AuditReport.model_json_schema(by_alias=True)


def parse_audit_response(text: str) -> AuditReport:
    """Parse and validate raw model output.

    Models sometimes wrap JSON in prose or Markdown fences, so the outermost
    ``{...}`` block is extracted before validation.  Empty output means the
    model found nothing to report.

    Raises:
        SchemaValidationError: if no JSON object is present or it does not
            match ``AuditReport``.
    """
    if not text or not text.strip():
        text = EMPTY_AUDIT_TEXT

    json_match = _JSON_OBJECT.search(text)
    if not json_match:
        raise SchemaValidationError("schema validation failed: no JSON object in audit response")

    try:
        payload = json.loads(json_match.group(0))
    except json.JSONDecodeError as exc:
        raise SchemaValidationError(f"schema validation failed: invalid json ({exc})") from exc

    try:
        return AuditReport.model_validate(payload)
    except ValidationError as exc:
        raise SchemaValidationError(
            f"schema validation failed: {exc.error_count()} error(s) in audit response"
        ) from exc


__all__ = [
    "AuditConcern",
    "AuditReport",
    "EMPTY_AUDIT_TEXT",
    "audit_response_schema",
    "parse_audit_response",
]
