"""
Pydantic schemas for Guardian AI responses

Schemas enforce the structure of data coming back from the audit capability
and catch format errors at the capability boundary.
"""

from .audit import (
    AuditConcern,
    AuditReport,
    EMPTY_AUDIT_TEXT,
    audit_response_schema,
    parse_audit_response,
)

__all__ = [
    "AuditConcern",
    "AuditReport",
    "EMPTY_AUDIT_TEXT",
    "audit_response_schema",
    "parse_audit_response",
]
