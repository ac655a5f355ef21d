#!/usr/bin/env python3
"""
Error Classification for Guardian AI capability calls.

Classifies audit/remediation API errors into types with different retry
treatment:
- rate_limit: retryable (HTTP 429, explicit rate-limit signal)
- transient: retryable (HTTP 5xx, RPC/transport failure, timeout)
- auth: NOT retryable
- config: NOT retryable (no provider, missing key, unknown model)
- billing: NOT retryable
- validation: NOT retryable (response did not match the expected schema)
- permanent: NOT retryable (fail-safe default)

Usage:
    from error_classifier import classify_llm_error, is_transient_error

    classified = classify_llm_error(some_exception, provider="anthropic")
    if is_transient_error(some_exception):
        ...
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from exceptions import CapabilityUnavailableError, SchemaValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Error type constants
# ---------------------------------------------------------------------------

ERROR_TYPE_RATE_LIMIT = "rate_limit"
ERROR_TYPE_TRANSIENT = "transient"
ERROR_TYPE_AUTH = "auth"
ERROR_TYPE_CONFIG = "config"
ERROR_TYPE_BILLING = "billing"
ERROR_TYPE_VALIDATION = "validation"
ERROR_TYPE_PERMANENT = "permanent"

# ---------------------------------------------------------------------------
# Pattern registries for error classification
# ---------------------------------------------------------------------------

AUTH_PATTERNS: list[str] = [
    "invalid api key",
    "invalid_api_key",
    "api key not valid",
    "authentication",
    "unauthorized",
    "permission denied",
    "forbidden",
    "access denied",
    "invalid x-api-key",
]

CONFIG_PATTERNS: list[str] = [
    "not configured",
    "api_key not set",
    "invalid model",
    "model not found",
    "unknown provider",
    "missing required",
]

BILLING_PATTERNS: list[str] = [
    "billing",
    "credit balance",
    "insufficient credits",
    "payment required",
    "insufficient_quota",
]

RATE_LIMIT_PATTERNS: list[str] = [
    "rate limit",
    "rate_limit_error",
    "too many requests",
    "resource_exhausted",
    "throttled",
    "error code: 429",
    "status code 429",
    "http 429",
]

VALIDATION_PATTERNS: list[str] = [
    "schema validation",
    "invalid json",
    "malformed",
]

TRANSIENT_PATTERNS: list[str] = [
    "rpc failed",
    "internal server error",
    "server error",
    "service unavailable",
    "overloaded",
    "bad gateway",
    "gateway timeout",
    "temporarily unavailable",
    "timed out",
    "timeout",
    "connection",
    "network",
    "econnreset",
    "econnrefused",
]

# Ordered list for classification priority: more specific patterns first
_PATTERN_REGISTRY: list[tuple[str, list[str], bool]] = [
    # (error_type, patterns, retryable)
    (ERROR_TYPE_AUTH, AUTH_PATTERNS, False),
    (ERROR_TYPE_CONFIG, CONFIG_PATTERNS, False),
    (ERROR_TYPE_BILLING, BILLING_PATTERNS, False),
    (ERROR_TYPE_RATE_LIMIT, RATE_LIMIT_PATTERNS, True),
    (ERROR_TYPE_VALIDATION, VALIDATION_PATTERNS, False),
    (ERROR_TYPE_TRANSIENT, TRANSIENT_PATTERNS, True),
]


# ---------------------------------------------------------------------------
# ClassifiedError dataclass
# ---------------------------------------------------------------------------


@dataclass
class ClassifiedError:
    """A classified capability error with retry metadata.

    Attributes:
        error_type: One of rate_limit, transient, auth, config, billing,
                    validation, permanent.
        retryable:  Whether this error type should be retried.
        original:   The original exception instance.
        context:    Additional context about the error (e.g. HTTP status).
        provider:   The LLM provider that raised the error.
    """

    error_type: str
    retryable: bool
    original: Exception
    context: dict[str, Any] = field(default_factory=dict)
    provider: str = ""

    def __str__(self) -> str:
        retry_label = "retryable" if self.retryable else "non-retryable"
        return (
            f"ClassifiedError(type={self.error_type}, {retry_label}, "
            f"provider={self.provider!r}, original={self.original!r})"
        )


def _status_of(error: Exception) -> Optional[int]:
    """HTTP-ish status code carried by SDK exceptions, if any."""
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _classify_status(status: int) -> Optional[tuple[str, bool]]:
    if status == 429:
        return ERROR_TYPE_RATE_LIMIT, True
    if status >= 500:
        return ERROR_TYPE_TRANSIENT, True
    if status in (401, 403):
        return ERROR_TYPE_AUTH, False
    if status == 402:
        return ERROR_TYPE_BILLING, False
    if 400 <= status < 500:
        return ERROR_TYPE_PERMANENT, False
    return None


# ---------------------------------------------------------------------------
# Classification function
# ---------------------------------------------------------------------------


def classify_llm_error(
    error: Exception,
    provider: str = "",
) -> ClassifiedError:
    """Classify a capability error.

    An explicit HTTP status wins; otherwise the error message (and class
    name) are matched against known patterns in priority order.  If nothing
    matches the error is classified as ``permanent`` (not retryable) as a
    fail-safe default.

    Parameters
    ----------
    error:
        The exception to classify.
    provider:
        The LLM provider name (e.g. ``"anthropic"``, ``"openai"``).

    Returns
    -------
    ClassifiedError
        The classified error with type and retryability.
    """
    context: dict[str, Any] = {
        "error_class": type(error).__name__,
        "message_length": len(str(error)),
    }

    def _make(error_type: str, retryable: bool) -> ClassifiedError:
        return ClassifiedError(
            error_type=error_type,
            retryable=retryable,
            original=error,
            context=context,
            provider=provider,
        )

    # Our own signals are unambiguous
    if isinstance(error, CapabilityUnavailableError):
        return _make(ERROR_TYPE_CONFIG, False)
    if isinstance(error, SchemaValidationError):
        return _make(ERROR_TYPE_VALIDATION, False)

    status = _status_of(error)
    if status is not None:
        context["status_code"] = status
        by_status = _classify_status(status)
        if by_status is not None:
            return _make(*by_status)

    combined = f"{type(error).__name__.lower()} {str(error).lower()}"
    for error_type, patterns, retryable in _PATTERN_REGISTRY:
        for pattern in patterns:
            if pattern in combined:
                return _make(error_type, retryable)

    # Fallback: transport-level failures are transient
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return _make(ERROR_TYPE_TRANSIENT, True)

    return _make(ERROR_TYPE_PERMANENT, False)


def is_transient_error(error: BaseException, provider: str = "") -> bool:
    """True when *error* is worth retrying (server fault, rate limit, RPC failure)."""
    if not isinstance(error, Exception):
        return False
    return classify_llm_error(error, provider).retryable


def classified_retry_predicate(provider: str = "") -> Callable[[BaseException], bool]:
    """Return a predicate suitable for tenacity's ``retry_if_exception``."""

    def _predicate(error: BaseException) -> bool:
        return is_transient_error(error, provider)

    return _predicate


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "ClassifiedError",
    "classify_llm_error",
    "is_transient_error",
    "classified_retry_predicate",
    "ERROR_TYPE_RATE_LIMIT",
    "ERROR_TYPE_TRANSIENT",
    "ERROR_TYPE_AUTH",
    "ERROR_TYPE_CONFIG",
    "ERROR_TYPE_BILLING",
    "ERROR_TYPE_VALIDATION",
    "ERROR_TYPE_PERMANENT",
    "AUTH_PATTERNS",
    "CONFIG_PATTERNS",
    "BILLING_PATTERNS",
    "RATE_LIMIT_PATTERNS",
    "VALIDATION_PATTERNS",
    "TRANSIENT_PATTERNS",
]
