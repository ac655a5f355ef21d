#!/usr/bin/env python3
"""
Guardian Exceptions Module

Custom exception classes for the Guardian script scanner.
Centralized exception definitions for consistent error handling.
"""

__all__ = [
    "GuardianError",
    "CapabilityUnavailableError",
    "SchemaValidationError",
    "InputReadError",
]


class GuardianError(Exception):
    """Base exception for all Guardian-related errors"""
    pass


class CapabilityUnavailableError(GuardianError):
    """Raised when no AI provider or API key is configured"""
    pass


class SchemaValidationError(GuardianError):
    """Raised when an AI response does not match the expected structure"""
    pass


class InputReadError(GuardianError):
    """Raised when an input file or archive cannot be read"""
    pass
