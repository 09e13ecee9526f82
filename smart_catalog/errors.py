"""Typed errors raised by provider adapters and caught at the classifier boundary."""

from __future__ import annotations

from typing import Any, Optional


class CatalogError(Exception):
    """Base error for every failure the catalog assistant reports."""

    default_message = "Catalog assistant error"
    default_code = "catalog_error"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, details: Any = None) -> None:
        super().__init__(message or self.default_message)
        self.code = code or self.default_code
        self.details = details


class NotFoundError(CatalogError):
    default_message = "Resource not found"
    default_code = "not_found"


class ValidationError(CatalogError):
    default_message = "Validation failed"
    default_code = "validation_error"


class AuthenticationError(CatalogError):
    default_message = "Authentication failed"
    default_code = "authentication_error"


class RateLimitError(CatalogError):
    default_message = "Rate limit exceeded"
    default_code = "rate_limit_exceeded"


class ServiceUnavailableError(CatalogError):
    default_message = "Service temporarily unavailable"
    default_code = "service_unavailable"


def error_for_status(status: int, message: str) -> CatalogError:
    """Purpose: Map an HTTP status code from a provider to a typed error.
    Inputs/Outputs: Inputs are status code and message; output is a CatalogError instance.
    Side Effects / State: None.
    Dependencies: Used by the Ollama adapter and the Gemini exception mapper.
    Failure Modes: Unknown statuses map to the CatalogError base class.
    If Removed: Adapters cannot report failures in a way the classifier recognizes.
    Testing Notes: 400/401/403/429/503 should map to distinct subclasses.
    """
    if status == 400:
        return ValidationError(f"Bad request: {message}")
    if status in (401, 403):
        return AuthenticationError(f"Authentication failed: {message}")
    if status == 404:
        return ServiceUnavailableError(f"Model or endpoint not found: {message}")
    if status == 429:
        return RateLimitError(f"Rate limit exceeded: {message}")
    if 500 <= status <= 599:
        return ServiceUnavailableError(f"Provider service error: {message}")
    return CatalogError(f"Unexpected response: {status} {message}".strip())
