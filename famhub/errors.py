"""
Error taxonomy and the uniform JSON envelope returned on failure.

Adapters raise these exceptions; route handlers catch them at their own
boundary and turn them into `{"success": false, ...}` responses.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi.responses import JSONResponse


class FamhubError(Exception):
    """Base class for errors surfaced through the response envelope."""

    status_code: int = 500
    code: str = "error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(FamhubError):
    """A backend cannot be used because credentials are missing."""

    status_code = 503
    code = "configuration_error"


class NotFoundError(FamhubError):
    """A lookup matched zero rows."""

    status_code = 500
    code = "not_found"


class ValidationError(FamhubError):
    """Required request input is absent or malformed."""

    status_code = 400
    code = "validation_error"


class AdapterError(FamhubError):
    """Any failure reported by a remote store: network, constraint or auth."""

    status_code = 500
    code = "adapter_error"


def error_body(exc: FamhubError) -> dict:
    body: dict[str, Any] = {
        "success": False,
        "error": exc.code,
        "message": exc.message,
    }
    if exc.details is not None:
        body["details"] = exc.details
    return body


def error_response(exc: FamhubError, status_code: Optional[int] = None) -> JSONResponse:
    """Build the failure envelope for `exc`, optionally overriding its status."""
    return JSONResponse(
        status_code=status_code or exc.status_code, content=error_body(exc)
    )


def success_response(**payload: Any) -> dict:
    return {"success": True, **payload}
