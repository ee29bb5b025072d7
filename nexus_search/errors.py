# nexus_search/errors.py
"""
Error taxonomy shared by the store, gateway, API and controller.

Each error carries an `error_code` (returned to API clients) and the HTTP
status the API maps it to.
"""

from typing import Any, Dict, Optional

E_UNAUTHENTICATED = "E_UNAUTHENTICATED"
E_NOT_FOUND = "E_NOT_FOUND"
E_CONFIG = "E_CONFIG"
E_UPSTREAM = "E_UPSTREAM"
E_VALIDATION = "E_VALIDATION"
E_RATE_LIMIT = "E_RATE_LIMIT"
E_INTERNAL = "E_INTERNAL"


class SearchAppError(Exception):
    error_code = E_INTERNAL
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "error",
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class Unauthenticated(SearchAppError):
    error_code = E_UNAUTHENTICATED
    status_code = 401
    default_message = "Not authenticated"


class NotFound(SearchAppError):
    # Also raised for records owned by someone else
    error_code = E_NOT_FOUND
    status_code = 404
    default_message = "Not found"


class ConfigurationError(SearchAppError):
    error_code = E_CONFIG
    status_code = 500
    default_message = "Service is not configured"


class ValidationError(SearchAppError):
    error_code = E_VALIDATION
    status_code = 400
    default_message = "Invalid request"


class UpstreamError(SearchAppError):
    """Provider answered with a non-success status (or could not be reached)."""

    error_code = E_UPSTREAM
    status_code = 502

    def __init__(self, body: str = "", status: Optional[int] = None):
        self.body = body
        self.status = status
        super().__init__(
            f"Perplexity API error: {body}",
            details={"provider_status": status, "provider_body": body},
        )


ERRORS_BY_CODE = {
    cls.error_code: cls
    for cls in (Unauthenticated, NotFound, ConfigurationError, ValidationError)
}
