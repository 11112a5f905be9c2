"""
RestMock Error Taxonomy

Exceptions raised inside the request pipeline. Every MockError knows the
HTTP status and machine-readable code it maps to; the engine converts them
to JSON error responses at the dispatcher boundary.
"""

from typing import Any, Dict, Optional


class MockError(Exception):
    """Base class for errors that map directly to an HTTP error response."""

    status: int = 500
    code: str = "internal"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        """
        Initialize the error.

        Args:
            message: Human-readable message placed in the response body
            status: Overrides the class default HTTP status
            code: Overrides the class default error code
            extra: Additional fields merged into the JSON error body
            headers: Additional response headers (e.g. Retry-After)
        """
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        if code is not None:
            self.code = code
        self.extra = extra or {}
        self.headers = headers or {}


class BadRequest(MockError):
    """Malformed input or wrong content type."""

    status = 400
    code = "bad_request"


class Unauthorized(MockError):
    """Missing or invalid bearer token on a mutating route."""

    status = 401
    code = "unauthorized"

    def __init__(self, message: str = "Missing/invalid bearer token"):
        super().__init__(
            message,
            extra={'hint': "Send an 'Authorization: Bearer <token>' header"}
        )


class NotFound(MockError):
    """No matching route, or no record for a given id."""

    status = 404
    code = "not_found"


class ChaosFailure(MockError):
    """Synthetic failure produced by fault injection."""

    status = 500
    code = "chaos"


class ReplayMiss(MockError):
    """Replay mode found no recorded response and the miss policy is 'error'."""

    status = 501
    code = "replay_miss"
