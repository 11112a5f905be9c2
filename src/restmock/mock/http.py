"""
RestMock HTTP Value Types

Transport-neutral request and response objects shared by the engine,
route handlers, the chaos middleware and the recorder.
"""

from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

from ..common import first_header, json_bytes, safe_json_parse
from .errors import BadRequest

JSON_CONTENT_TYPE = 'application/json; charset=utf-8'


@dataclass(frozen=True)
class IncomingRequest:
    """Inbound request as read from the transport layer."""

    method: str
    path: str
    query: str = ''
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b''

    @cached_property
    def query_params(self) -> Dict[str, List[str]]:
        """Decoded query parameters (name -> all values)."""
        return parse_qs(self.query, keep_blank_values=True) if self.query else {}

    @property
    def body_text(self) -> str:
        return self.body.decode('utf-8', errors='replace')

    def header(self, name: str) -> Optional[str]:
        """First value of a header, matched case-insensitively."""
        return first_header(self.headers, name)


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request context handed to route handlers and the template renderer.

    Immutable after construction; the JSON body is parsed lazily on first
    access and cached.
    """

    request: IncomingRequest
    route: Any
    path_params: Dict[str, str] = field(default_factory=dict)
    server_info: Dict[str, Any] = field(default_factory=dict)

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def path(self) -> str:
        return self.request.path

    @property
    def query_params(self) -> Dict[str, List[str]]:
        return self.request.query_params

    @cached_property
    def json_body(self) -> Dict[str, Any]:
        """Request body parsed as a JSON object, or {} when absent or not an object."""
        parsed = safe_json_parse(self.request.body, default={})
        return parsed if isinstance(parsed, dict) else {}

    def header(self, name: str) -> Optional[str]:
        return self.request.header(name)

    def query_param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.query_params.get(name)
        return values[0] if values else default

    def query_int(self, name: str, default: int) -> int:
        """Integer query parameter, falling back to default when absent or invalid."""
        try:
            return int(self.query_param(name, str(default)))
        except (TypeError, ValueError):
            return default

    def read_json_object(self) -> Dict[str, Any]:
        """
        Read the request body as a JSON object for create/update handlers.

        Returns:
            Freshly parsed dict (safe for the caller to mutate)

        Raises:
            BadRequest: If the content type is not JSON or the body is not a JSON object
        """
        content_type = (self.header('Content-Type') or '').split(';')[0].strip().lower()
        if content_type != 'application/json':
            raise BadRequest("Content-Type must be application/json")

        parsed = safe_json_parse(self.request.body)
        if not isinstance(parsed, dict):
            raise BadRequest("Invalid JSON: expected a JSON object")
        return parsed


@dataclass(frozen=True)
class Response:
    """Response value produced by handlers and consumed once by the writer."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    @classmethod
    def json(cls, status: int, value: Any) -> 'Response':
        """Create a JSON response from any JSON-compatible value."""
        return cls(status=status, headers={'Content-Type': JSON_CONTENT_TYPE}, body=json_bytes(value))

    @classmethod
    def no_content(cls) -> 'Response':
        return cls(status=204)

    def with_headers(self, headers: Dict[str, str]) -> 'Response':
        """Return a copy with extra headers merged in (new values win)."""
        return replace(self, headers={**self.headers, **headers})
