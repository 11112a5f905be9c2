"""
RestMock Common Utilities

Shared JSON, time and header helpers used by the engine, the recorder and
the configuration loader.
"""

import copy
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def safe_json_parse(json_string: Any, default: Any = None) -> Any:
    """
    Safely parse a JSON document with error handling.

    Args:
        json_string: JSON text (str or bytes) to parse
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails

    Example:
        body = safe_json_parse(request.body, default={})
    """
    if not json_string:
        return default

    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def json_bytes(value: Any) -> bytes:
    """Encode a JSON-compatible value as compact UTF-8 bytes."""
    return json.dumps(value, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def deep_copy(value: Any) -> Any:
    """
    Copy a JSON-like value so no nested container is shared.

    Stored records and configured response bodies are handed out through
    this function, never by reference.
    """
    return copy.deepcopy(value)


def utc_now_iso() -> str:
    """Current instant as an ISO-8601 UTC timestamp ending in ``Z``."""
    return datetime.now(timezone.utc).isoformat(timespec='microseconds').replace('+00:00', 'Z')


def first_header(headers: Dict[str, List[str]], name: str) -> Optional[str]:
    """
    Look up the first value of a header by case-insensitive name.

    Args:
        headers: Mapping of header name to list of values
        name: Header name to find

    Returns:
        First value, or None when the header is absent
    """
    wanted = name.lower()
    for key, values in headers.items():
        if key.lower() == wanted and values:
            return values[0]
    return None
