"""
RestMock Common Utilities

Shared utilities and helpers used across RestMock modules.
"""

from .utils import safe_json_parse, json_bytes, deep_copy, utc_now_iso, first_header

__all__ = [
    'safe_json_parse',
    'json_bytes',
    'deep_copy',
    'utc_now_iso',
    'first_header',
]
