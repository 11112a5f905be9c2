"""
RestMock Template Renderer

Expands {{expr}} placeholders inside every string leaf of a JSON-like value
tree (dicts, lists, scalars). Rendering is best-effort: unknown or failing
expressions render as an empty string and never raise.

Supported expressions:
- now                 current instant, ISO-8601 UTC
- uuid                random UUID4
- random.int(a,b)     random integer in [a, b]
- path.<name>         path parameter
- query.<name>        first query parameter value
- body.<a>.<b>        dotted lookup into the JSON request body
- header.<name>       request header (case-insensitive)
- server.<key>        server information value
"""

import json
import random
import re
import uuid
from typing import Any

from ..common import utc_now_iso
from .http import RequestContext

TEMPLATE_PATTERN = re.compile(r'\{\{\s*([^}]*?)\s*\}\}')
RANDOM_INT_PATTERN = re.compile(r'^random\.int\(\s*(-?\d+)\s*,\s*(-?\d+)\s*\)$')


def render(value: Any, context: RequestContext) -> Any:
    """
    Render templates in a JSON-like value.

    Args:
        value: Dict, list, string or scalar to render
        context: Request context supplying path/query/body/header/server values

    Returns:
        New value with every string leaf rendered; non-string scalars unchanged
    """
    if isinstance(value, str):
        return render_string(value, context)
    elif isinstance(value, dict):
        return {str(k): render(v, context) for k, v in value.items()}
    elif isinstance(value, list):
        return [render(item, context) for item in value]
    else:
        return value


def render_string(text: str, context: RequestContext) -> str:
    """Replace every {{expr}} token in a string independently."""
    if '{{' not in text:
        return text

    def replacer(match):
        return evaluate(match.group(1).strip(), context)

    return TEMPLATE_PATTERN.sub(replacer, text)


def evaluate(expr: str, context: RequestContext) -> str:
    """
    Evaluate a single template expression.

    Args:
        expr: Expression text without the surrounding braces
        context: Request context

    Returns:
        Rendered string ('' for unknown expressions or missing values)
    """
    if expr == 'now':
        return utc_now_iso()
    if expr == 'uuid':
        return str(uuid.uuid4())

    match = RANDOM_INT_PATTERN.match(expr)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        if low > high:
            return ''
        return str(random.randint(low, high))

    prefix, _, name = expr.partition('.')
    if not name:
        return ''

    if prefix == 'path':
        return _text(context.path_params.get(name))
    if prefix == 'query':
        return _text(context.query_param(name))
    if prefix == 'body':
        return _text(_lookup(context.json_body, name))
    if prefix == 'header':
        return _text(context.header(name))
    if prefix == 'server':
        return _text(context.server_info.get(name))

    return ''


def _lookup(data: Any, dotted: str) -> Any:
    """Walk a dotted path through nested dicts; None when any step is missing."""
    current = data
    for part in dotted.split('.'):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def _text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(',', ':'))
    return str(value)
