"""
RestMock Route Matcher

Ordered route table resolving an inbound method + path to a single route
and the values bound to its named path segments.

Matching rules:
- Path templates are split on '/'; a segment written as {name} captures one
  non-'/' segment, every other segment matches literally
- Routes are tried in declaration order; the first route whose method and
  full path both match wins
- A path match with the wrong method is simply not a match
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

MUTATING_METHODS = frozenset({'POST', 'PUT', 'DELETE', 'PATCH'})

PARAM_SEGMENT = re.compile(r'^\{([^{}/]+)\}$')


def compile_path(template: str) -> Tuple[re.Pattern, Tuple[str, ...]]:
    """
    Compile a path template into a regex and its ordered parameter names.

    Args:
        template: Path template such as '/api/users/{id}'

    Returns:
        (compiled pattern matching the full path, parameter names)

    Example:
        pattern, names = compile_path('/api/{name}/{id}')
        pattern.match('/api/users/u1').groups()  # ('users', 'u1')
    """
    names: List[str] = []
    parts: List[str] = []

    for segment in template.split('/'):
        if not segment:
            continue
        param = PARAM_SEGMENT.match(segment)
        if param:
            names.append(param.group(1))
            parts.append('([^/]+)')
        else:
            parts.append(re.escape(segment))

    return re.compile('^/' + '/'.join(parts) + '$'), tuple(names)


def normalize_path(template: str) -> str:
    """Collapse repeated slashes and ensure a single leading slash."""
    segments = [s for s in template.split('/') if s]
    return '/' + '/'.join(segments)


@dataclass(frozen=True)
class Route:
    """
    A (method, path pattern) pair bound to a handler.

    Immutable once built; the active route set is replaced wholesale on
    reload, never mutated in place.
    """

    method: str
    path: str
    handler: Any
    mutates: bool = False
    kind: str = 'static'  # crud, static
    chaos: Any = None
    pattern: re.Pattern = field(init=False, repr=False, compare=False)
    param_names: Tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        pattern, names = compile_path(self.path)
        object.__setattr__(self, 'method', self.method.upper())
        object.__setattr__(self, 'path', normalize_path(self.path))
        object.__setattr__(self, 'pattern', pattern)
        object.__setattr__(self, 'param_names', names)

    @property
    def key(self) -> str:
        """Route identity used for per-route state such as retry counters."""
        return f"{self.method} {self.path}"

    def match(self, method: str, path: str) -> Optional[Dict[str, str]]:
        """Path parameters if this route matches, otherwise None."""
        if method.upper() != self.method:
            return None
        found = self.pattern.match(path)
        if not found:
            return None
        return dict(zip(self.param_names, found.groups()))

    def describe(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'path': self.path,
            'type': self.kind,
            'mutates': self.mutates
        }


@dataclass(frozen=True)
class RouteMatch:
    """Result of resolving a request against the route table."""

    route: Route
    params: Dict[str, str]


class RouteTable:
    """
    Immutable, ordered snapshot of routes.

    Example:
        table = RouteTable([Route('GET', '/api/users/{id}', handler)])
        found = table.resolve('GET', '/api/users/u1')
        if found:
            found.params['id']  # 'u1'
    """

    def __init__(self, routes: List[Route]):
        self._routes: Tuple[Route, ...] = tuple(routes)

    def __iter__(self):
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def resolve(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the first route matching method and path.

        Args:
            method: HTTP method
            path: Request path (no query string)

        Returns:
            RouteMatch, or None when no route matches
        """
        for route in self._routes:
            params = route.match(method, path)
            if params is not None:
                return RouteMatch(route=route, params=params)
        return None

    def summaries(self) -> List[str]:
        """'METHOD /path' for every route in declaration order."""
        return [route.key for route in self._routes]

    def count(self, kind: str) -> int:
        return sum(1 for route in self._routes if route.kind == kind)
