# FILE: httpkernel/routing.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Pattern, Protocol, Tuple

from .exceptions import RouteNotFoundError


# =============================================================================
# Route data model
# =============================================================================


@dataclass(frozen=True)
class RouteMatch:
    """
    Result of routing: the handler descriptor plus the parameters captured
    from the path. `name` is the route name when the router knows one.
    """

    handler: Any
    parameters: Mapping[str, Any] = field(default_factory=dict)
    name: Optional[str] = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.parameters.get(key, default)


class Router(Protocol):
    """Resolves a request path or a route name to a RouteMatch."""

    def match(self, path_or_name: str) -> RouteMatch:
        ...


# =============================================================================
# Reference adapter
# =============================================================================

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class _Route:
    path: str
    handler: Any
    name: Optional[str]
    pattern: Optional[Pattern[str]]


def _compile(path: str) -> Optional[Pattern[str]]:
    if not _PLACEHOLDER.search(path):
        return None
    out = ""
    pos = 0
    for m in _PLACEHOLDER.finditer(path):
        out += re.escape(path[pos:m.start()])
        out += f"(?P<{m.group(1)}>[^/]+)"
        pos = m.end()
    out += re.escape(path[pos:])
    return re.compile("^" + out + "$")


class DictRouter:
    """
    In-memory router.

    Lookup order: exact path, route name, then `{placeholder}` paths in
    registration order. Placeholders capture one path segment each.

        router = DictRouter()
        router.add("/", "templates/home.html", name="home")
        router.add("/api/users/{id}", show_user)
        router.add("/old", "redirect:/new")
    """

    def __init__(self, routes: Optional[Mapping[str, Any]] = None):
        self._routes: List[_Route] = []
        self._by_path: Dict[str, _Route] = {}
        self._by_name: Dict[str, _Route] = {}
        for path, handler in (routes or {}).items():
            if isinstance(handler, tuple):
                self.add(path, *handler)
            else:
                self.add(path, handler)

    def add(self, path: str, handler: Any, name: Optional[str] = None) -> "DictRouter":
        route = _Route(path=path, handler=handler, name=name, pattern=_compile(path))
        self._routes.append(route)
        self._by_path[path] = route
        if name:
            self._by_name[name] = route
        return self

    def routes(self) -> List[Tuple[str, Optional[str]]]:
        return [(r.path, r.name) for r in self._routes]

    def match(self, path_or_name: str) -> RouteMatch:
        route = self._by_path.get(path_or_name)
        if route is not None and route.pattern is None:
            return RouteMatch(handler=route.handler, parameters={}, name=route.name)

        route = self._by_name.get(path_or_name)
        if route is not None:
            return RouteMatch(handler=route.handler, parameters={}, name=route.name)

        for route in self._routes:
            if route.pattern is None:
                continue
            m = route.pattern.match(path_or_name)
            if m is not None:
                return RouteMatch(handler=route.handler, parameters=m.groupdict(), name=route.name)

        raise RouteNotFoundError(path_or_name)
