"""Compiled router with trie-based path matching.

A Router is built in one go from a route list and never changes after
that. The app builds a fresh router whenever module routes are committed
and swaps the reference, so a request always matches against a complete
table.
"""

from collections.abc import Iterable
from typing import Any

from perch.errors import MethodNotAllowed, NotFound
from perch.routing.params import Converter
from perch.routing.route import Route, RouteMatch


class _Node:
    __slots__ = ("greedy", "methods", "param", "static")

    def __init__(self) -> None:
        self.static: dict[str, _Node] = {}
        # One parameter edge per level: (name, converter, child)
        self.param: tuple[str, Converter, _Node] | None = None
        # Greedy edge: (name, methods) - consumes the rest of the path
        self.greedy: tuple[str, dict[str, Route]] | None = None
        self.methods: dict[str, Route] = {}


def _claim(table: dict[str, Route], route: Route) -> None:
    # First registration of a (path, method) pair wins
    for method in route.methods:
        table.setdefault(method, route)


class Router:
    """Immutable route table.

    Usage::

        router = Router([
            Route("/users", list_users),
            Route("/users/{id:int}", show_user),
        ])
        match = router.match("GET", "/users/42")
        match.params  # {"id": 42}

    Static segments win over parameters, and parameters over greedy
    (``path``) segments, at each level.
    """

    __slots__ = ("_root", "_routes")

    def __init__(self, routes: Iterable[Route] = ()) -> None:
        self._root = _Node()
        self._routes: tuple[Route, ...] = tuple(routes)
        for route in self._routes:
            self._insert(route)

    def _insert(self, route: Route) -> None:
        node = self._root
        for seg in route.segments:
            conv = seg.converter
            if conv is None:
                node = node.static.setdefault(seg.text, _Node())
            elif conv.greedy:
                if node.greedy is None:
                    node.greedy = (seg.text, {})
                _claim(node.greedy[1], route)
                return
            else:
                if node.param is None:
                    node.param = (seg.text, conv, _Node())
                node = node.param[2]
        _claim(node.methods, route)

    @property
    def routes(self) -> tuple[Route, ...]:
        """All routes, in the order they were given."""
        return self._routes

    def match(self, method: str, path: str) -> RouteMatch:
        """Find the route for *method* and *path*.

        Raises ``NotFound`` if no route matches the path and
        ``MethodNotAllowed`` if routes exist for the path but not for
        *method*. HEAD falls back to GET.
        """
        parts = [p for p in path.strip("/").split("/") if p]
        found = self._walk(self._root, parts, 0, {})
        if found is None:
            raise NotFound(f"No route matches {method} {path!r}")

        table, params = found
        route = table.get(method)
        if route is None and method == "HEAD":
            route = table.get("GET")
        if route is None:
            raise MethodNotAllowed(frozenset(table))
        return RouteMatch(route=route, params=params)

    def _walk(
        self,
        node: _Node,
        parts: list[str],
        index: int,
        params: dict[str, Any],
    ) -> tuple[dict[str, Route], dict[str, Any]] | None:
        if index == len(parts):
            return (node.methods, params) if node.methods else None

        part = parts[index]

        child = node.static.get(part)
        if child is not None:
            found = self._walk(child, parts, index + 1, params)
            if found is not None:
                return found

        if node.param is not None:
            name, conv, child = node.param
            if conv.matches(part):
                found = self._walk(child, parts, index + 1, {**params, name: conv.to_python(part)})
                if found is not None:
                    return found

        if node.greedy is not None:
            name, table = node.greedy
            return table, {**params, name: "/".join(parts[index:])}

        return None
