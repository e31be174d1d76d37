"""Route definitions.

A ``Route`` parses its own path once, at construction, so a malformed
pattern fails where it is declared (inside a module's ``activate()``)
rather than when the router is rebuilt.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from perch.errors import ConfigurationError
from perch.routing.params import Converter, get_converter


@dataclass(frozen=True, slots=True)
class Segment:
    """One ``/``-separated piece of a route path.

    ``converter`` is None for literal text; otherwise ``text`` holds the
    parameter name.
    """

    text: str
    converter: Converter | None = None

    @property
    def is_param(self) -> bool:
        return self.converter is not None


def parse_path(path: str) -> tuple[Segment, ...]:
    """Split a route pattern into segments.

    ``"/users/{id:int}"`` -> ``(Segment("users"), Segment("id", <int>))``.
    A bare ``{name}`` uses the ``str`` converter. A greedy converter
    (``path``) must be the last segment.
    """
    segments: list[Segment] = []
    for part in path.strip("/").split("/"):
        if not part:
            continue
        if part.startswith("{") and part.endswith("}"):
            name, _, kind = part[1:-1].partition(":")
            segments.append(Segment(name, get_converter(kind or "str", route=path)))
        else:
            segments.append(Segment(part))

    for seg in segments[:-1]:
        if seg.converter is not None and seg.converter.greedy:
            msg = f"{{{seg.text}:{seg.converter.name}}} must be the last segment of {path!r}."
            raise ConfigurationError(msg)
    return tuple(segments)


def _normalize_methods(methods: Iterable[str] | None) -> frozenset[str]:
    return frozenset(m.upper() for m in (methods or ("GET",)))


@dataclass(frozen=True, slots=True)
class Route:
    """A handler bound to a path pattern and a set of methods.

    ``owner`` is the context path of the module that wired the route, or
    None for routes added on the app directly. The app replaces a module's
    routes as one unit, keyed by owner.
    """

    path: str
    handler: Callable[..., Any]
    methods: frozenset[str] = frozenset({"GET"})
    name: str | None = None
    owner: str | None = None
    segments: tuple[Segment, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "methods", _normalize_methods(self.methods))
        object.__setattr__(self, "segments", parse_path(self.path))

    @classmethod
    def create(
        cls,
        path: str,
        handler: Callable[..., Any],
        *,
        methods: Iterable[str] | None = None,
        name: str | None = None,
        owner: str | None = None,
    ) -> "Route":
        return cls(path, handler, _normalize_methods(methods), name, owner)


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """A matched route plus its converted path parameters."""

    route: Route
    params: dict[str, Any]
