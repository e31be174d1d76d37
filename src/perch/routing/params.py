"""Typed path parameters.

A route segment like ``{id:int}`` names a converter. The converter's
pattern decides whether a request segment matches, and its ``to_python``
turns the matched text into the value handlers receive.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from perch.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class Converter:
    name: str
    pattern: str
    to_python: Callable[[str], Any]
    # Consumes every remaining segment; must end the route
    greedy: bool = False
    regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "regex", re.compile(f"^{self.pattern}$"))

    def matches(self, text: str) -> bool:
        return self.regex.match(text) is not None


CONVERTERS: dict[str, Converter] = {
    c.name: c
    for c in (
        Converter("str", r"[^/]+", str),
        Converter("int", r"\d+", int),
        Converter("float", r"\d+(?:\.\d+)?", float),
        Converter("path", r".+", str, greedy=True),
    )
}


def get_converter(name: str, *, route: str = "") -> Converter:
    """Look up a converter by name, or raise ``ConfigurationError``."""
    try:
        return CONVERTERS[name]
    except KeyError:
        msg = (
            f"Unknown converter {name!r} in route {route!r}. "
            f"Available: {', '.join(sorted(CONVERTERS))}"
        )
        raise ConfigurationError(msg) from None
