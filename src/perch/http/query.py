"""Query string access.

The string is parsed once, keeping pair order and blank values. Lookups
return the first value for a key; ``get_list`` returns all of them, so
``?tag=a&tag=b`` is not lost.
"""

from dataclasses import dataclass, field
from urllib.parse import parse_qsl


@dataclass(frozen=True, slots=True)
class QueryParams:
    """Parsed query string. ``raw`` is the undecoded bytes from the scope."""

    raw: bytes = b""
    pairs: tuple[tuple[str, str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        parsed = parse_qsl(self.raw.decode("latin-1"), keep_blank_values=True)
        object.__setattr__(self, "pairs", tuple(parsed))

    def __contains__(self, key: object) -> bool:
        return any(k == key for k, _ in self.pairs)

    def __bool__(self) -> bool:
        return bool(self.pairs)

    def get(self, key: str, default: str | None = None) -> str | None:
        for k, v in self.pairs:
            if k == key:
                return v
        return default

    def get_list(self, key: str) -> list[str]:
        return [v for k, v in self.pairs if k == key]

    def get_int(self, key: str, default: int | None = None) -> int | None:
        """First value as an int; *default* when missing or not numeric."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def to_dict(self) -> dict[str, str]:
        """First value per key, in first-seen order."""
        result: dict[str, str] = {}
        for k, v in self.pairs:
            result.setdefault(k, v)
        return result
