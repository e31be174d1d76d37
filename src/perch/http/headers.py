"""Immutable, case-insensitive HTTP headers.

Wraps the raw byte pairs from an ASGI scope and decodes on access.
Shared by HTTP requests and websocket connections.
"""

from collections.abc import Iterator, Mapping


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive header mapping.

    ``__getitem__`` returns the first matching value; ``get_list`` returns
    every value sent under a name.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        object.__setattr__(self, "_raw", raw)

    def _key(self, key: str) -> bytes:
        return key.lower().encode("latin-1")

    def __getitem__(self, key: str) -> str:
        wanted = self._key(key)
        for name, value in self._raw:
            if name.lower() == wanted:
                return value.decode("latin-1")
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        wanted = self._key(key)
        return any(name.lower() == wanted for name, _ in self._raw)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._raw:
            key = name.decode("latin-1").lower()
            if key not in seen:
                seen.add(key)
                yield key

    def __len__(self) -> int:
        return len(set(self))

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"Headers({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        try:
            return self[key]
        except KeyError:
            return default

    def get_list(self, key: str) -> list[str]:
        """Return all values sent under *key*."""
        wanted = self._key(key)
        return [value.decode("latin-1") for name, value in self._raw if name.lower() == wanted]

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        """Raw header byte pairs, as received from the server."""
        return self._raw
