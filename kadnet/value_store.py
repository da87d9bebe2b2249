"""In-memory storage of values keyed by byte strings."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Union

KeyLike = Union[bytes, bytearray, memoryview, Iterable[int]]


class ValueStore:
    """Maps byte-string keys to byte-string data.

    Keys and data are copied into immutable ``bytes`` so later changes to
    the caller's buffers do not affect what is stored.
    """

    def __init__(self) -> None:
        self._values: dict[bytes, bytes] = {}

    def save(self, key: KeyLike, data: KeyLike) -> None:
        """Store ``data`` under ``key``, replacing any previous value."""
        self._values[bytes(key)] = bytes(data)

    def load(self, key: KeyLike) -> bytes:
        """Return the data stored under ``key``; raise KeyError if absent."""
        return self._values[bytes(key)]

    def __contains__(self, key: object) -> bool:
        try:
            return bytes(key) in self._values  # type: ignore[arg-type]
        except TypeError:
            return False

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._values)