"""Routing table keeping known peers in k-buckets ordered by shared prefix."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Union

IdLike = Union[int, bytes, bytearray]

DEFAULT_K_BUCKET_SIZE = 20
DEFAULT_BIT_SIZE = 160


def _as_int(value: IdLike) -> int:
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    return int(value)


class RoutingTable:
    """Keeps track of peers and finds the known peers closest to an id.

    Bucket ``i`` holds peers whose id shares exactly ``i`` leading bits with
    the table's own id, so higher indices are closer to us.
    """

    def __init__(
        self,
        my_id: IdLike,
        k_bucket_size: int = DEFAULT_K_BUCKET_SIZE,
        bit_size: int = DEFAULT_BIT_SIZE,
    ) -> None:
        if k_bucket_size <= 0:
            raise ValueError("k_bucket size must be > 0")
        if bit_size <= 0:
            raise ValueError("bit size must be > 0")
        self._bit_size = bit_size
        self._my_id = _as_int(my_id)
        self._k_bucket_size = k_bucket_size
        self._k_buckets: list[list[tuple[int, Any]]] = [[] for _ in range(bit_size)]
        self._peer_count = 0
        self._largest_k_bucket_index = 0

    @property
    def my_id(self) -> int:
        return self._my_id

    @property
    def k_bucket_size(self) -> int:
        return self._k_bucket_size

    def __len__(self) -> int:
        return self._peer_count

    def push(self, peer_id: IdLike, peer: Any) -> bool:
        """Register a peer; return True if it was inserted.

        A peer is refused when it is already known, or when its bucket is
        full and is not the largest subtree.
        """
        peer_id = _as_int(peer_id)
        index = self._find_k_bucket_index(peer_id)
        bucket = self._k_buckets[index]

        if len(bucket) == self._k_bucket_size:
            self._update_largest_k_bucket_index(index)
            if index != self._largest_k_bucket_index:
                return False

        if any(entry_id == peer_id for entry_id, _ in bucket):
            return False

        bucket.append((peer_id, peer))
        self._peer_count += 1
        return True

    def remove(self, peer_id: IdLike) -> bool:
        """Remove a peer; return True if it was present."""
        peer_id = _as_int(peer_id)
        bucket = self._k_buckets[self._find_k_bucket_index(peer_id)]
        for position, (entry_id, _) in enumerate(bucket):
            if entry_id == peer_id:
                del bucket[position]
                self._peer_count -= 1
                return True
        return False

    def find(self, id_to_find: IdLike) -> Iterator[tuple[int, Any]]:
        """Yield ``(id, peer)`` pairs from the closest bucket to the farthest."""
        index = max(
            self._get_lowest_k_bucket_index(),
            self._find_k_bucket_index(_as_int(id_to_find)),
        )
        while index > 0 and not self._k_buckets[index]:
            index -= 1
        for bucket_index in range(index, -1, -1):
            yield from self._k_buckets[bucket_index]

    def __str__(self) -> str:
        digits = (self._bit_size + 3) // 4
        lines = [
            "{",
            f'\t"id": {self._my_id:0{digits}x},',
            f'\t"peer_count": {self._peer_count},',
            f'\t"k_bucket_size": {self._k_bucket_size},',
            '\t"k_buckets": ',
        ]
        for index, bucket in enumerate(self._k_buckets):
            lines.extend(
                [
                    "\t{",
                    f'\t\t"index": {index},',
                    f'\t\t"bit_value": {self._bit(self._my_id, index)},',
                    f'\t\t"peer_count": {len(bucket)}',
                    "\t}",
                ]
            )
        lines.append("}")
        return "\n".join(lines) + "\n"

    def _bit(self, value: int, index: int) -> int:
        return (value >> (self._bit_size - 1 - index)) & 1

    def _find_k_bucket_index(self, id_to_find: int) -> int:
        bit_index = 0
        while bit_index < self._bit_size - 1 and self._bit(
            id_to_find, bit_index
        ) == self._bit(self._my_id, bit_index):
            bit_index += 1
        return bit_index

    def _get_lowest_k_bucket_index(self) -> int:
        last = len(self._k_buckets) - 1
        index = 0
        peer_count = 0
        while index != last and peer_count <= self._k_bucket_size:
            peer_count += len(self._k_buckets[index])
            index += 1
        return index

    def _update_largest_k_bucket_index(self, index: int) -> None:
        largest = self._k_buckets[self._largest_k_bucket_index]
        if len(largest) <= self._k_bucket_size:
            self._largest_k_bucket_index = index