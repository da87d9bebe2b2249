"""Candidate bookkeeping shared by the iterative lookup tasks."""

from __future__ import annotations

import bisect
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Union

IdLike = Union[int, bytes, bytearray]


def _as_int(value: IdLike) -> int:
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    return int(value)


def distance(a: IdLike, b: IdLike) -> int:
    """XOR distance between two ids."""
    return _as_int(a) ^ _as_int(b)


@dataclass(frozen=True)
class Peer:
    """A peer id together with the endpoint it can be reached at."""

    id: int
    endpoint: Any


class _State(Enum):
    UNKNOWN = auto()
    CONTACTED = auto()
    RESPONDED = auto()
    TIMEOUTED = auto()


@dataclass
class _Candidate:
    peer: Peer
    state: _State = _State.UNKNOWN


PeerLike = Union[Peer, tuple]


def _as_peer(value: PeerLike) -> Peer:
    if isinstance(value, Peer):
        return value
    peer_id, endpoint = value
    return Peer(_as_int(peer_id), endpoint)


class LookupTask:
    """Tracks the candidates of a lookup ordered by distance to a key."""

    def __init__(self, key: IdLike, peers: Iterable[PeerLike] = ()) -> None:
        self._key = _as_int(key)
        self._in_flight_requests_count = 0
        self._candidates: dict[int, _Candidate] = {}
        self._ordered_distances: list[int] = []
        self.add_candidates(peers)

    @property
    def key(self) -> int:
        """The id being searched."""
        return self._key

    def flag_candidate_as_valid(self, candidate_id: IdLike) -> None:
        """Record that a candidate answered its request."""
        self._flag(candidate_id, _State.RESPONDED)

    def flag_candidate_as_invalid(self, candidate_id: IdLike) -> None:
        """Record that a candidate failed to answer its request."""
        self._flag(candidate_id, _State.TIMEOUTED)

    def select_new_closest_candidates(self, max_count: int) -> list[Peer]:
        """Mark and return the closest uncontacted candidates.

        Selection stops once ``max_count`` requests are in flight.
        """
        selected: list[Peer] = []
        for d in self._ordered_distances:
            if self._in_flight_requests_count >= max_count:
                break
            candidate = self._candidates[d]
            if candidate.state is _State.UNKNOWN:
                candidate.state = _State.CONTACTED
                self._in_flight_requests_count += 1
                selected.append(candidate.peer)
        return selected

    def select_closest_valid_candidates(self, max_count: int) -> list[Peer]:
        """Return up to ``max_count`` closest candidates that responded."""
        selected: list[Peer] = []
        for d in self._ordered_distances:
            if len(selected) >= max_count:
                break
            candidate = self._candidates[d]
            if candidate.state is _State.RESPONDED:
                selected.append(candidate.peer)
        return selected

    def add_candidates(self, peers: Iterable[PeerLike]) -> None:
        """Add peers not already known as candidates."""
        for peer in peers:
            self._add_candidate(_as_peer(peer))

    def have_all_requests_completed(self) -> bool:
        return self._in_flight_requests_count == 0

    def _add_candidate(self, peer: Peer) -> None:
        d = distance(peer.id, self._key)
        if d in self._candidates:
            return
        self._candidates[d] = _Candidate(peer)
        bisect.insort(self._ordered_distances, d)

    def _flag(self, candidate_id: IdLike, state: _State) -> None:
        candidate = self._candidates.get(distance(candidate_id, self._key))
        if candidate is None:
            return
        self._in_flight_requests_count -= 1
        candidate.state = state