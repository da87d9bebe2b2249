"""Storage of a value on the peers closest to its key."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from kadnet.lookup_task import IdLike, LookupTask, Peer
from kadnet.message_socket import IpEndpoint
from kadnet.result import ErrorCode, KademliaError
from kadnet.tracker import (
    CONCURRENT_FIND_PEER_REQUESTS_COUNT,
    PEER_LOOKUP_TIMEOUT,
    REDUNDANT_SAVE_COUNT,
    FindPeerRequest,
    FindPeerResponse,
    Header,
    MessageType,
    StoreValueRequest,
)

_log = logging.getLogger(__name__)

SaveHandler = Callable[[Optional[ErrorCode]], Any]


class StoreValueTask(LookupTask):
    """Looks up the peers closest to a key, then asks them to store a value.

    The handler is called once with None when store requests were sent, or
    with ``ErrorCode.MISSING_PEERS`` when no peer answered the lookup.
    """

    def __init__(
        self,
        key: IdLike,
        data: bytes,
        tracker: Any,
        routing_table: Any,
        handler: SaveHandler,
        concurrency: int = CONCURRENT_FIND_PEER_REQUESTS_COUNT,
        timeout: Any = PEER_LOOKUP_TIMEOUT,
        redundancy: int = REDUNDANT_SAVE_COUNT,
    ) -> None:
        super().__init__(key, routing_table.find(key))
        self._tracker = tracker
        self._data = bytes(data)
        self._handler = handler
        self._concurrency = concurrency
        self._timeout = timeout
        self._redundancy = redundancy
        self._is_finished = False
        _log.debug("create store value task for '%x' value.", self.key)

    @property
    def data(self) -> bytes:
        """The value to store."""
        return self._data

    @property
    def is_caller_notified(self) -> bool:
        return self._is_finished

    def start(self) -> None:
        """Send the first lookup requests."""
        self._try_to_store_value()

    def _notify_caller(self, failure: Optional[ErrorCode]) -> None:
        if self._is_finished:
            return
        self._is_finished = True
        self._handler(failure)

    def _try_to_store_value(self) -> None:
        _log.debug("trying to find closer peer to store '%x' value.", self.key)
        request = FindPeerRequest(self.key)
        for candidate in self.select_new_closest_candidates(self._concurrency):
            self._send_find_peer_to_store_request(request, candidate)

        # Nothing in flight: the closest peers are known, ask them to store.
        if self.have_all_requests_completed():
            self._send_store_requests()

    def _send_find_peer_to_store_request(
        self, request: FindPeerRequest, candidate: Peer
    ) -> None:
        _log.debug(
            "sending find peer request to store '%x' to '%s'.", self.key, candidate
        )

        def on_message_received(sender: IpEndpoint, header: Header, body: Any) -> None:
            self._handle_find_peer_to_store_response(sender, header, body)

        def on_error(failure: BaseException) -> None:
            self.flag_candidate_as_invalid(candidate.id)
            self._try_to_store_value()

        self._tracker.send_request(
            request, candidate.endpoint, self._timeout, on_message_received, on_error
        )

    def _handle_find_peer_to_store_response(
        self, sender: IpEndpoint, header: Header, body: Any
    ) -> None:
        _log.debug("handle find peer to store response from '%s'.", sender)

        if header.type is not MessageType.FIND_PEER_RESPONSE:
            _log.debug("unexpected find peer response (type=%s)", header.type)
            self.flag_candidate_as_invalid(header.source_id)
            self._try_to_store_value()
            return

        try:
            response = self._tracker.deserialize(body, FindPeerResponse)
        except KademliaError as failure:
            _log.debug("failed to deserialize find peer response (%s)", failure)
            self.flag_candidate_as_invalid(header.source_id)
        else:
            self.flag_candidate_as_valid(header.source_id)
            self.add_candidates(response.peers)

        self._try_to_store_value()

    def _send_store_requests(self) -> None:
        candidates = self.select_closest_valid_candidates(self._redundancy)
        request = StoreValueRequest(self.key, self._data)
        for candidate in candidates:
            _log.debug("send store request of '%x' to '%s'.", self.key, candidate)
            self._tracker.send_request(request, candidate.endpoint)

        self._notify_caller(None if candidates else ErrorCode.MISSING_PEERS)


def start_store_value_task(
    key: IdLike,
    data: bytes,
    tracker: Any,
    routing_table: Any,
    handler: SaveHandler,
    concurrency: int = CONCURRENT_FIND_PEER_REQUESTS_COUNT,
    timeout: Any = PEER_LOOKUP_TIMEOUT,
    redundancy: int = REDUNDANT_SAVE_COUNT,
) -> StoreValueTask:
    """Create a store value task, start it and return it."""
    task = StoreValueTask(
        key, data, tracker, routing_table, handler, concurrency, timeout, redundancy
    )
    task.start()
    return task