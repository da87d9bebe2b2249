"""Iterative lookup of the value stored under a key."""

from __future__ import annotations

import logging
from typing import Any, Callable

from kadnet.lookup_task import IdLike, LookupTask, Peer
from kadnet.message_socket import IpEndpoint
from kadnet.result import ErrorCode, KademliaError, Result
from kadnet.tracker import (
    CONCURRENT_FIND_PEER_REQUESTS_COUNT,
    PEER_LOOKUP_TIMEOUT,
    FindPeerResponse,
    FindValueRequest,
    FindValueResponse,
    Header,
    MessageType,
)

_log = logging.getLogger(__name__)

LoadHandler = Callable[[Result], Any]


class FindValueTask(LookupTask):
    """Queries ever closer peers until one returns the value.

    The handler is called exactly once with a :class:`Result` holding the
    data, or failing with ``VALUE_NOT_FOUND`` once every candidate was tried.
    """

    def __init__(
        self,
        key: IdLike,
        tracker: Any,
        routing_table: Any,
        handler: LoadHandler,
        concurrency: int = CONCURRENT_FIND_PEER_REQUESTS_COUNT,
        timeout: Any = PEER_LOOKUP_TIMEOUT,
    ) -> None:
        super().__init__(key, routing_table.find(key))
        self._tracker = tracker
        self._handler = handler
        self._concurrency = concurrency
        self._timeout = timeout
        self._is_finished = False
        _log.debug("create find value task for '%x' value.", self.key)

    @property
    def is_caller_notified(self) -> bool:
        return self._is_finished

    def start(self) -> None:
        """Send the first requests."""
        self._try_candidates()

    def _notify_caller(self, result: Result) -> None:
        if self._is_finished:
            return
        self._is_finished = True
        self._handler(result)

    def _try_candidates(self) -> None:
        candidates = self.select_new_closest_candidates(self._concurrency)
        request = FindValueRequest(self.key)
        for candidate in candidates:
            self._send_find_value_request(request, candidate)

        if self.have_all_requests_completed():
            self._notify_caller(Result.failure(ErrorCode.VALUE_NOT_FOUND))

    def _send_find_value_request(self, request: FindValueRequest, candidate: Peer) -> None:
        _log.debug("sending find '%x' value request to '%s'.", self.key, candidate)

        def on_message_received(sender: IpEndpoint, header: Header, body: bytes) -> None:
            if self._is_finished:
                return
            self.flag_candidate_as_valid(candidate.id)
            self._handle_find_value_response(header, body)

        def on_error(failure: BaseException) -> None:
            if self._is_finished:
                return
            self.flag_candidate_as_invalid(candidate.id)
            self._try_candidates()

        self._tracker.send_request(
            request, candidate.endpoint, self._timeout, on_message_received, on_error
        )

    def _handle_find_value_response(self, header: Header, body: bytes) -> None:
        if header.type is MessageType.FIND_PEER_RESPONSE:
            # The peer does not know the value but knows closer peers.
            self._send_requests_on_closer_peers(body)
        elif header.type is MessageType.FIND_VALUE_RESPONSE:
            self._process_found_value(body)

    def _send_requests_on_closer_peers(self, body: bytes) -> None:
        try:
            response = self._tracker.deserialize(body, FindPeerResponse)
        except KademliaError as failure:
            _log.debug("failed to deserialize find peer response (%s).", failure)
            return
        self.add_candidates(response.peers)
        self._try_candidates()

    def _process_found_value(self, body: bytes) -> None:
        try:
            response = self._tracker.deserialize(body, FindValueResponse)
        except KademliaError as failure:
            _log.debug("failed to deserialize find value response (%s).", failure)
            return
        _log.debug("found '%x' value.", self.key)
        self._notify_caller(Result.ok(response.data))


def start_find_value_task(
    key: IdLike,
    tracker: Any,
    routing_table: Any,
    handler: LoadHandler,
    concurrency: int = CONCURRENT_FIND_PEER_REQUESTS_COUNT,
    timeout: Any = PEER_LOOKUP_TIMEOUT,
) -> FindValueTask:
    """Create a find value task, start it and return it."""
    task = FindValueTask(key, tracker, routing_table, handler, concurrency, timeout)
    task.start()
    return task