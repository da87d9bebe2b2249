"""Announcement of a peer to the neighbours closest to its id."""

from __future__ import annotations

import logging
from typing import Any, Callable

from kadnet.lookup_task import IdLike, LookupTask, Peer
from kadnet.message_socket import IpEndpoint
from kadnet.result import KademliaError
from kadnet.tracker import (
    CONCURRENT_FIND_PEER_REQUESTS_COUNT,
    PEER_LOOKUP_TIMEOUT,
    FindPeerRequest,
    FindPeerResponse,
    Header,
    MessageType,
)

_log = logging.getLogger(__name__)

OnFinish = Callable[[], Any]


class NotifyPeerTask(LookupTask):
    """Sends find peer requests for a key to ever closer neighbours.

    ``on_finish`` is called each time the last outstanding request completes.
    """

    def __init__(
        self,
        key: IdLike,
        tracker: Any,
        routing_table: Any,
        on_finish: OnFinish,
        concurrency: int = CONCURRENT_FIND_PEER_REQUESTS_COUNT,
        timeout: Any = PEER_LOOKUP_TIMEOUT,
    ) -> None:
        super().__init__(key, routing_table.find(key))
        self._tracker = tracker
        self._on_finish = on_finish
        self._concurrency = concurrency
        self._timeout = timeout
        self._pending_notifications = 0
        _log.debug("create notify peer task for '%x' peer.", self.key)

    @property
    def pending_notifications(self) -> int:
        """Number of notifications awaiting an answer."""
        return self._pending_notifications

    def start(self) -> None:
        """Send the first notifications."""
        self._try_to_notify_neighbors()

    def _try_to_notify_neighbors(self) -> None:
        _log.debug("sending find peer to notify '%x' owner bucket.", self.key)
        request = FindPeerRequest(self.key)
        for peer in self.select_new_closest_candidates(self._concurrency):
            self._send_notify_peer_request(request, peer)

    def _send_notify_peer_request(self, request: FindPeerRequest, peer: Peer) -> None:
        _log.debug("sending peer notification to '%s'.", peer)

        def on_message_received(sender: IpEndpoint, header: Header, body: Any) -> None:
            self.flag_candidate_as_valid(peer.id)
            self._handle_notify_peer_response(sender, header, body)
            self._check_for_completion()

        def on_error(failure: BaseException) -> None:
            self.flag_candidate_as_invalid(peer.id)
            self._check_for_completion()

        self._pending_notifications += 1
        self._tracker.send_request(
            request, peer.endpoint, self._timeout, on_message_received, on_error
        )

    def _check_for_completion(self) -> None:
        self._pending_notifications -= 1
        if self._pending_notifications == 0:
            self._on_finish()

    def _handle_notify_peer_response(
        self, sender: IpEndpoint, header: Header, body: Any
    ) -> None:
        _log.debug("handle notify peer response from '%s'.", sender)

        if header.type is not MessageType.FIND_PEER_RESPONSE:
            _log.debug("unexpected notify peer response (type=%s)", header.type)
            return

        try:
            response = self._tracker.deserialize(body, FindPeerResponse)
        except KademliaError as failure:
            _log.debug("failed to deserialize find peer response (%s)", failure)
            return

        # Newly discovered neighbours get notified too.
        self.add_candidates(response.peers)
        self._try_to_notify_neighbors()


def start_notify_peer_task(
    key: IdLike,
    tracker: Any,
    routing_table: Any,
    on_finish: OnFinish,
    concurrency: int = CONCURRENT_FIND_PEER_REQUESTS_COUNT,
    timeout: Any = PEER_LOOKUP_TIMEOUT,
) -> NotifyPeerTask:
    """Create a notify peer task, start it and return it."""
    task = NotifyPeerTask(key, tracker, routing_table, on_finish, concurrency, timeout)
    task.start()
    return task