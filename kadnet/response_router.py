"""Routing of responses to the callbacks of the requests awaiting them."""

from __future__ import annotations

import errno
import logging
import os
from typing import Any, Callable, Hashable

from kadnet.message_socket import IpEndpoint

_log = logging.getLogger(__name__)

OnResponseReceived = Callable[[IpEndpoint, Any, bytes], Any]
OnError = Callable[[BaseException], Any]


class ResponseRouter:
    """Associates response ids with callbacks that expire after a ttl.

    ``header`` objects given to :meth:`handle_new_response` carry the id of
    the request they answer in their ``random_token`` attribute.
    """

    def __init__(self, timer: Any) -> None:
        self._timer = timer
        self._callbacks: dict[Hashable, OnResponseReceived] = {}

    def __len__(self) -> int:
        return len(self._callbacks)

    def handle_new_response(self, sender: IpEndpoint, header: Any, body: bytes) -> bool:
        """Forward a response to its callback; return False if none awaits it."""
        callback = self._callbacks.pop(header.random_token, None)
        if callback is None:
            _log.debug("dropping unknown response.")
            return False
        callback(sender, header, body)
        return True

    def register_temporary_callback(
        self,
        response_id: Hashable,
        ttl: Any,
        on_response_received: OnResponseReceived,
        on_error: OnError,
    ) -> None:
        """Await the response ``response_id`` for ``ttl``, then report a timeout."""

        def on_timeout() -> None:
            # Still registered means the response never came.
            if self._callbacks.pop(response_id, None) is not None:
                on_error(TimeoutError(errno.ETIMEDOUT, os.strerror(errno.ETIMEDOUT)))

        self._callbacks[response_id] = on_response_received
        self._timer.expires_from_now(ttl, on_timeout)