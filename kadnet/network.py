"""Dispatch of datagrams over one IPv4 and one IPv6 socket."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Union

from kadnet.message_socket import IpEndpoint, SendCallback

_log = logging.getLogger(__name__)

OnMessageReceived = Callable[[IpEndpoint, bytes], Any]


class Network:
    """Receives on both sockets and sends through the one matching the target.

    Reception failures are fatal: the error is raised from the receive
    completion and reception on that socket stops.
    """

    def __init__(
        self,
        socket_ipv4: Any,
        socket_ipv6: Any,
        on_message_received: OnMessageReceived,
    ) -> None:
        self._socket_ipv4 = socket_ipv4
        self._socket_ipv6 = socket_ipv6
        self._on_message_received = on_message_received
        self._start_message_reception()
        _log.debug(
            "created at '%s' and '%s'",
            socket_ipv4.local_endpoint(),
            socket_ipv6.local_endpoint(),
        )

    @property
    def socket_ipv4(self) -> Any:
        return self._socket_ipv4

    @property
    def socket_ipv6(self) -> Any:
        return self._socket_ipv6

    def send(
        self, message: bytes, endpoint: IpEndpoint, on_message_sent: SendCallback
    ) -> None:
        """Send ``message`` to ``endpoint`` through the matching socket."""
        self._get_socket_for(endpoint).async_send(message, endpoint, on_message_sent)

    def resolve_endpoint(self, host: str, service: Union[str, int]) -> list[IpEndpoint]:
        """Resolve a host and service to endpoints."""
        return type(self._socket_ipv4).resolve_endpoint(host, service)

    def close(self) -> None:
        """Close both sockets."""
        self._socket_ipv4.close()
        self._socket_ipv6.close()

    def __enter__(self) -> Network:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _start_message_reception(self) -> None:
        self._schedule_receive_on_socket(self._socket_ipv4)
        self._schedule_receive_on_socket(self._socket_ipv6)

    def _schedule_receive_on_socket(self, current_subnet: Any) -> None:
        def on_new_message(
            failure: Optional[BaseException],
            sender: Optional[IpEndpoint],
            data: bytes,
        ) -> None:
            if failure is not None:
                raise failure
            self._on_message_received(sender, data)
            self._schedule_receive_on_socket(current_subnet)

        current_subnet.async_receive(on_new_message)

    def _get_socket_for(self, endpoint: IpEndpoint) -> Any:
        if endpoint.is_v4:
            return self._socket_ipv4
        return self._socket_ipv6