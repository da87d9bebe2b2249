"""UDP sockets exchanging whole datagrams with callback-style completion."""

from __future__ import annotations

import asyncio
import errno
import ipaddress
import logging
import os
import socket
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from kadnet.result import ErrorCode, KademliaError

_log = logging.getLogger(__name__)

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

ReceiveCallback = Callable[[Optional[OSError], Optional["IpEndpoint"], bytes], Any]
SendCallback = Callable[[Optional[OSError]], Any]


@dataclass(frozen=True)
class IpEndpoint:
    """An IP address and a UDP port."""

    address: IpAddress
    port: int

    def __post_init__(self) -> None:
        if not isinstance(self.address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            object.__setattr__(self, "address", ipaddress.ip_address(self.address))
        object.__setattr__(self, "port", int(self.port))

    @property
    def is_v4(self) -> bool:
        return self.address.version == 4

    @property
    def is_v6(self) -> bool:
        return self.address.version == 6

    @classmethod
    def from_sockaddr(cls, sockaddr: tuple) -> IpEndpoint:
        """Build an endpoint from a socket address tuple."""
        return cls(ipaddress.ip_address(sockaddr[0]), sockaddr[1])

    def to_sockaddr(self) -> tuple:
        """Return the socket address tuple for this endpoint."""
        if self.is_v4:
            return (str(self.address), self.port)
        return (str(self.address), self.port, 0, 0)

    def __str__(self) -> str:
        if self.is_v4:
            return f"{self.address}:{self.port}"
        return f"[{self.address}]:{self.port}"


class MessageSocket:
    """A bound UDP socket receiving and sending one datagram per call."""

    # IPv6 jumbo datagrams are not expected.
    INPUT_BUFFER_SIZE = 65535

    def __init__(
        self,
        endpoint: IpEndpoint,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._loop = loop
        self._socket = self._create_underlying_socket(endpoint)
        self._receiving = False
        self._closed = False

    @staticmethod
    def resolve_endpoint(host: str, service: Union[str, int]) -> list[IpEndpoint]:
        """Resolve ``host``/``service`` to every matching UDP endpoint."""
        infos = socket.getaddrinfo(host, str(service), 0, socket.SOCK_DGRAM)
        return [
            IpEndpoint.from_sockaddr(sockaddr)
            for family, *_, sockaddr in infos
            if family in (socket.AF_INET, socket.AF_INET6)
        ]

    @classmethod
    def ipv4(cls, host: str, service: Union[str, int]) -> MessageSocket:
        """Bind a socket on the first IPv4 address ``host`` resolves to."""
        for endpoint in cls.resolve_endpoint(host, service):
            if endpoint.is_v4:
                return cls(endpoint)
        raise KademliaError(ErrorCode.INVALID_IPV4_ADDRESS)

    @classmethod
    def ipv6(cls, host: str, service: Union[str, int]) -> MessageSocket:
        """Bind a socket on the first IPv6 address ``host`` resolves to."""
        for endpoint in cls.resolve_endpoint(host, service):
            if endpoint.is_v6:
                return cls(endpoint)
        raise KademliaError(ErrorCode.INVALID_IPV6_ADDRESS)

    @property
    def closed(self) -> bool:
        return self._closed

    def async_receive(self, callback: ReceiveCallback) -> None:
        """Wait for one datagram and pass it to ``callback``.

        The callback receives ``(failure, sender, data)``; on failure the
        sender is None and data is empty.
        """
        if self._receiving:
            raise RuntimeError("a receive is already pending on this socket")
        self._receiving = True
        self._get_loop().add_reader(self._socket.fileno(), self._on_readable, callback)

    def async_send(self, message: bytes, to: IpEndpoint, callback: SendCallback) -> None:
        """Send ``message`` to ``to`` and report completion to ``callback``."""
        data = bytes(message)
        if len(data) > self.INPUT_BUFFER_SIZE:
            callback(OSError(errno.EOVERFLOW, os.strerror(errno.EOVERFLOW)))
            return
        self._try_send(data, to, callback)

    def local_endpoint(self) -> IpEndpoint:
        """The address and port this socket is bound to."""
        return IpEndpoint.from_sockaddr(self._socket.getsockname())

    def close(self) -> None:
        """Stop any pending receive and release the socket."""
        if self._closed:
            return
        self._closed = True
        if self._receiving and self._loop is not None:
            self._loop.remove_reader(self._socket.fileno())
        self._receiving = False
        self._socket.close()

    def __enter__(self) -> MessageSocket:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _on_readable(self, callback: ReceiveCallback) -> None:
        loop = self._get_loop()
        try:
            data, sender = self._socket.recvfrom(self.INPUT_BUFFER_SIZE)
        except BlockingIOError:
            return
        except ConnectionResetError:
            # An earlier send triggered an ICMP port unreachable; keep reading.
            return
        except OSError as failure:
            loop.remove_reader(self._socket.fileno())
            self._receiving = False
            callback(failure, None, b"")
            return
        loop.remove_reader(self._socket.fileno())
        self._receiving = False
        callback(None, IpEndpoint.from_sockaddr(sender), data)

    def _try_send(self, data: bytes, to: IpEndpoint, callback: SendCallback) -> None:
        loop = self._get_loop()
        try:
            self._socket.sendto(data, to.to_sockaddr())
        except BlockingIOError:
            fd = self._socket.fileno()

            def on_writable() -> None:
                loop.remove_writer(fd)
                self._try_send(data, to, callback)

            loop.add_writer(fd, on_writable)
            return
        except OSError as failure:
            loop.call_soon(callback, failure)
            return
        loop.call_soon(callback, None)

    @staticmethod
    def _create_underlying_socket(endpoint: IpEndpoint) -> socket.socket:
        family = socket.AF_INET if endpoint.is_v4 else socket.AF_INET6
        new_socket = socket.socket(family, socket.SOCK_DGRAM)
        try:
            if endpoint.is_v6:
                new_socket.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
            new_socket.setblocking(False)
            new_socket.bind(endpoint.to_sockaddr())
        except BaseException:
            new_socket.close()
            raise
        _log.debug("socket bound at '%s'", endpoint)
        return new_socket