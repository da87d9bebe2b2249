"""Request/response tracking on top of the network and the response router."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, ClassVar, Hashable, Optional, Protocol

from kadnet.lookup_task import Peer
from kadnet.message_socket import IpEndpoint
from kadnet.result import ErrorCode, KademliaError

_log = logging.getLogger(__name__)

ID_BIT_SIZE = 160

#: Number of lookup requests kept in flight at once.
CONCURRENT_FIND_PEER_REQUESTS_COUNT = 3
#: Seconds a lookup request waits for its response.
PEER_LOOKUP_TIMEOUT = 0.2
#: Number of peers asked to keep a copy of a stored value.
REDUNDANT_SAVE_COUNT = 3


class MessageType(Enum):
    """Kind of a message, as carried by its header."""

    PING_REQUEST = auto()
    PING_RESPONSE = auto()
    STORE_REQUEST = auto()
    FIND_PEER_REQUEST = auto()
    FIND_PEER_RESPONSE = auto()
    FIND_VALUE_REQUEST = auto()
    FIND_VALUE_RESPONSE = auto()


@dataclass(frozen=True)
class Header:
    """Header preceding every message body.

    ``random_token`` is the id associating a response with its request.
    """

    type: MessageType
    source_id: int = 0
    random_token: Hashable = 0


@dataclass(frozen=True)
class FindPeerRequest:
    TYPE: ClassVar[MessageType] = MessageType.FIND_PEER_REQUEST
    peer_to_find_id: int


@dataclass(frozen=True)
class FindValueRequest:
    TYPE: ClassVar[MessageType] = MessageType.FIND_VALUE_REQUEST
    value_to_find: int


@dataclass(frozen=True)
class StoreValueRequest:
    TYPE: ClassVar[MessageType] = MessageType.STORE_REQUEST
    data_key_hash: int
    data_value: bytes


@dataclass(frozen=True)
class FindPeerResponse:
    TYPE: ClassVar[MessageType] = MessageType.FIND_PEER_RESPONSE
    peers: tuple[Peer, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FindValueResponse:
    TYPE: ClassVar[MessageType] = MessageType.FIND_VALUE_RESPONSE
    data: bytes = b""


class MessageSerializer(Protocol):
    """Turns messages into datagrams and message bodies back into messages.

    ``deserialize`` raises :class:`KademliaError` (or ``ValueError``) when a
    body cannot be decoded as the requested message class.
    """

    def serialize(self, message: Any, response_id: Hashable) -> bytes: ...

    def deserialize(self, body: bytes, message_class: type) -> Any: ...


def _random_id() -> int:
    return secrets.randbits(ID_BIT_SIZE)


class Tracker:
    """Sends requests and routes the matching responses to their callbacks."""

    def __init__(
        self,
        router: Any,
        serializer: MessageSerializer,
        network: Any,
        id_generator: Optional[Callable[[], Hashable]] = None,
    ) -> None:
        self._router = router
        self._serializer = serializer
        self._network = network
        self._id_generator = id_generator if id_generator is not None else _random_id

    def send_request(
        self,
        request: Any,
        endpoint: IpEndpoint,
        timeout: Any = None,
        on_response_received: Optional[Callable[..., Any]] = None,
        on_error: Optional[Callable[[BaseException], Any]] = None,
    ) -> None:
        """Send ``request`` to ``endpoint``.

        With callbacks, the response is awaited for ``timeout`` and handed to
        ``on_response_received``; send failures and timeouts go to
        ``on_error``. Without callbacks no response is awaited.
        """
        if on_response_received is None and on_error is None:
            self.send_response(self._id_generator(), request, endpoint)
            return
        if on_response_received is None or on_error is None:
            raise TypeError("on_response_received and on_error go together")
        if timeout is None:
            timeout = PEER_LOOKUP_TIMEOUT

        response_id = self._id_generator()
        message = self._serializer.serialize(request, response_id)

        def on_request_sent(failure: Optional[BaseException]) -> None:
            if failure is not None:
                on_error(failure)
            else:
                self._router.register_temporary_callback(
                    response_id, timeout, on_response_received, on_error
                )

        self._network.send(message, endpoint, on_request_sent)

    def send_response(
        self, response_id: Hashable, response: Any, endpoint: IpEndpoint
    ) -> None:
        """Send ``response`` tagged with ``response_id``; failures are ignored."""
        message = self._serializer.serialize(response, response_id)

        def on_response_sent(failure: Optional[BaseException]) -> None:
            if failure is not None:
                _log.debug("failed to send to '%s': %s", endpoint, failure)

        self._network.send(message, endpoint, on_response_sent)

    def handle_new_response(self, sender: IpEndpoint, header: Header, body: bytes) -> bool:
        """Forward a response to its awaiting callback; False if none awaits it."""
        return bool(self._router.handle_new_response(sender, header, body))

    def deserialize(self, body: bytes, message_class: type) -> Any:
        """Decode a message body as ``message_class``."""
        try:
            return self._serializer.deserialize(body, message_class)
        except KademliaError:
            raise
        except ValueError as failure:
            raise KademliaError(ErrorCode.CORRUPTED_BODY) from failure