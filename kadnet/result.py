"""A value-or-error container and the error codes of the DHT."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Generic, TypeVar, Union

T = TypeVar("T")

ERROR_CATEGORY = "kademlia"


class ErrorCode(Enum):
    """Errors reported by the DHT engine and its tasks."""

    UNKNOWN_ERROR = auto()
    RUN_ABORTED = auto()
    INITIAL_PEER_FAILED_TO_RESPOND = auto()
    MISSING_PEERS = auto()
    INVALID_ID = auto()
    TRUNCATED_ID = auto()
    TRUNCATED_HEADER = auto()
    TRUNCATED_ENDPOINT = auto()
    TRUNCATED_ADDRESS = auto()
    TRUNCATED_SIZE = auto()
    UNKNOWN_PROTOCOL_VERSION = auto()
    CORRUPTED_BODY = auto()
    UNASSOCIATED_MESSAGE_ID = auto()
    INVALID_IPV4_ADDRESS = auto()
    INVALID_IPV6_ADDRESS = auto()
    UNIMPLEMENTED = auto()
    VALUE_NOT_FOUND = auto()
    TIMER_MALFUNCTION = auto()
    ALREADY_RUNNING = auto()

    @property
    def message(self) -> str:
        """Human readable description, derived from the code name."""
        return self.name.lower().replace("_", " ")

    @property
    def category(self) -> str:
        return ERROR_CATEGORY


class KademliaError(Exception):
    """Exception carrying an :class:`ErrorCode`."""

    category = ERROR_CATEGORY

    def __init__(self, code: ErrorCode) -> None:
        super().__init__(code.message)
        self.code = code


Failure = Union[ErrorCode, BaseException]


@dataclass(frozen=True)
class Result(Generic[T]):
    """Holds either a value or the error that prevented producing it."""

    _value: T | None = None
    _error: Failure | None = None

    @classmethod
    def ok(cls, value: T) -> Result[T]:
        return cls(_value=value)

    @classmethod
    def failure(cls, error: Failure) -> Result[T]:
        if error is None:
            raise ValueError("a failed result needs an error")
        return cls(_error=error)

    def __bool__(self) -> bool:
        return self._error is None

    @property
    def error(self) -> Failure | None:
        """The stored error, or None when a value is held."""
        return self._error

    @property
    def value(self) -> T:
        return self.unwrap()

    def unwrap(self) -> T:
        """Return the value, raising the stored error if there is none."""
        error = self._error
        if error is None:
            return self._value  # type: ignore[return-value]
        if isinstance(error, ErrorCode):
            raise KademliaError(error)
        raise error