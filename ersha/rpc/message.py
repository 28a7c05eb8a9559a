"""Messages exchanged over the RPC connection."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from ersha.models import (
    BatchUploadRequest,
    BatchUploadResponse,
    HelloRequest,
    HelloResponse,
    UlidId,
)
from ersha.ulid import Ulid


@dataclass(frozen=True, order=True)
class MessageId(UlidId):
    """Identifier of one envelope; a fresh one is made when none is given."""

    value: Ulid = field(default_factory=Ulid.new)

    @classmethod
    def new(cls) -> MessageId:
        return cls(Ulid.new())


@dataclass(frozen=True)
class Ping:
    """Liveness probe."""


@dataclass(frozen=True)
class Pong:
    """Answer to a ping."""


class WireErrorCode(Enum):
    BAD_REQUEST = "BadRequest"
    UNSUPPORTED = "Unsupported"
    INTERNAL = "Internal"


@dataclass(frozen=True)
class WireError:
    """An error reported by the remote side."""

    code: WireErrorCode
    message: str

    def __post_init__(self) -> None:
        if not isinstance(self.code, WireErrorCode):
            raise TypeError("WireError.code must be a WireErrorCode")
        if not isinstance(self.message, str):
            raise TypeError("WireError.message must be a string")


WireMessage = Union[
    Ping, Pong, HelloRequest, HelloResponse, BatchUploadRequest, BatchUploadResponse, WireError
]

# Variant order of the wire message; the binary encoding relies on it.
WIRE_MESSAGE_TYPES: tuple[type, ...] = (
    Ping,
    Pong,
    HelloRequest,
    HelloResponse,
    BatchUploadRequest,
    BatchUploadResponse,
    WireError,
)


@dataclass(frozen=True)
class Envelope:
    """A message with its id and, for replies, the id it answers."""

    msg_id: MessageId
    reply_to: MessageId | None
    payload: WireMessage

    def __post_init__(self) -> None:
        if not isinstance(self.msg_id, MessageId):
            raise TypeError("Envelope.msg_id must be a MessageId")
        if self.reply_to is not None and not isinstance(self.reply_to, MessageId):
            raise TypeError("Envelope.reply_to must be a MessageId or None")
        if not isinstance(self.payload, WIRE_MESSAGE_TYPES):
            raise TypeError(f"unsupported payload type {type(self.payload).__name__}")