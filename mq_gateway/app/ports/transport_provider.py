"""Transport port: the operations the gateway needs from the messaging middleware.

The gateway depends on this port only; infrastructure (pymqi, aio_pika, in-memory)
implements it. Adapters translate their library failures into TransportError so the
gateway can single out a broken connection without importing vendor code.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntFlag
from typing import Mapping, Protocol, runtime_checkable

# Reason code reported when the session to the queue manager has been lost.
CONNECTION_BROKEN = 2009


class TransportError(Exception):
    """Failure reported by a transport provider, carrying the provider's reason code."""

    def __init__(self, message: str, reason_code: int | None = None) -> None:
        super().__init__(message)
        self.reason_code = reason_code

    @property
    def connection_broken(self) -> bool:
        return self.reason_code == CONNECTION_BROKEN


class OpenOptions(IntFlag):
    OUTPUT = 1
    INPUT_AS_Q_DEF = 2
    INQUIRE = 4
    BROWSE = 8
    FAIL_IF_QUIESCING = 16


@dataclass(frozen=True)
class GetOptions:
    """Get options. Defaults describe a plain destructive get that does not wait."""

    wait: bool = False
    browse_first: bool = False
    wait_interval_ms: int = 0


@runtime_checkable
class TransportQueue(Protocol):
    """A queue opened on a session with a fixed set of OpenOptions."""

    @property
    def current_depth(self) -> int: ...

    def put(self, body: bytes, *, message_format: str, encoding: int) -> None: ...

    def get(self, options: GetOptions, *, message_format: str, character_set: int | None = None) -> bytes:
        """Return the message body; an empty payload comes back as b""."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class TransportSession(Protocol):
    """One live session with a queue manager."""

    @property
    def is_connected(self) -> bool: ...

    def access_queue(self, queue_name: str, options: OpenOptions) -> TransportQueue: ...

    def commit(self) -> None: ...

    def disconnect(self) -> None: ...


class TransportProvider(Protocol):
    """Port: open sessions against a named queue manager."""

    def open_session(self, queue_manager_name: str, properties: Mapping[str, object]) -> TransportSession: ...
