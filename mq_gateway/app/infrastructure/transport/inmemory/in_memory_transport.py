"""In-memory transport for testing and local mode.

Queues are per queue-manager name and shared by every session the provider opens, so two
gateways built on the same provider see the same messages. Queues are created on first
access. fail_next() injects a TransportError into the next call of an operation.
"""
from __future__ import annotations

import threading
from collections import deque
from typing import Mapping

from mq_gateway.app.constants import USER_ID_PROPERTY
from mq_gateway.app.ports.transport_provider import (
    CONNECTION_BROKEN,
    GetOptions,
    OpenOptions,
    TransportError,
)

# Reason codes reported for misuse of an opened queue.
NOT_OPEN_FOR_OUTPUT = 2039
NOT_OPEN_FOR_INPUT = 2037
NOT_OPEN_FOR_BROWSE = 2036
NOT_OPEN_FOR_INQUIRE = 2038
NO_MSG_AVAILABLE = 2033
CONNECTION_NOT_AUTHORIZED = 2035

OPERATIONS = ("open_session", "access_queue", "put", "get", "depth", "commit")


class InMemoryQueue:
    def __init__(self, session: "InMemorySession", name: str, options: OpenOptions) -> None:
        self._session = session
        self._name = name
        self._options = options
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def current_depth(self) -> int:
        self._session._check("depth")
        if not self._options & OpenOptions.INQUIRE:
            raise TransportError(f"queue {self._name} not open for inquire", NOT_OPEN_FOR_INQUIRE)
        return len(self._session._messages(self._name))

    def put(self, body: bytes, *, message_format: str, encoding: int) -> None:
        self._session._check("put")
        if not self._options & OpenOptions.OUTPUT:
            raise TransportError(f"queue {self._name} not open for output", NOT_OPEN_FOR_OUTPUT)
        with self._session._provider._lock:
            self._session._messages(self._name).append(bytes(body))

    def get(self, options: GetOptions, *, message_format: str, character_set: int | None = None) -> bytes:
        self._session._check("get")
        if options.browse_first and not self._options & OpenOptions.BROWSE:
            raise TransportError(f"queue {self._name} not open for browse", NOT_OPEN_FOR_BROWSE)
        if not options.browse_first and not self._options & OpenOptions.INPUT_AS_Q_DEF:
            raise TransportError(f"queue {self._name} not open for input", NOT_OPEN_FOR_INPUT)
        with self._session._provider._lock:
            messages = self._session._messages(self._name)
            if not messages:
                raise TransportError(f"no message available on {self._name}", NO_MSG_AVAILABLE)
            if options.browse_first:
                return messages[0]
            return messages.popleft()

    def close(self) -> None:
        self.closed = True


class InMemorySession:
    def __init__(self, provider: "InMemoryTransportProvider", queue_manager_name: str) -> None:
        self._provider = provider
        self._queue_manager_name = queue_manager_name
        self._connected = True
        self.commits = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _check(self, operation: str) -> None:
        if not self._connected:
            raise TransportError("connection to queue manager is closed", CONNECTION_BROKEN)
        if self._provider._broken:
            raise TransportError("connection to queue manager broken", CONNECTION_BROKEN)
        self._provider._raise_injected(operation)

    def _messages(self, queue_name: str) -> deque[bytes]:
        return self._provider._queue(self._queue_manager_name, queue_name)

    def access_queue(self, queue_name: str, options: OpenOptions) -> InMemoryQueue:
        self._check("access_queue")
        return InMemoryQueue(self, queue_name, options)

    def commit(self) -> None:
        self._check("commit")
        self.commits += 1

    def disconnect(self) -> None:
        self._connected = False


class InMemoryTransportProvider:
    """Implements TransportProvider without a broker."""

    def __init__(self, *, allowed_user_ids: set[str] | None = None) -> None:
        self._lock = threading.RLock()
        self._queues: dict[tuple[str, str], deque[bytes]] = {}
        self._failures: dict[str, TransportError] = {}
        self._broken = False
        self._allowed_user_ids = allowed_user_ids
        self.sessions: list[InMemorySession] = []

    def _queue(self, queue_manager_name: str, queue_name: str) -> deque[bytes]:
        key = (queue_manager_name, queue_name)
        with self._lock:
            if key not in self._queues:
                self._queues[key] = deque()
            return self._queues[key]

    def _raise_injected(self, operation: str) -> None:
        with self._lock:
            error = self._failures.pop(operation, None)
        if error is not None:
            raise error

    def fail_next(self, operation: str, error: TransportError) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f"Unsupported operation: {operation}")
        with self._lock:
            self._failures[operation] = error

    def break_connection(self) -> None:
        """Every existing and new session reports CONNECTION_BROKEN until restore_connection()."""
        self._broken = True

    def restore_connection(self) -> None:
        self._broken = False

    def messages(self, queue_manager_name: str, queue_name: str) -> list[bytes]:
        with self._lock:
            return list(self._queues.get((queue_manager_name, queue_name), ()))

    def open_session(self, queue_manager_name: str, properties: Mapping[str, object]) -> InMemorySession:
        self._raise_injected("open_session")
        if self._broken:
            raise TransportError(f"queue manager {queue_manager_name} unreachable", CONNECTION_BROKEN)
        user_id = properties.get(USER_ID_PROPERTY)
        if self._allowed_user_ids is not None and user_id not in self._allowed_user_ids:
            raise TransportError(f"user {user_id!r} not authorized", CONNECTION_NOT_AUTHORIZED)
        session = InMemorySession(self, queue_manager_name)
        self.sessions.append(session)
        return session
