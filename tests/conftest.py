from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Mapping

import pytest

from mq_gateway.app.application.queue_gateway import QueueGateway
from mq_gateway.app.infrastructure.transport.inmemory.in_memory_transport import InMemoryTransportProvider
from mq_gateway.app.ports.transport_provider import GetOptions, OpenOptions, TransportError

QUEUE_MANAGER = "QM1"
QUEUE = "Q.TEST"
PROPERTIES = {"host": "mq.local", "channel": "DEV.APP.SVRCONN", "port": 1414}


class FakeQueue:
    """Implements TransportQueue for tests; records every call on the owning transport."""

    def __init__(self, transport: "FakeTransport", name: str, options: OpenOptions) -> None:
        self._transport = transport
        self.name = name
        self.options = options

    @property
    def current_depth(self) -> int:
        self._transport.record("depth", self.name)
        if self._transport.depth_error is not None:
            raise self._transport.depth_error
        return len(self._transport.queues[self.name])

    def put(self, body: bytes, *, message_format: str, encoding: int) -> None:
        self._transport.record("put", self.name, body=body, message_format=message_format, encoding=encoding)
        if self._transport.put_error is not None:
            raise self._transport.put_error
        self._transport.queues[self.name].append(body)

    def get(self, options: GetOptions, *, message_format: str, character_set: int | None = None) -> bytes:
        self._transport.record(
            "get", self.name, options=options, message_format=message_format, character_set=character_set
        )
        time.sleep(self._transport.op_delay)
        if self._transport.get_error is not None:
            raise self._transport.get_error
        if not options.browse_first and self._transport.consume_error is not None:
            raise self._transport.consume_error
        messages = self._transport.queues[self.name]
        if options.browse_first:
            return messages[0]
        return messages.popleft()

    def close(self) -> None:
        with self._transport.lock:
            self._transport.active -= 1


class FakeSession:
    def __init__(self, transport: "FakeTransport") -> None:
        self._transport = transport
        self.connected = True
        self.commits = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    def access_queue(self, queue_name: str, options: OpenOptions) -> FakeQueue:
        self._transport.record("access_queue", queue_name, options=options)
        if self._transport.access_error is not None:
            raise self._transport.access_error
        with self._transport.lock:
            self._transport.active += 1
            self._transport.max_active = max(self._transport.max_active, self._transport.active)
        return FakeQueue(self._transport, queue_name, options)

    def commit(self) -> None:
        self._transport.record("commit", None)
        self.commits += 1

    def disconnect(self) -> None:
        self._transport.record("disconnect", None)
        self.connected = False


class FakeTransport:
    """Implements TransportProvider for tests. Set *_error attributes to inject failures."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.calls: list[tuple[str, Any, dict[str, Any]]] = []
        self.queues: dict[str, deque[bytes]] = {}
        self.sessions: list[FakeSession] = []
        self.opened_with: list[tuple[str, Mapping[str, Any]]] = []
        self.open_error: Exception | None = None
        self.access_error: Exception | None = None
        self.depth_error: Exception | None = None
        self.put_error: Exception | None = None
        self.get_error: Exception | None = None
        self.consume_error: Exception | None = None
        self.active = 0
        self.max_active = 0
        self.op_delay = 0.0

    def record(self, operation: str, queue_name: Any, **kwargs: Any) -> None:
        with self.lock:
            self.calls.append((operation, queue_name, kwargs))
            if queue_name is not None:
                self.queues.setdefault(queue_name, deque())

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    def seed(self, queue_name: str, *messages: str | bytes) -> None:
        queue = self.queues.setdefault(queue_name, deque())
        for message in messages:
            queue.append(message.encode() if isinstance(message, str) else message)

    def depth(self, queue_name: str) -> int:
        return len(self.queues.get(queue_name, ()))

    def open_session(self, queue_manager_name: str, properties: Mapping[str, Any]) -> FakeSession:
        self.record("open_session", None)
        self.opened_with.append((queue_manager_name, properties))
        if self.open_error is not None:
            raise self.open_error
        session = FakeSession(self)
        self.sessions.append(session)
        return session


def broken_connection() -> TransportError:
    return TransportError("MQRC_CONNECTION_BROKEN", 2009)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def gateway(transport: FakeTransport) -> QueueGateway:
    gw = QueueGateway(QUEUE_MANAGER, transport, reconnect_backoff_seconds=0.0)
    gw.connect_with_properties(PROPERTIES)
    return gw


@pytest.fixture()
def memory_transport() -> InMemoryTransportProvider:
    return InMemoryTransportProvider()


@pytest.fixture()
def memory_gateway(memory_transport: InMemoryTransportProvider) -> QueueGateway:
    gw = QueueGateway(QUEUE_MANAGER, memory_transport, reconnect_backoff_seconds=0.0)
    gw.connect("mq.local", "DEV.APP.SVRCONN", 1414)
    return gw
