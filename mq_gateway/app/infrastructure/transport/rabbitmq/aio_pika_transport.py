"""
RabbitMQ transport: blocking facade over aio_pika.

Each session owns an event loop running on a daemon thread; blocking calls submit
coroutines with run_coroutine_threadsafe and wait for the result.

Mapping onto the transport port:
  - channel property  -> virtual host; user_id/password -> login (guest/guest when absent).
  - access_queue       -> passive declare (queues are never created here).
  - current_depth      -> message_count of a fresh passive declare.
  - put                -> publish on the default exchange, persistent delivery.
  - get                -> basic.get; browse rejects with requeue so the message stays queued.
  - commit             -> no-op, acks are sent per get.
Connection-level failures are reported as CONNECTION_BROKEN.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Any, Coroutine, Mapping, TypeVar
from urllib.parse import quote

import aio_pika
from aio_pika import DeliveryMode, Message
from loguru import logger

from mq_gateway.app.constants import (
    CHANNEL_PROPERTY,
    HOST_NAME_PROPERTY,
    PASSWORD_PROPERTY,
    PORT_PROPERTY,
    USER_ID_PROPERTY,
)
from mq_gateway.app.ports.transport_provider import (
    CONNECTION_BROKEN,
    GetOptions,
    OpenOptions,
    TransportError,
)

T = TypeVar("T")

UNKNOWN_OBJECT_NAME = 2085
NO_MSG_AVAILABLE = 2033
NOT_OPEN_FOR_OUTPUT = 2039
NOT_OPEN_FOR_BROWSE = 2036

DEFAULT_LOGIN = "guest"
OPERATION_TIMEOUT_SECONDS = 30.0

_CONNECTION_ERRORS = (
    aio_pika.exceptions.AMQPConnectionError,
    aio_pika.exceptions.ConnectionClosed,
    aio_pika.exceptions.ChannelInvalidStateError,
    ConnectionError,
)


def build_amqp_url(properties: Mapping[str, Any]) -> str:
    login = str(properties.get(USER_ID_PROPERTY) or DEFAULT_LOGIN)
    password = str(properties.get(PASSWORD_PROPERTY) or (DEFAULT_LOGIN if login == DEFAULT_LOGIN else ""))
    vhost = str(properties[CHANNEL_PROPERTY])
    return (
        f"amqp://{quote(login, safe='')}:{quote(password, safe='')}"
        f"@{properties[HOST_NAME_PROPERTY]}:{int(properties[PORT_PROPERTY])}/{quote(vhost, safe='')}"
    )


def _translate(e: Exception) -> TransportError:
    if isinstance(e, TransportError):
        return e
    if isinstance(e, aio_pika.exceptions.ChannelNotFoundEntity):
        return TransportError(str(e), UNKNOWN_OBJECT_NAME)
    if isinstance(e, _CONNECTION_ERRORS):
        return TransportError(str(e) or "connection to broker broken", CONNECTION_BROKEN)
    return TransportError(str(e) or type(e).__name__)


class _LoopThread:
    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="aio-pika-transport", daemon=True)
        self._thread.start()

    def run(self, coro: Coroutine[Any, Any, T], timeout: float = OPERATION_TIMEOUT_SECONDS) -> T:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError as e:
            # Stop the coroutine so it cannot ack after the caller gave up.
            future.cancel()
            raise TransportError(f"operation timed out after {timeout}s") from e
        except TransportError:
            raise
        except Exception as e:
            raise _translate(e) from e

    def stop(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=OPERATION_TIMEOUT_SECONDS)
        self._loop.close()


class AioPikaQueue:
    """Implements TransportQueue for a declared RabbitMQ queue."""

    def __init__(self, session: "AioPikaSession", name: str, queue: Any, options: OpenOptions) -> None:
        self._session = session
        self._name = name
        self._queue = queue
        self._options = options

    @property
    def current_depth(self) -> int:
        async def _depth() -> int:
            declared = await self._session._channel.declare_queue(self._name, passive=True)
            return int(declared.declaration_result.message_count)

        return self._session._run(_depth())

    def put(self, body: bytes, *, message_format: str, encoding: int) -> None:
        if not self._options & OpenOptions.OUTPUT:
            raise TransportError(f"queue {self._name} not open for output", NOT_OPEN_FOR_OUTPUT)
        message = Message(
            body,
            delivery_mode=DeliveryMode.PERSISTENT,
            headers={"mq_format": message_format.strip(), "mq_encoding": encoding},
        )

        async def _publish() -> None:
            await self._session._channel.default_exchange.publish(message, routing_key=self._name)

        self._session._run(_publish())

    def get(self, options: GetOptions, *, message_format: str, character_set: int | None = None) -> bytes:
        if options.browse_first and not self._options & OpenOptions.BROWSE:
            raise TransportError(f"queue {self._name} not open for browse", NOT_OPEN_FOR_BROWSE)
        timeout = options.wait_interval_ms / 1000 if options.wait and options.wait_interval_ms else None

        async def _get() -> bytes | None:
            incoming = await self._queue.get(no_ack=False, fail=False, timeout=timeout)
            if incoming is None:
                return None
            if options.browse_first:
                await incoming.reject(requeue=True)
            else:
                await incoming.ack()
            return incoming.body

        body = self._session._run(_get())
        if body is None:
            raise TransportError(f"no message available on {self._name}", NO_MSG_AVAILABLE)
        return body

    def close(self) -> None:
        return


class AioPikaSession:
    """Implements TransportSession over one aio_pika connection and channel."""

    def __init__(self, loop_thread: _LoopThread, connection: Any, channel: Any) -> None:
        self._loop_thread = loop_thread
        self._connection = connection
        self._channel = channel

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        return self._loop_thread.run(coro)

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    def access_queue(self, queue_name: str, options: OpenOptions) -> AioPikaQueue:
        async def _declare() -> Any:
            return await self._channel.declare_queue(queue_name, passive=True)

        try:
            queue = self._run(_declare())
        except TransportError as e:
            if e.reason_code == UNKNOWN_OBJECT_NAME:
                # A failed passive declare closes the channel.
                self._reopen_channel()
            raise
        return AioPikaQueue(self, queue_name, queue, options)

    def _reopen_channel(self) -> None:
        async def _open() -> Any:
            return await self._connection.channel()

        try:
            self._channel = self._run(_open())
        except TransportError as e:
            logger.warning("channel reopen failed: {}", e)

    def commit(self) -> None:
        return

    def disconnect(self) -> None:
        async def _close() -> None:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            await self._connection.close()

        try:
            self._run(_close())
        finally:
            self._connection = None
            self._loop_thread.stop()


class AioPikaTransportProvider:
    """Implements TransportProvider for RabbitMQ."""

    def open_session(self, queue_manager_name: str, properties: Mapping[str, Any]) -> AioPikaSession:
        loop_thread = _LoopThread()

        async def _connect() -> tuple[Any, Any]:
            connection = await aio_pika.connect(
                build_amqp_url(properties),
                client_properties={"connection_name": queue_manager_name},
            )
            channel = await connection.channel()
            return connection, channel

        try:
            connection, channel = loop_thread.run(_connect())
        except TransportError as e:
            logger.warning("broker {} connect failed: {}", queue_manager_name, e)
            loop_thread.stop()
            raise
        return AioPikaSession(loop_thread, connection, channel)
