"""
Queue gateway: connection lifecycle and serialized queue operations.

Lifecycle:
  DISCONNECTED -> CONNECTING -> CONNECTED.
  Each operation may close the session afterwards (keep_alive=False): CONNECTED -> CLOSING -> DISCONNECTED.
  On a broken connection seen by get_depth: CONNECTED -> RECONNECTING (backoff) -> CONNECTING -> CONNECTED.
  On dispose(): -> CLOSING -> CLOSED. connect() may still be called again afterwards.

Errors:
  - connect(), argument checks and check_connection() raise to the caller.
  - Transport failures inside write/read/read_only/read_safe/get_depth/try_reconnect are
    recorded in the error slot (has_error, error_message, exception) and the operation
    returns an empty result. The slot is per thread: a thread sees what its own last
    failing call recorded.

Concurrency:
  - One re-entrant lock guards every operation, including write, connect and close, so
    queue bodies never interleave on the shared session. It is re-entrant because
    keep_alive closes and broken-connection recovery run while the lock is held.
  - The reconnect backoff waits on an Event; cancel_reconnect() and dispose() interrupt it.
"""
from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Mapping

from loguru import logger

from mq_gateway.app.constants import (
    BROWSE_CHARACTER_SET,
    CHANNEL_PROPERTY,
    DEPTH_FAILED,
    DEPTH_NOT_ATTEMPTED,
    HOST_NAME_PROPERTY,
    PORT_PROPERTY,
    PUT_ENCODING,
    RECONNECT_BACKOFF_SECONDS,
    GatewayState,
    MessageFormat,
)
from mq_gateway.app.core import SERVICE_NAME
from mq_gateway.app.core.backoff import interruptible_sleep
from mq_gateway.app.domain.errors import GatewayNotConnectedError
from mq_gateway.app.domain.models import (
    NO_ERROR,
    ErrorState,
    build_properties,
    check_properties,
    freeze_properties,
)
from mq_gateway.app.ports.transport_provider import (
    GetOptions,
    OpenOptions,
    TransportError,
    TransportProvider,
    TransportQueue,
    TransportSession,
)

_READ_OPTIONS = OpenOptions.INPUT_AS_Q_DEF | OpenOptions.FAIL_IF_QUIESCING | OpenOptions.INQUIRE
_BROWSE_OPTIONS = _READ_OPTIONS | OpenOptions.BROWSE
_WRITE_OPTIONS = OpenOptions.OUTPUT | OpenOptions.FAIL_IF_QUIESCING


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class QueueGateway:
    """Owns one session with a queue manager and serializes queue operations on it."""

    def __init__(
        self,
        queue_manager_name: str,
        transport: TransportProvider,
        *,
        reconnect_backoff_seconds: float = RECONNECT_BACKOFF_SECONDS,
        get_wait_interval_ms: int = 0,
    ) -> None:
        if not queue_manager_name or not queue_manager_name.strip():
            raise ValueError("queue manager name cannot be empty")
        self._queue_manager_name = queue_manager_name
        self._transport = transport
        self._reconnect_backoff_seconds = reconnect_backoff_seconds
        self._get_wait_interval_ms = get_wait_interval_ms
        self._session: TransportSession | None = None
        self._properties: Mapping[str, Any] | None = None
        self._state = GatewayState.DISCONNECTED
        self._lock = threading.RLock()
        self._errors = threading.local()
        self._reconnect_cancelled = threading.Event()

    def __enter__(self) -> "QueueGateway":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()

    @property
    def queue_manager_name(self) -> str:
        return self._queue_manager_name

    @property
    def properties(self) -> Mapping[str, Any] | None:
        return self._properties

    @property
    def state(self) -> GatewayState:
        return self._state

    @property
    def is_connected(self) -> bool:
        session = self._session
        return session is not None and session.is_connected

    @property
    def has_error(self) -> bool:
        return self._error_state.has_error

    @property
    def error_message(self) -> str:
        return self._error_state.error_message

    @property
    def exception(self) -> BaseException | None:
        return self._error_state.exception

    @property
    def _error_state(self) -> ErrorState:
        return getattr(self._errors, "state", NO_ERROR)

    def clear_error(self) -> None:
        self._errors.state = NO_ERROR

    def _record_error(self, operation: str, exc: BaseException) -> None:
        self._errors.state = ErrorState.from_exception(exc)
        logger.warning("{} failed on {}: {}", operation, self._queue_manager_name, exc)

    def _set_state(self, state: GatewayState) -> None:
        self._state = state

    # Connection management

    def connect(
        self,
        host_name: str,
        channel_name: str,
        port_number: int | str,
        user_id: str | None = None,
    ) -> None:
        self.connect_with_properties(build_properties(host_name, channel_name, port_number, user_id))

    def connect_with_properties(self, properties: Mapping[str, Any]) -> None:
        """Validate and store properties, then open a session. Provider failures propagate."""
        check_properties(properties)
        with self._lock:
            frozen = freeze_properties(properties)
            self._properties = frozen
            self._reconnect_cancelled.clear()
            if self._session is not None:
                self.close()
            self._set_state(GatewayState.CONNECTING)
            _log(
                "mq_connecting",
                queue_manager=self._queue_manager_name,
                host=frozen[HOST_NAME_PROPERTY],
                port=frozen[PORT_PROPERTY],
                channel=frozen[CHANNEL_PROPERTY],
            )
            try:
                self._session = self._transport.open_session(self._queue_manager_name, frozen)
            except Exception:
                _log("mq_connect_failed", queue_manager=self._queue_manager_name)
                self._set_state(GatewayState.DISCONNECTED)
                raise
            self._set_state(GatewayState.CONNECTED)
            _log("mq_connected", queue_manager=self._queue_manager_name)

    def close(self) -> None:
        """Commit and disconnect the live session, if any. Safe to call repeatedly."""
        with self._lock:
            session = self._session
            if session is None:
                return
            if not session.is_connected:
                # Nothing to commit on a dead session, but its resources still need releasing.
                try:
                    session.disconnect()
                except Exception as e:
                    logger.warning("disconnect of broken session failed on {}: {}", self._queue_manager_name, e)
                finally:
                    self._session = None
                    self._set_state(GatewayState.DISCONNECTED)
                return
            self._set_state(GatewayState.CLOSING)
            try:
                session.commit()
            except Exception as e:
                logger.warning("commit failed on {} (continuing to disconnect): {}", self._queue_manager_name, e)
            try:
                session.disconnect()
            except Exception as e:
                logger.warning("disconnect failed on {}: {}", self._queue_manager_name, e)
            finally:
                self._session = None
                self._set_state(GatewayState.DISCONNECTED)
            _log("mq_disconnected", queue_manager=self._queue_manager_name)

    def dispose(self) -> None:
        self._reconnect_cancelled.set()
        self.close()
        self._set_state(GatewayState.CLOSED)

    def cancel_reconnect(self) -> None:
        """Interrupt a pending reconnect backoff; later reconnects abort until the next connect()."""
        self._reconnect_cancelled.set()

    def try_reconnect(self) -> bool:
        """Close, back off, and reconnect with the stored properties. Failures are recorded."""
        with self._lock:
            self.close()
            self._set_state(GatewayState.RECONNECTING)
            _log(
                "mq_reconnect_attempt",
                queue_manager=self._queue_manager_name,
                delay=self._reconnect_backoff_seconds,
            )
            if not interruptible_sleep(self._reconnect_backoff_seconds, self._reconnect_cancelled):
                _log("mq_reconnect_cancelled", queue_manager=self._queue_manager_name)
                self._set_state(GatewayState.DISCONNECTED)
                return False
            try:
                if self._properties is None:
                    raise GatewayNotConnectedError("no connection properties to reconnect with")
                self.connect_with_properties(self._properties)
            except Exception as exc:
                self._set_state(GatewayState.DISCONNECTED)
                self._record_error("try_reconnect", exc)
                return False
            _log("mq_reconnected", queue_manager=self._queue_manager_name)
            return True

    def check_connection(self, queue_name: str) -> None:
        if not queue_name or not queue_name.strip():
            raise ValueError("queue name cannot be empty")
        if not self.is_connected:
            raise GatewayNotConnectedError(
                f"no live connection to queue manager {self._queue_manager_name}"
            )

    def _release(self, queue: TransportQueue | None, keep_alive: bool) -> None:
        if queue is not None:
            try:
                queue.close()
            except Exception as e:
                logger.warning("queue close failed: {}", e)
        if not keep_alive:
            self.close()

    # Queue operations

    def write(self, message: str, queue_name: str, keep_alive: bool = True) -> None:
        if not message:
            raise ValueError("message cannot be empty")
        with self._lock:
            self.check_connection(queue_name)
            queue: TransportQueue | None = None
            try:
                queue = self._session.access_queue(queue_name, _WRITE_OPTIONS)
                body = message.encode("utf-8")
                queue.put(body, message_format=MessageFormat.NONE, encoding=PUT_ENCODING)
                _log("message_put", queue=queue_name, size=len(body))
            except Exception as exc:
                self._record_error("write", exc)
            finally:
                self._release(queue, keep_alive)

    def read(self, queue_name: str, keep_alive: bool = True) -> str:
        """Destructive get of the first message; "" if the queue is empty or the get failed."""
        with self._lock:
            self.check_connection(queue_name)
            queue: TransportQueue | None = None
            try:
                queue = self._session.access_queue(queue_name, _READ_OPTIONS)
                if queue.current_depth <= 0:
                    return ""
                body = queue.get(GetOptions(), message_format=MessageFormat.STRING)
                if len(body) == 0:
                    return ""
                _log("message_got", queue=queue_name, size=len(body))
                return body.decode("utf-8", errors="replace")
            except Exception as exc:
                self._record_error("read", exc)
                return ""
            finally:
                self._release(queue, keep_alive)

    def read_only(self, queue_name: str, keep_alive: bool = True) -> str:
        """Browse the first message without removing it; "" if empty or failed."""
        with self._lock:
            self.check_connection(queue_name)
            queue: TransportQueue | None = None
            try:
                queue = self._session.access_queue(queue_name, _BROWSE_OPTIONS)
                if queue.current_depth <= 0:
                    return ""
                options = GetOptions(wait=True, browse_first=True, wait_interval_ms=self._get_wait_interval_ms)
                body = queue.get(
                    options,
                    message_format=MessageFormat.STRING,
                    character_set=BROWSE_CHARACTER_SET,
                )
                if len(body) == 0:
                    return ""
                _log("message_browsed", queue=queue_name, size=len(body))
                return body.decode("utf-8", errors="replace")
            except Exception as exc:
                self._record_error("read_only", exc)
                return ""
            finally:
                self._release(queue, keep_alive)

    def read_safe(
        self,
        queue_name: str,
        file_path: str | os.PathLike[str],
        encoding: str,
        keep_alive: bool = True,
    ) -> str:
        """
        Peek a message, append it to file_path, then consume one message from the queue.

        The peek always keeps the session open; keep_alive applies once the consume is done.
        Returns the peeked text. Best effort: the gateway lock keeps other threads of this
        instance out between the peek and the consume, but another process reading or
        writing the same queue in that window can make the consume remove a different
        message than the one that was persisted.
        """
        with self._lock:
            message = self.read_only(queue_name, keep_alive=True)
            try:
                if message:
                    with Path(file_path).open("a", encoding=encoding) as fh:
                        fh.write(message)
                    _log("message_persisted", queue=queue_name, path=str(file_path))
                self.read(queue_name)
            except Exception as exc:
                self._record_error("read_safe", exc)
            finally:
                if not keep_alive:
                    self.close()
            return message

    def get_depth(self, queue_name: str, keep_alive: bool = True) -> int:
        """
        Current depth of queue_name.

        -1 when the depth could not be inspected at all (no session, or the session broke
        and a reconnect was attempted instead); 0 when inspection failed for any other reason.
        """
        if not queue_name or not queue_name.strip():
            raise ValueError("queue name cannot be empty")
        with self._lock:
            depth = DEPTH_NOT_ATTEMPTED
            queue: TransportQueue | None = None
            try:
                if self._session is None:
                    self._record_error(
                        "get_depth",
                        GatewayNotConnectedError(
                            f"no live connection to queue manager {self._queue_manager_name}"
                        ),
                    )
                    return depth
                if not self._session.is_connected:
                    _log("broker_disconnect_detected", queue_manager=self._queue_manager_name)
                    self.try_reconnect()
                    return depth
                queue = self._session.access_queue(queue_name, _READ_OPTIONS)
                depth = queue.current_depth
            except TransportError as exc:
                if exc.connection_broken:
                    _log("broker_disconnect_detected", queue_manager=self._queue_manager_name)
                    self.try_reconnect()
                else:
                    self._record_error("get_depth", exc)
                    depth = DEPTH_FAILED
            except Exception as exc:
                self._record_error("get_depth", exc)
                depth = DEPTH_FAILED
            finally:
                self._release(queue, keep_alive)
            return depth
