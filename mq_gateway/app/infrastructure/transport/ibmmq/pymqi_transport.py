"""IBM MQ transport over pymqi (client connection)."""
from __future__ import annotations

from typing import Any, Mapping

import pymqi
from loguru import logger
from pymqi import CMQC, MQMIError

from mq_gateway.app.constants import (
    CHANNEL_PROPERTY,
    HOST_NAME_PROPERTY,
    PASSWORD_PROPERTY,
    PORT_PROPERTY,
    USER_ID_PROPERTY,
)
from mq_gateway.app.ports.transport_provider import GetOptions, OpenOptions, TransportError

_OPEN_OPTION_MAP = {
    OpenOptions.OUTPUT: CMQC.MQOO_OUTPUT,
    OpenOptions.INPUT_AS_Q_DEF: CMQC.MQOO_INPUT_AS_Q_DEF,
    OpenOptions.INQUIRE: CMQC.MQOO_INQUIRE,
    OpenOptions.BROWSE: CMQC.MQOO_BROWSE,
    OpenOptions.FAIL_IF_QUIESCING: CMQC.MQOO_FAIL_IF_QUIESCING,
}


def to_mq_open_options(options: OpenOptions) -> int:
    value = 0
    for flag, mq_value in _OPEN_OPTION_MAP.items():
        if options & flag:
            value |= mq_value
    return value


def to_gmo(options: GetOptions) -> pymqi.GMO:
    gmo = pymqi.GMO()
    flags = CMQC.MQGMO_WAIT if options.wait else CMQC.MQGMO_NO_WAIT
    if options.browse_first:
        flags |= CMQC.MQGMO_BROWSE_FIRST
    gmo.Options = flags
    gmo.WaitInterval = options.wait_interval_ms
    return gmo


def _translate(e: MQMIError) -> TransportError:
    return TransportError(str(e), e.reason)


class PymqiQueue:
    """Implements TransportQueue for an opened pymqi.Queue."""

    def __init__(self, queue: pymqi.Queue) -> None:
        self._queue = queue

    @property
    def current_depth(self) -> int:
        try:
            return int(self._queue.inquire(CMQC.MQIA_CURRENT_Q_DEPTH))
        except MQMIError as e:
            raise _translate(e) from e

    def put(self, body: bytes, *, message_format: str, encoding: int) -> None:
        md = pymqi.MD()
        md.Format = message_format.encode("ascii")
        md.Encoding = encoding
        try:
            self._queue.put(body, md, pymqi.PMO())
        except MQMIError as e:
            raise _translate(e) from e

    def get(self, options: GetOptions, *, message_format: str, character_set: int | None = None) -> bytes:
        md = pymqi.MD()
        md.Format = message_format.encode("ascii")
        if character_set is not None:
            md.CodedCharSetId = character_set
        try:
            return self._queue.get(None, md, to_gmo(options))
        except MQMIError as e:
            raise _translate(e) from e

    def close(self) -> None:
        try:
            self._queue.close()
        except MQMIError as e:
            raise _translate(e) from e


class PymqiSession:
    """Implements TransportSession over a connected pymqi.QueueManager."""

    def __init__(self, queue_manager: pymqi.QueueManager) -> None:
        self._queue_manager = queue_manager

    @property
    def is_connected(self) -> bool:
        return bool(self._queue_manager.is_connected)

    def access_queue(self, queue_name: str, options: OpenOptions) -> PymqiQueue:
        try:
            queue = pymqi.Queue(self._queue_manager, queue_name, to_mq_open_options(options))
        except MQMIError as e:
            raise _translate(e) from e
        return PymqiQueue(queue)

    def commit(self) -> None:
        try:
            self._queue_manager.commit()
        except MQMIError as e:
            raise _translate(e) from e

    def disconnect(self) -> None:
        try:
            self._queue_manager.disconnect()
        except MQMIError as e:
            raise _translate(e) from e


def build_channel_definition(properties: Mapping[str, Any]) -> pymqi.CD:
    cd = pymqi.CD()
    cd.ChannelName = str(properties[CHANNEL_PROPERTY]).encode()
    cd.ConnectionName = f"{properties[HOST_NAME_PROPERTY]}({int(properties[PORT_PROPERTY])})".encode()
    cd.ChannelType = CMQC.MQCHT_CLNTCONN
    cd.TransportType = CMQC.MQXPT_TCP
    return cd


class PymqiTransportProvider:
    """Implements TransportProvider for IBM MQ client connections."""

    def open_session(self, queue_manager_name: str, properties: Mapping[str, Any]) -> PymqiSession:
        cd = build_channel_definition(properties)
        user_id = properties.get(USER_ID_PROPERTY) or None
        password = properties.get(PASSWORD_PROPERTY) or None
        queue_manager = pymqi.QueueManager(None)
        try:
            if user_id:
                queue_manager.connect_with_options(queue_manager_name, cd=cd, user=user_id, password=password)
            else:
                queue_manager.connect_with_options(queue_manager_name, cd=cd)
        except MQMIError as e:
            logger.warning("queue manager {} connect failed: {}", queue_manager_name, e)
            raise _translate(e) from e
        return PymqiSession(queue_manager)
