"""Unit tests for QueueGateway connection management."""
from __future__ import annotations

import pytest

from mq_gateway.app.application.queue_gateway import QueueGateway
from mq_gateway.app.constants import GatewayState
from mq_gateway.app.domain.errors import GatewayNotConnectedError, InvalidPropertiesError
from mq_gateway.app.ports.transport_provider import TransportError
from tests.conftest import PROPERTIES, QUEUE, QUEUE_MANAGER, FakeTransport, broken_connection


@pytest.mark.parametrize("name", ["", "   "])
def test_empty_queue_manager_name_rejected(name):
    with pytest.raises(ValueError):
        QueueGateway(name, FakeTransport())


@pytest.mark.parametrize(
    "properties",
    [
        None,
        {},
        {"channel": "C", "port": 1414},
        {"host": "h", "port": 1414},
        {"host": "h", "channel": "C"},
        {"host": "h", "channel": "C", "port": "abc"},
        {"host": "h", "channel": "C", "port": "14.14"},
        {"host": "", "channel": "C", "port": 1414},
        {"host": "h", "channel": "C", "port": None},
    ],
)
def test_invalid_properties_fail_before_provider_call(transport, properties):
    gw = QueueGateway(QUEUE_MANAGER, transport)

    with pytest.raises(InvalidPropertiesError):
        gw.connect_with_properties(properties)

    assert transport.count("open_session") == 0
    assert gw.is_connected is False
    assert gw.properties is None


def test_invalid_properties_error_is_a_value_error(transport):
    gw = QueueGateway(QUEUE_MANAGER, transport)
    with pytest.raises(ValueError):
        gw.connect("h", "C", "not-a-port")


def test_connect_with_discrete_parameters_builds_properties(transport):
    gw = QueueGateway(QUEUE_MANAGER, transport)

    gw.connect("mq.local", "DEV.APP.SVRCONN", "1414", user_id="app")

    name, props = transport.opened_with[0]
    assert name == QUEUE_MANAGER
    assert dict(props) == {"host": "mq.local", "channel": "DEV.APP.SVRCONN", "port": "1414", "user_id": "app"}
    assert gw.is_connected is True
    assert gw.state == GatewayState.CONNECTED


def test_connect_without_user_id_omits_identity(transport):
    gw = QueueGateway(QUEUE_MANAGER, transport)
    gw.connect("mq.local", "DEV.APP.SVRCONN", 1414)
    assert "user_id" not in transport.opened_with[0][1]


def test_stored_properties_are_a_read_only_copy(transport):
    source = dict(PROPERTIES)
    gw = QueueGateway(QUEUE_MANAGER, transport)
    gw.connect_with_properties(source)

    source["host"] = "elsewhere"
    assert gw.properties["host"] == "mq.local"
    with pytest.raises(TypeError):
        gw.properties["host"] = "elsewhere"  # type: ignore[index]


def test_provider_failure_on_connect_propagates_and_is_not_recorded(transport):
    transport.open_error = TransportError("MQRC_HOST_NOT_AVAILABLE", 2538)
    gw = QueueGateway(QUEUE_MANAGER, transport)

    with pytest.raises(TransportError) as exc_info:
        gw.connect_with_properties(PROPERTIES)

    assert exc_info.value is transport.open_error
    assert gw.has_error is False
    assert gw.is_connected is False
    assert gw.state == GatewayState.DISCONNECTED


def test_close_commits_then_disconnects(gateway, transport):
    gateway.close()

    operations = [call[0] for call in transport.calls]
    assert operations[-2:] == ["commit", "disconnect"]
    assert gateway.is_connected is False
    assert gateway.state == GatewayState.DISCONNECTED


def test_close_is_idempotent(gateway, transport):
    gateway.close()
    gateway.close()
    assert transport.count("commit") == 1
    assert transport.count("disconnect") == 1


def test_close_without_connection_is_noop(transport):
    gw = QueueGateway(QUEUE_MANAGER, transport)
    gw.close()
    assert transport.calls == []


def test_close_drops_session_that_already_disconnected(gateway, transport):
    transport.sessions[0].connected = False
    gateway.close()
    assert transport.count("commit") == 0
    assert transport.count("disconnect") == 1
    assert gateway.is_connected is False
    assert gateway.state == GatewayState.DISCONNECTED


def test_close_of_broken_session_clears_handle_when_disconnect_fails(gateway, transport):
    session = transport.sessions[0]
    session.connected = False

    def failing_disconnect() -> None:
        transport.record("disconnect", None)
        raise broken_connection()

    session.disconnect = failing_disconnect
    gateway.close()

    assert transport.count("disconnect") == 1
    assert gateway.is_connected is False
    assert gateway.has_error is False
    gateway.close()
    assert transport.count("disconnect") == 1


def test_reconnect_after_close(gateway, transport):
    gateway.close()
    gateway.connect_with_properties(PROPERTIES)
    assert gateway.is_connected is True
    assert len(transport.sessions) == 2


def test_connect_again_closes_previous_session(gateway, transport):
    first = transport.sessions[0]
    gateway.connect_with_properties(PROPERTIES)
    assert first.connected is False
    assert first.commits == 1
    assert gateway.is_connected is True


def test_context_manager_disposes_on_exception(transport):
    with pytest.raises(RuntimeError):
        with QueueGateway(QUEUE_MANAGER, transport) as gw:
            gw.connect_with_properties(PROPERTIES)
            raise RuntimeError("boom")

    assert transport.sessions[0].connected is False
    assert gw.state == GatewayState.CLOSED


@pytest.mark.parametrize("operation", ["write", "read", "read_only"])
def test_operations_require_connection(transport, operation):
    gw = QueueGateway(QUEUE_MANAGER, transport)
    args = ("hello", QUEUE) if operation == "write" else (QUEUE,)

    with pytest.raises(GatewayNotConnectedError):
        getattr(gw, operation)(*args)

    assert gw.has_error is False


@pytest.mark.parametrize("operation", ["write", "read", "read_only", "get_depth"])
def test_operations_require_queue_name(gateway, operation):
    args = ("hello", "") if operation == "write" else ("",)
    with pytest.raises(ValueError):
        getattr(gateway, operation)(*args)


def test_read_safe_requires_connection(transport, tmp_path):
    gw = QueueGateway(QUEUE_MANAGER, transport)
    with pytest.raises(GatewayNotConnectedError):
        gw.read_safe(QUEUE, tmp_path / "out.txt", "utf-8")
