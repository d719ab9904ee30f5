"""Client gateway for queue-manager connections."""
from mq_gateway.app.application.queue_gateway import QueueGateway
from mq_gateway.app.domain.errors import (
    GatewayError,
    GatewayNotConnectedError,
    InvalidPropertiesError,
)
from mq_gateway.app.ports.transport_provider import TransportError

__all__ = [
    "GatewayError",
    "GatewayNotConnectedError",
    "InvalidPropertiesError",
    "QueueGateway",
    "TransportError",
]
