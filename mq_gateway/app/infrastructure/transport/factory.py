"""Transport factory: selects implementation from config. Only place that imports concrete transports."""
from __future__ import annotations

from mq_gateway.app.config.settings import Settings
from mq_gateway.app.ports.transport_provider import TransportProvider
from mq_gateway.app.infrastructure.transport.inmemory.in_memory_transport import InMemoryTransportProvider


def create_transport_provider(settings: Settings) -> TransportProvider:
    backend = settings.transport_backend.strip().lower()

    if backend == "ibmmq":
        # pymqi needs the IBM MQ client libraries, so it is only imported when selected.
        from mq_gateway.app.infrastructure.transport.ibmmq.pymqi_transport import PymqiTransportProvider

        return PymqiTransportProvider()

    if backend == "rabbitmq":
        from mq_gateway.app.infrastructure.transport.rabbitmq.aio_pika_transport import AioPikaTransportProvider

        return AioPikaTransportProvider()

    if backend == "inmemory":
        return InMemoryTransportProvider()

    raise ValueError(f"Unsupported transport backend: {backend}")
