"""Composition root: build and lifecycle-manage the transport and the gateway.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

import threading
from typing import Any

from loguru import logger

from mq_gateway.app.application.queue_gateway import QueueGateway
from mq_gateway.app.config.settings import Settings
from mq_gateway.app.constants import PASSWORD_PROPERTY
from mq_gateway.app.core import SERVICE_NAME
from mq_gateway.app.core.backoff import exponential_backoff
from mq_gateway.app.domain.errors import InvalidPropertiesError
from mq_gateway.app.domain.models import build_properties
from mq_gateway.app.infrastructure.transport.factory import create_transport_provider
from mq_gateway.app.ports.transport_provider import TransportProvider


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def connection_properties(settings: Settings) -> dict[str, Any]:
    properties = build_properties(
        settings.mq_host,
        settings.mq_channel,
        settings.mq_port,
        settings.mq_user_id or None,
    )
    if settings.mq_user_id and settings.mq_password:
        properties[PASSWORD_PROPERTY] = settings.mq_password
    return properties


class GatewayDependencies:
    """Holds the wired gateway and its lifecycle."""

    def __init__(self, *, settings: Settings, transport: TransportProvider | None = None) -> None:
        self._settings = settings
        self._transport = transport
        self._gateway: QueueGateway | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def gateway(self) -> QueueGateway:
        if self._gateway is None:
            raise RuntimeError("gateway is not initialized")
        return self._gateway

    def connect(self, stop: threading.Event | None = None) -> QueueGateway:
        """Build the gateway and connect it, retrying with exponential backoff."""
        if self._transport is None:
            self._transport = create_transport_provider(self._settings)
        self._gateway = QueueGateway(
            self._settings.queue_manager_name,
            self._transport,
            reconnect_backoff_seconds=self._settings.reconnect_backoff_seconds,
            get_wait_interval_ms=self._settings.get_wait_interval_ms,
        )
        properties = connection_properties(self._settings)
        attempt = 0
        for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
            stop=stop,
        ):
            attempt += 1
            _log("mq_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._gateway.connect_with_properties(properties)
                return self._gateway
            except InvalidPropertiesError:
                raise
            except Exception as e:
                logger.warning("mq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("mq_connect_failed", attempt=attempt)
                    raise
        raise RuntimeError("mq connect interrupted")

    def cancel_pending(self) -> None:
        if self._gateway is not None:
            self._gateway.cancel_reconnect()

    def close(self) -> None:
        if self._gateway is not None:
            try:
                self._gateway.dispose()
            except Exception as exc:
                logger.warning("gateway dispose failed: {}", exc)
            self._gateway = None


def create_gateway_dependencies(settings: Settings | None = None) -> GatewayDependencies:
    return GatewayDependencies(settings=settings or Settings())
