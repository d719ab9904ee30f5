"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from mq_gateway.app.constants import (
    CHANNEL_PROPERTY,
    HOST_NAME_PROPERTY,
    PORT_PROPERTY,
    REQUIRED_PROPERTIES,
    USER_ID_PROPERTY,
)
from mq_gateway.app.domain.errors import InvalidPropertiesError


@dataclass(frozen=True)
class ErrorState:
    """Last recorded operational failure (value object)."""

    has_error: bool = False
    error_message: str = ""
    exception: BaseException | None = None

    @staticmethod
    def from_exception(exc: BaseException) -> "ErrorState":
        return ErrorState(has_error=True, error_message=str(exc), exception=exc)


NO_ERROR = ErrorState()


def build_properties(
    host_name: str,
    channel_name: str,
    port_number: int | str,
    user_id: str | None = None,
) -> dict[str, Any]:
    properties: dict[str, Any] = {
        HOST_NAME_PROPERTY: host_name,
        CHANNEL_PROPERTY: channel_name,
        PORT_PROPERTY: port_number,
    }
    if user_id:
        properties[USER_ID_PROPERTY] = user_id
    return properties


def _is_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    try:
        int(str(value).strip())
    except ValueError:
        return False
    return True


def check_properties(properties: Mapping[str, Any] | None) -> None:
    """Raise InvalidPropertiesError unless host, channel and an integer port are present."""
    if not properties:
        raise InvalidPropertiesError("connection properties are missing or empty")
    for key in REQUIRED_PROPERTIES:
        value = properties.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise InvalidPropertiesError(f"connection property missing: {key}")
    if not _is_int(properties[PORT_PROPERTY]):
        raise InvalidPropertiesError(
            f"connection property {PORT_PROPERTY} must be an integer, got {properties[PORT_PROPERTY]!r}"
        )


def freeze_properties(properties: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy so captured properties cannot be mutated after connect."""
    return MappingProxyType(dict(properties))
