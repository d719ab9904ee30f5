"""Gateway errors raised to callers (not recorded in the error slot)."""
from __future__ import annotations


class GatewayError(Exception):
    """Base for gateway argument and state errors."""


class InvalidPropertiesError(GatewayError, ValueError):
    """Connection properties are missing, empty or malformed."""


class GatewayNotConnectedError(GatewayError, RuntimeError):
    """A queue operation was requested without a live session."""
