"""Connection resilience for the persistence layer."""

from .errors import (
    ConnectionErrorKind,
    DatabaseUnavailableError,
    DuplicateIdentifierError,
    ReconnectCooldownError,
    classify,
    is_connection_error,
)
from .gateway import GatewayDriver, ResilientGateway
from .state import ConnectionState, HealthStatus, ReconnectOutcome

__all__ = [
    "ConnectionErrorKind",
    "ConnectionState",
    "DatabaseUnavailableError",
    "DuplicateIdentifierError",
    "GatewayDriver",
    "HealthStatus",
    "ReconnectCooldownError",
    "ReconnectOutcome",
    "ResilientGateway",
    "classify",
    "is_connection_error",
]
