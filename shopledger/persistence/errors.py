"""Database failure taxonomy and connection-error classification.

Synopsis:
Classify raw driver/ORM exceptions into a closed set of connection-failure
kinds, and define the error types the persistence layer raises to callers.

Glossary:
- Connection-class error: failure caused by the transport or the backend being
  unreachable, retried once after a coordinated reconnect.
- Unclassified error: anything else (constraint violations, bad SQL, logic
  errors); never retried.
- SQLSTATE: five-character status code reported by the database server.
"""

from __future__ import annotations

import enum
from typing import Iterator

__all__ = [
    "ConnectionErrorKind",
    "DatabaseUnavailableError",
    "DuplicateIdentifierError",
    "ReconnectCooldownError",
    "classify",
    "is_connection_error",
]


class ConnectionErrorKind(enum.Enum):
    INITIALIZATION = "initialization"
    DRIVER_PANIC = "driver_panic"
    POOL_TIMEOUT = "pool_timeout"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    TRANSPORT = "transport"


# --- Class-name signatures ---
# Matched by name so driver packages (psycopg2, asyncpg, pg8000) are optional.
_CLASS_SIGNATURES: dict[ConnectionErrorKind, frozenset[str]] = {
    ConnectionErrorKind.INITIALIZATION: frozenset(
        {
            "DisconnectionError",
            "InterfaceError",
            "ConnectionDoesNotExistError",
            "CannotConnectNowError",
        }
    ),
    ConnectionErrorKind.DRIVER_PANIC: frozenset(
        {
            "InternalClientError",
            "AdminShutdown",
            "CrashShutdown",
            "PanicException",
        }
    ),
}

# SQLAlchemy's documented code for "QueuePool limit ... connection timed out".
_SQLALCHEMY_POOL_TIMEOUT_CODE = "3o7r"

_SQLSTATE_SIGNATURES = frozenset(
    {
        "08000",  # connection_exception
        "08001",  # sqlclient_unable_to_establish_sqlconnection
        "08003",  # connection_does_not_exist
        "08004",  # sqlserver_rejected_establishment_of_sqlconnection
        "08006",  # connection_failure
        "57P01",  # admin_shutdown
        "57P02",  # crash_shutdown
        "57P03",  # cannot_connect_now
        "53300",  # too_many_connections
        "28P01",  # invalid_password
        "28000",  # invalid_authorization_specification
    }
)

_TRANSPORT_PHRASES = (
    "connection refused",
    "econnrefused",
    "connection reset",
    "econnreset",
    "timed out",
    "etimedout",
    "socket hang up",
    "server closed the connection",
    "server has closed the connection",
    "connection terminated",
    "could not connect to server",
    "can't reach database",
    "broken pipe",
    "prepared statement",
    "connection pool",
    "too many clients",
    "remaining connection slots",
)

# Statement-level failures; their messages can echo user data, so they are
# never classified by phrase.
_STATEMENT_FAILURES = frozenset({"IntegrityError", "DataError", "ProgrammingError", "NotSupportedError"})


class DatabaseUnavailableError(RuntimeError):
    """Raised when the database cannot be reached after the retry path."""

    def __init__(self, message: str = "Service temporarily unavailable. Please try again shortly."):
        super().__init__(message)


class ReconnectCooldownError(DatabaseUnavailableError):
    """Raised when a reconnect is refused because one was attempted recently."""

    def __init__(self, *, retry_after: float):
        super().__init__("Database reconnect cooldown active; please wait a moment and retry.")
        self.retry_after = max(retry_after, 0.0)


class DuplicateIdentifierError(RuntimeError):
    """Raised when a generated business identifier already exists for the shop."""

    def __init__(self, *, kind: str, identifier: str, shop_id: int | None = None):
        super().__init__(f"Duplicate {kind} number {identifier!r}; retry the write.")
        self.kind = kind
        self.identifier = identifier
        self.shop_id = shop_id


def _error_chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    pending: list[BaseException | None] = [error]
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.append(getattr(current, "orig", None))
        pending.append(current.__cause__)


def _sqlstate(error: BaseException) -> str | None:
    for attr in ("pgcode", "sqlstate"):
        value = getattr(error, attr, None)
        if isinstance(value, str) and value:
            return value.upper()
    return None


def _is_statement_failure(error: BaseException) -> bool:
    orig = getattr(error, "orig", None)
    return any(
        type(candidate).__name__ in _STATEMENT_FAILURES
        for candidate in (error, orig)
        if candidate is not None
    )


def _classify_single(error: BaseException) -> ConnectionErrorKind | None:
    if getattr(error, "connection_invalidated", False):
        return ConnectionErrorKind.INITIALIZATION

    name = type(error).__name__
    for kind, names in _CLASS_SIGNATURES.items():
        if name in names:
            return kind

    if getattr(error, "code", None) == _SQLALCHEMY_POOL_TIMEOUT_CODE:
        return ConnectionErrorKind.POOL_TIMEOUT
    if name == "TimeoutError" and type(error).__module__.startswith("sqlalchemy"):
        return ConnectionErrorKind.POOL_TIMEOUT

    if _sqlstate(error) in _SQLSTATE_SIGNATURES:
        return ConnectionErrorKind.BACKEND_UNAVAILABLE

    # A StatementError's own message carries the SQL and bound parameters;
    # phrases are matched against the wrapped driver error instead.
    if getattr(error, "orig", None) is not None:
        return None

    message = str(error).lower()
    if any(phrase in message for phrase in _TRANSPORT_PHRASES):
        return ConnectionErrorKind.TRANSPORT
    return None


def classify(error: BaseException) -> ConnectionErrorKind | None:
    """Return the connection-failure kind for ``error``, or ``None`` when unrelated."""
    if _is_statement_failure(error):
        return None
    for candidate in _error_chain(error):
        kind = _classify_single(candidate)
        if kind is not None:
            return kind
    return None


def is_connection_error(error: BaseException) -> bool:
    return classify(error) is not None
