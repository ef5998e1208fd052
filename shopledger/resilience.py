"""Global resilience and error-handler registration.

Synopsis:
Registers the request teardown rollback, the cold-start gate that holds API
traffic until the startup connect finishes, and the JSON error handlers that
turn persistence failures into 503/409/422 responses.

Glossary:
- Resilience handler: Global request teardown/error behavior for known failures.
- Cold-start gate: before-request hook that waits for the startup connect.
"""

from __future__ import annotations

import logging

from flask import request
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

from .extensions import db, get_gateway
from .persistence.errors import (
    DatabaseUnavailableError,
    DuplicateIdentifierError,
    ReconnectCooldownError,
    is_connection_error,
)
from .utils.api_responses import APIResponse

logger = logging.getLogger(__name__)

GATED_PATH_PREFIX = "/api/"
STARTING_UP_MESSAGE = "Service is starting up. Please retry in a few seconds."
UNAVAILABLE_MESSAGE = "Service temporarily unavailable. Please try again shortly."


def _safe_rollback() -> None:
    try:
        db.session.rollback()
    except SQLAlchemyError as exc:
        logger.debug("Session rollback failed: %s", exc)


def register_resilience_handlers(app) -> None:
    """Install global DB rollback, the cold-start gate and JSON failure handlers."""

    @app.before_request
    def _cold_start_gate():
        if not request.path.startswith(GATED_PATH_PREFIX):
            return None
        gateway = get_gateway(app)
        if gateway.is_connected or not gateway.startup_pending:
            return None

        timeout = float(app.config.get("DB_STARTUP_GATE_TIMEOUT_SECONDS", 45))
        gateway.wait_for_startup(timeout)
        if gateway.startup_pending and not gateway.is_connected:
            logger.warning("Rejecting %s %s: startup database connect still pending", request.method, request.path)
            return APIResponse.service_unavailable(STARTING_UP_MESSAGE, retry_after=timeout)
        return None

    @app.teardown_request
    def _rollback_on_error(exc):
        if exc is not None:
            _safe_rollback()

    @app.errorhandler(ReconnectCooldownError)
    def _cooldown_handler(error: ReconnectCooldownError):
        _safe_rollback()
        return APIResponse.service_unavailable(str(error), retry_after=error.retry_after)

    @app.errorhandler(DatabaseUnavailableError)
    def _unavailable_handler(error: DatabaseUnavailableError):
        _safe_rollback()
        return APIResponse.service_unavailable(str(error) or UNAVAILABLE_MESSAGE)

    @app.errorhandler(DuplicateIdentifierError)
    def _duplicate_identifier_handler(error: DuplicateIdentifierError):
        _safe_rollback()
        return APIResponse.conflict(
            "Duplicate identifier, please retry the request.",
            errors={"identifier": [error.identifier], "kind": [error.kind]},
        )

    @app.errorhandler(IntegrityError)
    def _integrity_handler(error: IntegrityError):
        _safe_rollback()
        logger.warning("Integrity violation on %s %s: %s", request.method, request.path, error.orig)
        return APIResponse.conflict("Conflicting record, please retry the request.")

    @app.errorhandler(OperationalError)
    @app.errorhandler(DBAPIError)
    def _db_error_handler(error):
        _safe_rollback()
        if is_connection_error(error):
            logger.warning("Database connection failure on %s %s: %s", request.method, request.path, error)
        else:
            logger.error("Database error on %s %s: %s", request.method, request.path, error)
        return APIResponse.service_unavailable(UNAVAILABLE_MESSAGE)

    @app.errorhandler(ValueError)
    def _validation_handler(error: ValueError):
        return APIResponse.validation_error({"general": [str(error)]})
