from __future__ import annotations

import logging
from contextlib import nullcontext

from flask import Flask, has_app_context
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text

logger = logging.getLogger(__name__)

LIVENESS_QUERY = "SELECT 1"


class SQLAlchemyDriver:
    """Connect/disconnect/ping primitives over a Flask-SQLAlchemy engine."""

    def __init__(self, db: SQLAlchemy, app: Flask):
        self._db = db
        self._app = app

    def _context(self):
        # Background reconnects run outside any request, so push the app context.
        return nullcontext() if has_app_context() else self._app.app_context()

    def connect(self) -> None:
        with self._context():
            with self._db.engine.connect() as connection:
                connection.execute(text(LIVENESS_QUERY))

    def disconnect(self) -> None:
        with self._context():
            try:
                self._db.session.remove()
            finally:
                self._db.engine.dispose()

    def ping(self) -> None:
        with self._context():
            with self._db.engine.connect() as connection:
                connection.execute(text(LIVENESS_QUERY)).scalar()

    def reset(self) -> None:
        with self._context():
            try:
                self._db.session.rollback()
            except Exception as exc:
                logger.debug("Session rollback after reconnect failed: %s", exc)
