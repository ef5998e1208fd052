from __future__ import annotations

import logging

from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy

from .driver import SQLAlchemyDriver
from .gateway import ResilientGateway

logger = logging.getLogger(__name__)

EXTENSION_KEY = "db_gateway"


class DatabaseResilience:
    """Flask extension that owns the app's :class:`ResilientGateway`."""

    def __init__(self, db: SQLAlchemy | None = None, app: Flask | None = None):
        self.db = db
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask, db: SQLAlchemy | None = None) -> ResilientGateway:
        database = db or self.db
        if database is None:
            raise RuntimeError("DatabaseResilience requires a Flask-SQLAlchemy instance.")

        gateway = ResilientGateway(
            SQLAlchemyDriver(database, app),
            reconnect_cooldown=float(app.config.get("DB_RECONNECT_COOLDOWN_SECONDS", 30)),
            settle_delay=float(app.config.get("DB_RECONNECT_SETTLE_SECONDS", 2)),
            probe_interval=float(app.config.get("DB_HEALTH_PROBE_INTERVAL_SECONDS", 60)),
            join_timeout=float(app.config.get("DB_RECONNECT_JOIN_TIMEOUT_SECONDS", 30)),
        )
        app.extensions[EXTENSION_KEY] = gateway

        if app.config.get("DB_CONNECT_ON_STARTUP", False):
            self.schedule_startup_connect(app, gateway)
        return gateway

    def schedule_startup_connect(self, app: Flask, gateway: ResilientGateway) -> None:
        """Connect in the background so the server can bind its port immediately."""
        attempts = int(app.config.get("DB_STARTUP_CONNECT_ATTEMPTS", 5))
        base_delay = float(app.config.get("DB_STARTUP_BASE_DELAY_SECONDS", 2))
        gateway.begin_startup()
        logger.info("Scheduling startup database connect (%s attempts, %.1fs base delay)", attempts, base_delay)
        gateway.run_in_background(lambda: gateway.connect_on_startup(attempts, base_delay))

    @staticmethod
    def gateway(app: Flask | None = None) -> ResilientGateway:
        target = app or current_app
        try:
            return target.extensions[EXTENSION_KEY]
        except KeyError as exc:
            raise RuntimeError("DatabaseResilience has not been initialised for this app.") from exc
