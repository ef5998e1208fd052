from __future__ import annotations

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

from .persistence.extension import DatabaseResilience

__all__ = [
    "db",
    "migrate",
    "limiter",
    "db_resilience",
    "get_gateway",
]

db = SQLAlchemy()
migrate = Migrate(compare_type=True, render_as_batch=True)
db_resilience = DatabaseResilience(db)


def _default_rate_limits():
    """Resolve default rate limits from config or fall back to safe defaults."""
    config_value = current_app.config.get("RATELIMIT_DEFAULT")
    if isinstance(config_value, str) and config_value.strip():
        normalized = (
            config_value.replace(",", ";")
            .replace("|", ";")
            .split(";")
        )
        limits = [entry.strip() for entry in normalized if entry.strip()]
        if limits:
            return ";".join(limits)
    return "5000 per hour;1000 per minute"


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[_default_rate_limits],
)


def get_gateway(app=None):
    """Return the :class:`ResilientGateway` bound to ``app`` (or the current app)."""
    return db_resilience.gateway(app)
