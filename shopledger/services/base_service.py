import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db, get_gateway


class BaseService:
    """Base service class providing common functionality"""

    def __init__(self, gateway=None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._gateway = gateway

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_gateway()
        return self._gateway

    @staticmethod
    def config_value(key: str, default: Any = None) -> Any:
        return current_app.config.get(key, default)

    def log_operation(self, operation: str, data: Dict[str, Any], shop_id: Optional[int] = None):
        """Centralized operation logging"""
        self.logger.info(f"Operation: {operation}", extra={
            'operation': operation,
            'data': data,
            'shop_id': shop_id,
            'service': self.__class__.__name__
        })

    def persist(self, record):
        """Add ``record`` and commit through the gateway; roll back on constraint violations."""
        def operation():
            db.session.add(record)
            db.session.commit()
            return record

        try:
            return self.gateway.execute(operation)
        except IntegrityError:
            db.session.rollback()
            raise

    def fetch(self, query_factory):
        """Run ``query_factory()`` through the gateway."""
        return self.gateway.execute(query_factory)

    # --- Payload parsing ---
    @staticmethod
    def parse_amount(payload: Dict[str, Any], field: str, default: float = 0.0, *, positive: bool = False) -> float:
        raw = payload.get(field, default)
        if raw is None or raw == '':
            raw = default
        try:
            value = float(raw)
        except (TypeError, ValueError):
            raise ValueError(f"{field} must be a number")
        if value != value or value in (float('inf'), float('-inf')):
            raise ValueError(f"{field} must be a finite number")
        if positive and value <= 0:
            raise ValueError(f"{field} must be greater than zero")
        if value < 0:
            raise ValueError(f"{field} cannot be negative")
        return value

    @staticmethod
    def parse_datetime(payload: Dict[str, Any], field: str) -> Optional[datetime]:
        raw = payload.get(field)
        if raw in (None, ''):
            return None
        if isinstance(raw, datetime):
            return raw
        try:
            return datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
        except ValueError:
            raise ValueError(f"{field} must be an ISO-8601 date or datetime")

    @staticmethod
    def require_items(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        items = payload.get('items')
        if not items or not isinstance(items, list):
            raise ValueError("At least one item is required")
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValueError(f"items[{index}] must be an object")
            if not str(item.get('product_name') or '').strip():
                raise ValueError(f"items[{index}].product_name is required")
        return items

    @staticmethod
    def money(value: float) -> float:
        return round(value, 2)
