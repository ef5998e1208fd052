import re
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Shop
from ..utils.timezone_utils import DEFAULT_TIMEZONE, TimezoneUtils
from .base_service import BaseService

_SLUG_STRIP = re.compile(r'[^a-z0-9]+')


def slugify(value: str) -> str:
    return _SLUG_STRIP.sub('-', (value or '').lower()).strip('-')[:64]


class ShopService(BaseService):
    def create_shop(self, payload: Dict[str, Any]) -> Shop:
        name = str(payload.get('name') or '').strip()
        if not name:
            raise ValueError("name is required")
        slug = slugify(payload.get('slug') or name)
        if not slug:
            raise ValueError("slug must contain letters or digits")
        timezone = payload.get('timezone') or DEFAULT_TIMEZONE
        if not TimezoneUtils.validate_timezone(timezone):
            raise ValueError(f"Unknown timezone: {timezone}")

        shop = Shop(name=name, slug=slug, timezone=timezone)
        try:
            self.persist(shop)
        except IntegrityError:
            raise ValueError(f"A shop with slug '{slug}' already exists")

        self.log_operation('create_shop', {'slug': slug, 'timezone': timezone}, shop_id=shop.id)
        return shop

    def get_shop(self, shop_id: int) -> Optional[Shop]:
        return self.fetch(lambda: db.session.get(Shop, shop_id))
