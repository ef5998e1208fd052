from ..extensions import db
from ..utils.timezone_utils import DEFAULT_TIMEZONE, TimezoneUtils


class Shop(db.Model):
    """Tenant boundary: every invoice and GRN belongs to exactly one shop."""

    __tablename__ = 'shop'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True)
    timezone = db.Column(db.String(64), nullable=False, default=DEFAULT_TIMEZONE)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)

    invoices = db.relationship('Invoice', back_populates='shop', lazy='dynamic')
    grns = db.relationship('GoodsReceivedNote', back_populates='shop', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'timezone': self.timezone,
            'created_at': TimezoneUtils.isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<Shop {self.slug}>'
