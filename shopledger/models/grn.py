from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils

GRN_PAYMENT_STATUSES = ('UNPAID', 'PARTIAL', 'PAID')


class GoodsReceivedNote(db.Model):
    """Supplier delivery record; numbered ``GRN-<year>-<seq>`` per shop."""

    __tablename__ = 'goods_received_note'
    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey('shop.id'), nullable=False)
    grn_number = db.Column(db.String(32), nullable=False)
    supplier_name = db.Column(db.String(128))
    reference_no = db.Column(db.String(64))
    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    tax = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    paid_amount = db.Column(db.Float, nullable=False, default=0.0)
    payment_status = db.Column(db.String(16), nullable=False, default='UNPAID')
    status = db.Column(db.String(16), nullable=False, default='COMPLETED')
    notes = db.Column(db.Text)
    received_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)

    shop = db.relationship('Shop', back_populates='grns')
    items = db.relationship(
        'GrnItem',
        back_populates='grn',
        cascade='all, delete-orphan',
        order_by='GrnItem.id',
    )

    __table_args__ = (
        db.UniqueConstraint('shop_id', 'grn_number', name='uq_grn_shop_number'),
        db.Index('ix_grn_shop', 'shop_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'shop_id': self.shop_id,
            'grn_number': self.grn_number,
            'supplier_name': self.supplier_name,
            'reference_no': self.reference_no,
            'subtotal': self.subtotal,
            'tax': self.tax,
            'discount': self.discount,
            'total_amount': self.total_amount,
            'paid_amount': self.paid_amount,
            'payment_status': self.payment_status,
            'status': self.status,
            'notes': self.notes,
            'received_at': TimezoneUtils.isoformat(self.received_at),
            'created_at': TimezoneUtils.isoformat(self.created_at),
            'items': [item.to_dict() for item in self.items],
        }


class GrnItem(db.Model):
    __tablename__ = 'grn_item'
    id = db.Column(db.Integer, primary_key=True)
    grn_id = db.Column(db.Integer, db.ForeignKey('goods_received_note.id'), nullable=False)
    product_name = db.Column(db.String(128), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    cost_price = db.Column(db.Float, nullable=False)
    selling_price = db.Column(db.Float)
    total_cost = db.Column(db.Float, nullable=False)

    grn = db.relationship('GoodsReceivedNote', back_populates='items')

    def to_dict(self):
        return {
            'product_name': self.product_name,
            'quantity': self.quantity,
            'cost_price': self.cost_price,
            'selling_price': self.selling_price,
            'total_cost': self.total_cost,
        }
