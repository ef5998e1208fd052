from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils

INVOICE_STATUSES = ('UNPAID', 'HALFPAY', 'FULLPAID')


class Invoice(db.Model):
    __tablename__ = 'invoice'
    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey('shop.id'), nullable=False)
    invoice_number = db.Column(db.String(32), nullable=False)
    customer_name = db.Column(db.String(128))
    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    tax = db.Column(db.Float, nullable=False, default=0.0)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False, default=0.0)
    paid_amount = db.Column(db.Float, nullable=False, default=0.0)
    due_amount = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(16), nullable=False, default='UNPAID')  # UNPAID, HALFPAY, FULLPAID
    due_date = db.Column(db.DateTime)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)

    shop = db.relationship('Shop', back_populates='invoices')
    items = db.relationship(
        'InvoiceItem',
        back_populates='invoice',
        cascade='all, delete-orphan',
        order_by='InvoiceItem.id',
    )

    __table_args__ = (
        db.UniqueConstraint('shop_id', 'invoice_number', name='uq_invoice_shop_number'),
        db.Index('ix_invoice_shop', 'shop_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'shop_id': self.shop_id,
            'invoice_number': self.invoice_number,
            'customer_name': self.customer_name,
            'subtotal': self.subtotal,
            'tax': self.tax,
            'discount': self.discount,
            'total': self.total,
            'paid_amount': self.paid_amount,
            'due_amount': self.due_amount,
            'status': self.status,
            'due_date': TimezoneUtils.isoformat(self.due_date),
            'notes': self.notes,
            'created_at': TimezoneUtils.isoformat(self.created_at),
            'items': [item.to_dict() for item in self.items],
        }


class InvoiceItem(db.Model):
    __tablename__ = 'invoice_item'
    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoice.id'), nullable=False)
    product_name = db.Column(db.String(128), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    total = db.Column(db.Float, nullable=False)

    invoice = db.relationship('Invoice', back_populates='items')

    def to_dict(self):
        return {
            'product_name': self.product_name,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'total': self.total,
        }
