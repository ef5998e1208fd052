"""Invoice creation and lookup for a single shop."""

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Invoice, InvoiceItem
from ..persistence.errors import DuplicateIdentifierError
from .base_service import BaseService
from .identifier_service import TimeRandomStrategy, build_identifier_strategy


def invoice_status(total: float, paid: float) -> str:
    if paid >= total:
        return 'FULLPAID'
    if paid > 0:
        return 'HALFPAY'
    return 'UNPAID'


class InvoiceService(BaseService):
    def __init__(self, gateway=None, number_strategy=None):
        super().__init__(gateway)
        self._number_strategy = number_strategy

    @property
    def number_strategy(self):
        if self._number_strategy is None:
            self._number_strategy = build_identifier_strategy(
                TimeRandomStrategy.name,
                Invoice,
                'invoice_number',
                self.gateway,
                max_retries=self.config_value('INVOICE_NUMBER_MAX_RETRIES', 5),
            )
        return self._number_strategy

    def build_invoice(self, shop, payload: Dict[str, Any]) -> Invoice:
        items = self.require_items(payload)
        invoice = Invoice(
            shop_id=shop.id,
            customer_name=(payload.get('customer_name') or None),
            notes=payload.get('notes'),
            due_date=self.parse_datetime(payload, 'due_date'),
        )

        subtotal = 0.0
        for index, raw in enumerate(items):
            quantity = self.parse_amount(raw, 'quantity', positive=True)
            unit_price = self.parse_amount(raw, 'unit_price')
            line_total = self.money(quantity * unit_price)
            subtotal += line_total
            invoice.items.append(InvoiceItem(
                product_name=str(raw['product_name']).strip(),
                quantity=quantity,
                unit_price=unit_price,
                total=line_total,
            ))

        tax = self.parse_amount(payload, 'tax')
        discount = self.parse_amount(payload, 'discount')
        paid = self.parse_amount(payload, 'paid_amount')
        total = self.money(subtotal + tax - discount)
        if total < 0:
            raise ValueError("discount cannot exceed subtotal plus tax")

        invoice.subtotal = self.money(subtotal)
        invoice.tax = tax
        invoice.discount = discount
        invoice.total = total
        invoice.paid_amount = paid
        invoice.due_amount = self.money(total - paid)
        invoice.status = invoice_status(total, paid)
        return invoice

    def create_invoice(self, shop, payload: Dict[str, Any]) -> Invoice:
        invoice = self.build_invoice(shop, payload)
        invoice.invoice_number = self.number_strategy.generate(shop.id)

        try:
            self.persist(invoice)
        except IntegrityError:
            self.logger.warning(
                "Invoice number %s collided on insert for shop %s", invoice.invoice_number, shop.id
            )
            raise DuplicateIdentifierError(
                kind='invoice', identifier=invoice.invoice_number, shop_id=shop.id
            )

        self.log_operation('create_invoice', {
            'invoice_number': invoice.invoice_number,
            'total': invoice.total,
            'status': invoice.status,
        }, shop_id=shop.id)
        return invoice

    def get_invoice(self, shop_id: int, number: str) -> Optional[Invoice]:
        return self.fetch(
            lambda: db.session.query(Invoice)
            .filter(Invoice.shop_id == shop_id, Invoice.invoice_number == number)
            .first()
        )
