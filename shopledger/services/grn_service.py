"""Goods received note creation with sequential per-shop numbering."""

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import GoodsReceivedNote, GrnItem
from ..persistence.errors import DuplicateIdentifierError
from .base_service import BaseService
from .identifier_service import SequentialPrefixedStrategy, build_identifier_strategy


def grn_payment_status(total: float, paid: float) -> str:
    if paid >= total:
        return 'PAID'
    if paid > 0:
        return 'PARTIAL'
    return 'UNPAID'


class GrnService(BaseService):
    def __init__(self, gateway=None, number_strategy=None, conflict_retries: Optional[int] = None):
        super().__init__(gateway)
        self._number_strategy = number_strategy
        self._conflict_retries = conflict_retries

    @property
    def number_strategy(self):
        if self._number_strategy is None:
            self._number_strategy = build_identifier_strategy(
                SequentialPrefixedStrategy.name,
                GoodsReceivedNote,
                'grn_number',
                self.gateway,
                default_prefix=self.config_value('GRN_NUMBER_PREFIX', 'GRN'),
            )
        return self._number_strategy

    @property
    def conflict_retries(self) -> int:
        if self._conflict_retries is None:
            self._conflict_retries = int(self.config_value('GRN_NUMBER_CONFLICT_RETRIES', 3))
        return max(self._conflict_retries, 0)

    def build_grn(self, shop, payload: Dict[str, Any]) -> GoodsReceivedNote:
        items = self.require_items(payload)
        grn = GoodsReceivedNote(
            shop_id=shop.id,
            supplier_name=(payload.get('supplier_name') or None),
            reference_no=(payload.get('reference_no') or None),
            notes=payload.get('notes'),
        )
        received_at = self.parse_datetime(payload, 'received_at')
        if received_at is not None:
            grn.received_at = received_at

        subtotal = 0.0
        for raw in items:
            quantity = self.parse_amount(raw, 'quantity', positive=True)
            cost_price = self.parse_amount(raw, 'cost_price')
            selling_price = raw.get('selling_price')
            line_total = self.money(quantity * cost_price)
            subtotal += line_total
            grn.items.append(GrnItem(
                product_name=str(raw['product_name']).strip(),
                quantity=quantity,
                cost_price=cost_price,
                selling_price=self.parse_amount(raw, 'selling_price') if selling_price is not None else None,
                total_cost=line_total,
            ))

        tax = self.parse_amount(payload, 'tax')
        discount = self.parse_amount(payload, 'discount')
        paid = self.parse_amount(payload, 'paid_amount')
        total = self.money(subtotal + tax - discount)
        if total < 0:
            raise ValueError("discount cannot exceed subtotal plus tax")

        grn.subtotal = self.money(subtotal)
        grn.tax = tax
        grn.discount = discount
        grn.total_amount = total
        grn.paid_amount = paid
        grn.payment_status = grn_payment_status(total, paid)
        return grn

    def create_grn(self, shop, payload: Dict[str, Any]) -> GoodsReceivedNote:
        grn = self.build_grn(shop, payload)
        attempts = self.conflict_retries + 1

        for attempt in range(1, attempts + 1):
            grn.grn_number = self.number_strategy.generate(shop.id)
            try:
                self.persist(grn)
            except IntegrityError:
                self.logger.warning(
                    "GRN number %s already taken for shop %s (attempt %s/%s)",
                    grn.grn_number, shop.id, attempt, attempts,
                )
                continue

            self.log_operation('create_grn', {
                'grn_number': grn.grn_number,
                'total_amount': grn.total_amount,
                'payment_status': grn.payment_status,
            }, shop_id=shop.id)
            return grn

        raise DuplicateIdentifierError(kind='grn', identifier=grn.grn_number, shop_id=shop.id)

    def get_grn(self, shop_id: int, number: str) -> Optional[GoodsReceivedNote]:
        return self.fetch(
            lambda: db.session.query(GoodsReceivedNote)
            .filter(GoodsReceivedNote.shop_id == shop_id, GoodsReceivedNote.grn_number == number)
            .first()
        )
