import pytest

from shopledger.extensions import db
from shopledger.models import GoodsReceivedNote
from shopledger.persistence import DuplicateIdentifierError
from shopledger.services import GrnService
from shopledger.services.grn_service import grn_payment_status
from shopledger.utils.timezone_utils import TimezoneUtils


class StubNumbers:
    def __init__(self, *numbers):
        self.numbers = list(numbers)
        self.calls = 0

    def generate(self, shop_id, *args, **kwargs):
        self.calls += 1
        return self.numbers.pop(0) if len(self.numbers) > 1 else self.numbers[0]


def _payload(**overrides):
    payload = {
        'supplier_name': 'Lanka Wholesale',
        'reference_no': 'INV-7781',
        'items': [
            {'product_name': 'Sugar 1kg', 'quantity': 10, 'cost_price': 2.5, 'selling_price': 3},
            {'product_name': 'Tea 400g', 'quantity': 4, 'cost_price': 5},
        ],
        'tax': 5,
        'discount': 0,
        'paid_amount': 0,
    }
    payload.update(overrides)
    return payload


@pytest.mark.parametrize('total, paid, expected', [
    (50.0, 50.0, 'PAID'),
    (50.0, 10.0, 'PARTIAL'),
    (50.0, 0.0, 'UNPAID'),
])
def test_grn_payment_status(total, paid, expected):
    assert grn_payment_status(total, paid) == expected


def test_create_grn_numbers_sequentially(app, shop):
    year = TimezoneUtils.current_year(shop.timezone)
    service = GrnService()

    first = service.create_grn(shop, _payload())
    second = service.create_grn(shop, _payload(paid_amount=10))

    assert first.grn_number == f'GRN-{year}-0001'
    assert second.grn_number == f'GRN-{year}-0002'
    assert first.subtotal == 45.0
    assert first.total_amount == 50.0
    assert first.payment_status == 'UNPAID'
    assert second.payment_status == 'PARTIAL'
    assert first.items[0].selling_price == 3.0
    assert first.items[1].selling_price is None


def test_numbering_is_independent_per_shop(app, shop, other_shop):
    service = GrnService()

    a = service.create_grn(shop, _payload())
    b = service.create_grn(other_shop, _payload())

    assert a.grn_number.endswith('-0001')
    assert b.grn_number.endswith('-0001')
    assert b.grn_number.startswith(f'GRN-{TimezoneUtils.current_year(other_shop.timezone)}-')


def test_configured_prefix(app, shop):
    app.config['GRN_NUMBER_PREFIX'] = 'rcv'

    grn = GrnService().create_grn(shop, _payload())

    assert grn.grn_number.startswith('RCV-')


def test_conflict_is_retried_with_a_fresh_number(app, shop, caplog):
    GrnService(number_strategy=StubNumbers('GRN-2026-0001')).create_grn(shop, _payload())
    numbers = StubNumbers('GRN-2026-0001', 'GRN-2026-0001', 'GRN-2026-0002')

    with caplog.at_level('WARNING'):
        grn = GrnService(number_strategy=numbers).create_grn(shop, _payload(paid_amount=50))

    assert grn.grn_number == 'GRN-2026-0002'
    assert grn.payment_status == 'PAID'
    assert numbers.calls == 3
    assert len(grn.items) == 2
    assert db.session.query(GoodsReceivedNote).count() == 2
    assert 'already taken' in caplog.text


def test_conflict_retries_are_bounded(app, shop):
    GrnService(number_strategy=StubNumbers('GRN-2026-0001')).create_grn(shop, _payload())
    numbers = StubNumbers('GRN-2026-0001')

    with pytest.raises(DuplicateIdentifierError) as excinfo:
        GrnService(number_strategy=numbers, conflict_retries=3).create_grn(shop, _payload())

    assert numbers.calls == 4
    assert excinfo.value.kind == 'grn'
    assert excinfo.value.identifier == 'GRN-2026-0001'
    assert db.session.query(GoodsReceivedNote).count() == 1


def test_create_grn_requires_items(app, shop):
    with pytest.raises(ValueError, match='At least one item'):
        GrnService().create_grn(shop, _payload(items=[]))


def test_get_grn_is_scoped_to_shop(app, shop, other_shop):
    service = GrnService()
    grn = service.create_grn(shop, _payload())

    assert service.get_grn(shop.id, grn.grn_number).id == grn.id
    assert service.get_grn(other_shop.id, grn.grn_number) is None
