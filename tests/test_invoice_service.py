import re

import pytest

from shopledger.extensions import db, get_gateway
from shopledger.models import Invoice
from shopledger.persistence import DuplicateIdentifierError
from shopledger.services import InvoiceService
from shopledger.services.invoice_service import invoice_status


class StubNumbers:
    def __init__(self, *numbers):
        self.numbers = list(numbers)
        self.calls = 0

    def generate(self, shop_id, *args, **kwargs):
        self.calls += 1
        return self.numbers.pop(0) if len(self.numbers) > 1 else self.numbers[0]


def _payload(**overrides):
    payload = {
        'customer_name': 'Walk-in',
        'items': [
            {'product_name': 'Rice 5kg', 'quantity': 2, 'unit_price': 100},
            {'product_name': 'Dhal 1kg', 'quantity': 1, 'unit_price': 50},
        ],
        'tax': 10,
        'discount': 20,
        'paid_amount': 100,
    }
    payload.update(overrides)
    return payload


@pytest.mark.parametrize('total, paid, expected', [
    (240.0, 240.0, 'FULLPAID'),
    (240.0, 300.0, 'FULLPAID'),
    (240.0, 0.01, 'HALFPAY'),
    (240.0, 0.0, 'UNPAID'),
])
def test_invoice_status(total, paid, expected):
    assert invoice_status(total, paid) == expected


def test_create_invoice_computes_totals(app, shop):
    invoice = InvoiceService().create_invoice(shop, _payload())

    assert re.match(r'^\d{10}$', invoice.invoice_number)
    assert invoice.subtotal == 250.0
    assert invoice.total == 240.0
    assert invoice.due_amount == 140.0
    assert invoice.status == 'HALFPAY'
    assert [item.total for item in invoice.items] == [200.0, 50.0]

    stored = db.session.query(Invoice).filter_by(shop_id=shop.id).one()
    assert stored.invoice_number == invoice.invoice_number
    assert len(stored.items) == 2


def test_create_invoice_fully_paid_and_unpaid(app, shop):
    service = InvoiceService()

    assert service.create_invoice(shop, _payload(paid_amount=240)).status == 'FULLPAID'
    unpaid = service.create_invoice(shop, _payload(paid_amount=0))
    assert unpaid.status == 'UNPAID'
    assert unpaid.due_amount == 240.0


@pytest.mark.parametrize('payload, message', [
    ({'items': []}, 'At least one item'),
    ({'items': None}, 'At least one item'),
    ({'items': [{'product_name': '', 'quantity': 1, 'unit_price': 1}]}, 'product_name'),
    ({'items': [{'product_name': 'Soap', 'quantity': 0, 'unit_price': 1}]}, 'quantity'),
    ({'items': [{'product_name': 'Soap', 'quantity': 1, 'unit_price': 'abc'}]}, 'unit_price'),
    ({'items': [{'product_name': 'Soap', 'quantity': 1, 'unit_price': 10}], 'discount': 50}, 'discount'),
    ({'items': [{'product_name': 'Soap', 'quantity': 1, 'unit_price': 10}], 'due_date': 'soon'}, 'due_date'),
])
def test_create_invoice_rejects_invalid_payloads(app, shop, payload, message):
    with pytest.raises(ValueError, match=message):
        InvoiceService().create_invoice(shop, payload)

    assert db.session.query(Invoice).count() == 0


def test_duplicate_number_maps_to_duplicate_identifier_error(app, shop):
    service = InvoiceService(number_strategy=StubNumbers('0000000001'))
    service.create_invoice(shop, _payload())

    with pytest.raises(DuplicateIdentifierError) as excinfo:
        service.create_invoice(shop, _payload())

    assert excinfo.value.identifier == '0000000001'
    assert excinfo.value.kind == 'invoice'
    # Session is usable after the rollback.
    assert db.session.query(Invoice).count() == 1


def test_duplicate_with_transport_words_in_notes_is_not_reconnected(app, shop):
    gateway = get_gateway()
    service = InvoiceService(number_strategy=StubNumbers('0000000007'))
    payload = _payload(notes='courier call timed out, redeliver')
    service.create_invoice(shop, payload)

    with pytest.raises(DuplicateIdentifierError):
        service.create_invoice(shop, payload)

    assert gateway.state.last_connect_attempt is None
    assert gateway.state.is_reconnecting is False
    # The caller's shop is still attached to the session.
    assert shop.name == 'Corner Store'
    assert db.session.query(Invoice).filter_by(shop_id=shop.id).count() == 1


def test_same_number_allowed_in_different_shops(app, shop, other_shop):
    service = InvoiceService(number_strategy=StubNumbers('0000000001'))

    service.create_invoice(shop, _payload())
    service.create_invoice(other_shop, _payload())

    assert db.session.query(Invoice).filter_by(invoice_number='0000000001').count() == 2


def test_get_invoice_is_scoped_to_shop(app, shop, other_shop):
    service = InvoiceService()
    invoice = service.create_invoice(shop, _payload())

    assert service.get_invoice(shop.id, invoice.invoice_number).id == invoice.id
    assert service.get_invoice(other_shop.id, invoice.invoice_number) is None
    assert service.get_invoice(shop.id, '9999999999') is None


def test_create_invoice_uses_configured_retry_limit(app, shop):
    app.config['INVOICE_NUMBER_MAX_RETRIES'] = 2

    strategy = InvoiceService().number_strategy

    assert strategy.max_retries == 2
