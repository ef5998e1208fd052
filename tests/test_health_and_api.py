import re

import pytest
from sqlalchemy.exc import OperationalError

from shopledger.extensions import get_gateway
from shopledger.persistence import ReconnectCooldownError
from shopledger.services import InvoiceService, ShopService
from tests.conftest import FakeDriver

ITEMS = [{'product_name': 'Milk powder 400g', 'quantity': 3, 'unit_price': 12.5}]


def _create_shop(client, slug='main-street'):
    response = client.post('/api/v1/shops', json={'name': 'Main Street', 'slug': slug, 'timezone': 'UTC'})
    assert response.status_code == 201
    return response.get_json()['data']


def test_health_reports_connected_database(client):
    response = client.get('/health')

    assert response.status_code == 200
    body = response.get_json()
    assert body['status'] == 'ok'
    assert body['database'] == {'connected': True, 'error': None}
    assert body['timestamp']


def test_health_head_request(client):
    response = client.head('/health')

    assert response.status_code == 200
    assert response.data == b''


def test_health_degrades_without_failing(app, client, monkeypatch):
    gateway = get_gateway(app)
    driver = FakeDriver()
    driver.ping_errors = [OperationalError('SELECT 1', {}, Exception('connection refused'))]
    spawned = []
    monkeypatch.setattr(gateway, 'driver', driver)
    monkeypatch.setattr(gateway, '_spawn', spawned.append)

    response = client.get('/health')

    assert response.status_code == 200
    body = response.get_json()
    assert body['status'] == 'degraded'
    assert body['database']['connected'] is False
    assert 'connection refused' in body['database']['error']
    assert len(spawned) == 1


def test_cold_start_gate_rejects_api_until_startup_completes(app, client):
    gateway = get_gateway(app)
    app.config['DB_STARTUP_GATE_TIMEOUT_SECONDS'] = 0.01
    gateway.begin_startup()

    response = client.post('/api/v1/shops', json={'name': 'Early Bird'})
    assert response.status_code == 503
    assert 'starting up' in response.get_json()['message']
    assert response.headers['Retry-After'] == '1'

    # Health checks are never held by the gate.
    assert client.get('/health').status_code == 200

    assert gateway.connect_on_startup(max_attempts=1, base_delay=0) is True
    assert client.post('/api/v1/shops', json={'name': 'Early Bird'}).status_code == 201


def test_invoice_round_trip(client):
    shop = _create_shop(client)

    response = client.post(f"/api/v1/shops/{shop['id']}/invoices", json={'items': ITEMS, 'paid_amount': 10})
    assert response.status_code == 201
    invoice = response.get_json()['data']
    assert re.match(r'^\d{10}$', invoice['invoice_number'])
    assert invoice['total'] == 37.5
    assert invoice['status'] == 'HALFPAY'

    fetched = client.get(f"/api/v1/shops/{shop['id']}/invoices/{invoice['invoice_number']}")
    assert fetched.status_code == 200
    assert fetched.get_json()['data']['id'] == invoice['id']


def test_grn_round_trip(client):
    shop = _create_shop(client)
    payload = {'supplier_name': 'Acme', 'items': [{'product_name': 'Soap', 'quantity': 12, 'cost_price': 1.25}]}

    response = client.post(f"/api/v1/shops/{shop['id']}/grns", json=payload)
    assert response.status_code == 201
    grn = response.get_json()['data']
    assert re.match(r'^GRN-\d{4}-0001$', grn['grn_number'])
    assert grn['total_amount'] == 15.0

    fetched = client.get(f"/api/v1/shops/{shop['id']}/grns/{grn['grn_number']}")
    assert fetched.status_code == 200


def test_unknown_shop_and_number_return_404(client):
    assert client.post('/api/v1/shops/999/invoices', json={'items': ITEMS}).status_code == 404
    assert client.post('/api/v1/shops/999/grns', json={'items': ITEMS}).status_code == 404

    shop = _create_shop(client)
    response = client.get(f"/api/v1/shops/{shop['id']}/invoices/0000000000")
    assert response.status_code == 404
    assert response.get_json()['message'] == 'Invoice not found'


def test_validation_errors_return_422(client):
    shop = _create_shop(client)

    response = client.post(f"/api/v1/shops/{shop['id']}/invoices", json={'items': []})

    assert response.status_code == 422
    body = response.get_json()
    assert body['success'] is False
    assert body['errors']['general'] == ['At least one item is required']


def test_duplicate_shop_slug_is_rejected(client):
    _create_shop(client, slug='dup')

    response = client.post('/api/v1/shops', json={'name': 'Again', 'slug': 'dup'})

    assert response.status_code == 422


def test_duplicate_invoice_number_returns_409(client, monkeypatch):
    class FixedNumber:
        def generate(self, shop_id):
            return '1234567890'

    monkeypatch.setattr(InvoiceService, 'number_strategy', property(lambda self: FixedNumber()))
    shop = _create_shop(client)
    url = f"/api/v1/shops/{shop['id']}/invoices"

    assert client.post(url, json={'items': ITEMS}).status_code == 201
    response = client.post(url, json={'items': ITEMS})

    assert response.status_code == 409
    assert response.get_json()['errors']['identifier'] == ['1234567890']


def test_reconnect_cooldown_returns_503_with_retry_after(client, monkeypatch):
    def cooling_down(self, payload):
        raise ReconnectCooldownError(retry_after=12.2)

    monkeypatch.setattr(ShopService, 'create_shop', cooling_down)

    response = client.post('/api/v1/shops', json={'name': 'Any'})

    assert response.status_code == 503
    assert response.headers['Retry-After'] == '13'
    assert 'cooldown' in response.get_json()['message']


@pytest.mark.parametrize('message', ['server closed the connection unexpectedly', 'disk I/O error'])
def test_database_errors_return_503(client, monkeypatch, message):
    def failing(self, payload):
        raise OperationalError('INSERT', {}, Exception(message))

    monkeypatch.setattr(ShopService, 'create_shop', failing)

    response = client.post('/api/v1/shops', json={'name': 'Any'})

    assert response.status_code == 503
    assert response.get_json()['success'] is False
