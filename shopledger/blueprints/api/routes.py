import logging

from flask import jsonify, request

from ...extensions import get_gateway, limiter
from ...services import GrnService, InvoiceService, ShopService
from ...utils.api_responses import APIResponse
from ...utils.timezone_utils import TimezoneUtils
from . import api_bp

logger = logging.getLogger(__name__)

API_PREFIX = '/api/v1'


@api_bp.route('/health', methods=['GET', 'HEAD'])
@limiter.exempt
def health_check():
    """Health check endpoint for monitoring services; always 200, never reconnects inline."""
    status = get_gateway().health_probe()
    if request.method == 'HEAD':
        return '', 200
    return jsonify({
        'status': 'ok' if status.connected else 'degraded',
        'database': status.to_dict(),
        'timestamp': TimezoneUtils.isoformat(TimezoneUtils.utc_now()),
    }), 200


def _shop_or_404(shop_id):
    shop = ShopService().get_shop(shop_id)
    if shop is None:
        return None, APIResponse.not_found('Shop')
    return shop, None


@api_bp.route(f'{API_PREFIX}/shops', methods=['POST'])
def create_shop():
    payload = APIResponse.handle_request_content()
    shop = ShopService().create_shop(payload)
    return APIResponse.success(shop.to_dict(), message='Shop created', status_code=201)


@api_bp.route(f'{API_PREFIX}/shops/<int:shop_id>/invoices', methods=['POST'])
def create_invoice(shop_id):
    shop, missing = _shop_or_404(shop_id)
    if missing:
        return missing
    invoice = InvoiceService().create_invoice(shop, APIResponse.handle_request_content())
    return APIResponse.success(invoice.to_dict(), message='Invoice created', status_code=201)


@api_bp.route(f'{API_PREFIX}/shops/<int:shop_id>/invoices/<number>', methods=['GET'])
def get_invoice(shop_id, number):
    invoice = InvoiceService().get_invoice(shop_id, number)
    if invoice is None:
        return APIResponse.not_found('Invoice')
    return APIResponse.success(invoice.to_dict())


@api_bp.route(f'{API_PREFIX}/shops/<int:shop_id>/grns', methods=['POST'])
def create_grn(shop_id):
    shop, missing = _shop_or_404(shop_id)
    if missing:
        return missing
    grn = GrnService().create_grn(shop, APIResponse.handle_request_content())
    return APIResponse.success(grn.to_dict(), message='GRN created', status_code=201)


@api_bp.route(f'{API_PREFIX}/shops/<int:shop_id>/grns/<number>', methods=['GET'])
def get_grn(shop_id, number):
    grn = GrnService().get_grn(shop_id, number)
    if grn is None:
        return APIResponse.not_found('GRN')
    return APIResponse.success(grn.to_dict())
