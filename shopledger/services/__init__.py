from .grn_service import GrnService
from .identifier_service import (
    IDENTIFIER_STRATEGIES,
    SequentialPrefixedStrategy,
    TimeRandomStrategy,
    build_identifier_strategy,
)
from .invoice_service import InvoiceService
from .shop_service import ShopService

__all__ = [
    'GrnService',
    'IDENTIFIER_STRATEGIES',
    'InvoiceService',
    'SequentialPrefixedStrategy',
    'ShopService',
    'TimeRandomStrategy',
    'build_identifier_strategy',
]
