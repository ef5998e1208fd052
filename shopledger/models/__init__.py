"""Models package - imports all models for the application"""
from ..extensions import db

# Import in dependency order for PostgreSQL table creation
from .shop import Shop
from .invoice import Invoice, InvoiceItem, INVOICE_STATUSES
from .grn import GoodsReceivedNote, GrnItem, GRN_PAYMENT_STATUSES

__all__ = [
    'db',
    'Shop',
    'Invoice',
    'InvoiceItem',
    'INVOICE_STATUSES',
    'GoodsReceivedNote',
    'GrnItem',
    'GRN_PAYMENT_STATUSES',
]
