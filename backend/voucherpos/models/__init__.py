from .catalog import Product, Category
from .sales import Sale, SaleItem, VoucherSequence
from .auth import User, SessionToken

__all__ = [
    'Product', 'Category',
    'Sale', 'SaleItem', 'VoucherSequence',
    'User', 'SessionToken',
]
