from .auth import Role, User, UserSession, LoginLog
from .inventory import Product, StockMovement, PriceHistory, MOVEMENT_REASONS
from .sales import Sale, SaleItem, PAYMENT_TYPES, SALE_TYPES

__all__ = [
    'Role', 'User', 'UserSession', 'LoginLog',
    'Product', 'StockMovement', 'PriceHistory', 'MOVEMENT_REASONS',
    'Sale', 'SaleItem', 'PAYMENT_TYPES', 'SALE_TYPES',
]
