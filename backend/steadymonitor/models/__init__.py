from .auth import User, UserSession
from .catalog import Product
from .customers import Customer, Payment, PocketMoneyEntry
from .sales import Sale, SaleLineItem, Refund, RefundLine
from .security import SecurityEvent

__all__ = [
    'User', 'UserSession',
    'Product',
    'Customer', 'Payment', 'PocketMoneyEntry',
    'Sale', 'SaleLineItem', 'Refund', 'RefundLine',
    'SecurityEvent',
]
