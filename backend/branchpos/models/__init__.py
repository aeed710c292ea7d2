from .tenancy import Shop, Branch, Store
from .auth import User, SessionToken
from .catalog import Product, Customer, Currency, PaymentMethod
from .orders import Order, OrderItem, OrderPayment, OrderStatusLog, Refund
from .audit import AuditLog, OrderAuditLog

__all__ = [
    'Shop', 'Branch', 'Store',
    'User', 'SessionToken',
    'Product', 'Customer', 'Currency', 'PaymentMethod',
    'Order', 'OrderItem', 'OrderPayment', 'OrderStatusLog', 'Refund',
    'AuditLog', 'OrderAuditLog',
]
