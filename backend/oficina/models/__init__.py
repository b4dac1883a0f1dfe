from .tenancy import Establishment, User
from .catalog import Client, Vehicle, CatalogItem
from .orders import ServiceOrder, OrderItem, ChecklistItem
from .requests import OrderRequest
from .cash import CashSession, CashMovement, Payment
from .notifications import Notification

__all__ = [
    'Establishment', 'User',
    'Client', 'Vehicle', 'CatalogItem',
    'ServiceOrder', 'OrderItem', 'ChecklistItem',
    'OrderRequest',
    'CashSession', 'CashMovement', 'Payment',
    'Notification',
]
