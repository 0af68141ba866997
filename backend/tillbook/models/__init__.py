from .catalog import Outlet, StoreSettings, Product
from .customers import Customer
from .documents import Document, DocumentLine
from .shifts import Shift, CashDrawerEvent
from .staff import Staff
from .activity import ActivityLog, Notification

__all__ = [
    'Outlet', 'StoreSettings', 'Product',
    'Customer',
    'Document', 'DocumentLine',
    'Shift', 'CashDrawerEvent',
    'Staff',
    'ActivityLog', 'Notification',
]
