from .catalog import Product, StockMovement, MOVEMENT_KINDS
from .auth import User, SessionToken, ROLES
from .audit import AuditLogEntry

__all__ = [
    'Product', 'StockMovement', 'MOVEMENT_KINDS',
    'User', 'SessionToken', 'ROLES',
    'AuditLogEntry',
]
