"""
QR Inventory SQLAlchemy Models
"""

# Import all models to ensure they are registered with SQLAlchemy
from .stock import Item, StockCount, StockMovement, ItemBlock
from .transfer import LocationTransfer, TransferItem
from .counting import InventoryVariance, CyclicCount
from .audit import AuditLog

__all__ = [
    "Item",
    "StockCount",
    "StockMovement",
    "ItemBlock",
    "LocationTransfer",
    "TransferItem",
    "InventoryVariance",
    "CyclicCount",
    "AuditLog",
]
