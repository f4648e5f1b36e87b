"""
Stock Models
Items, the append-only count ledger, movements and item blocks
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, Text,
    ForeignKey, CheckConstraint, Index, text
)
from sqlalchemy.orm import relationship, column_property

from qr_inventory.core.clock import utcnow
from qr_inventory.core.database import Base

ITEM_STATUSES = ("active", "blocked", "transferred", "deleted")
COUNT_TYPES = ("manual", "cyclic", "adjustment", "movement")
MOVEMENT_TYPES = ("in", "out", "transfer", "adjustment")
MOVEMENT_STATUSES = ("pending", "completed", "cancelled")
BLOCK_TYPES = ("count", "transfer", "adjustment", "maintenance")
BLOCK_STATUSES = ("active", "released")


def _in(column: str, values) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class Item(Base):
    """
    Item Record

    One row per QR code. Never hard-deleted; status flips to 'deleted'.
    """
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    qr_code = Column(String(17), unique=True, nullable=False, doc="17-character item code")
    description = Column(String(200), nullable=False, default='', doc="Item description")
    location = Column(String(50), nullable=False, default='', doc="Current location")
    notes = Column(Text, default='', doc="Free-text notes")
    status = Column(String(12), nullable=False, default='active', doc="active, blocked, transferred, deleted")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    counts = relationship("StockCount", back_populates="item", order_by="StockCount.id")
    blocks = relationship("ItemBlock", back_populates="item", order_by="ItemBlock.id")

    __table_args__ = (
        CheckConstraint(_in("status", ITEM_STATUSES), name='valid_status'),
        Index('idx_items_location', 'location'),
    )

    def __repr__(self):
        return f"<Item {self.qr_code} @ {self.location!r} [{self.status}]>"


class StockCount(Base):
    """
    Stock Count Record - one ledger entry

    Immutable once written. Current stock for an item at a location is the
    latest row by count_date, ties broken by id.
    """
    __tablename__ = "stock_counts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qr_code = Column(String(17), nullable=False)
    location = Column(String(50), nullable=False, default='', doc="Location the stock was observed at")

    unrestrict = Column(Integer, nullable=False, default=0, doc="Unrestricted stock")
    foc = Column(Integer, nullable=False, default=0, doc="Free-of-charge stock")
    rfb = Column(Integer, nullable=False, default=0, doc="Returnable stock")
    total = column_property(unrestrict + foc + rfb)

    count_type = Column(String(12), nullable=False, default='manual')
    count_date = Column(DateTime, nullable=False, default=utcnow)
    notes = Column(Text, default='')
    created_by = Column(String(50))

    item = relationship("Item", back_populates="counts")

    __table_args__ = (
        CheckConstraint("unrestrict >= 0 AND foc >= 0 AND rfb >= 0", name='non_negative'),
        CheckConstraint(_in("count_type", COUNT_TYPES), name='valid_count_type'),
        Index('idx_stock_counts_qr_code', 'qr_code'),
        Index('idx_stock_counts_latest', 'qr_code', 'location', 'count_date', 'id'),
    )


class StockMovement(Base):
    """
    Stock Movement Record

    Always written together with the StockCount holding the post-movement
    balance (stock_count_id).
    """
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qr_code = Column(String(17), nullable=False)
    movement_type = Column(String(12), nullable=False)
    from_location = Column(String(50))
    to_location = Column(String(50))

    # Deltas; adjustments store signed differences
    unrestrict_qty = Column(Integer, nullable=False, default=0)
    foc_qty = Column(Integer, nullable=False, default=0)
    rfb_qty = Column(Integer, nullable=False, default=0)
    total_qty = column_property(unrestrict_qty + foc_qty + rfb_qty)

    reason = Column(Text, default='')
    reference_doc = Column(String(100), default='')
    status = Column(String(12), nullable=False, default='completed')
    stock_count_id = Column(Integer, ForeignKey("stock_counts.id", ondelete="RESTRICT"), nullable=False)

    created_by = Column(String(50))
    created_at = Column(DateTime, nullable=False, default=utcnow)

    stock_count = relationship("StockCount")

    __table_args__ = (
        CheckConstraint(_in("movement_type", MOVEMENT_TYPES), name='valid_movement_type'),
        CheckConstraint(_in("status", MOVEMENT_STATUSES), name='valid_status'),
        Index('idx_stock_movements_qr_code', 'qr_code'),
        Index('idx_stock_movements_created_at', 'created_at'),
    )


class ItemBlock(Base):
    """
    Item Block Record - one row per block lifecycle

    At most one active row per qr_code, enforced by a partial unique index.
    """
    __tablename__ = "item_blocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    qr_code = Column(String(17), nullable=False)
    block_type = Column(String(12), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(10), nullable=False, default='active')

    blocked_by = Column(String(50), nullable=False)
    blocked_at = Column(DateTime, nullable=False, default=utcnow)
    unblocked_by = Column(String(50))
    unblocked_at = Column(DateTime)
    notes = Column(Text)

    item = relationship("Item", back_populates="blocks")

    __table_args__ = (
        CheckConstraint(_in("block_type", BLOCK_TYPES), name='valid_block_type'),
        CheckConstraint(_in("status", BLOCK_STATUSES), name='valid_status'),
        Index(
            'uq_item_blocks_active_qr_code', 'qr_code',
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index('idx_item_blocks_blocked_at', 'blocked_at'),
    )

    @property
    def is_active(self) -> bool:
        return self.status == 'active'
