"""
Location Transfer Models
Multi-item transfers between two locations
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, Text,
    ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from qr_inventory.core.clock import utcnow
from qr_inventory.core.database import Base
from qr_inventory.models.stock import _in

TRANSFER_STATUSES = ("pending", "in_transit", "completed", "cancelled")
TRANSFER_ITEM_STATUSES = ("pending", "shipped", "received")


class LocationTransfer(Base):
    """
    Location Transfer Header

    pending -> in_transit -> completed; cancelled from pending or in_transit.
    """
    __tablename__ = "location_transfers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transfer_number = Column(String(40), unique=True, nullable=False)
    from_location = Column(String(50), nullable=False)
    to_location = Column(String(50), nullable=False)
    total_items = Column(Integer, nullable=False, default=0)
    status = Column(String(12), nullable=False, default='pending')
    notes = Column(Text)

    created_by = Column(String(50))
    created_at = Column(DateTime, nullable=False, default=utcnow)
    approved_by = Column(String(50))
    approved_at = Column(DateTime)
    completed_by = Column(String(50))
    completed_at = Column(DateTime)
    cancelled_by = Column(String(50))
    cancelled_at = Column(DateTime)

    items = relationship(
        "TransferItem",
        back_populates="transfer",
        order_by="TransferItem.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("from_location <> to_location", name='distinct_locations'),
        CheckConstraint(_in("status", TRANSFER_STATUSES), name='valid_status'),
        Index('idx_location_transfers_created_at', 'created_at'),
    )


class TransferItem(Base):
    """Transfer Line - quantities requested for one item code"""
    __tablename__ = "transfer_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transfer_id = Column(Integer, ForeignKey("location_transfers.id", ondelete="CASCADE"), nullable=False)
    qr_code = Column(String(17), nullable=False)
    unrestrict_qty = Column(Integer, nullable=False, default=0)
    foc_qty = Column(Integer, nullable=False, default=0)
    rfb_qty = Column(Integer, nullable=False, default=0)
    status = Column(String(10), nullable=False, default='pending')

    received_by = Column(String(50))
    received_at = Column(DateTime)

    transfer = relationship("LocationTransfer", back_populates="items")

    __table_args__ = (
        CheckConstraint("unrestrict_qty >= 0 AND foc_qty >= 0 AND rfb_qty >= 0", name='non_negative'),
        CheckConstraint(_in("status", TRANSFER_ITEM_STATUSES), name='valid_status'),
        Index('idx_transfer_items_transfer_id', 'transfer_id'),
    )
