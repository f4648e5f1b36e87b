"""
Counting Models
Inventory variances and cyclic count schedules
"""
from sqlalchemy import (
    Column, String, Integer, DateTime, Text,
    ForeignKey, CheckConstraint, Index, text
)
from sqlalchemy.orm import column_property

from qr_inventory.core.clock import utcnow
from qr_inventory.core.database import Base
from qr_inventory.models.stock import _in

VARIANCE_STATUSES = ("pending", "approved", "rejected")
CYCLIC_STATUSES = ("active", "paused", "completed")


class InventoryVariance(Base):
    """
    Inventory Variance Record

    Snapshot of a physical count against the system count. Variance fields
    are derived from the six raw quantities.
    """
    __tablename__ = "inventory_variances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    qr_code = Column(String(17), nullable=False)
    location = Column(String(50), nullable=False, default='')

    counted_unrestrict = Column(Integer, nullable=False, default=0)
    counted_foc = Column(Integer, nullable=False, default=0)
    counted_rfb = Column(Integer, nullable=False, default=0)
    system_unrestrict = Column(Integer, nullable=False, default=0)
    system_foc = Column(Integer, nullable=False, default=0)
    system_rfb = Column(Integer, nullable=False, default=0)

    variance_unrestrict = column_property(counted_unrestrict - system_unrestrict)
    variance_foc = column_property(counted_foc - system_foc)
    variance_rfb = column_property(counted_rfb - system_rfb)
    variance_total = column_property(
        (counted_unrestrict + counted_foc + counted_rfb)
        - (system_unrestrict + system_foc + system_rfb)
    )

    status = Column(String(10), nullable=False, default='pending')
    reason = Column(Text)
    count_date = Column(DateTime, nullable=False, default=utcnow)
    approved_by = Column(String(50))
    approved_at = Column(DateTime)

    movement_id = Column(Integer, ForeignKey("stock_movements.id"))
    stock_count_id = Column(Integer, ForeignKey("stock_counts.id"))

    __table_args__ = (
        CheckConstraint(_in("status", VARIANCE_STATUSES), name='valid_status'),
        CheckConstraint(
            "counted_unrestrict >= 0 AND counted_foc >= 0 AND counted_rfb >= 0",
            name='non_negative_counted',
        ),
        Index('idx_inventory_variances_count_date', 'count_date'),
        Index('idx_inventory_variances_qr_code', 'qr_code'),
    )

    @property
    def variance_type(self) -> str:
        if self.variance_total > 0:
            return 'surplus'
        if self.variance_total < 0:
            return 'shortage'
        return 'match'


class CyclicCount(Base):
    """Cyclic Count Schedule - one recurring counting obligation per location"""
    __tablename__ = "cyclic_counts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    location = Column(String(50), nullable=False)
    frequency_days = Column(Integer, nullable=False)
    last_count_date = Column(DateTime)
    next_count_date = Column(DateTime, nullable=False)
    status = Column(String(10), nullable=False, default='active')

    created_by = Column(String(50))
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("frequency_days > 0", name='positive_frequency'),
        CheckConstraint(_in("status", CYCLIC_STATUSES), name='valid_status'),
        Index(
            'uq_cyclic_counts_active_location', 'location',
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )
