"""
Audit Trail Model
Who changed what in the stock ledger
"""
from sqlalchemy import Column, String, Integer, DateTime, JSON

from qr_inventory.core.clock import utcnow
from qr_inventory.core.database import Base


class AuditLog(Base):
    """Audit trail for all ledger changes"""
    __tablename__ = "audit_log"

    audit_id = Column(Integer, primary_key=True, autoincrement=True)
    audit_timestamp = Column(DateTime, default=utcnow, index=True)
    audit_user = Column(String(50), nullable=False, index=True)
    audit_action = Column(String(40), nullable=False, index=True)  # RECORD_COUNT, BLOCK_ITEM, RECEIVE_TRANSFER, etc
    audit_table = Column(String(50), index=True)
    audit_key = Column(String(100))
    audit_old_values = Column(JSON)
    audit_new_values = Column(JSON)
    audit_module = Column(String(10))
