"""
Audit trail writer
"""
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session


def log_user_action(
    db: Session,
    actor: Optional[str],
    action: str,
    table: Optional[str] = None,
    key: Optional[str] = None,
    old_values: Optional[Dict] = None,
    new_values: Optional[Dict] = None,
    module: Optional[str] = "STOCK",
    timestamp: Optional[datetime] = None,
) -> None:
    """
    Add an audit entry to the current unit of work.

    The entry is committed (or rolled back) together with the change it
    describes, so there is no commit here.
    """
    from qr_inventory.models.audit import AuditLog

    audit_entry = AuditLog(
        audit_user=actor or "SYSTEM",
        audit_action=action,
        audit_table=table,
        audit_key=str(key) if key is not None else None,
        audit_old_values=old_values,
        audit_new_values=new_values,
        audit_module=module,
    )
    if timestamp is not None:
        audit_entry.audit_timestamp = timestamp

    db.add(audit_entry)
