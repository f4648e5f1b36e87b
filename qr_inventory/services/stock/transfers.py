"""
Location Transfer Service
Multi-item transfers: pending -> in_transit -> completed, or cancelled
"""
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from qr_inventory.core.audit import log_user_action
from qr_inventory.core.clock import Clock, system_clock
from qr_inventory.core.config import settings
from qr_inventory.core.database import unit_of_work
from qr_inventory.core.exceptions import (
    InsufficientStockError, InvalidRequestError, InvalidStateError, NotFoundError
)
from qr_inventory.core.locking import item_locks
from qr_inventory.core.logging import get_logger
from qr_inventory.core.qr_code import normalize_qr_code
from qr_inventory.core.quantities import BUCKETS, Quantities, ZERO
from qr_inventory.models.transfer import LocationTransfer, TransferItem
from qr_inventory.services.stock.blocks import ensure_allowed
from qr_inventory.services.stock.movements import StockMovementsService

logger = get_logger("transfers")


class LocationTransferService:
    """
    Location Transfer functionality

    Receiving moves every line in one unit of work: an outbound transfer leg
    at the source, the item's location change, and an inbound leg at the
    destination.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock
        self.movements = StockMovementsService(db, self.clock)
        self.ledger = self.movements.ledger

    def create_transfer(
        self,
        from_location: str,
        to_location: str,
        items: Sequence[Dict],
        actor: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> LocationTransfer:
        """
        Create a pending transfer
        Every line must be covered by stock at the source location, or nothing is created
        """
        from_location = (from_location or '').strip()
        to_location = (to_location or '').strip()
        if not from_location or not to_location:
            raise InvalidRequestError("Source and destination locations are required", field="location")
        if from_location == to_location:
            raise InvalidRequestError("Source and destination locations must differ", field="to_location")
        if not items:
            raise InvalidRequestError("A transfer needs at least one item", field="items")

        lines = []
        requested: "OrderedDict[str, Quantities]" = OrderedDict()
        for line in items:
            if not isinstance(line, dict):
                raise InvalidRequestError("Each transfer line must be a mapping", field="items")
            code = normalize_qr_code(line.get('qr_code'))
            quantities = Quantities.coerce({b: line.get(b, 0) for b in BUCKETS})
            if not quantities.any_positive():
                raise InvalidRequestError(
                    f"Transfer line for {code} has no quantity", field="items"
                )
            lines.append((code, quantities))
            requested[code] = requested.get(code, ZERO) + quantities

        with item_locks.hold(*requested):
            with unit_of_work(self.db, "create_transfer", logger):
                for code, needed in requested.items():
                    item = self.ledger._require_item(code)
                    if item.status == 'deleted':
                        raise InvalidStateError("item", item.status, "transfer")
                    ensure_allowed(self.db, code, 'transfer')

                    available = self.ledger._snapshot(code, from_location).quantities
                    for bucket, qty in needed.items():
                        if qty > getattr(available, bucket):
                            raise InsufficientStockError(
                                code, from_location, bucket,
                                available=getattr(available, bucket),
                                requested=qty,
                            )

                now = self.clock.now()
                transfer = LocationTransfer(
                    transfer_number=self._transfer_number(now),
                    from_location=from_location,
                    to_location=to_location,
                    total_items=len(lines),
                    status='pending',
                    notes=notes,
                    created_by=actor,
                    created_at=now,
                )
                transfer.items = [
                    TransferItem(
                        qr_code=code,
                        unrestrict_qty=quantities.unrestrict,
                        foc_qty=quantities.foc,
                        rfb_qty=quantities.rfb,
                        status='pending',
                    )
                    for code, quantities in lines
                ]
                self.db.add(transfer)
                # A repeated transfer number fails here on the unique constraint
                self.db.flush()

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="CREATE_TRANSFER",
                    table="location_transfers",
                    key=transfer.transfer_number,
                    new_values={
                        'from_location': from_location,
                        'to_location': to_location,
                        'total_items': len(lines),
                    },
                    timestamp=now,
                )

        logger.info(
            f"Transfer {transfer.transfer_number} created: {from_location} -> {to_location}, {len(lines)} line(s)"
        )
        return transfer

    def approve_transfer(self, transfer_id: int, approver: str) -> LocationTransfer:
        """Approve a pending transfer; it goes in transit"""
        if not approver:
            raise InvalidRequestError("Approver is required", field="approved_by")

        with item_locks.hold(*self._line_codes(transfer_id)):
            with unit_of_work(self.db, "approve_transfer", logger):
                transfer = self._require_transfer(transfer_id)
                if transfer.status != 'pending':
                    raise InvalidStateError("transfer", transfer.status, "approve")

                now = self.clock.now()
                transfer.status = 'in_transit'
                transfer.approved_by = approver
                transfer.approved_at = now

                log_user_action(
                    db=self.db,
                    actor=approver,
                    action="APPROVE_TRANSFER",
                    table="location_transfers",
                    key=transfer.transfer_number,
                    old_values={'status': 'pending'},
                    new_values={'status': 'in_transit'},
                    timestamp=now,
                )

        logger.info(f"Transfer {transfer.transfer_number} approved by {approver}")
        return transfer

    def receive_transfer(self, transfer_id: int, receiver: str) -> LocationTransfer:
        """
        Receive an in-transit transfer

        All lines are received or none are: any failure rolls the whole
        receive back and the transfer stays in transit.
        """
        if not receiver:
            raise InvalidRequestError("Receiver is required", field="received_by")

        with item_locks.hold(*self._line_codes(transfer_id)):
            with unit_of_work(self.db, "receive_transfer", logger):
                transfer = self._require_transfer(transfer_id)
                if transfer.status != 'in_transit':
                    raise InvalidStateError("transfer", transfer.status, "receive")

                now = self.clock.now()
                number = transfer.transfer_number
                for line in transfer.items:
                    item = self.ledger._require_item(line.qr_code)
                    if item.status == 'deleted':
                        raise InvalidStateError("item", item.status, "receive transfer")
                    ensure_allowed(self.db, line.qr_code, 'transfer')
                    quantities = Quantities.of_line(line)

                    self.movements._apply(
                        item, 'transfer', quantities, transfer.from_location,
                        outbound=True,
                        from_location=transfer.from_location,
                        reason=f"Transfer {number} to {transfer.to_location}",
                        reference=number,
                        actor=receiver,
                    )
                    item.location = transfer.to_location
                    item.updated_at = now
                    self.movements._apply(
                        item, 'transfer', quantities, transfer.to_location,
                        to_location=transfer.to_location,
                        reason=f"Transfer {number} from {transfer.from_location}",
                        reference=number,
                        actor=receiver,
                    )

                    line.status = 'received'
                    line.received_by = receiver
                    line.received_at = now

                transfer.status = 'completed'
                transfer.completed_by = receiver
                transfer.completed_at = now

                log_user_action(
                    db=self.db,
                    actor=receiver,
                    action="RECEIVE_TRANSFER",
                    table="location_transfers",
                    key=number,
                    old_values={'status': 'in_transit'},
                    new_values={'status': 'completed', 'lines': len(transfer.items)},
                    timestamp=now,
                )

        logger.info(f"Transfer {transfer.transfer_number} received by {receiver}")
        return transfer

    def cancel_transfer(self, transfer_id: int, actor: Optional[str] = None, reason: Optional[str] = None) -> LocationTransfer:
        """Cancel a transfer that has not received any line"""
        with item_locks.hold(*self._line_codes(transfer_id)):
            with unit_of_work(self.db, "cancel_transfer", logger):
                transfer = self._require_transfer(transfer_id)
                if transfer.status not in ('pending', 'in_transit'):
                    raise InvalidStateError("transfer", transfer.status, "cancel")
                if any(line.status == 'received' for line in transfer.items):
                    raise InvalidStateError(
                        "transfer", transfer.status, "cancel",
                        message=f"Transfer {transfer.transfer_number} has received lines and cannot be cancelled",
                    )

                now = self.clock.now()
                previous_status = transfer.status
                note = f"Cancelled: {reason}" if reason else "Cancelled"
                transfer.notes = f"{transfer.notes}\n{note}" if transfer.notes else note
                transfer.status = 'cancelled'
                transfer.cancelled_by = actor
                transfer.cancelled_at = now

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="CANCEL_TRANSFER",
                    table="location_transfers",
                    key=transfer.transfer_number,
                    old_values={'status': previous_status},
                    new_values={'status': 'cancelled', 'reason': reason},
                    timestamp=now,
                )

        logger.info(f"Transfer {transfer.transfer_number} cancelled")
        return transfer

    def get_transfer(self, transfer_id: int) -> LocationTransfer:
        return self._require_transfer(transfer_id)

    def list_transfers(self, filters: Optional[Dict] = None, limit: int = 50, offset: int = 0) -> List[Dict]:
        """
        Transfers with their line counts, newest first
        Supported filters: status, from_location, to_location, date_from, date_to, created_by
        """
        filters = filters or {}
        line_counts = (
            self.db.query(
                TransferItem.transfer_id.label('transfer_id'),
                func.count(TransferItem.id).label('line_count'),
                func.sum(TransferItem.unrestrict_qty + TransferItem.foc_qty + TransferItem.rfb_qty).label('total_quantity'),
            )
            .group_by(TransferItem.transfer_id)
            .subquery()
        )
        query = (
            self.db.query(LocationTransfer, line_counts.c.line_count, line_counts.c.total_quantity)
            .outerjoin(line_counts, line_counts.c.transfer_id == LocationTransfer.id)
        )

        if filters.get('status') and filters['status'] != 'all':
            query = query.filter(LocationTransfer.status == filters['status'])
        if filters.get('from_location'):
            query = query.filter(LocationTransfer.from_location.ilike(f"%{filters['from_location']}%"))
        if filters.get('to_location'):
            query = query.filter(LocationTransfer.to_location.ilike(f"%{filters['to_location']}%"))
        if filters.get('date_from'):
            query = query.filter(LocationTransfer.created_at >= filters['date_from'])
        if filters.get('date_to'):
            query = query.filter(LocationTransfer.created_at <= filters['date_to'])
        if filters.get('created_by'):
            query = query.filter(LocationTransfer.created_by.ilike(f"%{filters['created_by']}%"))

        rows = (
            query.order_by(desc(LocationTransfer.created_at), desc(LocationTransfer.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [
            {'transfer': transfer, 'line_count': line_count or 0, 'total_quantity': int(total or 0)}
            for transfer, line_count, total in rows
        ]

    def transfer_summary(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict:
        """Transfer and line totals per status"""
        query = self.db.query(
            LocationTransfer.status,
            func.count(LocationTransfer.id),
            func.sum(LocationTransfer.total_items),
        )
        if date_from:
            query = query.filter(LocationTransfer.created_at >= date_from)
        if date_to:
            query = query.filter(LocationTransfer.created_at <= date_to)

        by_status = {
            status: {'transfers': count, 'total_items': int(items or 0)}
            for status, count, items in query.group_by(LocationTransfer.status).all()
        }
        return {
            'by_status': by_status,
            'total_transfers': sum(entry['transfers'] for entry in by_status.values()),
        }

    def _transfer_number(self, now: datetime) -> str:
        return f"{settings.TRANSFER_NUMBER_PREFIX}{now.strftime('%Y%m%d%H%M%S%f')}"

    def _line_codes(self, transfer_id: int) -> List[str]:
        rows = self.db.query(TransferItem.qr_code).filter(TransferItem.transfer_id == transfer_id).all()
        return [code for (code,) in rows]

    def _require_transfer(self, transfer_id: int) -> LocationTransfer:
        transfer = self.db.get(LocationTransfer, transfer_id, populate_existing=True)
        if transfer is None:
            raise NotFoundError("transfer", transfer_id)
        return transfer
