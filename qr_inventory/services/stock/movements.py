"""
Stock Movements Service
Directed stock deltas, each written together with the resulting ledger entry
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import desc, func, or_
from sqlalchemy.orm import Session

from qr_inventory.core.audit import log_user_action
from qr_inventory.core.clock import Clock, system_clock
from qr_inventory.core.database import unit_of_work
from qr_inventory.core.exceptions import (
    InsufficientStockError, InvalidRequestError, InvalidStateError
)
from qr_inventory.core.locking import item_locks
from qr_inventory.core.logging import get_logger
from qr_inventory.core.qr_code import normalize_qr_code
from qr_inventory.core.quantities import Quantities, ZERO
from qr_inventory.models.stock import Item, StockMovement, MOVEMENT_TYPES
from qr_inventory.services.stock.blocks import ensure_allowed
from qr_inventory.services.stock.ledger import StockLedgerService

logger = get_logger("movements")

# Transfer legs are written by LocationTransferService only
DIRECT_MOVEMENT_TYPES = ("in", "out", "adjustment")


class StockMovementsService:
    """
    Stock Movements functionality

    ``in`` and ``out`` carry the quantities moved; ``adjustment`` carries the
    new absolute balances and the movement row stores the signed difference.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock
        self.ledger = StockLedgerService(db, self.clock)

    def apply_movement(
        self,
        qr_code: str,
        movement_type: str,
        quantities,
        from_location: Optional[str] = None,
        to_location: Optional[str] = None,
        reason: str = '',
        reference: str = '',
        actor: Optional[str] = None,
    ) -> int:
        """
        Record a movement and the ledger entry it produces
        Returns the movement id
        """
        code = normalize_qr_code(qr_code)
        if movement_type == 'transfer':
            raise InvalidRequestError(
                "Transfer movements are created by location transfers", field="movement_type"
            )
        if movement_type not in DIRECT_MOVEMENT_TYPES:
            raise InvalidRequestError(f"Invalid movement type: {movement_type}", field="movement_type")

        if movement_type == 'adjustment':
            # Negative targets are reported as insufficient stock below
            requested = Quantities.coerce(quantities, allow_negative=True)
        else:
            requested = Quantities.coerce(quantities)
            if not requested.any_positive():
                raise InvalidRequestError("At least one quantity must be greater than zero", field="quantities")

        from_location = (from_location or '').strip() or None
        to_location = (to_location or '').strip() or None

        with item_locks.hold(code):
            with unit_of_work(self.db, "apply_movement", logger):
                item = self.ledger._require_item(code)
                if item.status == 'deleted':
                    raise InvalidStateError("item", item.status, f"apply {movement_type} movement")

                ensure_allowed(self.db, code, 'adjustment' if movement_type == 'adjustment' else 'movement')

                base_location = item.location
                if movement_type == 'out':
                    location = from_location or item.location
                    from_location = location
                    base_location = location
                else:
                    # Stock received or adjusted elsewhere follows the item
                    location = to_location or item.location
                    to_location = location
                    self.ledger._relocate(item, location)

                movement = self._apply(
                    item,
                    movement_type,
                    requested,
                    location,
                    base_location=base_location,
                    from_location=from_location,
                    to_location=to_location,
                    reason=reason,
                    reference=reference,
                    actor=actor,
                )
                movement_id = movement.id
                recorded = Quantities.of_line(movement)

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action=f"STOCK_{movement_type.upper()}",
                    table="stock_movements",
                    key=code,
                    new_values={**recorded.as_dict(), 'location': location, 'reference': reference},
                    timestamp=self.clock.now(),
                )

        logger.info(f"Movement {movement_id} ({movement_type}) applied to {code} at {location!r}: {recorded.as_dict()}")
        return movement_id

    def list_movements(
        self,
        filters: Optional[Dict] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[StockMovement], int]:
        """
        Movements matching the filters, newest first, with the total match count
        Supported filters: qr_code, movement_type, location, date_from, date_to,
        created_by, status
        """
        filters = filters or {}
        query = self.db.query(StockMovement)

        if filters.get('qr_code'):
            query = query.filter(StockMovement.qr_code.ilike(f"%{filters['qr_code']}%"))
        if filters.get('movement_type'):
            query = query.filter(StockMovement.movement_type == filters['movement_type'])
        if filters.get('location'):
            query = query.filter(or_(
                StockMovement.from_location == filters['location'],
                StockMovement.to_location == filters['location'],
            ))
        if filters.get('date_from'):
            query = query.filter(StockMovement.created_at >= filters['date_from'])
        if filters.get('date_to'):
            query = query.filter(StockMovement.created_at <= filters['date_to'])
        if filters.get('created_by'):
            query = query.filter(StockMovement.created_by.ilike(f"%{filters['created_by']}%"))
        if filters.get('status'):
            query = query.filter(StockMovement.status == filters['status'])

        total = query.count()
        movements = (
            query.order_by(desc(StockMovement.created_at), desc(StockMovement.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return movements, total

    def movement_history(self, qr_code: str, limit: int = 50) -> List[StockMovement]:
        code = normalize_qr_code(qr_code)
        return (
            self.db.query(StockMovement)
            .filter(StockMovement.qr_code == code)
            .order_by(desc(StockMovement.created_at), desc(StockMovement.id))
            .limit(limit)
            .all()
        )

    def movement_stats(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict:
        """Per-type and overall movement statistics for a period"""
        conditions = []
        if date_from:
            conditions.append(StockMovement.created_at >= date_from)
        if date_to:
            conditions.append(StockMovement.created_at <= date_to)

        rows = (
            self.db.query(
                StockMovement.movement_type,
                func.count(StockMovement.id),
                func.sum(StockMovement.total_qty),
                func.count(func.distinct(StockMovement.qr_code)),
                func.count(func.distinct(StockMovement.created_by)),
            )
            .filter(*conditions)
            .group_by(StockMovement.movement_type)
            .all()
        )
        by_type = {
            movement_type: {
                'movement_count': count,
                'total_quantity': int(quantity or 0),
                'unique_items': items,
                'unique_users': users,
            }
            for movement_type, count, quantity, items, users in rows
        }
        for movement_type in MOVEMENT_TYPES:
            by_type.setdefault(movement_type, {
                'movement_count': 0, 'total_quantity': 0, 'unique_items': 0, 'unique_users': 0,
            })

        total_movements, unique_items, unique_users = (
            self.db.query(
                func.count(StockMovement.id),
                func.count(func.distinct(StockMovement.qr_code)),
                func.count(func.distinct(StockMovement.created_by)),
            )
            .filter(*conditions)
            .one()
        )

        return {
            'by_type': by_type,
            'general': {
                'total_movements': total_movements,
                'unique_items': unique_items,
                'unique_users': unique_users,
            },
        }

    # Internal: no commit, callers own the unit of work

    def _apply(
        self,
        item: Item,
        movement_type: str,
        quantities: Quantities,
        location: str,
        outbound: bool = False,
        from_location: Optional[str] = None,
        to_location: Optional[str] = None,
        reason: str = '',
        reference: str = '',
        actor: Optional[str] = None,
        count_notes: Optional[str] = None,
        base_location: Optional[str] = None,
    ) -> StockMovement:
        """
        Write one movement plus its ledger entry at ``location``.

        The balance starts from ``base_location`` (default ``location``), so an
        item received at a new location carries its stock along.

        Raises InsufficientStockError naming the first bucket that would go
        negative; nothing is written in that case.
        """
        base = location if base_location is None else base_location
        previous = self.ledger._snapshot(item.qr_code, base).quantities

        if movement_type == 'adjustment':
            deltas = quantities - previous
        elif movement_type == 'out' or (movement_type == 'transfer' and outbound):
            deltas = ZERO - quantities
        else:
            deltas = quantities

        balance = previous + deltas
        short = balance.first_negative()
        if short:
            raise InsufficientStockError(
                item.qr_code,
                location,
                short,
                available=getattr(previous, short),
                requested=-getattr(deltas, short),
            )

        count = self.ledger._write_count(
            item,
            balance,
            'adjustment' if movement_type == 'adjustment' else 'movement',
            count_notes or f"{movement_type} movement" + (f": {reason}" if reason else ''),
            actor,
            location=location,
        )

        # in/out/transfer rows store magnitudes; adjustments store signed differences
        recorded = deltas if movement_type == 'adjustment' else quantities
        movement = StockMovement(
            item_id=item.id,
            qr_code=item.qr_code,
            movement_type=movement_type,
            from_location=from_location,
            to_location=to_location,
            unrestrict_qty=recorded.unrestrict,
            foc_qty=recorded.foc,
            rfb_qty=recorded.rfb,
            reason=reason or '',
            reference_doc=reference or '',
            status='completed',
            stock_count_id=count.id,
            created_by=actor,
            created_at=self.clock.now(),
        )
        self.db.add(movement)
        self.db.flush()
        return movement
