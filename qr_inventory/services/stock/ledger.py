"""
Stock Ledger Service
Append-only count history per item and location; current stock is the
latest entry.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import desc, func, or_
from sqlalchemy.orm import Session

from qr_inventory.core.audit import log_user_action
from qr_inventory.core.clock import Clock, system_clock
from qr_inventory.core.database import unit_of_work
from qr_inventory.core.exceptions import (
    InvalidRequestError, InvalidStateError, NotFoundError
)
from qr_inventory.core.locking import item_locks
from qr_inventory.core.logging import get_logger
from qr_inventory.core.qr_code import normalize_qr_code
from qr_inventory.core.quantities import Quantities
from qr_inventory.models.stock import Item, StockCount, COUNT_TYPES
from qr_inventory.services.stock.blocks import ensure_allowed

logger = get_logger("ledger")

# Written only by movements, transfers and variance approval
RESERVED_COUNT_TYPES = ("movement",)


@dataclass(frozen=True)
class StockSnapshot:
    """Current stock of one item at one location"""
    qr_code: str
    location: str
    unrestrict: int = 0
    foc: int = 0
    rfb: int = 0
    as_of: Optional[datetime] = None
    ever_counted: bool = False
    count_id: Optional[int] = None

    @property
    def quantities(self) -> Quantities:
        return Quantities(self.unrestrict, self.foc, self.rfb)

    @property
    def total(self) -> int:
        return self.unrestrict + self.foc + self.rfb

    def as_dict(self) -> Dict:
        return {
            "qr_code": self.qr_code,
            "location": self.location,
            "unrestrict": self.unrestrict,
            "foc": self.foc,
            "rfb": self.rfb,
            "total": self.total,
            "as_of": self.as_of,
            "ever_counted": self.ever_counted,
            "count_id": self.count_id,
        }


class StockLedgerService:
    """
    Stock Ledger functionality

    Counts are never edited in place. A correction is a new entry, and the
    newest entry (by count_date, then id) is the item's stock at that location.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock

    def record_count(
        self,
        qr_code: str,
        quantities,
        count_type: str = 'manual',
        notes: str = '',
        actor: Optional[str] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
    ) -> int:
        """
        Append a count observation, creating the item on first sight.

        The count is stored at ``location`` when given, otherwise at the
        item's current location. A count at a different location moves the
        item there. Returns the new count id.
        """
        code = normalize_qr_code(qr_code)
        counted = Quantities.coerce(quantities)
        if count_type not in COUNT_TYPES or count_type in RESERVED_COUNT_TYPES:
            raise InvalidRequestError(f"Invalid count type: {count_type}", field="count_type")

        with item_locks.hold(code):
            with unit_of_work(self.db, "record_count", logger):
                item = self._find_item(code)
                if item is None:
                    item = Item(
                        qr_code=code,
                        description=description or '',
                        location=(location or '').strip(),
                        notes='',
                        status='active',
                        created_at=self.clock.now(),
                    )
                    self.db.add(item)
                    self.db.flush()
                    logger.info(f"Item {code} created on first count")
                elif item.status == 'deleted':
                    raise InvalidStateError("item", item.status, "record count")

                ensure_allowed(self.db, code, "count")

                location = (location or '').strip() or item.location
                self._relocate(item, location)
                count = self._write_count(item, counted, count_type, notes, actor, location=location)
                count_id = count.id

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="RECORD_COUNT",
                    table="stock_counts",
                    key=code,
                    new_values={**counted.as_dict(), 'count_type': count_type, 'location': count.location},
                    timestamp=self.clock.now(),
                )

        logger.info(f"Count {count_id} recorded for {code}: {counted.as_dict()}")
        return count_id

    def current_stock(
        self,
        qr_code: str,
        location: Optional[str] = None,
        require_existence: bool = False,
    ) -> StockSnapshot:
        """
        Latest stock for an item, by default at its current location.

        A code that was never counted yields zeros with ever_counted=False,
        unless require_existence is set, in which case it is NotFound.
        """
        code = normalize_qr_code(qr_code)
        location = (location or '').strip()
        if not location:
            item = self._find_item(code)
            location = item.location if item else ''

        snapshot = self._snapshot(code, location)
        if require_existence and not snapshot.ever_counted:
            raise NotFoundError("stock count", code, f"No stock count recorded for {code}")
        return snapshot

    def register_item(
        self,
        qr_code: str,
        description: str = '',
        location: str = '',
        notes: str = '',
        actor: Optional[str] = None,
    ) -> Item:
        """Explicit item registration; the code must be new"""
        code = normalize_qr_code(qr_code)

        with item_locks.hold(code):
            with unit_of_work(self.db, "register_item", logger):
                if self._find_item(code) is not None:
                    raise InvalidRequestError(f"Item {code} already exists", field="qr_code")

                item = Item(
                    qr_code=code,
                    description=description or '',
                    location=(location or '').strip(),
                    notes=notes or '',
                    status='active',
                    created_at=self.clock.now(),
                )
                self.db.add(item)

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="REGISTER_ITEM",
                    table="items",
                    key=code,
                    new_values={'description': item.description, 'location': item.location},
                    timestamp=self.clock.now(),
                )

        logger.info(f"Item {code} registered at {item.location!r}")
        return item

    def get_item(self, qr_code: str) -> Item:
        return self._require_item(normalize_qr_code(qr_code))

    def list_items(
        self,
        search: Optional[str] = None,
        location: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Dict], int]:
        """Items with their current stock. Deleted items are hidden unless asked for."""
        query = self.db.query(Item)

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Item.qr_code.ilike(pattern),
                Item.description.ilike(pattern),
                Item.location.ilike(pattern),
            ))
        if location:
            query = query.filter(Item.location == location)
        if status:
            query = query.filter(Item.status == status)
        else:
            query = query.filter(Item.status != 'deleted')

        total = query.count()
        items = query.order_by(desc(Item.updated_at), desc(Item.id)).offset(offset).limit(limit).all()

        return [
            {"item": item, "stock": self._snapshot(item.qr_code, item.location)}
            for item in items
        ], total

    def count_history(
        self,
        qr_code: str,
        location: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[StockCount]:
        """All ledger entries for an item, newest first"""
        code = normalize_qr_code(qr_code)
        self._require_item(code)

        query = self.db.query(StockCount).filter(StockCount.qr_code == code)
        if location is not None:
            query = query.filter(StockCount.location == location)
        query = query.order_by(desc(StockCount.count_date), desc(StockCount.id))
        if limit:
            query = query.limit(limit)
        return query.all()

    def delete_item(self, qr_code: str, actor: Optional[str] = None) -> Item:
        """Soft delete: the item is hidden, its ledger stays intact"""
        code = normalize_qr_code(qr_code)

        with item_locks.hold(code):
            with unit_of_work(self.db, "delete_item", logger):
                item = self._require_item(code)
                if item.status == 'deleted':
                    raise InvalidStateError("item", item.status, "delete")

                old_status = item.status
                item.status = 'deleted'
                item.updated_at = self.clock.now()

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="DELETE_ITEM",
                    table="items",
                    key=code,
                    old_values={'status': old_status},
                    new_values={'status': 'deleted'},
                    timestamp=self.clock.now(),
                )

        logger.info(f"Item {code} marked deleted")
        return item

    def items_at(self, location: str, statuses=('active', 'blocked')) -> List[Item]:
        return (
            self.db.query(Item)
            .filter(Item.location == location, Item.status.in_(statuses))
            .order_by(Item.qr_code)
            .all()
        )

    def last_count_dates(self, location: str) -> Dict[str, datetime]:
        """Latest count timestamp per item code at a location"""
        rows = (
            self.db.query(StockCount.qr_code, func.max(StockCount.count_date))
            .filter(StockCount.location == location)
            .group_by(StockCount.qr_code)
            .all()
        )
        return {code: last for code, last in rows}

    # Internal helpers: these never commit

    def _find_item(self, code: str) -> Optional[Item]:
        return self.db.query(Item).filter(Item.qr_code == code).first()

    def _require_item(self, code: str) -> Item:
        item = self._find_item(code)
        if item is None:
            raise NotFoundError("item", code)
        return item

    def _latest_count(self, code: str, location: str) -> Optional[StockCount]:
        return (
            self.db.query(StockCount)
            .filter(StockCount.qr_code == code, StockCount.location == location)
            .order_by(desc(StockCount.count_date), desc(StockCount.id))
            .first()
        )

    def _snapshot(self, code: str, location: str) -> StockSnapshot:
        latest = self._latest_count(code, location)
        if latest is None:
            return StockSnapshot(qr_code=code, location=location)
        return StockSnapshot(
            qr_code=code,
            location=location,
            unrestrict=latest.unrestrict,
            foc=latest.foc,
            rfb=latest.rfb,
            as_of=latest.count_date,
            ever_counted=True,
            count_id=latest.id,
        )

    def _write_count(
        self,
        item: Item,
        quantities: Quantities,
        count_type: str,
        notes: Optional[str],
        actor: Optional[str],
        location: Optional[str] = None,
    ) -> StockCount:
        count = StockCount(
            item_id=item.id,
            qr_code=item.qr_code,
            location=item.location if location is None else location,
            unrestrict=quantities.unrestrict,
            foc=quantities.foc,
            rfb=quantities.rfb,
            count_type=count_type,
            count_date=self.clock.now(),
            notes=notes or '',
            created_by=actor,
        )
        self.db.add(count)
        self.db.flush()
        return count

    def _relocate(self, item: Item, location: str) -> bool:
        """Point the item at ``location``; the caller's unit of work commits it"""
        if not location or location == item.location:
            return False
        logger.info(f"Item {item.qr_code} relocated from {item.location!r} to {location!r}")
        item.location = location
        item.updated_at = self.clock.now()
        return True
