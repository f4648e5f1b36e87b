"""
Item Block Service
At most one active block per item code; active blocks gate ledger operations
"""
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from qr_inventory.core.audit import log_user_action
from qr_inventory.core.clock import Clock, system_clock
from qr_inventory.core.config import settings
from qr_inventory.core.database import unit_of_work
from qr_inventory.core.exceptions import (
    AlreadyBlockedError, InvalidRequestError, InvalidStateError, ItemBlockedError, NotFoundError
)
from qr_inventory.core.locking import item_locks
from qr_inventory.core.logging import get_logger
from qr_inventory.core.qr_code import normalize_qr_code
from qr_inventory.models.stock import Item, ItemBlock, BLOCK_TYPES

logger = get_logger("blocks")

# Operations each block type refuses
BLOCK_GATES = {
    'count': {'movement', 'adjustment', 'transfer'},
    'transfer': {'transfer'},
    'adjustment': {'adjustment', 'variance_approval'},
    'maintenance': {'count', 'movement', 'adjustment', 'transfer', 'variance_approval'},
}


def active_block(db: Session, code: str) -> Optional[ItemBlock]:
    return (
        db.query(ItemBlock)
        .filter(ItemBlock.qr_code == code, ItemBlock.status == 'active')
        .first()
    )


def ensure_allowed(db: Session, code: str, operation: str) -> None:
    """Raise ItemBlockedError when an active block gates ``operation``"""
    if not settings.ENFORCE_ITEM_BLOCKS:
        return
    block = active_block(db, code)
    if block is not None and operation in BLOCK_GATES.get(block.block_type, ()):
        raise ItemBlockedError(code, block.id, block.block_type, operation)


class ItemBlockService:
    """
    Item Block functionality

    Block lifecycle rows are never deleted; unblocking releases the row and
    appends notes.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock

    def block(self, qr_code: str, block_type: str, reason: str, actor: str) -> int:
        """
        Block an item
        Returns the new block id
        """
        code = normalize_qr_code(qr_code)
        if block_type not in BLOCK_TYPES:
            raise InvalidRequestError(f"Invalid block type: {block_type}", field="block_type")
        if not reason or not reason.strip():
            raise InvalidRequestError("Block reason is required", field="reason")
        if not actor:
            raise InvalidRequestError("Blocking user is required", field="blocked_by")

        with item_locks.hold(code):
            with unit_of_work(self.db, "block", logger):
                item = self._require_item(code)
                if item.status == 'deleted':
                    raise InvalidStateError("item", item.status, "block")

                existing = active_block(self.db, code)
                if existing is not None:
                    raise AlreadyBlockedError(code, existing.id)

                block = ItemBlock(
                    item_id=item.id,
                    qr_code=code,
                    block_type=block_type,
                    reason=reason.strip(),
                    status='active',
                    blocked_by=actor,
                    blocked_at=self.clock.now(),
                )
                self.db.add(block)
                self.db.flush()
                block_id = block.id

                self._flip_item_status(item, expected='active', new='blocked')

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="BLOCK_ITEM",
                    table="item_blocks",
                    key=code,
                    new_values={'block_id': block_id, 'block_type': block_type, 'reason': block.reason},
                    timestamp=self.clock.now(),
                )

        logger.info(f"Item {code} blocked ({block_type}) as block {block_id}")
        return block_id

    def unblock(
        self,
        qr_code: Optional[str] = None,
        block_id: Optional[int] = None,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ItemBlock:
        """Release the active block of an item, addressed by item code or block id"""
        if (qr_code is None) == (block_id is None):
            raise InvalidRequestError("Provide either an item code or a block id")

        if block_id is not None:
            found = self.db.get(ItemBlock, block_id)
            if found is None:
                raise NotFoundError("block", block_id)
            code = found.qr_code
        else:
            code = normalize_qr_code(qr_code)

        with item_locks.hold(code):
            with unit_of_work(self.db, "unblock", logger):
                if block_id is not None:
                    block = self.db.get(ItemBlock, block_id, populate_existing=True)
                    if block is None or block.status != 'active':
                        raise NotFoundError("active block", block_id, f"Block {block_id} is not active")
                else:
                    block = active_block(self.db, code)
                    if block is None:
                        raise NotFoundError("active block", code, f"No active block for item {code}")

                now = self.clock.now()
                block.status = 'released'
                block.unblocked_by = actor or 'SYSTEM'
                block.unblocked_at = now
                if notes:
                    block.notes = f"{block.notes}\n{notes}" if block.notes else notes

                item = self.db.query(Item).filter(Item.qr_code == code).first()
                if item is not None:
                    self._flip_item_status(item, expected='blocked', new='active')

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="UNBLOCK_ITEM",
                    table="item_blocks",
                    key=code,
                    old_values={'status': 'active'},
                    new_values={'block_id': block.id, 'status': 'released', 'notes': notes},
                    timestamp=now,
                )

        logger.info(f"Item {code} unblocked (block {block.id})")
        return block

    def is_blocked(self, qr_code: str) -> bool:
        return active_block(self.db, normalize_qr_code(qr_code)) is not None

    def block_status(self, qr_code: str) -> Optional[ItemBlock]:
        """Active block for the item, or None"""
        code = normalize_qr_code(qr_code)
        self._require_item(code)
        return active_block(self.db, code)

    def block_history(self, qr_code: str, limit: int = 50) -> List[Dict]:
        code = normalize_qr_code(qr_code)
        blocks = (
            self.db.query(ItemBlock)
            .filter(ItemBlock.qr_code == code)
            .order_by(desc(ItemBlock.blocked_at), desc(ItemBlock.id))
            .limit(limit)
            .all()
        )
        return [
            {"block": block, "duration_hours": self._duration_hours(block)}
            for block in blocks
        ]

    def list_blocks(self, filters: Optional[Dict] = None, limit: int = 100, offset: int = 0) -> List[ItemBlock]:
        """
        Blocks matching the given filters
        Supported filters: status, block_type, qr_code, blocked_by, date_from, date_to
        """
        filters = filters or {}
        query = self.db.query(ItemBlock)

        if filters.get('status'):
            query = query.filter(ItemBlock.status == filters['status'])
        if filters.get('block_type'):
            query = query.filter(ItemBlock.block_type == filters['block_type'])
        if filters.get('qr_code'):
            query = query.filter(ItemBlock.qr_code.ilike(f"%{filters['qr_code']}%"))
        if filters.get('blocked_by'):
            query = query.filter(ItemBlock.blocked_by.ilike(f"%{filters['blocked_by']}%"))
        if filters.get('date_from'):
            query = query.filter(ItemBlock.blocked_at >= filters['date_from'])
        if filters.get('date_to'):
            query = query.filter(ItemBlock.blocked_at <= filters['date_to'])

        return query.order_by(desc(ItemBlock.blocked_at), desc(ItemBlock.id)).offset(offset).limit(limit).all()

    def active_blocks(self) -> List[ItemBlock]:
        return self.list_blocks({'status': 'active'}, limit=10000)

    def block_summary(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict:
        """Per block type: total, active, released and average duration in hours"""
        query = self.db.query(ItemBlock)
        if date_from:
            query = query.filter(ItemBlock.blocked_at >= date_from)
        if date_to:
            query = query.filter(ItemBlock.blocked_at <= date_to)

        by_type: Dict[str, Dict] = {}
        for block in query.all():
            entry = by_type.setdefault(block.block_type, {
                'block_type': block.block_type,
                'total_blocks': 0,
                'active_blocks': 0,
                'released_blocks': 0,
                '_durations': [],
            })
            entry['total_blocks'] += 1
            if block.status == 'active':
                entry['active_blocks'] += 1
            else:
                entry['released_blocks'] += 1
                entry['_durations'].append(self._duration_hours(block))

        summary = []
        for entry in sorted(by_type.values(), key=lambda e: e['total_blocks'], reverse=True):
            durations = entry.pop('_durations')
            entry['avg_duration_hours'] = round(sum(durations) / len(durations), 2) if durations else None
            summary.append(entry)

        return {
            'by_type': summary,
            'total_blocks': sum(e['total_blocks'] for e in summary),
            'active_blocks': sum(e['active_blocks'] for e in summary),
        }

    def _require_item(self, code: str) -> Item:
        item = self.db.query(Item).filter(Item.qr_code == code).first()
        if item is None:
            raise NotFoundError("item", code)
        return item

    def _duration_hours(self, block: ItemBlock) -> float:
        end = block.unblocked_at or self.clock.now()
        return round((end - block.blocked_at).total_seconds() / 3600, 2)

    def _flip_item_status(self, item: Item, expected: str, new: str) -> None:
        # Best effort: the block row is what gates operations
        if item.status != expected:
            logger.warning(
                f"Item {item.qr_code} status is {item.status!r}, expected {expected!r}; leaving it unchanged"
            )
            return
        item.status = new
        item.updated_at = self.clock.now()
