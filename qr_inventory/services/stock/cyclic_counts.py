"""
Cyclic Count Service
Recurring per-location counting schedules and compliance
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from qr_inventory.core.audit import log_user_action
from qr_inventory.core.clock import Clock, system_clock
from qr_inventory.core.config import settings
from qr_inventory.core.database import unit_of_work
from qr_inventory.core.exceptions import (
    DuplicateLocationError, InactiveError, InvalidRequestError, NotFoundError
)
from qr_inventory.core.locking import location_locks
from qr_inventory.core.logging import get_logger
from qr_inventory.models.counting import CyclicCount, CYCLIC_STATUSES
from qr_inventory.services.stock.ledger import StockLedgerService

logger = get_logger("cyclic")


@dataclass
class CyclicCountExecution:
    """Item snapshot handed to the counter when a cyclic count runs"""
    cyclic_count_id: int
    location: str
    executed_at: datetime
    next_count_date: datetime
    items: List[Dict] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return len(self.items)


class CyclicCountService:
    """
    Cyclic Count functionality

    One active schedule per location. Running a schedule only snapshots the
    location; counts are submitted through the ledger.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock
        self.ledger = StockLedgerService(db, self.clock)

    def schedule_cyclic_count(self, location: str, frequency_days: int, actor: Optional[str] = None) -> CyclicCount:
        location = (location or '').strip()
        if not location:
            raise InvalidRequestError("Location is required", field="location")
        self._check_frequency(frequency_days)

        with location_locks.hold(location):
            with unit_of_work(self.db, "schedule_cyclic_count", logger):
                existing = self._active_for(location)
                if existing is not None:
                    raise DuplicateLocationError(location, existing.id)

                now = self.clock.now()
                cyclic = CyclicCount(
                    location=location,
                    frequency_days=frequency_days,
                    next_count_date=now + timedelta(days=frequency_days),
                    status='active',
                    created_by=actor,
                    created_at=now,
                    updated_at=now,
                )
                self.db.add(cyclic)
                self.db.flush()

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="SCHEDULE_CYCLIC_COUNT",
                    table="cyclic_counts",
                    key=location,
                    new_values={'frequency_days': frequency_days},
                    timestamp=now,
                )

        logger.info(f"Cyclic count {cyclic.id} scheduled for {location!r} every {frequency_days} day(s)")
        return cyclic

    def execute_cyclic_count(self, cyclic_count_id: int, actor: Optional[str] = None) -> CyclicCountExecution:
        """
        Run a cyclic count
        Returns the active items at the location with their current stock
        """
        location = self._require(cyclic_count_id).location

        with location_locks.hold(location):
            with unit_of_work(self.db, "execute_cyclic_count", logger):
                cyclic = self._require(cyclic_count_id)
                if cyclic.status != 'active':
                    raise InactiveError("cyclic count", cyclic.status, "execute")

                now = self.clock.now()
                items = [
                    {
                        'qr_code': item.qr_code,
                        'description': item.description,
                        'status': item.status,
                        'stock': self.ledger._snapshot(item.qr_code, location),
                    }
                    for item in self.ledger.items_at(location)
                ]

                cyclic.last_count_date = now
                cyclic.next_count_date = now + timedelta(days=cyclic.frequency_days)
                cyclic.updated_at = now

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="EXECUTE_CYCLIC_COUNT",
                    table="cyclic_counts",
                    key=location,
                    new_values={'items': len(items), 'next_count_date': cyclic.next_count_date.isoformat()},
                    timestamp=now,
                )

                execution = CyclicCountExecution(
                    cyclic_count_id=cyclic.id,
                    location=location,
                    executed_at=now,
                    next_count_date=cyclic.next_count_date,
                    items=items,
                )

        logger.info(f"Cyclic count {cyclic_count_id} executed at {location!r}: {execution.total_items} item(s)")
        return execution

    def pending_for(self, location: str) -> List[Dict]:
        """
        Classify each item at a location as never_counted, overdue or current

        The staleness threshold is the location's active schedule frequency,
        falling back to DEFAULT_OVERDUE_DAYS.
        """
        location = (location or '').strip()
        if not location:
            raise InvalidRequestError("Location is required", field="location")

        cyclic = self._active_for(location)
        threshold = cyclic.frequency_days if cyclic else settings.DEFAULT_OVERDUE_DAYS
        now = self.clock.now()
        last_dates = self.ledger.last_count_dates(location)

        pending = []
        for item in self.ledger.items_at(location):
            last = last_dates.get(item.qr_code)
            if last is None:
                status, days_since = 'never_counted', None
            else:
                days_since = (now - last).days
                status = 'overdue' if now - last > timedelta(days=threshold) else 'current'
            pending.append({
                'qr_code': item.qr_code,
                'description': item.description,
                'last_count_date': last,
                'days_since_count': days_since,
                'count_status': status,
                'threshold_days': threshold,
            })

        order = {'never_counted': 0, 'overdue': 1, 'current': 2}
        pending.sort(key=lambda row: (order[row['count_status']], row['qr_code']))
        return pending

    def list_cyclic_counts(self, status: Optional[str] = None) -> List[Dict]:
        query = self.db.query(CyclicCount)
        if status:
            query = query.filter(CyclicCount.status == status)
        records = query.order_by(CyclicCount.next_count_date, CyclicCount.id).all()
        return [
            {'cyclic_count': record, 'total_items': len(self.ledger.items_at(record.location))}
            for record in records
        ]

    def get_cyclic_count(self, cyclic_count_id: int) -> CyclicCount:
        return self._require(cyclic_count_id)

    def update_cyclic_count(
        self,
        cyclic_count_id: int,
        frequency_days: Optional[int] = None,
        status: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> CyclicCount:
        """Change frequency or status; a frequency change re-derives the next count date"""
        if frequency_days is None and status is None:
            raise InvalidRequestError("Nothing to update")
        if frequency_days is not None:
            self._check_frequency(frequency_days)
        if status is not None and status not in CYCLIC_STATUSES:
            raise InvalidRequestError(f"Invalid status: {status}", field="status")

        location = self._require(cyclic_count_id).location

        with location_locks.hold(location):
            with unit_of_work(self.db, "update_cyclic_count", logger):
                cyclic = self._require(cyclic_count_id)
                old_values = {'frequency_days': cyclic.frequency_days, 'status': cyclic.status}

                if status == 'active' and cyclic.status != 'active':
                    other = self._active_for(location)
                    if other is not None and other.id != cyclic.id:
                        raise DuplicateLocationError(location, other.id)

                if frequency_days is not None and frequency_days != cyclic.frequency_days:
                    cyclic.frequency_days = frequency_days
                    anchor = cyclic.last_count_date or cyclic.created_at
                    cyclic.next_count_date = anchor + timedelta(days=frequency_days)
                if status is not None:
                    cyclic.status = status
                cyclic.updated_at = self.clock.now()

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="UPDATE_CYCLIC_COUNT",
                    table="cyclic_counts",
                    key=location,
                    old_values=old_values,
                    new_values={'frequency_days': cyclic.frequency_days, 'status': cyclic.status},
                    timestamp=self.clock.now(),
                )

        logger.info(f"Cyclic count {cyclic_count_id} updated")
        return cyclic

    def delete_cyclic_count(self, cyclic_count_id: int, actor: Optional[str] = None) -> None:
        location = self._require(cyclic_count_id).location

        with location_locks.hold(location):
            with unit_of_work(self.db, "delete_cyclic_count", logger):
                cyclic = self._require(cyclic_count_id)
                self.db.delete(cyclic)

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="DELETE_CYCLIC_COUNT",
                    table="cyclic_counts",
                    key=location,
                    old_values={'frequency_days': cyclic.frequency_days, 'status': cyclic.status},
                    timestamp=self.clock.now(),
                )

        logger.info(f"Cyclic count {cyclic_count_id} deleted")

    def performance(self) -> List[Dict]:
        """Compliance per active schedule: share of items counted within the frequency window"""
        now = self.clock.now()
        due_soon = timedelta(days=settings.DUE_SOON_DAYS)
        records = (
            self.db.query(CyclicCount)
            .filter(CyclicCount.status == 'active')
            .order_by(CyclicCount.next_count_date)
            .all()
        )

        results = []
        for record in records:
            window_start = now - timedelta(days=record.frequency_days)
            last_dates = self.ledger.last_count_dates(record.location)
            items = self.ledger.items_at(record.location)
            counted = sum(
                1 for item in items
                if last_dates.get(item.qr_code) is not None and last_dates[item.qr_code] >= window_start
            )

            if record.next_count_date < now:
                schedule_status = 'overdue'
            elif record.next_count_date <= now + due_soon:
                schedule_status = 'due_soon'
            else:
                schedule_status = 'on_schedule'

            results.append({
                'cyclic_count_id': record.id,
                'location': record.location,
                'frequency_days': record.frequency_days,
                'last_count_date': record.last_count_date,
                'next_count_date': record.next_count_date,
                'total_items': len(items),
                'counted_items': counted,
                'compliance_percentage': round(counted * 100.0 / len(items), 2) if items else 0.0,
                'schedule_status': schedule_status,
            })
        return results

    def _check_frequency(self, frequency_days) -> None:
        if isinstance(frequency_days, bool) or not isinstance(frequency_days, int) or frequency_days <= 0:
            raise InvalidRequestError("Frequency must be a positive number of days", field="frequency_days")

    def _active_for(self, location: str) -> Optional[CyclicCount]:
        return (
            self.db.query(CyclicCount)
            .filter(CyclicCount.location == location, CyclicCount.status == 'active')
            .order_by(desc(CyclicCount.id))
            .first()
        )

    def _require(self, cyclic_count_id: int) -> CyclicCount:
        cyclic = self.db.get(CyclicCount, cyclic_count_id, populate_existing=True)
        if cyclic is None:
            raise NotFoundError("cyclic count", cyclic_count_id)
        return cyclic
