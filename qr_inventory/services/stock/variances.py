"""
Inventory Variance Service
Physical count vs system stock, staged for approval
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from qr_inventory.core.audit import log_user_action
from qr_inventory.core.clock import Clock, system_clock
from qr_inventory.core.database import unit_of_work
from qr_inventory.core.exceptions import (
    AlreadyProcessedError, InvalidRequestError, InvalidStateError, NotFoundError
)
from qr_inventory.core.locking import item_locks
from qr_inventory.core.logging import get_logger
from qr_inventory.core.qr_code import normalize_qr_code
from qr_inventory.core.quantities import Quantities
from qr_inventory.models.counting import InventoryVariance
from qr_inventory.services.stock.blocks import ensure_allowed
from qr_inventory.services.stock.movements import StockMovementsService

logger = get_logger("variances")


@dataclass(frozen=True)
class VarianceResult:
    """Outcome of comparing a physical count with the ledger"""
    qr_code: str
    location: str
    counted: Quantities
    system: Quantities
    has_variance: bool
    variance_id: Optional[int] = None

    @property
    def variance(self) -> Quantities:
        return self.counted - self.system

    @property
    def variance_total(self) -> int:
        return self.counted.total - self.system.total


class InventoryVarianceService:
    """
    Inventory Variance functionality

    Approval is the only way a variance reaches the ledger: it writes an
    adjustment count equal to the counted quantities plus the matching
    adjustment movement.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or system_clock
        self.movements = StockMovementsService(db, self.clock)
        self.ledger = self.movements.ledger

    def detect_variance(
        self,
        qr_code: str,
        counted,
        location: Optional[str] = None,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> VarianceResult:
        """
        Compare counted quantities with current stock

        A zero total variance writes nothing and reports has_variance=False.
        """
        code = normalize_qr_code(qr_code)
        counted = Quantities.coerce(counted)

        with item_locks.hold(code):
            with unit_of_work(self.db, "detect_variance", logger):
                item = self.ledger._require_item(code)
                if item.status == 'deleted':
                    raise InvalidStateError("item", item.status, "detect variance")
                location = (location or '').strip() or item.location
                system = self.ledger._snapshot(code, location).quantities

                if counted.total == system.total:
                    return VarianceResult(code, location, counted, system, has_variance=False)

                now = self.clock.now()
                variance = InventoryVariance(
                    qr_code=code,
                    location=location,
                    counted_unrestrict=counted.unrestrict,
                    counted_foc=counted.foc,
                    counted_rfb=counted.rfb,
                    system_unrestrict=system.unrestrict,
                    system_foc=system.foc,
                    system_rfb=system.rfb,
                    status='pending',
                    reason=reason,
                    count_date=now,
                )
                self.db.add(variance)
                self.db.flush()
                variance_id = variance.id

                log_user_action(
                    db=self.db,
                    actor=actor,
                    action="DETECT_VARIANCE",
                    table="inventory_variances",
                    key=code,
                    new_values={
                        'variance_id': variance_id,
                        'counted': counted.as_dict(),
                        'system': system.as_dict(),
                    },
                    timestamp=now,
                )

        result = VarianceResult(code, location, counted, system, has_variance=True, variance_id=variance_id)
        logger.info(f"Variance {variance_id} detected for {code} at {location!r}: total {result.variance_total:+d}")
        return result

    def approve_variance(self, variance_id: int, approver: str, reason: Optional[str] = None) -> InventoryVariance:
        """Apply a pending variance to the ledger"""
        if not approver:
            raise InvalidRequestError("Approver is required", field="approved_by")
        code = self._require_variance(variance_id).qr_code

        with item_locks.hold(code):
            with unit_of_work(self.db, "approve_variance", logger):
                variance = self._require_variance(variance_id)
                if variance.status != 'pending':
                    raise AlreadyProcessedError(variance_id, variance.status)

                item = self.ledger._require_item(code)
                if item.status == 'deleted':
                    raise InvalidStateError("item", item.status, "approve variance")
                ensure_allowed(self.db, code, 'variance_approval')

                counted = Quantities(variance.counted_unrestrict, variance.counted_foc, variance.counted_rfb)
                system = Quantities(variance.system_unrestrict, variance.system_foc, variance.system_rfb)
                current = self.ledger._snapshot(code, variance.location).quantities
                if current != system:
                    logger.warning(
                        f"Stock for {code} at {variance.location!r} changed since variance {variance_id} "
                        f"was detected; adjusting from current stock"
                    )

                movement = self.movements._apply(
                    item, 'adjustment', counted, variance.location,
                    to_location=variance.location,
                    reason=f"Variance {variance_id} approved" + (f": {reason}" if reason else ''),
                    reference=f"VAR-{variance_id}",
                    actor=approver,
                    count_notes=f"Variance adjustment {variance_id}",
                )

                now = self.clock.now()
                variance.status = 'approved'
                variance.approved_by = approver
                variance.approved_at = now
                variance.movement_id = movement.id
                variance.stock_count_id = movement.stock_count_id
                if reason:
                    variance.reason = self._append(variance.reason, f"Approved: {reason}")

                log_user_action(
                    db=self.db,
                    actor=approver,
                    action="APPROVE_VARIANCE",
                    table="inventory_variances",
                    key=str(variance_id),
                    old_values={'status': 'pending'},
                    new_values={'status': 'approved', 'movement_id': movement.id},
                    timestamp=now,
                )

        logger.info(f"Variance {variance_id} approved by {approver}")
        return variance

    def reject_variance(self, variance_id: int, approver: str, reason: Optional[str] = None) -> InventoryVariance:
        """Reject a pending variance; the ledger is untouched"""
        if not approver:
            raise InvalidRequestError("Approver is required", field="approved_by")
        code = self._require_variance(variance_id).qr_code

        with item_locks.hold(code):
            with unit_of_work(self.db, "reject_variance", logger):
                variance = self._require_variance(variance_id)
                if variance.status != 'pending':
                    raise AlreadyProcessedError(variance_id, variance.status)

                now = self.clock.now()
                variance.status = 'rejected'
                variance.approved_by = approver
                variance.approved_at = now
                if reason:
                    variance.reason = self._append(variance.reason, f"Rejected: {reason}")

                log_user_action(
                    db=self.db,
                    actor=approver,
                    action="REJECT_VARIANCE",
                    table="inventory_variances",
                    key=str(variance_id),
                    old_values={'status': 'pending'},
                    new_values={'status': 'rejected', 'reason': reason},
                    timestamp=now,
                )

        logger.info(f"Variance {variance_id} rejected by {approver}")
        return variance

    def get_variance(self, variance_id: int) -> InventoryVariance:
        return self._require_variance(variance_id)

    def list_variances(
        self,
        status: Optional[str] = 'pending',
        location: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[InventoryVariance]:
        """Variances ordered by the size of the difference, largest first"""
        query = self.db.query(InventoryVariance)
        if status and status != 'all':
            query = query.filter(InventoryVariance.status == status)
        if location:
            query = query.filter(InventoryVariance.location.ilike(f"%{location}%"))
        if date_from:
            query = query.filter(InventoryVariance.count_date >= date_from)
        if date_to:
            query = query.filter(InventoryVariance.count_date <= date_to)

        return (
            query.order_by(
                desc(func.abs(InventoryVariance.variance_total)),
                desc(InventoryVariance.count_date),
                desc(InventoryVariance.id),
            )
            .offset(offset)
            .limit(limit)
            .all()
        )

    def variance_report(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        location: Optional[str] = None,
    ) -> List[Dict]:
        """Variances grouped by location and day"""
        variances = self.list_variances(
            status='all', location=location, date_from=date_from, date_to=date_to, limit=100000
        )

        groups: Dict = defaultdict(lambda: {
            'total_variances': 0,
            'positive_variances': 0,
            'negative_variances': 0,
            'total_positive': 0,
            'total_negative': 0,
            'pending': 0,
            'approved': 0,
            'rejected': 0,
        })
        for variance in variances:
            entry = groups[(variance.location, variance.count_date.date())]
            entry['total_variances'] += 1
            if variance.variance_total > 0:
                entry['positive_variances'] += 1
                entry['total_positive'] += variance.variance_total
            elif variance.variance_total < 0:
                entry['negative_variances'] += 1
                entry['total_negative'] += variance.variance_total
            entry[variance.status] += 1

        report = [
            {'location': location_key, 'count_date': day, **entry}
            for (location_key, day), entry in groups.items()
        ]
        report.sort(key=lambda row: (row['count_date'], row['location']), reverse=True)
        return report

    def variance_stats(self, days: int = 30) -> Dict:
        """Totals over the last ``days`` days"""
        since = self.clock.now() - timedelta(days=days)
        variances = (
            self.db.query(InventoryVariance)
            .filter(InventoryVariance.count_date >= since)
            .all()
        )

        total = len(variances)
        approved = sum(1 for v in variances if v.status == 'approved')
        rejected = sum(1 for v in variances if v.status == 'rejected')
        processed = approved + rejected

        return {
            'period_days': days,
            'total_variances': total,
            'pending': sum(1 for v in variances if v.status == 'pending'),
            'approved': approved,
            'rejected': rejected,
            'surplus_count': sum(1 for v in variances if v.variance_total > 0),
            'shortage_count': sum(1 for v in variances if v.variance_total < 0),
            'total_surplus': sum(v.variance_total for v in variances if v.variance_total > 0),
            'total_shortage': sum(v.variance_total for v in variances if v.variance_total < 0),
            'approval_rate': round(approved / processed * 100, 1) if processed else None,
        }

    def _require_variance(self, variance_id: int) -> InventoryVariance:
        variance = self.db.get(InventoryVariance, variance_id, populate_existing=True)
        if variance is None:
            raise NotFoundError("variance", variance_id)
        return variance

    @staticmethod
    def _append(existing: Optional[str], addition: str) -> str:
        return f"{existing}\n{addition}" if existing else addition
