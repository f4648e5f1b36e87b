"""
Tests for the Cyclic Count Service
Scheduling, execution snapshots, staleness and compliance
"""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from qr_inventory.core.config import settings
from qr_inventory.core.exceptions import (
    DuplicateLocationError, InactiveError, InvalidRequestError, NotFoundError
)
from qr_inventory.models import CyclicCount
from qr_inventory.services.stock import CyclicCountService, StockLedgerService
from tests.conftest import CODE_A, CODE_B, CODE_C


@pytest.fixture
def location(db_session: Session, clock):
    """A-01 holds CODE_A (counted) and CODE_B (never counted)"""
    ledger = StockLedgerService(db_session, clock)
    ledger.record_count(CODE_A, {"unrestrict": 4, "foc": 1}, location="A-01")
    ledger.register_item(CODE_B, location="A-01")
    ledger.record_count(CODE_C, {"unrestrict": 9}, location="C-01")
    return "A-01"


class TestScheduling:
    """Test suite for schedule and update"""

    def test_schedule_sets_next_date(self, db_session: Session, clock):
        service = CyclicCountService(db_session, clock)

        cyclic = service.schedule_cyclic_count("A-01", 7, actor="planner")

        assert cyclic.status == 'active'
        assert cyclic.last_count_date is None
        assert cyclic.next_count_date == clock.now() + timedelta(days=7)

    def test_duplicate_active_location(self, db_session: Session, clock):
        service = CyclicCountService(db_session, clock)
        first = service.schedule_cyclic_count("A-01", 7)

        with pytest.raises(DuplicateLocationError) as exc_info:
            service.schedule_cyclic_count("A-01", 14)

        assert exc_info.value.cyclic_count_id == first.id
        assert db_session.query(CyclicCount).count() == 1

    def test_paused_location_can_be_rescheduled(self, db_session: Session, clock):
        service = CyclicCountService(db_session, clock)
        first = service.schedule_cyclic_count("A-01", 7)
        service.update_cyclic_count(first.id, status='paused')

        second = service.schedule_cyclic_count("A-01", 14)

        assert second.id != first.id
        with pytest.raises(DuplicateLocationError):
            service.update_cyclic_count(first.id, status='active')

    @pytest.mark.parametrize("frequency", [0, -3, 1.5, True])
    def test_invalid_frequency(self, db_session: Session, clock, frequency):
        with pytest.raises(InvalidRequestError):
            CyclicCountService(db_session, clock).schedule_cyclic_count("A-01", frequency)

    def test_location_required(self, db_session: Session, clock):
        with pytest.raises(InvalidRequestError):
            CyclicCountService(db_session, clock).schedule_cyclic_count("  ", 7)

    def test_frequency_change_rederives_next_date(self, db_session: Session, clock):
        service = CyclicCountService(db_session, clock)
        cyclic = service.schedule_cyclic_count("A-01", 7)
        created = clock.now()
        clock.advance(days=2)

        updated = service.update_cyclic_count(cyclic.id, frequency_days=10)

        assert updated.frequency_days == 10
        assert updated.next_count_date == created + timedelta(days=10)

    def test_delete(self, db_session: Session, clock):
        service = CyclicCountService(db_session, clock)
        cyclic = service.schedule_cyclic_count("A-01", 7)

        service.delete_cyclic_count(cyclic.id)

        with pytest.raises(NotFoundError):
            service.get_cyclic_count(cyclic.id)


class TestExecution:
    """Test suite for running cyclic counts"""

    def test_execute_snapshots_location(self, db_session: Session, clock, location):
        service = CyclicCountService(db_session, clock)
        cyclic = service.schedule_cyclic_count(location, 7)
        clock.advance(days=7)

        execution = service.execute_cyclic_count(cyclic.id, actor="counter")

        assert execution.location == location
        assert execution.executed_at == clock.now()
        assert execution.next_count_date == clock.now() + timedelta(days=7)
        assert [entry['qr_code'] for entry in execution.items] == [CODE_A, CODE_B]
        stock_a = execution.items[0]['stock']
        assert (stock_a.unrestrict, stock_a.foc, stock_a.ever_counted) == (4, 1, True)
        assert execution.items[1]['stock'].ever_counted is False

        record = service.get_cyclic_count(cyclic.id)
        assert record.last_count_date == clock.now()

    def test_execute_does_not_write_counts(self, db_session: Session, clock, location):
        service = CyclicCountService(db_session, clock)
        cyclic = service.schedule_cyclic_count(location, 7)

        service.execute_cyclic_count(cyclic.id)

        assert len(service.ledger.count_history(CODE_A)) == 1

    def test_execute_unknown(self, db_session: Session, clock):
        with pytest.raises(NotFoundError):
            CyclicCountService(db_session, clock).execute_cyclic_count(42)

    def test_execute_paused(self, db_session: Session, clock, location):
        service = CyclicCountService(db_session, clock)
        cyclic = service.schedule_cyclic_count(location, 7)
        service.update_cyclic_count(cyclic.id, status='paused')

        with pytest.raises(InactiveError):
            service.execute_cyclic_count(cyclic.id)


class TestPendingAndPerformance:
    """Test suite for staleness classification and compliance"""

    def test_pending_uses_schedule_frequency(self, db_session: Session, clock, location):
        service = CyclicCountService(db_session, clock)
        service.schedule_cyclic_count(location, 7)
        clock.advance(days=8)

        pending = {row['qr_code']: row for row in service.pending_for(location)}

        assert pending[CODE_B]['count_status'] == 'never_counted'
        assert pending[CODE_A]['count_status'] == 'overdue'
        assert pending[CODE_A]['days_since_count'] == 8
        assert pending[CODE_A]['threshold_days'] == 7

    def test_pending_default_threshold(self, db_session: Session, clock, location):
        service = CyclicCountService(db_session, clock)
        clock.advance(days=settings.DEFAULT_OVERDUE_DAYS)

        pending = {row['qr_code']: row for row in service.pending_for(location)}
        assert pending[CODE_A]['count_status'] == 'current'

        clock.advance(days=1)
        pending = {row['qr_code']: row for row in service.pending_for(location)}
        assert pending[CODE_A]['count_status'] == 'overdue'
        assert pending[CODE_A]['threshold_days'] == settings.DEFAULT_OVERDUE_DAYS

    def test_pending_orders_most_urgent_first(self, db_session: Session, clock, location):
        rows = CyclicCountService(db_session, clock).pending_for(location)

        assert [row['count_status'] for row in rows] == ['never_counted', 'current']

    def test_list_with_item_totals(self, db_session: Session, clock, location):
        service = CyclicCountService(db_session, clock)
        service.schedule_cyclic_count(location, 7)
        service.schedule_cyclic_count("C-01", 30)

        rows = service.list_cyclic_counts()

        assert [(row['cyclic_count'].location, row['total_items']) for row in rows] == [("A-01", 2), ("C-01", 1)]

    def test_performance(self, db_session: Session, clock, location):
        service = CyclicCountService(db_session, clock)
        service.schedule_cyclic_count(location, 7)
        service.schedule_cyclic_count("C-01", 30)
        clock.advance(days=5)

        results = {row['location']: row for row in service.performance()}

        assert results["A-01"]['total_items'] == 2
        assert results["A-01"]['counted_items'] == 1
        assert results["A-01"]['compliance_percentage'] == 50.0
        assert results["A-01"]['schedule_status'] == 'due_soon'
        assert results["C-01"]['compliance_percentage'] == 100.0
        assert results["C-01"]['schedule_status'] == 'on_schedule'

        clock.advance(days=3)
        results = {row['location']: row for row in service.performance()}
        assert results["A-01"]['schedule_status'] == 'overdue'
        assert results["A-01"]['counted_items'] == 0
