"""
Tests for the Stock Movements Service
Critical business logic: movements never drive stock negative
"""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from qr_inventory.core.exceptions import (
    InsufficientStockError, InvalidRequestError, InvalidStateError, NotFoundError
)
from qr_inventory.models import Item, StockCount, StockMovement
from qr_inventory.services.stock import StockLedgerService, StockMovementsService
from tests.conftest import CODE_A, CODE_B


@pytest.fixture
def stocked(db_session: Session, clock):
    """CODE_A counted at A-01 with 10/5/2"""
    StockLedgerService(db_session, clock).record_count(
        CODE_A, {"unrestrict": 10, "foc": 5, "rfb": 2}, location="A-01"
    )
    return CODE_A


class TestApplyMovement:
    """Test suite for StockMovementsService.apply_movement"""

    def test_in_adds_to_stock(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        movement_id = service.apply_movement(stocked, 'in', {"unrestrict": 3, "rfb": 1}, reference="PO-1")

        snapshot = service.ledger.current_stock(stocked)
        assert (snapshot.unrestrict, snapshot.foc, snapshot.rfb) == (13, 5, 3)

        movement = db_session.get(StockMovement, movement_id)
        assert movement.movement_type == 'in'
        assert movement.to_location == "A-01"
        assert movement.total_qty == 4
        assert movement.reference_doc == "PO-1"

    def test_out_subtracts_from_stock(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        movement_id = service.apply_movement(stocked, 'out', {"unrestrict": 10, "foc": 5})

        snapshot = service.ledger.current_stock(stocked)
        assert (snapshot.unrestrict, snapshot.foc, snapshot.rfb) == (0, 0, 2)
        movement = db_session.get(StockMovement, movement_id)
        assert movement.from_location == "A-01"
        assert (movement.unrestrict_qty, movement.foc_qty) == (10, 5)

    def test_scenario_out_exceeding_stock(self, db_session: Session, clock, stocked):
        """Out of 15 against 10 unrestrict fails short by 5 and leaves 10/5/2"""
        service = StockMovementsService(db_session, clock)

        with pytest.raises(InsufficientStockError) as exc_info:
            service.apply_movement(stocked, 'out', {"unrestrict": 15})

        error = exc_info.value
        assert error.bucket == 'unrestrict'
        assert error.available == 10
        assert error.requested == 15
        assert error.shortfall == 5
        assert error.details["shortfall"] == 5

        snapshot = service.ledger.current_stock(stocked)
        assert (snapshot.unrestrict, snapshot.foc, snapshot.rfb) == (10, 5, 2)
        assert db_session.query(StockMovement).count() == 0
        assert db_session.query(StockCount).count() == 1

    def test_out_checks_every_bucket(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        with pytest.raises(InsufficientStockError) as exc_info:
            service.apply_movement(stocked, 'out', {"unrestrict": 1, "rfb": 3})

        assert exc_info.value.bucket == 'rfb'
        assert exc_info.value.shortfall == 1

    def test_out_of_never_counted_item(self, db_session: Session, clock):
        StockLedgerService(db_session, clock).register_item(CODE_B, location="B-01")
        service = StockMovementsService(db_session, clock)

        with pytest.raises(InsufficientStockError) as exc_info:
            service.apply_movement(CODE_B, 'out', {"foc": 1})

        assert exc_info.value.available == 0

    def test_adjustment_sets_absolute_quantities(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        movement_id = service.apply_movement(stocked, 'adjustment', {"unrestrict": 7, "foc": 5, "rfb": 4})

        snapshot = service.ledger.current_stock(stocked)
        assert (snapshot.unrestrict, snapshot.foc, snapshot.rfb) == (7, 5, 4)

        movement = db_session.get(StockMovement, movement_id)
        assert (movement.unrestrict_qty, movement.foc_qty, movement.rfb_qty) == (-3, 0, 2)
        assert movement.stock_count.count_type == 'adjustment'

    def test_adjustment_to_negative_rejected(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        with pytest.raises(InsufficientStockError) as exc_info:
            service.apply_movement(stocked, 'adjustment', {"unrestrict": -2, "foc": 5, "rfb": 2})

        assert exc_info.value.bucket == 'unrestrict'
        assert exc_info.value.shortfall == 2
        assert service.ledger.current_stock(stocked).unrestrict == 10

    def test_movement_and_count_are_paired(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        movement_id = service.apply_movement(stocked, 'in', {"unrestrict": 1})

        movement = db_session.get(StockMovement, movement_id)
        count = movement.stock_count
        assert count.count_type == 'movement'
        assert count.unrestrict == 11
        assert service.ledger.current_stock(stocked).count_id == count.id

    def test_transfer_type_is_not_direct(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        with pytest.raises(InvalidRequestError):
            service.apply_movement(stocked, 'transfer', {"unrestrict": 1})

    def test_unknown_type_rejected(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        with pytest.raises(InvalidRequestError):
            service.apply_movement(stocked, 'scrap', {"unrestrict": 1})

    def test_zero_quantity_rejected(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        with pytest.raises(InvalidRequestError):
            service.apply_movement(stocked, 'in', {"unrestrict": 0})

    def test_unknown_item_rejected(self, db_session: Session, clock):
        service = StockMovementsService(db_session, clock)

        with pytest.raises(NotFoundError):
            service.apply_movement(CODE_B, 'in', {"unrestrict": 1})

    def test_deleted_item_rejected(self, db_session: Session, clock, stocked):
        StockLedgerService(db_session, clock).delete_item(stocked)
        service = StockMovementsService(db_session, clock)

        with pytest.raises(InvalidStateError):
            service.apply_movement(stocked, 'in', {"unrestrict": 1})

    def test_in_at_new_location_carries_stock(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        movement_id = service.apply_movement(stocked, 'in', {"unrestrict": 5}, to_location="Z-09")

        snapshot = service.ledger.current_stock(stocked)
        assert snapshot.location == "Z-09"
        assert (snapshot.unrestrict, snapshot.foc, snapshot.rfb) == (15, 5, 2)
        assert snapshot.total == 22
        assert db_session.query(Item).filter(Item.qr_code == stocked).one().location == "Z-09"
        movement = db_session.get(StockMovement, movement_id)
        assert (movement.to_location, movement.unrestrict_qty) == ("Z-09", 5)

    def test_adjustment_at_new_location_moves_item(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)

        movement_id = service.apply_movement(
            stocked, 'adjustment', {"unrestrict": 8, "foc": 5, "rfb": 2}, to_location="B-02"
        )

        assert service.ledger.current_stock(stocked).location == "B-02"
        assert service.ledger.current_stock(stocked).unrestrict == 8
        assert db_session.get(StockMovement, movement_id).unrestrict_qty == -2

    def test_out_from_other_location_drains_residue(self, db_session: Session, clock, stocked):
        """An explicit source for out reads that location and leaves the item where it is"""
        ledger = StockLedgerService(db_session, clock)
        ledger.record_count(stocked, {"unrestrict": 3}, location="OLD")
        clock.advance(minutes=1)
        ledger.record_count(stocked, {"unrestrict": 10, "foc": 5, "rfb": 2}, location="A-01")
        service = StockMovementsService(db_session, clock)

        service.apply_movement(stocked, 'out', {"unrestrict": 3}, from_location="OLD")

        assert ledger.current_stock(stocked, location="OLD").total == 0
        assert ledger.current_stock(stocked).location == "A-01"
        assert ledger.current_stock(stocked).unrestrict == 10


class TestMovementQueries:
    """Test suite for movement listing and statistics"""

    def test_list_and_filter(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)
        service.apply_movement(stocked, 'in', {"unrestrict": 2}, actor="ana")
        clock.advance(minutes=1)
        service.apply_movement(stocked, 'out', {"foc": 1}, actor="rui")

        movements, total = service.list_movements()
        assert total == 2
        assert movements[0].movement_type == 'out'

        movements, total = service.list_movements({"movement_type": "in"})
        assert total == 1
        assert movements[0].created_by == "ana"

        _, total = service.list_movements({"location": "A-01", "created_by": "ru"})
        assert total == 1

        _, total = service.list_movements({"date_from": clock.now() + timedelta(minutes=1)})
        assert total == 0

    def test_history(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)
        service.apply_movement(stocked, 'in', {"unrestrict": 2})

        history = service.movement_history(stocked)

        assert len(history) == 1
        assert history[0].qr_code == stocked

    def test_stats(self, db_session: Session, clock, stocked):
        service = StockMovementsService(db_session, clock)
        service.apply_movement(stocked, 'in', {"unrestrict": 2, "foc": 1}, actor="ana")
        service.apply_movement(stocked, 'in', {"unrestrict": 1}, actor="rui")
        service.apply_movement(stocked, 'out', {"unrestrict": 4}, actor="ana")

        stats = service.movement_stats()

        assert stats['by_type']['in']['movement_count'] == 2
        assert stats['by_type']['in']['total_quantity'] == 4
        assert stats['by_type']['in']['unique_users'] == 2
        assert stats['by_type']['out']['total_quantity'] == 4
        assert stats['by_type']['transfer']['movement_count'] == 0
        assert stats['general']['total_movements'] == 3
        assert stats['general']['unique_items'] == 1
