"""Stock Movement API endpoints"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from qr_inventory.api import deps
from qr_inventory.core.clock import Clock
from qr_inventory.models.stock import StockMovement as StockMovementRec
from qr_inventory.schemas.inventory import (
    MovementCreate, MovementList, MovementType, StockMovement,
)
from qr_inventory.services.stock import movement_service

router = APIRouter()


@router.get("", response_model=MovementList)
def list_movements(
    qr_code: Optional[str] = Query(None, description="Filter by item"),
    movement_type: Optional[MovementType] = Query(None, description="Filter by type"),
    location: Optional[str] = Query(None, description="Source or destination location"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    created_by: Optional[str] = None,
    movement_status: Optional[str] = Query(None, alias="status"),
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """List stock movements with optional filters."""
    movements, total = movement_service(db, clock).list_movements(
        {
            "qr_code": qr_code,
            "movement_type": movement_type.value if movement_type else None,
            "location": location,
            "date_from": date_from,
            "date_to": date_to,
            "created_by": created_by,
            "status": movement_status,
        },
        limit=limit,
        offset=skip,
    )
    return {"movements": movements, "total": total}


@router.post("", response_model=StockMovement, status_code=status.HTTP_201_CREATED)
def apply_movement(
    movement_in: MovementCreate,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """
    Apply an in, out or adjustment movement.

    Adjustments carry the new absolute quantities.
    """
    movement_id = movement_service(db, clock).apply_movement(
        movement_in.qr_code,
        movement_in.movement_type.value,
        {"unrestrict": movement_in.unrestrict, "foc": movement_in.foc, "rfb": movement_in.rfb},
        from_location=movement_in.from_location,
        to_location=movement_in.to_location,
        reason=movement_in.reason,
        reference=movement_in.reference,
        actor=movement_in.actor,
    )
    return db.get(StockMovementRec, movement_id)


@router.get("/stats")
def movement_stats(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return movement_service(db, clock).movement_stats(date_from, date_to)


@router.get("/item/{qr_code}", response_model=List[StockMovement])
def movement_history(
    qr_code: str,
    limit: int = 50,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return movement_service(db, clock).movement_history(qr_code, limit=limit)
