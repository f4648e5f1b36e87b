"""Location Transfer API endpoints"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from qr_inventory.api import deps
from qr_inventory.core.clock import Clock
from qr_inventory.schemas.inventory import (
    LocationTransfer, TransferAction, TransferCancel, TransferCreate, TransferListEntry,
)
from qr_inventory.services.stock import transfer_service

router = APIRouter()


@router.get("", response_model=List[TransferListEntry])
def list_transfers(
    transfer_status: Optional[str] = Query(None, alias="status"),
    from_location: Optional[str] = None,
    to_location: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    created_by: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return transfer_service(db, clock).list_transfers(
        {
            "status": transfer_status,
            "from_location": from_location,
            "to_location": to_location,
            "date_from": date_from,
            "date_to": date_to,
            "created_by": created_by,
        },
        limit=limit,
        offset=skip,
    )


@router.post("", response_model=LocationTransfer, status_code=status.HTTP_201_CREATED)
def create_transfer(
    transfer_in: TransferCreate,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """
    Create a pending transfer.

    Every line must be covered by stock at the source location.
    """
    return transfer_service(db, clock).create_transfer(
        transfer_in.from_location,
        transfer_in.to_location,
        [line.model_dump() for line in transfer_in.items],
        actor=transfer_in.created_by,
        notes=transfer_in.notes,
    )


@router.get("/summary")
def transfer_summary(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return transfer_service(db, clock).transfer_summary(date_from, date_to)


@router.get("/{transfer_id}", response_model=LocationTransfer)
def get_transfer(
    transfer_id: int,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return transfer_service(db, clock).get_transfer(transfer_id)


@router.post("/{transfer_id}/approve", response_model=LocationTransfer)
def approve_transfer(
    transfer_id: int,
    action: TransferAction,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return transfer_service(db, clock).approve_transfer(transfer_id, action.actor)


@router.post("/{transfer_id}/receive", response_model=LocationTransfer)
def receive_transfer(
    transfer_id: int,
    action: TransferAction,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """Receive every line of an in-transit transfer, or none of them."""
    return transfer_service(db, clock).receive_transfer(transfer_id, action.actor)


@router.post("/{transfer_id}/cancel", response_model=LocationTransfer)
def cancel_transfer(
    transfer_id: int,
    cancel_in: TransferCancel,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return transfer_service(db, clock).cancel_transfer(
        transfer_id, actor=cancel_in.actor, reason=cancel_in.reason
    )
