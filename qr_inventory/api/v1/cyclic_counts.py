"""Cyclic Count API endpoints"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from qr_inventory.api import deps
from qr_inventory.core.clock import Clock
from qr_inventory.schemas.inventory import (
    CyclicCount, CyclicCountCreate, CyclicCountListEntry, CyclicCountRun,
    CyclicCountUpdate, Message, PendingItem,
)
from qr_inventory.services.stock import cyclic_count_service

router = APIRouter()


@router.get("", response_model=List[CyclicCountListEntry])
def list_cyclic_counts(
    cyclic_status: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return cyclic_count_service(db, clock).list_cyclic_counts(cyclic_status)


@router.post("", response_model=CyclicCount, status_code=status.HTTP_201_CREATED)
def schedule_cyclic_count(
    cyclic_in: CyclicCountCreate,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """Schedule a recurring count for a location (one active schedule per location)."""
    return cyclic_count_service(db, clock).schedule_cyclic_count(
        cyclic_in.location, cyclic_in.frequency_days, actor=cyclic_in.created_by
    )


@router.get("/performance")
def performance(
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return cyclic_count_service(db, clock).performance()


@router.get("/pending/{location}", response_model=List[PendingItem])
def pending_for(
    location: str,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return cyclic_count_service(db, clock).pending_for(location)


@router.get("/{cyclic_count_id}", response_model=CyclicCount)
def get_cyclic_count(
    cyclic_count_id: int,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return cyclic_count_service(db, clock).get_cyclic_count(cyclic_count_id)


@router.post("/{cyclic_count_id}/execute", response_model=CyclicCountRun)
def execute_cyclic_count(
    cyclic_count_id: int,
    actor: Optional[str] = None,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """Run a cyclic count and return the items to count with their current stock."""
    execution = cyclic_count_service(db, clock).execute_cyclic_count(cyclic_count_id, actor=actor)
    return {
        "cyclic_count_id": execution.cyclic_count_id,
        "location": execution.location,
        "executed_at": execution.executed_at,
        "next_count_date": execution.next_count_date,
        "total_items": execution.total_items,
        "items": [{**entry, "stock": entry["stock"].as_dict()} for entry in execution.items],
    }


@router.put("/{cyclic_count_id}", response_model=CyclicCount)
def update_cyclic_count(
    cyclic_count_id: int,
    update_in: CyclicCountUpdate,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return cyclic_count_service(db, clock).update_cyclic_count(
        cyclic_count_id,
        frequency_days=update_in.frequency_days,
        status=update_in.status.value if update_in.status else None,
        actor=update_in.actor,
    )


@router.delete("/{cyclic_count_id}", response_model=Message)
def delete_cyclic_count(
    cyclic_count_id: int,
    actor: Optional[str] = None,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    cyclic_count_service(db, clock).delete_cyclic_count(cyclic_count_id, actor=actor)
    return {"message": f"Cyclic count {cyclic_count_id} deleted"}
