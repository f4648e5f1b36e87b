"""Inventory Variance API endpoints"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from qr_inventory.api import deps
from qr_inventory.core.clock import Clock
from qr_inventory.schemas.inventory import (
    InventoryVariance, VarianceDecision, VarianceDetect, VarianceDetection,
)
from qr_inventory.services.stock import variance_service

router = APIRouter()


@router.get("", response_model=List[InventoryVariance])
def list_variances(
    variance_status: Optional[str] = Query("pending", alias="status"),
    location: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """List variances, largest difference first."""
    return variance_service(db, clock).list_variances(
        status=variance_status,
        location=location,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=skip,
    )


@router.post("/detect", response_model=VarianceDetection)
def detect_variance(
    detect_in: VarianceDetect,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """
    Compare a physical count with the system stock.

    Nothing is stored when the totals match.
    """
    result = variance_service(db, clock).detect_variance(
        detect_in.qr_code,
        {"unrestrict": detect_in.unrestrict, "foc": detect_in.foc, "rfb": detect_in.rfb},
        location=detect_in.location,
        reason=detect_in.reason,
        actor=detect_in.actor,
    )
    return {
        "has_variance": result.has_variance,
        "variance_id": result.variance_id,
        "qr_code": result.qr_code,
        "location": result.location,
        "counted": result.counted.as_dict(),
        "system": result.system.as_dict(),
        "variance": result.variance.as_dict(),
    }


@router.get("/report")
def variance_report(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    location: Optional[str] = None,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return variance_service(db, clock).variance_report(date_from, date_to, location)


@router.get("/stats")
def variance_stats(
    days: int = 30,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return variance_service(db, clock).variance_stats(days)


@router.get("/{variance_id}", response_model=InventoryVariance)
def get_variance(
    variance_id: int,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return variance_service(db, clock).get_variance(variance_id)


@router.post("/{variance_id}/approve", response_model=InventoryVariance)
def approve_variance(
    variance_id: int,
    decision: VarianceDecision,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return variance_service(db, clock).approve_variance(variance_id, decision.approved_by, decision.reason)


@router.post("/{variance_id}/reject", response_model=InventoryVariance)
def reject_variance(
    variance_id: int,
    decision: VarianceDecision,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return variance_service(db, clock).reject_variance(variance_id, decision.approved_by, decision.reason)
