"""Item and stock count API endpoints"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from qr_inventory.api import deps
from qr_inventory.core.clock import Clock
from qr_inventory.schemas.inventory import (
    CountCreate, CountCreated, Item, ItemCreate, ItemDetail, ItemList,
    StockCount, StockLevel,
)
from qr_inventory.services.stock import ledger_service

router = APIRouter()


@router.get("", response_model=ItemList)
def list_items(
    search: Optional[str] = Query(None, description="Code, description or location search"),
    location: Optional[str] = Query(None, description="Filter by location"),
    item_status: Optional[str] = Query(None, alias="status", description="Filter by item status"),
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """List items with their current stock."""
    rows, total = ledger_service(db, clock).list_items(
        search=search, location=location, status=item_status, limit=limit, offset=skip
    )
    return {
        "items": [{"item": row["item"], "stock": row["stock"].as_dict()} for row in rows],
        "total": total,
    }


@router.post("", response_model=Item, status_code=status.HTTP_201_CREATED)
def register_item(
    item_in: ItemCreate,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """Register an item before its first count."""
    return ledger_service(db, clock).register_item(
        item_in.qr_code,
        description=item_in.description,
        location=item_in.location,
        notes=item_in.notes,
        actor=item_in.actor,
    )


@router.post("/counts", response_model=CountCreated, status_code=status.HTTP_201_CREATED)
def record_count(
    count_in: CountCreate,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """
    Record a stock count.

    The item is created on its first count.
    """
    service = ledger_service(db, clock)
    count_id = service.record_count(
        count_in.qr_code,
        {"unrestrict": count_in.unrestrict, "foc": count_in.foc, "rfb": count_in.rfb},
        count_type=count_in.count_type.value,
        notes=count_in.notes,
        actor=count_in.actor,
        description=count_in.description,
        location=count_in.location,
    )
    # The item now sits where it was counted
    return {"count_id": count_id, "stock": service.current_stock(count_in.qr_code).as_dict()}


@router.get("/{qr_code}", response_model=ItemDetail)
def get_item(
    qr_code: str,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """Item details with current stock and count history."""
    service = ledger_service(db, clock)
    item = service.get_item(qr_code)
    return {
        "item": item,
        "stock": service.current_stock(item.qr_code).as_dict(),
        "history": service.count_history(item.qr_code),
    }


@router.get("/{qr_code}/stock", response_model=StockLevel)
def current_stock(
    qr_code: str,
    location: Optional[str] = Query(None, description="Defaults to the item's location"),
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return ledger_service(db, clock).current_stock(qr_code, location=location).as_dict()


@router.get("/{qr_code}/history", response_model=List[StockCount])
def count_history(
    qr_code: str,
    location: Optional[str] = None,
    limit: Optional[int] = None,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return ledger_service(db, clock).count_history(qr_code, location=location, limit=limit)


@router.delete("/{qr_code}", response_model=Item)
def delete_item(
    qr_code: str,
    actor: Optional[str] = None,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """Soft delete an item. Its count history is kept."""
    return ledger_service(db, clock).delete_item(qr_code, actor=actor)
