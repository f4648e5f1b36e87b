"""Item Block API endpoints"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from qr_inventory.api import deps
from qr_inventory.core.clock import Clock
from qr_inventory.models.stock import ItemBlock as ItemBlockRec
from qr_inventory.schemas.inventory import (
    BlockCreate, BlockHistoryEntry, BlockStatus, BlockType, ItemBlock, UnblockRequest,
)
from qr_inventory.services.stock import block_service

router = APIRouter()


@router.get("", response_model=List[ItemBlock])
def list_blocks(
    block_status: Optional[str] = Query(None, alias="status"),
    block_type: Optional[BlockType] = None,
    qr_code: Optional[str] = None,
    blocked_by: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return block_service(db, clock).list_blocks(
        {
            "status": block_status,
            "block_type": block_type.value if block_type else None,
            "qr_code": qr_code,
            "blocked_by": blocked_by,
            "date_from": date_from,
            "date_to": date_to,
        },
        limit=limit,
        offset=skip,
    )


@router.post("", response_model=ItemBlock, status_code=status.HTTP_201_CREATED)
def block_item(
    block_in: BlockCreate,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    """Block an item. Fails with 409 when it already has an active block."""
    block_id = block_service(db, clock).block(
        block_in.qr_code, block_in.block_type.value, block_in.reason, block_in.blocked_by
    )
    return db.get(ItemBlockRec, block_id)


@router.get("/active", response_model=List[ItemBlock])
def active_blocks(
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return block_service(db, clock).active_blocks()


@router.get("/summary")
def block_summary(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return block_service(db, clock).block_summary(date_from, date_to)


@router.post("/{block_id}/release", response_model=ItemBlock)
def release_block(
    block_id: int,
    unblock_in: UnblockRequest,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return block_service(db, clock).unblock(
        block_id=block_id, actor=unblock_in.unblocked_by, notes=unblock_in.notes
    )


@router.get("/item/{qr_code}", response_model=BlockStatus)
def block_status(
    qr_code: str,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    block = block_service(db, clock).block_status(qr_code)
    return {"qr_code": qr_code.strip().upper(), "is_blocked": block is not None, "block": block}


@router.post("/item/{qr_code}/unblock", response_model=ItemBlock)
def unblock_item(
    qr_code: str,
    unblock_in: UnblockRequest,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return block_service(db, clock).unblock(
        qr_code=qr_code, actor=unblock_in.unblocked_by, notes=unblock_in.notes
    )


@router.get("/item/{qr_code}/history", response_model=List[BlockHistoryEntry])
def block_history(
    qr_code: str,
    limit: int = 50,
    db: Session = Depends(deps.get_db),
    clock: Clock = Depends(deps.get_clock),
):
    return block_service(db, clock).block_history(qr_code, limit=limit)
