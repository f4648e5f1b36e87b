"""QR Inventory Schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


# Enums
class CountType(str, Enum):
    MANUAL = "manual"
    CYCLIC = "cyclic"
    ADJUSTMENT = "adjustment"


class MovementType(str, Enum):
    IN = "in"
    OUT = "out"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class BlockType(str, Enum):
    COUNT = "count"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    MAINTENANCE = "maintenance"


class CyclicStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


# Quantities - sign and type rules are enforced by the services
class QuantitiesIn(BaseModel):
    unrestrict: int = 0
    foc: int = 0
    rfb: int = 0


class QuantitiesOut(QuantitiesIn):
    total: int = 0


# Items and counts
class ItemCreate(BaseModel):
    qr_code: str
    description: str = Field(default='', max_length=200)
    location: str = Field(default='', max_length=50)
    notes: str = ''
    actor: Optional[str] = None


class Item(BaseModel):
    id: int
    qr_code: str
    description: str
    location: str
    notes: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CountCreate(QuantitiesIn):
    qr_code: str
    count_type: CountType = CountType.MANUAL
    notes: str = ''
    description: Optional[str] = None
    location: Optional[str] = None
    actor: Optional[str] = None


class CountCreated(BaseModel):
    count_id: int
    stock: "StockLevel"


class StockCount(BaseModel):
    id: int
    qr_code: str
    location: str
    unrestrict: int
    foc: int
    rfb: int
    total: int
    count_type: str
    count_date: datetime
    notes: Optional[str] = None
    created_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class StockLevel(BaseModel):
    qr_code: str
    location: str
    unrestrict: int
    foc: int
    rfb: int
    total: int
    as_of: Optional[datetime] = None
    ever_counted: bool
    count_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ItemDetail(BaseModel):
    item: Item
    stock: StockLevel
    history: List[StockCount] = []


class ItemList(BaseModel):
    items: List[ItemDetail]
    total: int


# Movements
class MovementCreate(QuantitiesIn):
    qr_code: str
    movement_type: MovementType
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    reason: str = ''
    reference: str = ''
    actor: Optional[str] = None


class StockMovement(BaseModel):
    id: int
    qr_code: str
    movement_type: str
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    unrestrict_qty: int
    foc_qty: int
    rfb_qty: int
    total_qty: int
    reason: Optional[str] = None
    reference_doc: Optional[str] = None
    status: str
    stock_count_id: int
    created_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MovementList(BaseModel):
    movements: List[StockMovement]
    total: int


# Blocks
class BlockCreate(BaseModel):
    qr_code: str
    block_type: BlockType
    reason: str
    blocked_by: str


class UnblockRequest(BaseModel):
    unblocked_by: Optional[str] = None
    notes: Optional[str] = None


class ItemBlock(BaseModel):
    id: int
    qr_code: str
    block_type: str
    reason: str
    status: str
    blocked_by: str
    blocked_at: datetime
    unblocked_by: Optional[str] = None
    unblocked_at: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BlockStatus(BaseModel):
    qr_code: str
    is_blocked: bool
    block: Optional[ItemBlock] = None


class BlockHistoryEntry(BaseModel):
    block: ItemBlock
    duration_hours: float


# Transfers
class TransferLineIn(QuantitiesIn):
    qr_code: str


class TransferCreate(BaseModel):
    from_location: str
    to_location: str
    items: List[TransferLineIn]
    created_by: Optional[str] = None
    notes: Optional[str] = None


class TransferAction(BaseModel):
    actor: str = Field(..., min_length=1)


class TransferCancel(BaseModel):
    actor: Optional[str] = None
    reason: Optional[str] = None


class TransferLine(BaseModel):
    id: int
    qr_code: str
    unrestrict_qty: int
    foc_qty: int
    rfb_qty: int
    status: str
    received_by: Optional[str] = None
    received_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LocationTransfer(BaseModel):
    id: int
    transfer_number: str
    from_location: str
    to_location: str
    total_items: int
    status: str
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    items: List[TransferLine] = []

    model_config = ConfigDict(from_attributes=True)


class TransferListEntry(BaseModel):
    transfer: LocationTransfer
    line_count: int
    total_quantity: int


# Variances
class VarianceDetect(QuantitiesIn):
    qr_code: str
    location: Optional[str] = None
    reason: Optional[str] = None
    actor: Optional[str] = None


class VarianceDecision(BaseModel):
    approved_by: str = Field(..., min_length=1)
    reason: Optional[str] = None


class VarianceDetection(BaseModel):
    has_variance: bool
    variance_id: Optional[int] = None
    qr_code: str
    location: str
    counted: QuantitiesOut
    system: QuantitiesOut
    variance: QuantitiesOut


class InventoryVariance(BaseModel):
    id: int
    qr_code: str
    location: str
    counted_unrestrict: int
    counted_foc: int
    counted_rfb: int
    system_unrestrict: int
    system_foc: int
    system_rfb: int
    variance_unrestrict: int
    variance_foc: int
    variance_rfb: int
    variance_total: int
    variance_type: str
    status: str
    reason: Optional[str] = None
    count_date: datetime
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    movement_id: Optional[int] = None
    stock_count_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


# Cyclic counts
class CyclicCountCreate(BaseModel):
    location: str
    frequency_days: int
    created_by: Optional[str] = None


class CyclicCountUpdate(BaseModel):
    frequency_days: Optional[int] = None
    status: Optional[CyclicStatus] = None
    actor: Optional[str] = None


class CyclicCount(BaseModel):
    id: int
    location: str
    frequency_days: int
    last_count_date: Optional[datetime] = None
    next_count_date: datetime
    status: str
    created_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CyclicCountListEntry(BaseModel):
    cyclic_count: CyclicCount
    total_items: int


class CyclicCountItem(BaseModel):
    qr_code: str
    description: str
    status: str
    stock: StockLevel


class CyclicCountRun(BaseModel):
    cyclic_count_id: int
    location: str
    executed_at: datetime
    next_count_date: datetime
    total_items: int
    items: List[CyclicCountItem]

    model_config = ConfigDict(from_attributes=True)


class PendingItem(BaseModel):
    qr_code: str
    description: str
    last_count_date: Optional[datetime] = None
    days_since_count: Optional[int] = None
    count_status: str
    threshold_days: int


# Generic
class Message(BaseModel):
    message: str
    details: Optional[Dict[str, Any]] = None


CountCreated.model_rebuild()
