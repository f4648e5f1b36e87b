"""
Inventory Application Exceptions

Every error carries a machine-readable ``code`` and a ``details`` dict so the
HTTP layer can shape responses without parsing messages.
"""
from typing import Any, Dict, Optional


class InventoryError(Exception):
    """Base exception for the inventory ledger"""

    code = "INVENTORY_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.details}


class NotFoundError(InventoryError):
    """Raised when an item, block, transfer, variance or cyclic count is absent"""

    code = "NOT_FOUND"

    def __init__(self, entity: str, key: Any, message: Optional[str] = None):
        super().__init__(message or f"{entity} {key} not found", entity=entity, key=key)
        self.entity = entity
        self.key = key


class InvalidStateError(InventoryError):
    """Raised when a state transition is not allowed"""

    code = "INVALID_STATE"

    def __init__(self, entity: str, current: str, attempted: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot {attempted} {entity} with status: {current}",
            entity=entity,
            current=current,
            attempted=attempted,
        )
        self.entity = entity
        self.current = current
        self.attempted = attempted


class InactiveError(InvalidStateError):
    """Raised when a cyclic count record is not active"""

    code = "INACTIVE"


class ItemBlockedError(InvalidStateError):
    """Raised when an active block gates the requested operation"""

    code = "ITEM_BLOCKED"

    def __init__(self, qr_code: str, block_id: int, block_type: str, attempted: str):
        super().__init__(
            "item",
            "blocked",
            attempted,
            message=f"Item {qr_code} has an active {block_type} block (id {block_id}); {attempted} not allowed",
        )
        self.details.update(qr_code=qr_code, block_id=block_id, block_type=block_type)
        self.qr_code = qr_code
        self.block_id = block_id
        self.block_type = block_type


class InsufficientStockError(InventoryError):
    """Raised when an operation would drive a stock bucket negative"""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, qr_code: str, location: Optional[str], bucket: str, available: int, requested: int):
        shortfall = requested - available
        super().__init__(
            f"Insufficient stock - {bucket} for {qr_code}. "
            f"Available: {available}, Requested: {requested}, Short by: {shortfall}",
            qr_code=qr_code,
            location=location,
            bucket=bucket,
            available=available,
            requested=requested,
            shortfall=shortfall,
        )
        self.qr_code = qr_code
        self.location = location
        self.bucket = bucket
        self.available = available
        self.requested = requested
        self.shortfall = shortfall


class AlreadyBlockedError(InventoryError):
    """Raised when blocking an item that already has an active block"""

    code = "ALREADY_BLOCKED"

    def __init__(self, qr_code: str, block_id: int):
        super().__init__(
            f"Item {qr_code} already has an active block",
            qr_code=qr_code,
            existing_block_id=block_id,
        )
        self.qr_code = qr_code
        self.block_id = block_id


class AlreadyProcessedError(InventoryError):
    """Raised when approving or rejecting a variance that is no longer pending"""

    code = "ALREADY_PROCESSED"

    def __init__(self, variance_id: int, status: str):
        super().__init__(
            f"Variance {variance_id} already {status}",
            variance_id=variance_id,
            status=status,
        )
        self.variance_id = variance_id
        self.status = status


class InvalidRequestError(InventoryError):
    """Raised when input is malformed"""

    code = "INVALID_REQUEST"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, field=field)
        self.field = field


class DuplicateLocationError(InventoryError):
    """Raised when a location already has an active cyclic count"""

    code = "DUPLICATE_LOCATION"

    def __init__(self, location: str, cyclic_count_id: int):
        super().__init__(
            f"An active cyclic count already exists for location {location}",
            location=location,
            cyclic_count_id=cyclic_count_id,
        )
        self.location = location
        self.cyclic_count_id = cyclic_count_id


class StorageFailureError(InventoryError):
    """Raised when the underlying persistence layer fails"""

    code = "STORAGE_FAILURE"

    def __init__(self, operation: str, message: Optional[str] = None):
        super().__init__(message or f"Storage failure during {operation}", operation=operation)
        self.operation = operation
