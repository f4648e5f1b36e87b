"""Stock ledger services - counts, movements, blocks, transfers, variances, cyclic counts"""

from .ledger import StockLedgerService, StockSnapshot
from .movements import StockMovementsService
from .blocks import ItemBlockService
from .transfers import LocationTransferService
from .variances import InventoryVarianceService, VarianceResult
from .cyclic_counts import CyclicCountService, CyclicCountExecution

# Create aliases for API compatibility
ledger_service = StockLedgerService
movement_service = StockMovementsService
block_service = ItemBlockService
transfer_service = LocationTransferService
variance_service = InventoryVarianceService
cyclic_count_service = CyclicCountService

__all__ = [
    "StockLedgerService",
    "StockSnapshot",
    "StockMovementsService",
    "ItemBlockService",
    "LocationTransferService",
    "InventoryVarianceService",
    "VarianceResult",
    "CyclicCountService",
    "CyclicCountExecution",
    "ledger_service",
    "movement_service",
    "block_service",
    "transfer_service",
    "variance_service",
    "cyclic_count_service",
]
