"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter

from qr_inventory.api.v1 import (
    inventory,
    movements,
    blocks,
    transfers,
    variances,
    cyclic_counts,
)

api_router = APIRouter()

api_router.include_router(inventory.router, prefix="/items", tags=["inventory"])
api_router.include_router(movements.router, prefix="/movements", tags=["movements"])
api_router.include_router(blocks.router, prefix="/blocks", tags=["blocks"])
api_router.include_router(transfers.router, prefix="/transfers", tags=["transfers"])
api_router.include_router(variances.router, prefix="/variances", tags=["variances"])
api_router.include_router(cyclic_counts.router, prefix="/cyclic-counts", tags=["cyclic-counts"])
