"""
API Dependencies
Common dependencies for API endpoints
"""

from typing import Generator

from qr_inventory.core.clock import Clock, system_clock
from qr_inventory.core.database import SessionLocal


def get_db() -> Generator:
    """
    Database dependency - creates a new database session for each request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Clock:
    """Time source for services; overridden in tests"""
    return system_clock
