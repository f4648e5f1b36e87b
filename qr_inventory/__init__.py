"""QR Inventory - warehouse stock ledger"""

__version__ = "1.0.0"
