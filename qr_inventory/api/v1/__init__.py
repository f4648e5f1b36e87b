"""Version 1 API routers"""

from . import inventory, movements, blocks, transfers, variances, cyclic_counts

__all__ = ["inventory", "movements", "blocks", "transfers", "variances", "cyclic_counts"]
