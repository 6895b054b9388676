# inventory/models/__init__.py

"""
INVENTORY MODELS PACKAGE EXPORTS (imports-only)
"""

from inventory.models.documents import Harvest, HarvestLine, StockIssue, StockIssueLine
from inventory.models.stock import InventoryItem, StockBalance, StockMovement

__all__ = [
    "InventoryItem",
    "StockBalance",
    "StockMovement",
    "StockIssue",
    "StockIssueLine",
    "Harvest",
    "HarvestLine",
]
