# farm/models/__init__.py

"""
FARM MODELS PACKAGE EXPORTS (imports-only)
"""

from farm.models.crop_cycle import CropCycle, Project
from farm.models.documents import LandLeaseAccrual, MachineryCharge, OperationalTransaction, Settlement
from farm.models.party import Party

__all__ = [
    "Party",
    "CropCycle",
    "Project",
    "OperationalTransaction",
    "Settlement",
    "MachineryCharge",
    "LandLeaseAccrual",
]
