# accounting/api/serializers/__init__.py

from accounting.api.serializers.periods import (
    AccountingPeriodSerializer,
    PeriodCreateSerializer,
    PeriodTransitionSerializer,
)
from accounting.api.serializers.posting_groups import (
    AllocationRowSerializer,
    LedgerEntrySerializer,
    PostingGroupSerializer,
    ReversePostingGroupSerializer,
)

__all__ = [
    "PostingGroupSerializer",
    "LedgerEntrySerializer",
    "AllocationRowSerializer",
    "ReversePostingGroupSerializer",
    "AccountingPeriodSerializer",
    "PeriodCreateSerializer",
    "PeriodTransitionSerializer",
]
