# accounting/api/views/__init__.py

"""
accounting.api.views package

Expose public API views without making routing/imports fragile.

Important:
- Do NOT import accounting.api.urls from here to avoid circular imports.
"""

from accounting.api.views.periods import ClosePeriodView, PeriodListCreateView, ReopenPeriodView
from accounting.api.views.posting_groups import PostingGroupViewSet
from accounting.api.views.reports import PartySummaryView, RoleAgeingView, TrialBalanceView

__all__ = [
    "PostingGroupViewSet",
    "TrialBalanceView",
    "PartySummaryView",
    "RoleAgeingView",
    "PeriodListCreateView",
    "ClosePeriodView",
    "ReopenPeriodView",
]
