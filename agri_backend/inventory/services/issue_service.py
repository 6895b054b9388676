# inventory/services/issue_service.py

"""
STOCK ISSUE (APPLICATION SERVICE)

Inputs leave stock at WAC and land on the crop's work-in-progress.
"""

from __future__ import annotations

from accounting.models.posting_group import PostingGroup
from accounting.services import posting_rules


def post_stock_issue(*, issue, posting_date=None):
    return posting_rules.post_document(
        source_type=PostingGroup.SourceType.STOCK_ISSUE,
        document=issue,
        posting_date=posting_date,
    )


def reverse_stock_issue(*, issue, reversal_date, reason: str = ""):
    return posting_rules.reverse_document(document=issue, reversal_date=reversal_date, reason=reason)
