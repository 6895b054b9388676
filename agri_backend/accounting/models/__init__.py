# accounting/models/__init__.py

"""
ACCOUNTING MODELS PACKAGE EXPORTS

Note:
- Keep this file *imports-only* (no business logic).
- Do NOT import services from models anywhere (models must stay pure).
"""

from accounting.models.account import Account
from accounting.models.allocation import AllocationRow
from accounting.models.document import PostableDocument
from accounting.models.ledger import LedgerEntry
from accounting.models.period import AccountingPeriod, PeriodEvent
from accounting.models.posting_group import PostingGroup
from accounting.models.share_rule import ShareRule, ShareRuleLine
from accounting.models.tenant import Tenant

__all__ = [
    "Tenant",
    "Account",
    "AccountingPeriod",
    "PeriodEvent",
    "PostingGroup",
    "LedgerEntry",
    "AllocationRow",
    "ShareRule",
    "ShareRuleLine",
    "PostableDocument",
]
