# accounting/services/balance_service.py

"""
BALANCE & REPORTING SERVICE (AUTHORITATIVE)

Read-only ledger aggregation helpers.

RULES:
- READ-ONLY: no writes, ever
- LedgerEntry is the single source of truth
- Accounting timeline uses PostingGroup.posting_date (not created_at)
- Every query is tenant-scoped
- Balance sums run over reportable groups: a reversed original and its
  reversal both drop out, so no one-sided residue remains
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from django.db.models import F, Sum, Value
from django.db.models.functions import Coalesce

from accounting.models.account import Account
from accounting.models.ledger import LedgerEntry
from accounting.models.posting_group import PostingGroup

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")

DEBIT_NORMAL = Account.DEBIT_NORMAL


def _q2(v) -> Decimal:
    return Decimal(str(v or "0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def reportable_entries(*, tenant, as_of: date | None = None, date_from: date | None = None):
    groups = PostingGroup.objects.for_tenant(tenant).reportable()
    qs = LedgerEntry.objects.filter(tenant=tenant, posting_group__in=groups)
    if as_of is not None:
        qs = qs.filter(posting_group__posting_date__lte=as_of)
    if date_from is not None:
        qs = qs.filter(posting_group__posting_date__gte=date_from)
    return qs


def net_debit(qs) -> Decimal:
    """sum(debit) - sum(credit) over a LedgerEntry queryset."""
    total = qs.aggregate(net=Coalesce(Sum(F("debit_amount") - F("credit_amount")), Value(ZERO)))["net"]
    return _q2(total)


def get_account_code_net(*, tenant, code: str, as_of: date | None = None) -> Decimal:
    return net_debit(reportable_entries(tenant=tenant, as_of=as_of).filter(account__code=code))


def get_account_balance(account: Account, *, as_of: date | None = None) -> Decimal:
    """
    Balance rule:
    - Assets & Expenses → Debit balance  (debits - credits)
    - Liabilities, Equity & Revenue → Credit balance (credits - debits)
    """
    net = net_debit(reportable_entries(tenant=account.tenant, as_of=as_of).filter(account=account))
    if account.account_type in DEBIT_NORMAL:
        return net
    return _q2(-net)
