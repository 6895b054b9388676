# accounting/services/trial_balance_service.py

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Sum
from django.utils import timezone

from accounting.models.account import Account
from accounting.models.ledger import LedgerEntry
from accounting.services.period_lock import _to_date


TWOPLACES = Decimal("0.01")


def _q2(amount: Decimal) -> Decimal:
    return (amount or Decimal("0.00")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _to_minor_int(amount: Decimal) -> int:
    return int((_q2(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


class TrialBalanceService:
    """
    Trial Balance computation service.

    Guarantees:
    - Scopes to ONE tenant's accounts
    - Uses posting_group.posting_date as accounting timeline
    - Counts every posted entry, originals and reversals alike (gross)
    - Avoids N+1 queries by aggregating in bulk
    - Returns fixed 2dp strings (no floats)
    """

    def __init__(self, account_model=Account, ledger_model=LedgerEntry):
        self.Account = account_model
        self.Ledger = ledger_model

    def generate(self, *, tenant, as_of=None):
        cutoff = _to_date(as_of) if as_of is not None else timezone.localdate()

        accounts = list(
            self.Account.objects.filter(tenant=tenant)
            .only("id", "code", "name", "account_type")
            .order_by("code")
        )

        rows = (
            self.Ledger.objects.filter(
                tenant=tenant,
                posting_group__posting_date__lte=cutoff,
            )
            .values("account_id")
            .annotate(debit=Sum("debit_amount"), credit=Sum("credit_amount"))
        )
        totals_by_account = {r["account_id"]: (_q2(r["debit"]), _q2(r["credit"])) for r in rows}

        accounts_output = []
        total_debit = Decimal("0.00")
        total_credit = Decimal("0.00")

        for acc in accounts:
            debit, credit = totals_by_account.get(acc.id, (Decimal("0.00"), Decimal("0.00")))

            if debit == Decimal("0.00") and credit == Decimal("0.00"):
                continue

            accounts_output.append(
                {
                    "account_id": str(acc.id),
                    "account_code": acc.code,
                    "account_name": acc.name,
                    "account_type": acc.account_type,
                    "debit": str(debit),
                    "credit": str(credit),
                }
            )

            total_debit += debit
            total_credit += credit

        total_debit = _q2(total_debit)
        total_credit = _q2(total_credit)

        return {
            "as_of": cutoff.isoformat(),
            "accounts": accounts_output,
            "totals": {
                "debit": str(total_debit),
                "credit": str(total_credit),
                "balanced": _to_minor_int(total_debit) == _to_minor_int(total_credit),
            },
        }
