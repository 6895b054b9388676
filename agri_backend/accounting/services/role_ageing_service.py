# accounting/services/role_ageing_service.py

"""
ROLE AGEING

Party-control balances (credit - debit, i.e. what the farm owes the role)
bucketed by the age of each posting as of a date.
"""

from __future__ import annotations

from decimal import Decimal

from django.db.models import F, Sum

from accounting.services import aging
from accounting.services.account_catalog import ROLE_CONTROL_CODES, ROLE_LABELS
from accounting.services.balance_service import reportable_entries
from accounting.services.period_lock import _to_date


def role_ageing(*, tenant, as_of, crop_cycle=None) -> dict:
    d = _to_date(as_of)
    code_to_role = {code: role for role, code in ROLE_CONTROL_CODES.items()}

    qs = reportable_entries(tenant=tenant, as_of=d).filter(account__code__in=list(code_to_role))
    if crop_cycle is not None:
        qs = qs.filter(posting_group__crop_cycle=crop_cycle)

    rows = (
        qs.values("account__code", "posting_group__posting_date")
        .annotate(net=Sum(F("credit_amount") - F("debit_amount")))
        .order_by("account__code", "posting_group__posting_date")
    )

    by_role = {role: aging.empty_buckets() for role in ROLE_CONTROL_CODES}
    for r in rows:
        role = code_to_role[r["account__code"]]
        bucket = aging.bucket_for((d - r["posting_group__posting_date"]).days)
        by_role[role][bucket] += Decimal(r["net"] or 0)

    grand = aging.empty_buckets()
    roles_out = []
    for role, buckets in by_role.items():
        total = sum(buckets.values(), Decimal("0.00"))
        for b, v in buckets.items():
            grand[b] += v
        roles_out.append(
            {
                "role": role,
                "label": ROLE_LABELS[role],
                "control_account_code": ROLE_CONTROL_CODES[role],
                "buckets": aging.buckets_as_str(buckets),
                "total": aging.money_str(total),
            }
        )

    return {
        "as_of": d.isoformat(),
        "bucket_order": list(aging.BUCKETS),
        "roles": roles_out,
        "totals": aging.buckets_as_str(grand),
        "grand_total": aging.money_str(sum(grand.values(), Decimal("0.00"))),
    }
