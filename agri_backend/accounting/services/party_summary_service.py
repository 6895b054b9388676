# accounting/services/party_summary_service.py

"""
======================================================
PATH: accounting/services/party_summary_service.py
======================================================
PARTY / CONTROL-ACCOUNT SUMMARY

For each party-control account (PARTY_CONTROL_HARI / _LANDLORD / _KAMDAR):

    opening  = net (debit - credit) strictly before date_from
    movement = net within [date_from, date_to]
    closing  = opening + movement

Grouped by role, or by (role, party) using the ledger entry's party.

RULES:
- aggregation runs over LedgerEntry only; allocation rows are used as a
  filter (EXISTS), never summed, so several rows on one posting cannot
  double count
- tenant-scoped; reportable groups only
"""

from __future__ import annotations

from decimal import Decimal

from django.db.models import Exists, F, OuterRef, Q, Sum, Value
from django.db.models.functions import Coalesce

from accounting.models.allocation import AllocationRow
from accounting.services.account_catalog import ROLE_CONTROL_CODES, ROLE_LABELS
from accounting.services.aging import money_str
from accounting.services.balance_service import reportable_entries
from accounting.services.exceptions import ValidationFault
from accounting.services.period_lock import _to_date

ZERO = Decimal("0.00")

GROUP_BY_ROLE = "role"
GROUP_BY_PARTY = "party"


def _filtered_entries(*, tenant, as_of, roles, project=None, crop_cycle=None):
    codes = [ROLE_CONTROL_CODES[r] for r in roles]
    qs = reportable_entries(tenant=tenant, as_of=as_of).filter(account__code__in=codes)

    if crop_cycle is not None:
        qs = qs.filter(posting_group__crop_cycle=crop_cycle)
    if project is not None:
        qs = qs.filter(
            Exists(
                AllocationRow.objects.filter(
                    tenant=tenant,
                    posting_group_id=OuterRef("posting_group_id"),
                    project=project,
                )
            )
        )
    return qs


def party_summary(
    *,
    tenant,
    date_from,
    date_to,
    role: str | None = None,
    group_by: str = GROUP_BY_ROLE,
    project=None,
    crop_cycle=None,
) -> dict:
    start = _to_date(date_from)
    end = _to_date(date_to)
    if start > end:
        raise ValidationFault("date_from must be <= date_to")
    if group_by not in (GROUP_BY_ROLE, GROUP_BY_PARTY):
        raise ValidationFault(f"group_by must be '{GROUP_BY_ROLE}' or '{GROUP_BY_PARTY}'")

    if role:
        role = role.strip().upper()
        if role not in ROLE_CONTROL_CODES:
            raise ValidationFault(f"Unknown party role: {role!r}")
        roles = [role]
    else:
        roles = list(ROLE_CONTROL_CODES)

    code_to_role = {ROLE_CONTROL_CODES[r]: r for r in roles}
    keys = ["account__code"] + (["party_id", "party__name"] if group_by == GROUP_BY_PARTY else [])

    rows = (
        _filtered_entries(tenant=tenant, as_of=end, roles=roles, project=project, crop_cycle=crop_cycle)
        .values(*keys)
        .annotate(
            opening=Coalesce(
                Sum(F("debit_amount") - F("credit_amount"), filter=Q(posting_group__posting_date__lt=start)),
                Value(ZERO),
            ),
            movement=Coalesce(
                Sum(F("debit_amount") - F("credit_amount"), filter=Q(posting_group__posting_date__gte=start)),
                Value(ZERO),
            ),
        )
        .order_by(*keys)
    )

    lines = []
    totals = {"opening": ZERO, "movement": ZERO, "closing": ZERO}
    for r in rows:
        r_role = code_to_role[r["account__code"]]
        opening = Decimal(r["opening"])
        movement = Decimal(r["movement"])
        closing = opening + movement

        line = {
            "role": r_role,
            "control_account_code": r["account__code"],
            "label": ROLE_LABELS[r_role],
            "opening_balance": money_str(opening),
            "period_movement": money_str(movement),
            "closing_balance": money_str(closing),
        }
        if group_by == GROUP_BY_PARTY:
            line["party_id"] = str(r["party_id"]) if r["party_id"] else None
            line["label"] = r["party__name"] or ROLE_LABELS[r_role]
        lines.append(line)

        totals["opening"] += opening
        totals["movement"] += movement
        totals["closing"] += closing

    return {
        "date_from": start.isoformat(),
        "date_to": end.isoformat(),
        "group_by": group_by,
        "rows": lines,
        "totals": {
            "opening_balance": money_str(totals["opening"]),
            "period_movement": money_str(totals["movement"]),
            "closing_balance": money_str(totals["closing"]),
        },
    }
