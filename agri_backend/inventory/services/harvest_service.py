# inventory/services/harvest_service.py

"""
HARVEST + CROP WIP (APPLICATION SERVICE)

Crop work-in-progress accumulates on CROP_WIP through stock issues (and
anything else posted against the crop cycle). A harvest moves the
remaining WIP into produce stock, split across harvest lines by quantity.
"""

from __future__ import annotations

from decimal import Decimal

from django.db.models import F, Sum, Value
from django.db.models.functions import Coalesce

from accounting.models.ledger import LedgerEntry
from accounting.models.posting_group import PostingGroup
from accounting.services import posting_rules
from accounting.services.account_catalog import CROP_WIP
from accounting.services.period_lock import _to_date

ZERO = Decimal("0.00")


def crop_wip_balance(*, tenant, crop_cycle, as_of, exclude_group=None) -> Decimal:
    """
    Net debit on CROP_WIP for the crop cycle up to as_of (reportable groups).
    """
    d = _to_date(as_of)
    groups = PostingGroup.objects.for_tenant(tenant).reportable().filter(crop_cycle=crop_cycle, posting_date__lte=d)
    if exclude_group is not None:
        groups = groups.exclude(pk=exclude_group.pk)
    total = LedgerEntry.objects.filter(
        tenant=tenant,
        posting_group__in=groups,
        account__code=CROP_WIP,
    ).aggregate(net=Coalesce(Sum(F("debit_amount") - F("credit_amount")), Value(ZERO)))["net"]
    return Decimal(total).quantize(Decimal("0.01"))


def post_harvest(*, harvest, posting_date=None):
    return posting_rules.post_document(
        source_type=PostingGroup.SourceType.HARVEST,
        document=harvest,
        posting_date=posting_date,
    )


def reverse_harvest(*, harvest, reversal_date, reason: str = ""):
    return posting_rules.reverse_document(document=harvest, reversal_date=reversal_date, reason=reason)
