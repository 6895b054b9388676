# farm/services/posting_service.py

"""
FARM DOCUMENT POSTING (APPLICATION SERVICE)

Thin entry points for operational transactions, settlements, machinery
charges and lease accruals; the mapping lives in farm.posting_rules and
the engine does the rest.
"""

from __future__ import annotations

from accounting.models.posting_group import PostingGroup
from accounting.services import posting_rules


def post_operational_transaction(*, transaction, posting_date=None):
    return posting_rules.post_document(
        source_type=PostingGroup.SourceType.OPERATIONAL,
        document=transaction,
        posting_date=posting_date,
    )


def reverse_operational_transaction(*, transaction, reversal_date, reason: str = ""):
    return posting_rules.reverse_document(document=transaction, reversal_date=reversal_date, reason=reason)


def post_settlement(*, settlement, posting_date=None):
    return posting_rules.post_document(
        source_type=PostingGroup.SourceType.SETTLEMENT,
        document=settlement,
        posting_date=posting_date,
    )


def reverse_settlement(*, settlement, reversal_date, reason: str = ""):
    return posting_rules.reverse_document(document=settlement, reversal_date=reversal_date, reason=reason)


def post_machinery_charge(*, charge, posting_date=None):
    return posting_rules.post_document(
        source_type=PostingGroup.SourceType.MACHINERY_CHARGE,
        document=charge,
        posting_date=posting_date,
    )


def reverse_machinery_charge(*, charge, reversal_date, reason: str = ""):
    return posting_rules.reverse_document(document=charge, reversal_date=reversal_date, reason=reason)


def post_lease_accrual(*, accrual, posting_date=None):
    return posting_rules.post_document(
        source_type=PostingGroup.SourceType.LAND_LEASE_ACCRUAL,
        document=accrual,
        posting_date=posting_date,
    )


def reverse_lease_accrual(*, accrual, reversal_date, reason: str = ""):
    return posting_rules.reverse_document(document=accrual, reversal_date=reversal_date, reason=reason)
