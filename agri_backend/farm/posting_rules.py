# farm/posting_rules.py

"""
POSTING RULES: OPERATIONAL TRANSACTIONS, SETTLEMENTS, MACHINERY, LEASES

OPERATIONAL income:
- Debit  CASH
- Credit PROJECT_REVENUE                (POOL_REVENUE to the project)

OPERATIONAL expense, by classification:
- SHARED         Dr EXP_SHARED          / Cr CASH   (POOL_SHARE)
- HARI_ONLY      Dr EXP_HARI_ONLY       / Cr CASH   (HARI_ONLY, the project's hari)
- LANDLORD_ONLY  Dr EXP_LANDLORD_ONLY   / Cr CASH   (LANDLORD_ONLY, the landlord)
- FARM_OVERHEAD  Dr EXP_FARM_OVERHEAD   / Cr CASH   (FARM_OVERHEAD, no project)

SETTLEMENT:
- Debit  PROFIT_DISTRIBUTION            (pool)
- Credit PARTY_CONTROL_<ROLE> per share (split of the pool)
- inline shares -> SHARED_BY_PERCENTAGE, otherwise SHARED_BY_RULE

MACHINERY_CHARGE:
- Debit  EXP_MACHINERY                  (charge, the project's cost)
- Credit MACHINERY_RECOVERY             (machine income)
- Allocation FULL_PARTY (MACHINERY_CHARGE) to the owner and project

LAND_LEASE_ACCRUAL:
- Debit  EXP_LAND_LEASE                 (rent for the period)
- Credit PARTY_CONTROL_LANDLORD         (owed to the landlord)
- Allocation FULL_PARTY (LEASE_RENT) to the landlord and project
"""

from __future__ import annotations

import uuid
from decimal import ROUND_HALF_UP, Decimal

from accounting.models.allocation import AllocationRow
from accounting.models.posting_group import PostingGroup
from accounting.services import allocation_calculator
from accounting.services.account_catalog import (
    CASH,
    EXP_FARM_OVERHEAD,
    EXP_HARI_ONLY,
    EXP_LAND_LEASE,
    EXP_LANDLORD_ONLY,
    EXP_MACHINERY,
    EXP_SHARED,
    MACHINERY_RECOVERY,
    PARTY_CONTROL_LANDLORD,
    PROFIT_DISTRIBUTION,
    PROJECT_REVENUE,
)
from accounting.services.allocation_calculator import (
    FULL_PARTY,
    SHARED_BY_PERCENTAGE,
    SHARED_BY_RULE,
    AllocationInstruction,
    ComputedAllocation,
)
from accounting.services.exceptions import ValidationFault
from accounting.services.posting_engine import PostingLine
from accounting.services.posting_rules import PostingRule, register
from farm.models import LandLeaseAccrual, MachineryCharge, OperationalTransaction, Party, Settlement

TWOPLACES = Decimal("0.01")

EXPENSE_ROUTING = {
    OperationalTransaction.SHARED: (EXP_SHARED, AllocationRow.AllocationType.POOL_SHARE),
    OperationalTransaction.HARI_ONLY: (EXP_HARI_ONLY, AllocationRow.AllocationType.HARI_ONLY),
    OperationalTransaction.LANDLORD_ONLY: (EXP_LANDLORD_ONLY, AllocationRow.AllocationType.LANDLORD_ONLY),
    OperationalTransaction.FARM_OVERHEAD: (EXP_FARM_OVERHEAD, AllocationRow.AllocationType.FARM_OVERHEAD),
}


def _party_key(value) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError, AttributeError) as exc:
        raise ValidationFault(f"Invalid settlement share party id: {value!r}") from exc


@register
class OperationalRule(PostingRule):
    source_type = PostingGroup.SourceType.OPERATIONAL
    document_model = OperationalTransaction

    def posting_date_for(self, document):
        return document.transaction_date

    def validate(self, document) -> None:
        if document.amount is None or document.amount <= 0:
            raise ValidationFault("Amount must be greater than zero.")
        if document.transaction_type not in (OperationalTransaction.INCOME, OperationalTransaction.EXPENSE):
            raise ValidationFault(f"Unknown transaction type {document.transaction_type!r}.")
        if document.classification not in EXPENSE_ROUTING:
            raise ValidationFault(f"Unknown classification {document.classification!r}.")

        overhead = document.classification == OperationalTransaction.FARM_OVERHEAD
        if document.project_id is None and not overhead:
            raise ValidationFault("A project is required unless the cost is farm overhead.")
        if document.project_id is not None and document.project.crop_cycle_id != document.crop_cycle_id:
            raise ValidationFault("Project is not in the transaction's crop cycle.")

        if document.classification == OperationalTransaction.LANDLORD_ONLY:
            if document.landlord_id is None:
                raise ValidationFault("LANDLORD_ONLY costs need a landlord.")
            if document.landlord.role != Party.LANDLORD:
                raise ValidationFault("The charged party must have the LANDLORD role.")

    def compute_lines(self, document, *, posting_date, catalog):
        if document.transaction_type == OperationalTransaction.INCOME:
            return [
                PostingLine(CASH, debit=document.amount),
                PostingLine(PROJECT_REVENUE, credit=document.amount),
            ]

        expense_code, _ = EXPENSE_ROUTING[document.classification]
        return [
            PostingLine(expense_code, debit=document.amount),
            PostingLine(CASH, credit=document.amount),
        ]

    def _party_id(self, document):
        if document.classification in (OperationalTransaction.LANDLORD_ONLY, OperationalTransaction.FARM_OVERHEAD):
            return document.landlord_id
        return document.project.party_id if document.project_id else None

    def compute_allocations(self, document, *, posting_date):
        if document.transaction_type == OperationalTransaction.INCOME:
            pool_code, allocation_type = PROJECT_REVENUE, AllocationRow.AllocationType.POOL_REVENUE
        else:
            pool_code, allocation_type = EXPENSE_ROUTING[document.classification]

        party_id = self._party_id(document)
        project_id = None if document.classification == OperationalTransaction.FARM_OVERHEAD else document.project_id
        snapshot = {
            "transaction_type": document.transaction_type,
            "classification": document.classification,
        }

        if party_id is None and project_id is None:
            # Unattributed overhead still gets a row so the pool reconciles.
            return [
                ComputedAllocation(
                    allocation_type=allocation_type,
                    amount=document.amount,
                    rule_snapshot={"mode": FULL_PARTY, "percentage": "100", **snapshot},
                    pool_account_code=pool_code,
                )
            ]

        return [
            AllocationInstruction(
                mode=FULL_PARTY,
                amount=document.amount,
                allocation_type=allocation_type,
                party_id=party_id,
                project_id=project_id,
                pool_account_code=pool_code,
                snapshot=snapshot,
            )
        ]


@register
class SettlementRule(PostingRule):
    source_type = PostingGroup.SourceType.SETTLEMENT
    document_model = Settlement

    def posting_date_for(self, document):
        return document.settlement_date

    def validate(self, document) -> None:
        if document.pool_amount is None or document.pool_amount <= 0:
            raise ValidationFault("Settlement pool must be greater than zero.")
        if document.project.crop_cycle_id != document.crop_cycle_id:
            raise ValidationFault("Project is not in the settlement's crop cycle.")
        if document.shares and document.share_rule_id:
            raise ValidationFault("Provide inline shares or a share rule, not both.")

    def _inline_shares(self, document) -> tuple:
        party_ids = [_party_key(s.get("party_id")) for s in document.shares]
        roles = {
            str(pk): role
            for pk, role in Party.objects.filter(tenant=document.tenant, pk__in=party_ids).values_list(
                "pk", "role"
            )
        }
        shares = []
        for share, party_id in zip(document.shares, party_ids):
            if party_id not in roles:
                raise ValidationFault(f"Settlement share party {party_id!r} not found for tenant.")
            if "percentage" not in share:
                raise ValidationFault("Each settlement share needs a percentage.")
            shares.append(
                {"party_id": party_id, "percentage": share["percentage"], "role": share.get("role") or roles[party_id]}
            )
        return tuple(shares)

    def _instruction(self, document) -> AllocationInstruction:
        common = {
            "amount": document.pool_amount,
            "allocation_type": AllocationRow.AllocationType.PROFIT_SHARE,
            "project_id": document.project_id,
            "crop_cycle_id": document.crop_cycle_id,
            "with_control_accounts": True,
            "snapshot": {"settlement_id": document.pk},
        }
        if document.shares:
            return AllocationInstruction(mode=SHARED_BY_PERCENTAGE, shares=self._inline_shares(document), **common)
        return AllocationInstruction(mode=SHARED_BY_RULE, share_rule_id=document.share_rule_id, **common)

    def _rows(self, document, posting_date) -> list[ComputedAllocation]:
        return allocation_calculator.calculate(
            self._instruction(document),
            tenant=document.tenant,
            posting_date=posting_date,
        )

    def compute_lines(self, document, *, posting_date, catalog):
        lines = [PostingLine(PROFIT_DISTRIBUTION, debit=document.pool_amount)]
        for row in self._rows(document, posting_date):
            lines.append(
                PostingLine(row.rule_snapshot["control_account_code"], credit=row.amount, party_id=row.party_id)
            )
        return lines

    def compute_allocations(self, document, *, posting_date):
        return self._rows(document, posting_date)



@register
class MachineryChargeRule(PostingRule):
    source_type = PostingGroup.SourceType.MACHINERY_CHARGE
    document_model = MachineryCharge

    def posting_date_for(self, document):
        return document.charge_date

    def validate(self, document) -> None:
        if document.amount is None or document.amount <= 0:
            raise ValidationFault("Machinery charge must be greater than zero.")
        if document.pool_scope not in dict(MachineryCharge.POOL_SCOPES):
            raise ValidationFault(f"Unknown pool scope {document.pool_scope!r}.")
        if document.project.crop_cycle_id != document.crop_cycle_id:
            raise ValidationFault("Project is not in the charge's crop cycle.")

        if document.usage_quantity is not None and document.usage_quantity <= 0:
            raise ValidationFault("Usage quantity must be greater than zero.")
        if document.usage_quantity is not None and document.rate is not None:
            expected = (document.usage_quantity * document.rate).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
            if expected != document.amount:
                raise ValidationFault(
                    f"Charge amount {document.amount} does not equal usage x rate ({expected})."
                )

    def compute_lines(self, document, *, posting_date, catalog):
        return [
            PostingLine(EXP_MACHINERY, debit=document.amount),
            PostingLine(MACHINERY_RECOVERY, credit=document.amount),
        ]

    def compute_allocations(self, document, *, posting_date):
        return [
            AllocationInstruction(
                mode=FULL_PARTY,
                amount=document.amount,
                allocation_type=AllocationRow.AllocationType.MACHINERY_CHARGE,
                party_id=document.owner_id,
                project_id=document.project_id,
                pool_account_code=EXP_MACHINERY,
                snapshot={
                    "source": "machinery_charge",
                    "pool_scope": document.pool_scope,
                    "machine": document.machine,
                    "usage_quantity": document.usage_quantity,
                    "unit": document.unit,
                    "rate": document.rate,
                    "charge_date": document.charge_date,
                },
            )
        ]


@register
class LandLeaseAccrualRule(PostingRule):
    source_type = PostingGroup.SourceType.LAND_LEASE_ACCRUAL
    document_model = LandLeaseAccrual

    def posting_date_for(self, document):
        return document.accrual_date

    def validate(self, document) -> None:
        if document.amount is None or document.amount <= 0:
            raise ValidationFault("Lease accrual must be greater than zero.")
        if document.period_end < document.period_start:
            raise ValidationFault("Lease period ends before it starts.")
        if document.landlord.role != Party.LANDLORD:
            raise ValidationFault("Lease rent accrues to a party with the LANDLORD role.")

    def compute_lines(self, document, *, posting_date, catalog):
        return [
            PostingLine(EXP_LAND_LEASE, debit=document.amount),
            PostingLine(PARTY_CONTROL_LANDLORD, credit=document.amount, party_id=document.landlord_id),
        ]

    def compute_allocations(self, document, *, posting_date):
        return [
            AllocationInstruction(
                mode=FULL_PARTY,
                amount=document.amount,
                allocation_type=AllocationRow.AllocationType.LEASE_RENT,
                party_id=document.landlord_id,
                project_id=document.project_id,
                pool_account_code=EXP_LAND_LEASE,
                snapshot={
                    "source": "land_lease",
                    "land_parcel": document.land_parcel,
                    "period_start": document.period_start,
                    "period_end": document.period_end,
                    "reference": document.reference,
                },
            )
        ]
