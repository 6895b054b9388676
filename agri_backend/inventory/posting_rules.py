# inventory/posting_rules.py

"""
POSTING RULES: STOCK ISSUE + HARVEST

STOCK_ISSUE, per line:
- Debit  CROP_WIP                       (qty at WAC)
- Credit INVENTORY_INPUTS / _PRODUCE    (same value)
- Allocation FULL_PARTY to the line's project (CROP_INPUT)
- Effect: ISSUE stock movement

HARVEST:
- pool = CROP_WIP net debit for the crop cycle up to the harvest date
- Debit  INVENTORY_PRODUCE per line     (pool split by quantity)
- Credit CROP_WIP                       (pool)
- Allocation PROPORTIONAL_BY_QUANTITY (HARVEST_PRODUCTION) over the produce debit
- Effect: HARVEST stock movement per line
"""

from __future__ import annotations

from decimal import Decimal

from accounting.models.allocation import AllocationRow
from accounting.models.posting_group import PostingGroup
from accounting.services.account_catalog import CROP_WIP, INVENTORY_PRODUCE
from accounting.services.allocation_calculator import (
    FULL_PARTY,
    PROPORTIONAL_BY_QUANTITY,
    AllocationInstruction,
    QuantityLine,
    split_by_weights,
)
from accounting.services.exceptions import ValidationFault
from accounting.services.posting_engine import PostingLine
from accounting.services.posting_rules import PostingRule, register
from inventory.models import Harvest, InventoryItem, StockIssue, StockMovement
from inventory.services import stock_service
from inventory.services.harvest_service import crop_wip_balance


class _StockRuleMixin:
    def unwind_effects(self, original, reversal) -> None:
        stock_service.reverse_movements(original=original, reversal=reversal)


@register
class StockIssueRule(_StockRuleMixin, PostingRule):
    source_type = PostingGroup.SourceType.STOCK_ISSUE
    document_model = StockIssue

    def posting_date_for(self, document):
        return document.issue_date

    def _lines(self, document):
        return list(document.lines.select_related("item", "project").order_by("pk"))

    def _plan(self, document):
        lines = self._lines(document)
        plan = stock_service.plan_outbound(
            tenant=document.tenant,
            lines=[(line.item, line.quantity) for line in lines],
        )
        return list(zip(lines, plan))

    def validate(self, document) -> None:
        lines = self._lines(document)
        if not lines:
            raise ValidationFault("Stock issue has no lines.")
        for line in lines:
            if line.project.crop_cycle_id != document.crop_cycle_id:
                raise ValidationFault(f"Project {line.project} is not in the issue's crop cycle.")

    def compute_lines(self, document, *, posting_date, catalog):
        out = []
        for line, planned in self._plan(document):
            if planned.value <= 0:
                raise ValidationFault(f"Item {line.item.code} has no cost on hand to issue.")
            out.append(PostingLine(CROP_WIP, debit=planned.value, party_id=line.project.party_id))
            out.append(PostingLine(line.item.inventory_account_code, credit=planned.value))
        return out

    def compute_allocations(self, document, *, posting_date):
        return [
            AllocationInstruction(
                mode=FULL_PARTY,
                amount=planned.value,
                allocation_type=AllocationRow.AllocationType.CROP_INPUT,
                party_id=line.project.party_id,
                project_id=line.project_id,
                pool_account_code=CROP_WIP,
                snapshot={"item_id": line.item_id, "quantity": line.quantity, "unit_cost": planned.unit_cost},
            )
            for line, planned in self._plan(document)
        ]

    def apply_effects(self, document, group) -> None:
        for _, planned in self._plan(document):
            stock_service.issue(
                tenant=document.tenant,
                line=planned,
                posting_group=group,
                occurred_on=group.posting_date,
            )


@register
class HarvestRule(_StockRuleMixin, PostingRule):
    source_type = PostingGroup.SourceType.HARVEST
    document_model = Harvest

    def posting_date_for(self, document):
        return document.harvest_date

    def _lines(self, document):
        return list(document.lines.select_related("item").order_by("pk"))

    def _split(self, document, posting_date, exclude_group=None):
        lines = self._lines(document)
        pool = crop_wip_balance(
            tenant=document.tenant,
            crop_cycle=document.crop_cycle,
            as_of=posting_date,
            exclude_group=exclude_group,
        )
        if pool <= 0:
            raise ValidationFault("Crop cycle has no work-in-progress cost to harvest.")
        amounts = split_by_weights(pool, [Decimal(line.quantity) for line in lines])
        return pool, list(zip(lines, amounts))

    def validate(self, document) -> None:
        if not self._lines(document):
            raise ValidationFault("Harvest has no lines.")
        if any(line.item.item_type != InventoryItem.PRODUCE for line in self._lines(document)):
            raise ValidationFault("Harvest lines must be produce items.")
        if document.project.crop_cycle_id != document.crop_cycle_id:
            raise ValidationFault("Harvest project is not in the harvest's crop cycle.")

    def compute_lines(self, document, *, posting_date, catalog):
        pool, split = self._split(document, posting_date)
        out = [PostingLine(line.item.inventory_account_code, debit=amount) for line, amount in split]
        out.append(PostingLine(CROP_WIP, credit=pool))
        return out

    def compute_allocations(self, document, *, posting_date):
        pool, split = self._split(document, posting_date)
        return [
            AllocationInstruction(
                mode=PROPORTIONAL_BY_QUANTITY,
                amount=pool,
                allocation_type=AllocationRow.AllocationType.HARVEST_PRODUCTION,
                party_id=document.project.party_id,
                project_id=document.project_id,
                quantities=tuple(QuantityLine(quantity=line.quantity, ref=line.item_id) for line, _ in split),
                pool_account_code=INVENTORY_PRODUCE,
                snapshot={"crop_cycle_id": document.crop_cycle_id},
            )
        ]

    def apply_effects(self, document, group) -> None:
        _, split = self._split(document, group.posting_date, exclude_group=group)
        for line, amount in split:
            stock_service.receive(
                tenant=document.tenant,
                item=line.item,
                posting_group=group,
                quantity=line.quantity,
                value=amount,
                occurred_on=group.posting_date,
                movement_type=StockMovement.MovementType.HARVEST,
            )
