# inventory/models/stock.py

"""
INVENTORY STOCK MODELS

InventoryItem:
- INPUT items (seed, fertiliser) sit in INVENTORY_INPUTS
- PRODUCE items (harvested crop) sit in INVENTORY_PRODUCE

StockBalance:
- one row per (tenant, item); quantity, value and weighted average cost
- mutated ONLY by inventory.services.stock_service.apply_movement

StockMovement (canonical inventory ledger):
- append-only, linked to the PostingGroup that caused it
- qty_delta / value_delta are signed; unit_cost_snapshot freezes the cost
  used so a reversal can negate the movement exactly
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from accounting.models.tenant import Tenant


class InventoryItem(models.Model):
    INPUT = "INPUT"
    PRODUCE = "PRODUCE"

    ITEM_TYPES = [
        (INPUT, "Input"),
        (PRODUCE, "Produce"),
    ]

    INVENTORY_ACCOUNT_BY_TYPE = {
        INPUT: "INVENTORY_INPUTS",
        PRODUCE: "INVENTORY_PRODUCE",
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="inventory_items")

    code = models.CharField(max_length=50)
    name = models.CharField(max_length=150)
    unit = models.CharField(max_length=20, default="unit")
    item_type = models.CharField(max_length=10, choices=ITEM_TYPES, default=INPUT)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["code"]
        constraints = [
            models.UniqueConstraint(fields=["tenant", "code"], name="uniq_inventory_item_code"),
        ]

    def __str__(self):
        return f"{self.code} – {self.name}"

    @property
    def inventory_account_code(self) -> str:
        return self.INVENTORY_ACCOUNT_BY_TYPE[self.item_type]


class StockBalance(models.Model):
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="+")
    item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name="balances")

    quantity = models.DecimalField(max_digits=18, decimal_places=3, default=Decimal("0"))
    value = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    wac = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        default=Decimal("0"),
        help_text="Weighted average unit cost (value / quantity)",
    )

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["tenant", "item"], name="uniq_stock_balance_item"),
        ]

    def __str__(self):
        return f"{self.item_id}: {self.quantity} @ {self.wac}"


class StockMovement(models.Model):
    class MovementType(models.TextChoices):
        RECEIPT = "RECEIPT", "Goods receipt"
        ISSUE = "ISSUE", "Issue to crop"
        SALE = "SALE", "Sale"
        HARVEST = "HARVEST", "Harvest"
        REVERSAL = "REVERSAL", "Reversal"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="+")

    posting_group = models.ForeignKey(
        "accounting.PostingGroup",
        on_delete=models.PROTECT,
        related_name="stock_movements",
    )
    item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name="movements")

    movement_type = models.CharField(max_length=10, choices=MovementType.choices)
    qty_delta = models.DecimalField(max_digits=18, decimal_places=3)
    value_delta = models.DecimalField(max_digits=14, decimal_places=2)
    unit_cost_snapshot = models.DecimalField(max_digits=18, decimal_places=6)

    occurred_on = models.DateField()
    reversal_of = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversals",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["tenant", "item"]),
            models.Index(fields=["posting_group"]),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.qty_delta} {self.item_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("StockMovement records are immutable once created")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("StockMovement records are immutable and cannot be deleted")
