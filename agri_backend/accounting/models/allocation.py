# accounting/models/allocation.py

"""
======================================================
PATH: accounting/models/allocation.py
======================================================
ALLOCATION ROW MODEL

Attribution of part of a posting's amount to a party and/or project.

Guarantees:
- Immutable once created
- rule_snapshot freezes the percentages/ids actually applied; later edits
  to a share rule never rewrite history
- Rows attribute amounts; reports never re-sum ledger totals through them
"""

from __future__ import annotations

import uuid

from django.core.exceptions import ValidationError
from django.db import models

from accounting.models.posting_group import PostingGroup
from accounting.models.tenant import Tenant


class AllocationRow(models.Model):
    class AllocationType(models.TextChoices):
        PARTY_BALANCE = "PARTY_BALANCE", "Party balance"
        POOL_SHARE = "POOL_SHARE", "Shared pool cost"
        POOL_REVENUE = "POOL_REVENUE", "Shared pool revenue"
        HARI_ONLY = "HARI_ONLY", "Hari only"
        LANDLORD_ONLY = "LANDLORD_ONLY", "Landlord only"
        FARM_OVERHEAD = "FARM_OVERHEAD", "Farm overhead"
        INVENTORY_COST = "INVENTORY_COST", "Inventory cost"
        CROP_INPUT = "CROP_INPUT", "Crop input"
        HARVEST_PRODUCTION = "HARVEST_PRODUCTION", "Harvest production"
        PROFIT_SHARE = "PROFIT_SHARE", "Profit share"
        MACHINERY_CHARGE = "MACHINERY_CHARGE", "Machinery charge"
        LEASE_RENT = "LEASE_RENT", "Lease rent"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="+")

    posting_group = models.ForeignKey(
        PostingGroup,
        on_delete=models.PROTECT,
        related_name="allocation_rows",
    )

    project = models.ForeignKey(
        "farm.Project",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="allocation_rows",
    )

    party = models.ForeignKey(
        "farm.Party",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="allocation_rows",
    )

    allocation_type = models.CharField(max_length=30, choices=AllocationType.choices)

    amount = models.DecimalField(max_digits=14, decimal_places=2, help_text="Signed amount")

    rule_snapshot = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["posting_group"]),
            models.Index(fields=["tenant", "project"]),
            models.Index(fields=["tenant", "party"]),
        ]

    def __str__(self):
        return f"{self.allocation_type} {self.amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("AllocationRow records are immutable once created")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("AllocationRow records are immutable and cannot be deleted")
