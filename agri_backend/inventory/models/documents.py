# inventory/models/documents.py

"""
INVENTORY SOURCE DOCUMENTS

StockIssue:
- inputs drawn from stock at WAC into a crop's work-in-progress,
  line by line per project

Harvest:
- transfers the crop cycle's accumulated CROP_WIP cost into produce
  stock, split across lines by quantity
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from accounting.models.document import PostableDocument


class StockIssue(PostableDocument):
    crop_cycle = models.ForeignKey(
        "farm.CropCycle",
        on_delete=models.PROTECT,
        related_name="stock_issues",
    )
    issue_date = models.DateField()
    description = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-issue_date", "-created_at"]

    def __str__(self):
        return f"StockIssue {self.id} {self.issue_date}"


class StockIssueLine(models.Model):
    issue = models.ForeignKey(StockIssue, on_delete=models.CASCADE, related_name="lines")
    item = models.ForeignKey("inventory.InventoryItem", on_delete=models.PROTECT, related_name="+")
    project = models.ForeignKey("farm.Project", on_delete=models.PROTECT, related_name="+")
    quantity = models.DecimalField(
        max_digits=18,
        decimal_places=3,
        validators=[MinValueValidator(Decimal("0.001"))],
    )

    class Meta:
        ordering = ["id"]


class Harvest(PostableDocument):
    crop_cycle = models.ForeignKey(
        "farm.CropCycle",
        on_delete=models.PROTECT,
        related_name="harvests",
    )
    project = models.ForeignKey(
        "farm.Project",
        on_delete=models.PROTECT,
        related_name="harvests",
    )
    harvest_date = models.DateField()

    class Meta:
        ordering = ["-harvest_date", "-created_at"]

    def __str__(self):
        return f"Harvest {self.id} {self.harvest_date}"


class HarvestLine(models.Model):
    harvest = models.ForeignKey(Harvest, on_delete=models.CASCADE, related_name="lines")
    item = models.ForeignKey("inventory.InventoryItem", on_delete=models.PROTECT, related_name="+")
    quantity = models.DecimalField(
        max_digits=18,
        decimal_places=3,
        validators=[MinValueValidator(Decimal("0.001"))],
    )

    class Meta:
        ordering = ["id"]
