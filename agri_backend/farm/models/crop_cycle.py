# farm/models/crop_cycle.py

"""
CROP CYCLE + PROJECT MODELS

CropCycle is the season gate for postings:
- CLOSED cycles reject postings and reversals
- posting dates must fall inside [start_date, end_date] (open-ended when
  end_date is empty)

Project is a field/plot worked within a crop cycle, usually by one hari.
"""

from __future__ import annotations

import uuid

from django.core.exceptions import ValidationError
from django.db import models

from accounting.models.tenant import Tenant


class CropCycle(models.Model):
    OPEN = "OPEN"
    CLOSED = "CLOSED"

    STATUSES = [
        (OPEN, "Open"),
        (CLOSED, "Closed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="crop_cycles")

    name = models.CharField(max_length=150)
    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUSES, default=OPEN)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-start_date"]
        indexes = [models.Index(fields=["tenant", "status"])]

    def __str__(self):
        return self.name

    @property
    def is_closed(self) -> bool:
        return self.status == self.CLOSED

    def covers(self, on_date) -> bool:
        if self.start_date and on_date < self.start_date:
            return False
        if self.end_date and on_date > self.end_date:
            return False
        return True

    def clean(self):
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError("end_date must be >= start_date")


class Project(models.Model):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"

    STATUSES = [
        (ACTIVE, "Active"),
        (CLOSED, "Closed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="projects")

    crop_cycle = models.ForeignKey(CropCycle, on_delete=models.PROTECT, related_name="projects")
    party = models.ForeignKey(
        "farm.Party",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="projects",
        help_text="Hari working this project",
    )

    name = models.CharField(max_length=150)
    status = models.CharField(max_length=10, choices=STATUSES, default=ACTIVE)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        indexes = [models.Index(fields=["tenant", "crop_cycle"])]

    def __str__(self):
        return self.name
