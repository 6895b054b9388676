# accounting/models/document.py

"""
======================================================
PATH: accounting/models/document.py
======================================================
POSTABLE DOCUMENT (ABSTRACT)

Shared header for every source document that posts through the engine
(invoices, payments, stock issues, harvests, operational transactions,
settlements).

The document keeps the engine's opaque handles:
- posting_group           set once when posted
- reversal_posting_group  set once when reversed

Status moves DRAFT -> POSTED -> REVERSED and never back.
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone

from accounting.models.tenant import Tenant


class PostableDocument(models.Model):
    DRAFT = "DRAFT"
    POSTED = "POSTED"
    REVERSED = "REVERSED"

    STATUSES = [
        (DRAFT, "Draft"),
        (POSTED, "Posted"),
        (REVERSED, "Reversed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="+")

    status = models.CharField(max_length=10, choices=STATUSES, default=DRAFT)
    posting_date = models.DateField(null=True, blank=True)
    posted_at = models.DateTimeField(null=True, blank=True)

    posting_group = models.ForeignKey(
        "accounting.PostingGroup",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    reversal_posting_group = models.ForeignKey(
        "accounting.PostingGroup",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    @property
    def is_posted(self) -> bool:
        return self.status == self.POSTED

    def mark_posted(self, posting_group) -> None:
        self.status = self.POSTED
        self.posting_group = posting_group
        self.posting_date = posting_group.posting_date
        self.posted_at = self.posted_at or timezone.now()
        self.save(update_fields=["status", "posting_group", "posting_date", "posted_at", "updated_at"])

    def mark_reversed(self, reversal_group) -> None:
        self.status = self.REVERSED
        self.reversal_posting_group = reversal_group
        self.save(update_fields=["status", "reversal_posting_group", "updated_at"])
