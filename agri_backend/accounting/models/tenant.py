# accounting/models/tenant.py

"""
======================================================
PATH: accounting/models/tenant.py
======================================================
TENANT MODEL

Every accounting row carries a tenant. Provisioning happens elsewhere;
the ledger only needs identity and the active flag.
"""

from __future__ import annotations

import uuid

from django.db import models


class Tenant(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=150)
    slug = models.SlugField(max_length=80, unique=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def clean(self):
        self.name = (self.name or "").strip()
        self.slug = (self.slug or "").strip().lower()
