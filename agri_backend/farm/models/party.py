# farm/models/party.py

from __future__ import annotations

import uuid

from django.db import models

from accounting.models.tenant import Tenant


class Party(models.Model):
    """
    Counterparty of the farm (sharecropper, landowner, supervisor, customer, supplier).

    Only identity and role matter to the ledger: the role selects the
    party-control account for settlements and party summaries.
    """

    HARI = "HARI"
    LANDLORD = "LANDLORD"
    KAMDAR = "KAMDAR"
    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"

    ROLES = [
        (HARI, "Hari"),
        (LANDLORD, "Landlord"),
        (KAMDAR, "Kamdar"),
        (CUSTOMER, "Customer"),
        (SUPPLIER, "Supplier"),
    ]

    CONTROL_ROLES = (HARI, LANDLORD, KAMDAR)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="parties")

    name = models.CharField(max_length=150)
    role = models.CharField(max_length=20, choices=ROLES)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "Parties"
        indexes = [models.Index(fields=["tenant", "role"])]

    def __str__(self):
        return f"{self.name} ({self.role})"
