# accounting/services/chart_seed.py

"""
======================================================
PATH: accounting/services/chart_seed.py
======================================================
STANDARD FARM CHART

The semantic codes every posting rule resolves through the AccountCatalog.
Seeding is idempotent: existing rows are corrected in place, never
duplicated, and accounts already used by postings keep their identity.
"""

from __future__ import annotations

import logging

from django.db import transaction

from accounting.models.account import Account
from accounting.services import account_catalog as codes

logger = logging.getLogger(__name__)

FARM_CHART = [
    # ASSETS
    (codes.CASH, "Cash on Hand", Account.ASSET),
    (codes.BANK, "Bank Account", Account.ASSET),
    (codes.AR, "Accounts Receivable", Account.ASSET),
    (codes.INVENTORY_INPUTS, "Inventory - Inputs", Account.ASSET),
    (codes.INVENTORY_PRODUCE, "Inventory - Produce", Account.ASSET),
    (codes.CROP_WIP, "Crop Work in Progress", Account.ASSET),
    # LIABILITIES
    (codes.AP, "Accounts Payable", Account.LIABILITY),
    (codes.PARTY_CONTROL_HARI, "Party Control - Hari", Account.LIABILITY),
    (codes.PARTY_CONTROL_LANDLORD, "Party Control - Landlord", Account.LIABILITY),
    (codes.PARTY_CONTROL_KAMDAR, "Party Control - Kamdar", Account.LIABILITY),
    # EQUITY
    (codes.PROFIT_DISTRIBUTION, "Profit Distribution", Account.EQUITY),
    # REVENUE
    (codes.PROJECT_REVENUE, "Project Revenue", Account.REVENUE),
    (codes.PURCHASE_RETURNS, "Purchase Returns", Account.REVENUE),
    (codes.MACHINERY_RECOVERY, "Machinery Recovery Income", Account.REVENUE),
    # EXPENSES
    (codes.COGS, "Cost of Goods Sold", Account.EXPENSE),
    (codes.EXP_SHARED, "Shared Expenses", Account.EXPENSE),
    (codes.EXP_HARI_ONLY, "Hari-only Expenses", Account.EXPENSE),
    (codes.EXP_LANDLORD_ONLY, "Landlord-only Expenses", Account.EXPENSE),
    (codes.EXP_FARM_OVERHEAD, "Farm Overhead", Account.EXPENSE),
    (codes.EXP_MACHINERY, "Machinery Charges", Account.EXPENSE),
    (codes.EXP_LAND_LEASE, "Land Lease Rent", Account.EXPENSE),
]


@transaction.atomic
def seed_farm_chart(*, tenant) -> tuple[int, int]:
    """Create or correct the standard farm accounts. Returns (created, updated)."""
    created_count = 0
    updated_count = 0

    for code, name, account_type in FARM_CHART:
        acc, created = Account.objects.get_or_create(
            tenant=tenant,
            code=code,
            defaults={"name": name, "account_type": account_type, "is_active": True},
        )
        if created:
            created_count += 1
            continue

        needs_update = False
        if acc.name != name:
            acc.name = name
            needs_update = True
        if acc.account_type != account_type:
            acc.account_type = account_type
            needs_update = True
        if not acc.is_active:
            acc.is_active = True
            needs_update = True

        if needs_update:
            acc.save(update_fields=["name", "account_type", "is_active", "updated_at"])
            updated_count += 1

    logger.info(
        "Farm chart seeded",
        extra={"tenant_id": str(tenant.pk), "accounts_created": created_count, "accounts_updated": updated_count},
    )
    return created_count, updated_count
