# accounting/services/account_catalog.py

"""
======================================================
PATH: accounting/services/account_catalog.py
======================================================
ACCOUNT CATALOG (PER TENANT, READ-ONLY)

This module answers ONE question:
"Which account of THIS tenant carries this code?"

Design goals:
- explicit dependency: loaded once per posting/report scope, passed in,
  immutable afterwards (never a process-global cache)
- hard-fail on missing setup (we never invent account codes)
- role -> party-control account mapping is a small fixed lookup, resolved
  at posting time and frozen into allocation snapshots
"""

from __future__ import annotations

import logging
from types import MappingProxyType

from accounting.models.account import Account
from accounting.services.exceptions import AccountResolutionError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# SEMANTIC CODES
# ------------------------------------------------------------

CASH = "CASH"
BANK = "BANK"
AR = "AR"
AP = "AP"
INVENTORY_INPUTS = "INVENTORY_INPUTS"
INVENTORY_PRODUCE = "INVENTORY_PRODUCE"
CROP_WIP = "CROP_WIP"
COGS = "COGS"
PROJECT_REVENUE = "PROJECT_REVENUE"
PURCHASE_RETURNS = "PURCHASE_RETURNS"
EXP_SHARED = "EXP_SHARED"
EXP_HARI_ONLY = "EXP_HARI_ONLY"
EXP_LANDLORD_ONLY = "EXP_LANDLORD_ONLY"
EXP_FARM_OVERHEAD = "EXP_FARM_OVERHEAD"
EXP_MACHINERY = "EXP_MACHINERY"
EXP_LAND_LEASE = "EXP_LAND_LEASE"
MACHINERY_RECOVERY = "MACHINERY_RECOVERY"
PROFIT_DISTRIBUTION = "PROFIT_DISTRIBUTION"
PARTY_CONTROL_HARI = "PARTY_CONTROL_HARI"
PARTY_CONTROL_LANDLORD = "PARTY_CONTROL_LANDLORD"
PARTY_CONTROL_KAMDAR = "PARTY_CONTROL_KAMDAR"

ROLE_CONTROL_CODES = MappingProxyType(
    {
        "HARI": PARTY_CONTROL_HARI,
        "LANDLORD": PARTY_CONTROL_LANDLORD,
        "KAMDAR": PARTY_CONTROL_KAMDAR,
    }
)

ROLE_LABELS = MappingProxyType(
    {
        "HARI": "All Haris",
        "LANDLORD": "All Landlords",
        "KAMDAR": "All Kamdars",
    }
)

LEDGER_CONTROL_CODES = MappingProxyType({"AR": AR, "AP": AP})


def control_code_for_role(role: str) -> str:
    key = (role or "").strip().upper()
    try:
        return ROLE_CONTROL_CODES[key]
    except KeyError as exc:
        raise AccountResolutionError(f"Unknown party role for control account: {role!r}") from exc


class AccountCatalog:
    """
    Immutable code -> Account view of one tenant's chart.

    Usage:
        catalog = AccountCatalog.for_tenant(tenant)
        ar = catalog.get("AR")
    """

    __slots__ = ("tenant_id", "_by_code")

    def __init__(self, tenant_id, accounts):
        self.tenant_id = tenant_id
        self._by_code = MappingProxyType({a.code: a for a in accounts})

    @classmethod
    def for_tenant(cls, tenant) -> "AccountCatalog":
        accounts = list(Account.objects.filter(tenant=tenant, is_active=True))
        return cls(tenant.pk, accounts)

    def __contains__(self, code) -> bool:
        return self._normalize(code) in self._by_code

    @staticmethod
    def _normalize(code) -> str:
        return str(code or "").strip().upper()

    def get(self, code) -> Account:
        key = self._normalize(code)
        if not key:
            logger.error("Account resolution failed: empty account code provided")
            raise AccountResolutionError("Account code is required.")

        account = self._by_code.get(key)
        if account is None:
            logger.error(
                "Account resolution failed: code not in tenant chart",
                extra={"tenant_id": str(self.tenant_id), "code": key},
            )
            raise AccountResolutionError(
                f"Account code {key!r} is not configured (or inactive) for this tenant."
            )
        return account

    def ids_for(self, codes) -> list:
        return [self.get(c).pk for c in codes]

    def control_account_for_role(self, role: str) -> Account:
        return self.get(control_code_for_role(role))

    def control_account_for_ledger(self, ledger: str) -> Account:
        try:
            code = LEDGER_CONTROL_CODES[(ledger or "").strip().upper()]
        except KeyError as exc:
            raise AccountResolutionError(f"Unknown subledger: {ledger!r}") from exc
        return self.get(code)
