# accounting/admin.py

from django.contrib import admin

from accounting.models.account import Account
from accounting.models.allocation import AllocationRow
from accounting.models.ledger import LedgerEntry
from accounting.models.period import AccountingPeriod, PeriodEvent
from accounting.models.posting_group import PostingGroup
from accounting.models.tenant import Tenant


class ReadOnlyAdminMixin:
    """Posted accounting rows are append-only; the admin only displays them."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ============================================================
# TENANT
# ============================================================


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "slug")
    readonly_fields = ("created_at",)
    ordering = ("name",)


# ============================================================
# ACCOUNT
# ============================================================


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "name",
        "account_type",
        "tenant",
        "is_active",
    )
    list_filter = ("account_type", "is_active", "tenant")
    search_fields = ("code", "name")
    ordering = ("tenant", "code")
    readonly_fields = ("created_at", "updated_at")

    fieldsets = (
        (
            "Account Identity",
            {
                "fields": ("tenant", "code", "name", "account_type"),
            },
        ),
        (
            "Status",
            {
                "fields": ("is_active",),
            },
        ),
        (
            "System Fields",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )


# ============================================================
# ACCOUNTING PERIOD (transitions go through the period lock)
# ============================================================


class PeriodEventInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = PeriodEvent
    extra = 0
    fields = ("event_type", "actor", "notes", "created_at")
    readonly_fields = fields


@admin.register(AccountingPeriod)
class AccountingPeriodAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("name", "tenant", "period_start", "period_end", "status", "closed_at", "closed_by")
    list_filter = ("status", "tenant")
    ordering = ("tenant", "period_start")
    inlines = [PeriodEventInline]


# ============================================================
# POSTING GROUP (STRICTLY IMMUTABLE)
# ============================================================


class LedgerEntryInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = LedgerEntry
    extra = 0
    fields = ("account", "party", "debit_amount", "credit_amount", "currency")
    readonly_fields = fields


class AllocationRowInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = AllocationRow
    extra = 0
    fields = ("allocation_type", "project", "party", "amount", "rule_snapshot")
    readonly_fields = fields


@admin.register(PostingGroup)
class PostingGroupAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "tenant",
        "source_type",
        "source_id",
        "posting_date",
        "reversal_of",
        "created_at",
    )
    list_filter = ("source_type", "tenant", "posting_date")
    search_fields = ("source_id", "idempotency_key")
    ordering = ("-posting_date", "-created_at")
    inlines = [LedgerEntryInline, AllocationRowInline]
