# accounting/api/serializers/posting_groups.py

"""
======================================================
PATH: accounting/api/serializers/posting_groups.py
======================================================
POSTING GROUP SERIALIZERS (READ-ONLY)

A posting group is returned with its ledger entries and allocation rows.
Amounts are fixed 2dp strings (DRF DecimalField default).
"""

from rest_framework import serializers

from accounting.models.allocation import AllocationRow
from accounting.models.ledger import LedgerEntry
from accounting.models.posting_group import PostingGroup


class LedgerEntrySerializer(serializers.ModelSerializer):
    account_code = serializers.CharField(source="account.code", read_only=True)

    class Meta:
        model = LedgerEntry
        fields = (
            "id",
            "account",
            "account_code",
            "party",
            "debit_amount",
            "credit_amount",
            "currency",
        )
        read_only_fields = fields


class AllocationRowSerializer(serializers.ModelSerializer):
    class Meta:
        model = AllocationRow
        fields = (
            "id",
            "allocation_type",
            "project",
            "party",
            "amount",
            "rule_snapshot",
        )
        read_only_fields = fields


class PostingGroupSerializer(serializers.ModelSerializer):
    ledger_entries = LedgerEntrySerializer(many=True, read_only=True)
    allocation_rows = AllocationRowSerializer(many=True, read_only=True)

    class Meta:
        model = PostingGroup
        fields = (
            "id",
            "source_type",
            "source_id",
            "posting_date",
            "idempotency_key",
            "crop_cycle",
            "reversal_of",
            "correction_reason",
            "created_at",
            "ledger_entries",
            "allocation_rows",
        )
        read_only_fields = fields


class ReversePostingGroupSerializer(serializers.Serializer):
    reversal_date = serializers.DateField()
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=1000)

    def validate_reason(self, value):
        return (value or "").strip()
