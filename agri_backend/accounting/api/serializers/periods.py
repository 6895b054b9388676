# accounting/api/serializers/periods.py

"""
======================================================
PATH: accounting/api/serializers/periods.py
======================================================
ACCOUNTING PERIOD SERIALIZERS

Rules:
- periods are listed read-only
- close / reopen take the period id and optional notes
"""

from rest_framework import serializers

from accounting.models.period import AccountingPeriod


class AccountingPeriodSerializer(serializers.ModelSerializer):
    class Meta:
        model = AccountingPeriod
        fields = (
            "id",
            "name",
            "period_start",
            "period_end",
            "status",
            "closed_at",
            "closed_by",
        )
        read_only_fields = fields


class PeriodTransitionSerializer(serializers.Serializer):
    period_id = serializers.UUIDField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PeriodCreateSerializer(serializers.Serializer):
    period_start = serializers.DateField()
    period_end = serializers.DateField()
    name = serializers.CharField(required=False, allow_blank=True, max_length=50)

    def validate(self, attrs):
        if attrs["period_start"] > attrs["period_end"]:
            raise serializers.ValidationError("period_start must be <= period_end")
        return attrs
