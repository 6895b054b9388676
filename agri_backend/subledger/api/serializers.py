# subledger/api/serializers.py

from decimal import Decimal

from rest_framework import serializers

from subledger.models import Payment, PaymentAllocation


class PaymentAllocationSerializer(serializers.ModelSerializer):
    invoice_reference = serializers.CharField(source="invoice.reference", read_only=True)

    class Meta:
        model = PaymentAllocation
        fields = (
            "id",
            "payment",
            "invoice",
            "invoice_reference",
            "amount",
            "allocation_date",
            "status",
            "voided_at",
            "created_at",
        )
        read_only_fields = fields


class ManualAllocationSerializer(serializers.Serializer):
    invoice_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal("0.01"))


class ApplyPaymentSerializer(serializers.Serializer):
    mode = serializers.ChoiceField(choices=[Payment.FIFO, Payment.MANUAL], required=False)
    allocation_date = serializers.DateField(required=False)
    allocations = ManualAllocationSerializer(many=True, required=False)

    def validate(self, attrs):
        if attrs.get("mode") == Payment.MANUAL and not attrs.get("allocations"):
            raise serializers.ValidationError({"allocations": "MANUAL mode needs at least one allocation."})
        return attrs


class UnapplyPaymentSerializer(serializers.Serializer):
    allocation_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), required=False)
