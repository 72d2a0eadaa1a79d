# lis_core/billing/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from lis_core.billing.models import Payment, PaymentMethod, ReferredLabPayment


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, default=PaymentMethod.EFECTIVO)
    notes = serializers.CharField(max_length=300, required=False, allow_blank=True, default="")
    # Clinic-local; naive values are read in the clinic time zone
    paid_at = serializers.DateTimeField(required=False, allow_null=True)


class ReferredLabPaymentCreateSerializer(serializers.Serializer):
    referred_lab_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    notes = serializers.CharField(max_length=300, required=False, allow_blank=True, default="")
    paid_at = serializers.DateTimeField(required=False, allow_null=True)


class SettleBatchSerializer(serializers.Serializer):
    order_ids = serializers.ListField(child=serializers.UUIDField(), min_length=1)


class PaymentSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(read_only=True)
    recorded_by_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Payment
        fields = ["id", "order_id", "amount", "method", "notes", "paid_at", "recorded_by_id", "created_at"]
        read_only_fields = fields


class ReferredLabPaymentSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(read_only=True)
    referred_lab_id = serializers.UUIDField(read_only=True)
    referred_lab_name = serializers.CharField(source="referred_lab.name", read_only=True)
    recorded_by_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = ReferredLabPayment
        fields = [
            "id",
            "order_id",
            "referred_lab_id",
            "referred_lab_name",
            "amount",
            "notes",
            "paid_at",
            "recorded_by_id",
            "created_at",
        ]
        read_only_fields = fields


class PaymentSummarySerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    total_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    paid_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    balance = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_status = serializers.CharField()


class PaymentLedgerSerializer(serializers.Serializer):
    summary = PaymentSummarySerializer()
    payments = PaymentSerializer(many=True)


class PaymentReceiptSerializer(serializers.Serializer):
    payment = PaymentSerializer()
    paid_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    balance = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_status = serializers.CharField()


class ReferredLabBalanceSerializer(serializers.Serializer):
    referred_lab_id = serializers.UUIDField()
    referred_lab_name = serializers.CharField()
    cost = serializers.DecimalField(max_digits=12, decimal_places=2)
    paid = serializers.DecimalField(max_digits=12, decimal_places=2)
    balance = serializers.DecimalField(max_digits=12, decimal_places=2)


class ReferredLabOrderSummarySerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    labs = ReferredLabBalanceSerializer(many=True)
    total_cost = serializers.DecimalField(max_digits=12, decimal_places=2)
    total_paid = serializers.DecimalField(max_digits=12, decimal_places=2)
    total_balance = serializers.DecimalField(max_digits=12, decimal_places=2)


class ReferredLabLedgerSerializer(serializers.Serializer):
    summary = ReferredLabOrderSummarySerializer()
    payments = ReferredLabPaymentSerializer(many=True)


class ReferredLabReceiptSerializer(serializers.Serializer):
    payment = ReferredLabPaymentSerializer()
    paid_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    balance = serializers.DecimalField(max_digits=12, decimal_places=2)


class OrderLabBalanceSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    order_code = serializers.CharField()
    cost = serializers.DecimalField(max_digits=12, decimal_places=2)
    paid = serializers.DecimalField(max_digits=12, decimal_places=2)
    balance = serializers.DecimalField(max_digits=12, decimal_places=2)


class LabBalanceSerializer(serializers.Serializer):
    referred_lab_id = serializers.UUIDField()
    referred_lab_name = serializers.CharField()
    total_cost = serializers.DecimalField(max_digits=12, decimal_places=2)
    total_paid = serializers.DecimalField(max_digits=12, decimal_places=2)
    balance = serializers.DecimalField(max_digits=12, decimal_places=2)
    orders = OrderLabBalanceSerializer(many=True)


class SettlementResultSerializer(serializers.Serializer):
    settled_order_ids = serializers.ListField(child=serializers.UUIDField())
    settled_total = serializers.DecimalField(max_digits=12, decimal_places=2)
