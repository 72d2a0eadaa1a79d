# lis_core/orders/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from lis_core.billing.models import PaymentStatus
from lis_core.billing.selectors import classify_payment_status, paid_total
from lis_core.common.money import non_negative, to_money
from lis_core.orders.models import LabOrder, LabOrderItem, OrderSource, OrderStatus, PatientType
from lis_core.patients.serializers import PatientDraftSerializer, PatientSummarySerializer


class OrderCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField(required=False, allow_null=True)
    patient = PatientDraftSerializer(required=False, allow_null=True)
    test_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    profile_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    order_date = serializers.DateField(required=False, allow_null=True)
    branch_id = serializers.UUIDField(required=False, allow_null=True)
    patient_type = serializers.ChoiceField(choices=PatientType.choices, required=False, allow_blank=True, default="")
    requested_by = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if not attrs.get("patient_id") and not attrs.get("patient"):
            raise serializers.ValidationError({"patient_id": "Select a patient or enter a new one."})
        if not attrs.get("test_ids") and not attrs.get("profile_ids"):
            raise serializers.ValidationError({"test_ids": "Select at least one analysis or profile."})
        return attrs


class OrderUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    requested_by = serializers.CharField(max_length=255, required=False, allow_blank=True)
    delivered_at = serializers.DateTimeField(required=False)


class OrderRepeatSerializer(serializers.Serializer):
    # Omitted fields are copied from the original order
    patient_id = serializers.UUIDField(required=False, allow_null=True)
    requested_by = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class OrderItemsAddSerializer(serializers.Serializer):
    test_ids = serializers.ListField(child=serializers.UUIDField(), min_length=1)


class TemplateSnapshotUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    parameters = serializers.ListField(child=serializers.DictField(), required=False)


class ReferredLabSelectSerializer(serializers.Serializer):
    # Omit or send null to go back to the test's default lab
    referred_lab_id = serializers.UUIDField(required=False, allow_null=True)


class OrderListQuerySerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True)
    patient = serializers.UUIDField(required=False)
    branch = serializers.UUIDField(required=False)
    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    order_source = serializers.ChoiceField(choices=OrderSource.choices, required=False)
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)


class LabOrderItemSerializer(serializers.ModelSerializer):
    lab_test_id = serializers.UUIDField(read_only=True)
    lab_test_code = serializers.CharField(source="lab_test.code", read_only=True)
    lab_test_name = serializers.CharField(source="lab_test.name", read_only=True)
    referred_lab_id = serializers.UUIDField(read_only=True, allow_null=True)
    referred_lab_name = serializers.CharField(source="referred_lab.name", read_only=True, default=None)
    promotion_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = LabOrderItem
        fields = [
            "id",
            "lab_test_id",
            "lab_test_code",
            "lab_test_name",
            "position",
            "price_snapshot",
            "price_convention_snapshot",
            "referred_lab_id",
            "referred_lab_name",
            "external_lab_cost_snapshot",
            "template_snapshot",
            "promotion_id",
            "promotion_name",
            "status",
        ]
        read_only_fields = fields


class LabOrderSerializer(serializers.ModelSerializer):
    patient = PatientSummarySerializer(read_only=True)
    branch_id = serializers.UUIDField(read_only=True, allow_null=True)
    admission_request_id = serializers.UUIDField(read_only=True, allow_null=True)
    items = LabOrderItemSerializer(many=True, read_only=True)

    paid_total = serializers.SerializerMethodField()
    balance = serializers.SerializerMethodField()
    payment_status = serializers.SerializerMethodField()

    class Meta:
        model = LabOrder
        fields = [
            "id",
            "order_code",
            "patient",
            "branch_id",
            "status",
            "order_source",
            "patient_type",
            "total_price",
            "paid_total",
            "balance",
            "payment_status",
            "requested_by",
            "notes",
            "admission_request_id",
            "delivered_at",
            "admission_settled_at",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields

    def _paid(self, obj) -> str:
        # List queries annotate paid_total_db; detail reads fall back to the ledger
        cached = getattr(obj, "paid_total_db", None)
        return to_money(cached if cached is not None else paid_total(obj.id))

    def get_paid_total(self, obj) -> str:
        return str(self._paid(obj))

    def get_balance(self, obj) -> str:
        return str(non_negative(to_money(obj.total_price) - self._paid(obj)))

    def get_payment_status(self, obj) -> str:
        return classify_payment_status(to_money(obj.total_price), self._paid(obj))
