# lis_core/admissions/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from lis_core.admissions.models import AdmissionRequest, AdmissionRequestItem, AdmissionStatus
from lis_core.orders.models import PatientType
from lis_core.patients.serializers import PatientDraftSerializer, PatientSummarySerializer


class PriceAdjustmentSerializer(serializers.Serializer):
    lab_test_id = serializers.UUIDField()
    price_applied = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    adjustment_reason = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")


class AdmissionCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField(required=False, allow_null=True)
    patient = PatientDraftSerializer(required=False, allow_null=True)
    test_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    profile_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    adjustments = PriceAdjustmentSerializer(many=True, required=False, default=list)
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


class AdmissionUpdateSerializer(serializers.Serializer):
    # CONVERTIDA is accepted here so the service can reject it with a clear message
    status = serializers.ChoiceField(choices=AdmissionStatus.choices, required=False)
    requested_by = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    patient_type = serializers.ChoiceField(choices=PatientType.choices, required=False, allow_blank=True)
    branch_id = serializers.UUIDField(required=False)
    adjustments = PriceAdjustmentSerializer(many=True, required=False)


class AdmissionListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=AdmissionStatus.choices, required=False)
    patient = serializers.UUIDField(required=False)
    branch = serializers.UUIDField(required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)


class AdmissionRequestItemSerializer(serializers.ModelSerializer):
    lab_test_id = serializers.UUIDField(read_only=True)
    lab_test_code = serializers.CharField(source="lab_test.code", read_only=True)
    lab_test_name = serializers.CharField(source="lab_test.name", read_only=True)
    promotion_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = AdmissionRequestItem
        fields = [
            "id",
            "lab_test_id",
            "lab_test_code",
            "lab_test_name",
            "position",
            "price_base",
            "price_applied",
            "adjustment_reason",
            "promotion_id",
            "promotion_name",
        ]
        read_only_fields = fields


class AdmissionRequestSerializer(serializers.ModelSerializer):
    patient = PatientSummarySerializer(read_only=True)
    branch_id = serializers.UUIDField(read_only=True, allow_null=True)
    converted_order_id = serializers.UUIDField(read_only=True, allow_null=True)
    converted_order_code = serializers.CharField(source="converted_order.order_code", read_only=True, default=None)
    items = AdmissionRequestItemSerializer(many=True, read_only=True)

    class Meta:
        model = AdmissionRequest
        fields = [
            "id",
            "request_code",
            "patient",
            "branch_id",
            "status",
            "total_price",
            "patient_type",
            "requested_by",
            "notes",
            "converted_order_id",
            "converted_order_code",
            "converted_at",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields


class AdmissionCreateResultSerializer(serializers.Serializer):
    admission = AdmissionRequestSerializer()
    order_id = serializers.UUIDField(source="order.id", allow_null=True, default=None)
    order_code = serializers.CharField(source="order.order_code", allow_null=True, default=None)
    conversion_error = serializers.CharField(allow_null=True)


class ConversionResultSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    order_code = serializers.CharField()
