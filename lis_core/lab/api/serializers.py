# lis_core/lab/api/serializers.py
from rest_framework import serializers

from lis_core.lab.models import LabResult


class LabResultWriteSerializer(serializers.Serializer):
    payload = serializers.DictField()
    comment = serializers.CharField(required=False, allow_blank=True, default="")


class LabResultSerializer(serializers.ModelSerializer):
    order_item_id = serializers.UUIDField(read_only=True)
    reported_by_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = LabResult
        fields = ["id", "order_item_id", "payload", "comment", "reported_by_id", "reported_at"]
        read_only_fields = fields
