from rest_framework import serializers

from lis_core.alerts.models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            "id",
            "type",
            "title",
            "message",
            "link_to",
            "related_order_id",
            "created_at",
            "meta",
        ]
