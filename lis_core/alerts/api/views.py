from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from lis_core.alerts.api.serializers import NotificationSerializer
from lis_core.alerts.models import Notification
from lis_core.alerts.selectors import unread_notifications_for
from lis_core.alerts.services import NotificationService


class NotificationViewSet(viewsets.GenericViewSet):
    serializer_class = NotificationSerializer
    queryset = Notification.objects.none()

    @extend_schema(tags=["Notifications"], responses={200: NotificationSerializer(many=True)})
    def list(self, request):
        qs = unread_notifications_for(request.user)
        return Response({"items": NotificationSerializer(qs, many=True).data}, status=status.HTTP_200_OK)

    @extend_schema(tags=["Notifications"], request=None, responses={204: None})
    @action(methods=["POST"], detail=True, url_path="read")
    def mark_read(self, request, pk=None):
        NotificationService.mark_read(notification_id=pk, user=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)
