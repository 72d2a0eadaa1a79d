from __future__ import annotations

from django.db.models import QuerySet

from lis_core.alerts.models import Notification, NotificationType
from lis_core.common.permissions import capabilities_for


def unread_notifications_for(user, *, limit: int = 20) -> QuerySet[Notification]:
    """
    Newest unread notices for ``user``. Conversion notices are only shown to
    users who work orders.
    """
    qs = Notification.objects.exclude(reads__user=user)
    if not capabilities_for(user).manage_orders:
        qs = qs.exclude(type=NotificationType.ADMISSION_CONVERTED)
    return qs.order_by("-created_at")[:limit]
