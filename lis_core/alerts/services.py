from __future__ import annotations

from uuid import UUID

from django.db import transaction
from django.utils import timezone

from lis_core.alerts.models import Notification, NotificationRead, NotificationType
from lis_core.common.api.exceptions import NotFoundError


class NotificationService:
    @staticmethod
    @transaction.atomic
    def notify_admission_converted(*, order_id: UUID, order_code: str, admission_request_id: UUID | None = None) -> Notification:
        return Notification.objects.create(
            type=NotificationType.ADMISSION_CONVERTED,
            title="New order from the admission desk",
            message=f"The pre-order was converted into order {order_code}.",
            link_to=f"/orders/{order_id}",
            related_order_id=order_id,
            meta={"admission_request_id": str(admission_request_id) if admission_request_id else None},
        )

    @staticmethod
    @transaction.atomic
    def mark_read(*, notification_id: UUID, user) -> NotificationRead:
        notification = Notification.objects.filter(id=notification_id).first()
        if notification is None:
            raise NotFoundError("Notification not found.", details={"notification_id": str(notification_id)})

        read, _ = NotificationRead.objects.update_or_create(
            notification=notification,
            user=user,
            defaults={"read_at": timezone.now()},
        )
        return read
