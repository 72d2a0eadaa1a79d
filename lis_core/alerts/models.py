from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from lis_core.common.models import UUIDModel


class NotificationType(models.TextChoices):
    ADMISSION_CONVERTED = "ADMISSION_CONVERTED", "Admission converted"
    GENERAL = "GENERAL", "General"


class Notification(UUIDModel):
    """
    Broadcast in-app notice. Read state is tracked per user in NotificationRead.
    Keep links loose (UUID fields) to avoid cross-app FK coupling.
    """
    type = models.CharField(
        max_length=32,
        choices=NotificationType.choices,
        default=NotificationType.GENERAL,
        db_index=True,
    )
    title = models.CharField(max_length=255)
    message = models.TextField(blank=True, default="")
    link_to = models.CharField(max_length=255, blank=True, default="")

    related_order_id = models.UUIDField(null=True, blank=True, db_index=True)

    meta = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "alerts_notification"
        ordering = ["-created_at"]


class NotificationRead(models.Model):
    notification = models.ForeignKey(Notification, on_delete=models.CASCADE, related_name="reads")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="+")
    read_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "alerts_notification_read"
        constraints = [
            models.UniqueConstraint(fields=["notification", "user"], name="uq_notification_read_user"),
        ]
