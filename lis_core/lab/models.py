# lis_core/lab/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone

from lis_core.common.models import UUIDModel
from lis_core.orders.models import LabOrderItem


class LabResult(UUIDModel):
    """
    Captured values for one order item, keyed by the item's template snapshot
    parameter ids. Removed together with the item.
    """
    order_item = models.OneToOneField(LabOrderItem, on_delete=models.CASCADE, related_name="result")
    payload = models.JSONField(default=dict)
    comment = models.TextField(blank=True, default="")

    reported_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    reported_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "lab_result"
