# lis_core/lab/services.py
from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from lis_core.common.api.exceptions import InvalidStateError, ValidationFailed
from lis_core.lab.models import LabResult
from lis_core.orders.models import OrderItemStatus, OrderStatus
from lis_core.orders.selectors import get_order_item, lock_order

logger = logging.getLogger(__name__)


class LabResultService:
    """
    Result capture.
    Saving a result completes the item and rolls the order status up.
    """

    @staticmethod
    def _roll_up(order) -> None:
        statuses = set(order.items.values_list("status", flat=True))
        if statuses and statuses == {OrderItemStatus.COMPLETADO}:
            new_status = OrderStatus.COMPLETADO
        else:
            new_status = OrderStatus.EN_PROCESO

        # Delivered orders keep their status when a result is corrected
        if order.status == OrderStatus.ENTREGADO or order.status == new_status:
            return
        order.status = new_status
        order.save(update_fields=["status", "updated_at"])

    @staticmethod
    @transaction.atomic
    def save_result(
        *,
        order_id: UUID,
        order_item_id: UUID,
        payload: dict,
        comment: str = "",
        reported_by=None,
    ) -> LabResult:
        order = lock_order(order_id=order_id)
        if order.status == OrderStatus.ANULADO:
            raise InvalidStateError(
                f"Order {order.order_code} is cancelled; results cannot be saved.",
                details={"order_code": order.order_code},
            )
        if not isinstance(payload, dict):
            raise ValidationFailed("Result values must be an object keyed by parameter.")

        item = get_order_item(order_id=order.id, item_id=order_item_id)

        result, created = LabResult.objects.update_or_create(
            order_item=item,
            defaults={
                "payload": payload,
                "comment": comment or "",
                "reported_by": reported_by,
                "reported_at": timezone.now(),
            },
        )

        if item.status != OrderItemStatus.COMPLETADO:
            item.status = OrderItemStatus.COMPLETADO
            item.save(update_fields=["status", "updated_at"])

        LabResultService._roll_up(order)
        logger.info(
            "Result %s for %s on order %s",
            "saved" if created else "updated",
            item.lab_test.code,
            order.order_code,
        )
        return result
