# lis_core/orders/selectors.py
from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from django.db.models import QuerySet

from lis_core.common.api.exceptions import NotFoundError
from lis_core.common.dates import start_of_clinic_day
from lis_core.orders.models import LabOrder, LabOrderItem


def orders_qs() -> QuerySet[LabOrder]:
    return LabOrder.objects.select_related("patient", "branch").prefetch_related(
        "items__lab_test", "items__referred_lab"
    )


def get_order(*, order_id: UUID) -> LabOrder:
    order = orders_qs().filter(id=order_id).first()
    if order is None:
        raise NotFoundError("Order not found.", details={"order_id": str(order_id)})
    return order


def lock_order(*, order_id: UUID) -> LabOrder:
    """Row-locks the order for the rest of the current transaction."""
    order = LabOrder.objects.select_for_update().filter(id=order_id).first()
    if order is None:
        raise NotFoundError("Order not found.", details={"order_id": str(order_id)})
    return order


def get_order_item(*, order_id: UUID, item_id: UUID) -> LabOrderItem:
    item = (
        LabOrderItem.objects.select_related("lab_test", "order")
        .filter(id=item_id, order_id=order_id)
        .first()
    )
    if item is None:
        raise NotFoundError(
            "Order item not found.",
            details={"order_id": str(order_id), "item_id": str(item_id)},
        )
    return item


def orders_filtered(
    *,
    patient_id: UUID | None = None,
    status: str | None = None,
    order_source: str | None = None,
    branch_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> QuerySet[LabOrder]:
    qs = orders_qs().order_by("-created_at")

    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if status:
        qs = qs.filter(status=status)
    if order_source:
        qs = qs.filter(order_source=order_source)
    if branch_id:
        qs = qs.filter(branch_id=branch_id)
    if date_from:
        qs = qs.filter(created_at__gte=start_of_clinic_day(date_from))
    if date_to:
        qs = qs.filter(created_at__lt=start_of_clinic_day(date_to + timedelta(days=1)))

    return qs
