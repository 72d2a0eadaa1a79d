# lis_core/lab/selectors.py
from __future__ import annotations

from uuid import UUID

from lis_core.lab.models import LabResult


def result_for_item(*, order_item_id: UUID) -> LabResult | None:
    return LabResult.objects.filter(order_item_id=order_item_id).select_related("reported_by").first()
