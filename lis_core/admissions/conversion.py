# lis_core/admissions/conversion.py
"""
Admission request -> lab order conversion.

The order insert and the request update share one transaction (one attempt of
``allocate_code``). Preconditions are re-checked on the locked admission row,
so a concurrent second call sees CONVERTIDA and fails with AlreadyProcessed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError
from django.utils import timezone

from lis_core.admissions.models import AdmissionRequest, AdmissionRequestItem, AdmissionStatus
from lis_core.admissions.selectors import lock_admission
from lis_core.catalog.models import LabTest
from lis_core.catalog.selectors import available_tests_by_id
from lis_core.common.api.exceptions import (
    AlreadyProcessedError,
    InvalidStateError,
    ReferenceUnavailableError,
    ValidationFailed,
)
from lis_core.common.codes import allocate_code, day_prefix
from lis_core.common.dates import clinic_today
from lis_core.common.events import publish_on_commit
from lis_core.orders.models import LabOrder, OrderSource
from lis_core.orders.pricing import ResolvedItem, convention_price, default_referral
from lis_core.orders.services import OrderService

logger = logging.getLogger(__name__)

ADMISSION_CONVERTED = "admission.converted"


@dataclass(frozen=True)
class ConversionResult:
    order_id: UUID
    order_code: str


def _check_convertible(admission: AdmissionRequest) -> None:
    if admission.status == AdmissionStatus.CONVERTIDA or admission.converted_order_id:
        raise AlreadyProcessedError(
            f"Admission request {admission.request_code} was already converted.",
            details={
                "admission_request_id": str(admission.id),
                "converted_order_id": str(admission.converted_order_id) if admission.converted_order_id else None,
            },
        )
    if admission.status == AdmissionStatus.CANCELADA:
        raise InvalidStateError(
            f"Admission request {admission.request_code} is cancelled and cannot be converted.",
            details={"admission_request_id": str(admission.id)},
        )


def _resolved_items(items: list[AdmissionRequestItem]) -> list[ResolvedItem]:
    """
    Approved prices come from the admission items; convention price, referral
    and template come from the catalog as it is now.
    """
    tests = available_tests_by_id([i.lab_test_id for i in items])

    missing = [i.lab_test_id for i in items if i.lab_test_id not in tests]
    if missing:
        gone = list(LabTest.objects.filter(id__in=missing).values("id", "code", "name"))
        names = ", ".join(t["name"] for t in gone)
        raise ReferenceUnavailableError(
            f"Analysis no longer available: {names}.",
            details={"lab_tests": [{"id": str(t["id"]), "code": t["code"], "name": t["name"]} for t in gone]},
        )

    resolved = []
    for item in items:
        test = tests[item.lab_test_id]
        resolved.append(
            ResolvedItem(
                lab_test=test,
                position=item.position,
                price_base=item.price_base,
                price_applied=item.price_applied,
                adjustment_reason=item.adjustment_reason,
                price_convention=convention_price(test),
                referral=default_referral(test),
                promotion=item.promotion,
                promotion_name=item.promotion_name,
            )
        )
    return resolved


def _convert_locked(admission_request_id: UUID, code: str, actor) -> LabOrder:
    admission = lock_admission(admission_id=admission_request_id)
    _check_convertible(admission)

    items = list(admission.items.select_related("promotion").order_by("position", "created_at"))
    if not items:
        raise ValidationFailed(
            f"Admission request {admission.request_code} has no analyses to convert.",
            details={"admission_request_id": str(admission.id)},
        )

    order = OrderService.materialize(
        code=code,
        patient_id=admission.patient_id,
        items=_resolved_items(items),
        source=OrderSource.ADMISION,
        branch_id=admission.branch_id,
        patient_type=admission.patient_type,
        requested_by=admission.requested_by,
        notes=admission.notes,
        admission_request=admission,
        created_by=actor,
    )

    admission.status = AdmissionStatus.CONVERTIDA
    admission.converted_at = timezone.now()
    admission.converted_order = order
    admission.save(update_fields=["status", "converted_at", "converted_order", "updated_at"])
    return order


def convert_admission(*, admission_request_id: UUID, actor=None) -> ConversionResult:
    try:
        order = allocate_code(
            model=LabOrder,
            field="order_code",
            prefix=day_prefix(settings.LIS_ORDER_CODE_PREFIX, clinic_today()),
            create=lambda code: _convert_locked(admission_request_id, code, actor),
        )
    except IntegrityError:
        # Lost the race on LabOrder.admission_request to a concurrent conversion
        logger.warning("Concurrent conversion detected for admission %s", admission_request_id)
        raise AlreadyProcessedError(
            "Admission request was already converted.",
            details={"admission_request_id": str(admission_request_id)},
        )

    logger.info(
        "Admission %s converted to order %s",
        admission_request_id,
        order.order_code,
        extra={"order_id": str(order.id)},
    )
    publish_on_commit(
        ADMISSION_CONVERTED,
        {
            "admission_request_id": str(admission_request_id),
            "order_id": str(order.id),
            "order_code": order.order_code,
            "patient_id": str(order.patient_id),
            "actor_user_id": getattr(actor, "id", None),
        },
    )
    return ConversionResult(order_id=order.id, order_code=order.order_code)
