# lis_core/admissions/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Sum
from django.utils import timezone
from rest_framework.exceptions import APIException

from lis_core.admissions.conversion import convert_admission
from lis_core.admissions.models import AdmissionRequest, AdmissionRequestItem, AdmissionStatus
from lis_core.admissions.selectors import get_admission, lock_admission
from lis_core.audit.services import AuditService
from lis_core.branches.selectors import require_branch
from lis_core.common.api.exceptions import CapabilityDenied, InvalidStateError, ValidationFailed
from lis_core.common.codes import allocate_code, day_prefix
from lis_core.common.dates import clinic_today
from lis_core.common.money import ZERO, to_money
from lis_core.orders.models import LabOrder
from lis_core.orders.pricing import PriceAdjustment, ResolvedItem, check_price_adjustment, resolve_items, total_price
from lis_core.patients.services import PatientService

logger = logging.getLogger(__name__)


@dataclass
class AdmissionCreateResult:
    admission: AdmissionRequest
    order: LabOrder | None = None
    # Set when the request was saved but automatic conversion failed.
    conversion_error: str | None = None


def _as_adjustments(adjustments: Iterable) -> list[PriceAdjustment]:
    return [a if isinstance(a, PriceAdjustment) else PriceAdjustment.from_dict(a) for a in adjustments or ()]


def _conversion_error_message(exc: Exception) -> str:
    if isinstance(exc, APIException):
        return str(exc.detail)
    return "Automatic conversion failed; convert the request manually."


class AdmissionService:
    @staticmethod
    def _insert(
        *,
        code: str,
        patient_id: UUID,
        items: list[ResolvedItem],
        branch_id: UUID | None,
        patient_type: str,
        requested_by: str,
        notes: str,
        actor,
    ) -> AdmissionRequest:
        admission = AdmissionRequest.objects.create(
            request_code=code,
            patient_id=patient_id,
            branch_id=branch_id,
            status=AdmissionStatus.PENDIENTE,
            total_price=total_price(items),
            patient_type=patient_type or "",
            requested_by=requested_by or "",
            notes=notes or "",
            created_by=actor,
        )
        AdmissionRequestItem.objects.bulk_create(
            [
                AdmissionRequestItem(
                    admission_request=admission,
                    lab_test=item.lab_test,
                    position=item.position,
                    price_base=to_money(item.price_base),
                    price_applied=to_money(item.price_applied),
                    adjustment_reason=item.adjustment_reason[:200],
                    promotion=item.promotion,
                    promotion_name=item.promotion_name,
                )
                for item in items
            ]
        )
        return admission

    @staticmethod
    @transaction.atomic
    def _create_request(
        *,
        patient_id: UUID | None,
        patient_draft: dict | None,
        test_ids: Iterable[UUID],
        profile_ids: Iterable[UUID],
        adjustments: Iterable,
        can_adjust_price: bool,
        branch_id: UUID | None,
        patient_type: str,
        requested_by: str,
        notes: str,
        actor,
    ) -> AdmissionRequest:
        require_branch(branch_id)
        patient = PatientService.resolve_or_register(patient_id=patient_id, draft=patient_draft)
        items = resolve_items(
            test_ids=test_ids,
            profile_ids=profile_ids,
            adjustments=_as_adjustments(adjustments),
            can_adjust_price=can_adjust_price,
            for_admission=True,
        )

        return allocate_code(
            model=AdmissionRequest,
            field="request_code",
            prefix=day_prefix(settings.LIS_ADMISSION_CODE_PREFIX, clinic_today()),
            create=lambda code: AdmissionService._insert(
                code=code,
                patient_id=patient.id,
                items=items,
                branch_id=branch_id,
                patient_type=patient_type,
                requested_by=requested_by,
                notes=notes,
                actor=actor,
            ),
        )

    @staticmethod
    def create(
        *,
        patient_id: UUID | None = None,
        patient_draft: dict | None = None,
        test_ids: Iterable[UUID] = (),
        profile_ids: Iterable[UUID] = (),
        adjustments: Iterable = (),
        can_adjust_price: bool = False,
        branch_id: UUID | None = None,
        patient_type: str = "",
        requested_by: str = "",
        notes: str = "",
        actor=None,
        auto_convert: bool = True,
    ) -> AdmissionCreateResult:
        """
        Persist a PENDIENTE request, then try to convert it right away.

        A failed conversion does not undo the request: the failure reason is
        returned in ``conversion_error`` and an operator can convert later.
        """
        admission = AdmissionService._create_request(
            patient_id=patient_id,
            patient_draft=patient_draft,
            test_ids=test_ids,
            profile_ids=profile_ids,
            adjustments=adjustments,
            can_adjust_price=can_adjust_price,
            branch_id=branch_id,
            patient_type=patient_type,
            requested_by=requested_by,
            notes=notes,
            actor=actor,
        )
        logger.info("Admission request %s created", admission.request_code)

        if not auto_convert:
            return AdmissionCreateResult(admission=get_admission(admission_id=admission.id))

        try:
            result = convert_admission(admission_request_id=admission.id, actor=actor)
        except (APIException, DatabaseError) as exc:
            logger.warning(
                "Automatic conversion of %s failed: %s",
                admission.request_code,
                exc,
                extra={"admission_request_id": str(admission.id)},
            )
            return AdmissionCreateResult(
                admission=get_admission(admission_id=admission.id),
                conversion_error=_conversion_error_message(exc),
            )

        return AdmissionCreateResult(
            admission=get_admission(admission_id=admission.id),
            order=LabOrder.objects.get(id=result.order_id),
        )

    @staticmethod
    @transaction.atomic
    def update(
        *,
        admission_id: UUID,
        can_adjust_price: bool = False,
        status: str | None = None,
        requested_by: str | None = None,
        notes: str | None = None,
        patient_type: str | None = None,
        branch_id: UUID | None = None,
        adjustments: Iterable | None = None,
    ) -> AdmissionRequest:
        admission = lock_admission(admission_id=admission_id)

        if status == AdmissionStatus.CONVERTIDA:
            raise ValidationFailed("Admission requests are converted with the convert operation, not by editing.")
        if admission.status != AdmissionStatus.PENDIENTE:
            raise InvalidStateError(
                f"Admission request {admission.request_code} is {admission.status} and can no longer be edited.",
                details={"admission_request_id": str(admission.id), "status": admission.status},
            )

        update_fields = ["updated_at"]
        if status is not None:
            admission.status = status
            update_fields.append("status")
        if requested_by is not None:
            admission.requested_by = requested_by
            update_fields.append("requested_by")
        if notes is not None:
            admission.notes = notes
            update_fields.append("notes")
        if patient_type is not None:
            admission.patient_type = patient_type
            update_fields.append("patient_type")
        if branch_id is not None:
            require_branch(branch_id)
            admission.branch_id = branch_id
            update_fields.append("branch")

        if adjustments is not None:
            items = {i.lab_test_id: i for i in admission.items.select_related("lab_test")}
            for adj in _as_adjustments(adjustments):
                item = items.get(adj.lab_test_id)
                if item is None:
                    raise ValidationFailed(
                        "Price adjustment refers to an analysis that is not part of the request.",
                        details={"lab_test_id": str(adj.lab_test_id)},
                    )
                check_price_adjustment(
                    lab_test=item.lab_test,
                    price_base=item.price_base,
                    price_applied=adj.price_applied,
                    can_adjust_price=can_adjust_price,
                )
                item.price_applied = to_money(adj.price_applied)
                item.adjustment_reason = adj.reason[:200]
                item.save(update_fields=["price_applied", "adjustment_reason", "updated_at"])

            total = admission.items.aggregate(s=Sum("price_applied"))["s"] or ZERO
            admission.total_price = to_money(total)
            update_fields.append("total_price")

        admission.save(update_fields=update_fields)
        return admission

    @staticmethod
    @transaction.atomic
    def cancel(*, admission_id: UUID) -> AdmissionRequest:
        admission = lock_admission(admission_id=admission_id)
        if admission.status == AdmissionStatus.CONVERTIDA:
            raise InvalidStateError(
                f"Admission request {admission.request_code} was already converted and cannot be cancelled.",
                details={"admission_request_id": str(admission.id)},
            )
        if admission.status == AdmissionStatus.CANCELADA:
            return admission

        admission.status = AdmissionStatus.CANCELADA
        admission.save(update_fields=["status", "updated_at"])
        return admission

    @staticmethod
    @transaction.atomic
    def purge(*, admission_id: UUID, can_purge: bool, actor_user_id: int | None = None) -> None:
        """Hard delete in any state. A converted order stays and loses its back-reference."""
        if not can_purge:
            raise CapabilityDenied("Only administrators can purge admission requests.")

        admission = lock_admission(admission_id=admission_id)
        LabOrder.objects.filter(admission_request_id=admission.id).update(
            admission_request=None,
            updated_at=timezone.now(),
        )

        code, status, order_id = admission.request_code, admission.status, admission.converted_order_id
        admission_pk = admission.id
        admission.delete()

        logger.info("Admission request %s purged", code, extra={"status": status})
        AuditService.log_on_commit(
            event_code="admission.purged",
            entity_type="AdmissionRequest",
            entity_id=admission_pk,
            actor_user_id=actor_user_id,
            metadata={
                "request_code": code,
                "status": status,
                "converted_order_id": str(order_id) if order_id else None,
            },
        )
