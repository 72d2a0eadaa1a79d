# lis_core/admissions/selectors.py
from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from django.db.models import QuerySet

from lis_core.admissions.models import AdmissionRequest
from lis_core.common.api.exceptions import NotFoundError
from lis_core.common.dates import start_of_clinic_day


def admissions_qs() -> QuerySet[AdmissionRequest]:
    return AdmissionRequest.objects.select_related("patient", "branch", "converted_order").prefetch_related(
        "items__lab_test"
    )


def get_admission(*, admission_id: UUID) -> AdmissionRequest:
    admission = admissions_qs().filter(id=admission_id).first()
    if admission is None:
        raise NotFoundError("Admission request not found.", details={"admission_request_id": str(admission_id)})
    return admission


def lock_admission(*, admission_id: UUID) -> AdmissionRequest:
    admission = AdmissionRequest.objects.select_for_update().filter(id=admission_id).first()
    if admission is None:
        raise NotFoundError("Admission request not found.", details={"admission_request_id": str(admission_id)})
    return admission


def admissions_filtered(
    *,
    status: str | None = None,
    patient_id: UUID | None = None,
    branch_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> QuerySet[AdmissionRequest]:
    qs = admissions_qs().order_by("-created_at")
    if status:
        qs = qs.filter(status=status)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if branch_id:
        qs = qs.filter(branch_id=branch_id)
    if date_from:
        qs = qs.filter(created_at__gte=start_of_clinic_day(date_from))
    if date_to:
        qs = qs.filter(created_at__lt=start_of_clinic_day(date_to + timedelta(days=1)))
    return qs
