# lis_core/patients/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Q, QuerySet

from lis_core.common.api.exceptions import NotFoundError
from lis_core.patients.models import Patient


def active_patients() -> QuerySet[Patient]:
    return Patient.objects.filter(deleted_at__isnull=True)


def get_patient(*, patient_id: UUID) -> Patient:
    patient = active_patients().filter(id=patient_id).first()
    if patient is None:
        raise NotFoundError("Patient not found.", details={"patient_id": str(patient_id)})
    return patient


def search_patients(*, q: str | None = None) -> QuerySet[Patient]:
    qs = active_patients()

    qv = (q or "").strip()
    if qv:
        qs = qs.filter(
            Q(first_name__icontains=qv)
            | Q(last_name__icontains=qv)
            | Q(dni__icontains=qv)
            | Q(code__icontains=qv)
        )

    return qs.order_by("-created_at")
