# lis_core/patients/services.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction

from lis_core.common.api.exceptions import ValidationFailed
from lis_core.common.codes import allocate_code
from lis_core.patients.models import Patient
from lis_core.patients.selectors import active_patients, get_patient


@dataclass(frozen=True)
class PatientDraft:
    dni: str
    first_name: str
    last_name: str
    birth_date: date | None = None
    sex: str = ""
    phone: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "PatientDraft":
        return cls(
            dni=str(data.get("dni") or "").strip(),
            first_name=str(data.get("first_name") or "").strip(),
            last_name=str(data.get("last_name") or "").strip(),
            birth_date=data.get("birth_date"),
            sex=data.get("sex") or "",
            phone=str(data.get("phone") or "").strip(),
        )


class PatientService:
    @staticmethod
    @transaction.atomic
    def resolve_or_register(
        *,
        patient_id: UUID | None = None,
        draft: PatientDraft | dict | None = None,
    ) -> Patient:
        """
        Existing patient by id, or the draft turned into a registered patient.
        A draft whose DNI is already registered resolves to that patient.
        """
        if patient_id:
            return get_patient(patient_id=patient_id)
        if draft is None:
            raise ValidationFailed("A patient id or new patient data is required.")

        if isinstance(draft, dict):
            draft = PatientDraft.from_dict(draft)
        if not draft.dni or not draft.first_name or not draft.last_name:
            raise ValidationFailed("New patients need DNI, first name and last name.")

        existing = active_patients().filter(dni=draft.dni).first()
        if existing is not None:
            return existing

        try:
            return allocate_code(
                model=Patient,
                field="code",
                prefix=settings.LIS_PATIENT_CODE_PREFIX,
                create=lambda code: Patient.objects.create(
                    code=code,
                    dni=draft.dni,
                    first_name=draft.first_name.upper(),
                    last_name=draft.last_name.upper(),
                    birth_date=draft.birth_date,
                    sex=draft.sex,
                    phone=draft.phone,
                ),
            )
        except IntegrityError:
            # Same DNI registered concurrently (or soft-deleted earlier)
            raise ValidationFailed(
                f"A patient with DNI {draft.dni} is already registered.",
                details={"dni": draft.dni},
            )
