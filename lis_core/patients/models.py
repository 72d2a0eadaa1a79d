# lis_core/patients/models.py
from django.db import models

from lis_core.catalog.models import Sex
from lis_core.common.models import UUIDModel


class Patient(UUIDModel):
    """
    Minimal registry record. ``code`` is the clinic's sequential patient code
    (``PAC-0001``); ``dni`` is the national id.
    """
    code = models.CharField(max_length=32, unique=True)
    dni = models.CharField(max_length=16, unique=True)
    first_name = models.CharField(max_length=128)
    last_name = models.CharField(max_length=128)
    birth_date = models.DateField(null=True, blank=True)
    sex = models.CharField(max_length=1, choices=Sex.choices, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "patients_patient"
        indexes = [
            models.Index(fields=["last_name", "first_name"]),
        ]

    def __str__(self) -> str:
        return f"{self.full_name} ({self.code})"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
