# lis_core/admissions/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models

from lis_core.branches.models import Branch
from lis_core.catalog.models import LabTest, Profile
from lis_core.common.models import UUIDModel
from lis_core.orders.models import PatientType
from lis_core.patients.models import Patient


class AdmissionStatus(models.TextChoices):
    PENDIENTE = "PENDIENTE", "Pending"
    CONVERTIDA = "CONVERTIDA", "Converted"
    CANCELADA = "CANCELADA", "Cancelled"


class AdmissionRequest(UUIDModel):
    """
    Pre-order captured at the admission desk. It becomes a LabOrder exactly
    once; CONVERTIDA and CANCELADA are terminal.
    """
    request_code = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="admission_requests")
    branch = models.ForeignKey(
        Branch,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="admission_requests",
    )

    status = models.CharField(
        max_length=16,
        choices=AdmissionStatus.choices,
        default=AdmissionStatus.PENDIENTE,
        db_index=True,
    )
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    requested_by = models.CharField(max_length=255, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    patient_type = models.CharField(max_length=16, choices=PatientType.choices, blank=True, default="")

    converted_order = models.OneToOneField(
        "orders.LabOrder",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    converted_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "admissions_request"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"]),
        ]

    def __str__(self) -> str:
        return self.request_code


class AdmissionRequestItem(UUIDModel):
    admission_request = models.ForeignKey(AdmissionRequest, on_delete=models.CASCADE, related_name="items")
    lab_test = models.ForeignKey(LabTest, on_delete=models.PROTECT, related_name="admission_items")
    position = models.PositiveIntegerField(default=0)

    price_base = models.DecimalField(max_digits=12, decimal_places=2)
    price_applied = models.DecimalField(max_digits=12, decimal_places=2)
    adjustment_reason = models.CharField(max_length=200, blank=True, default="")

    promotion = models.ForeignKey(Profile, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    promotion_name = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        db_table = "admissions_request_item"
        ordering = ["position", "created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["admission_request", "lab_test"],
                name="uq_admission_item_test",
            ),
        ]
