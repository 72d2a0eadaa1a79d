# lis_core/orders/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from lis_core.branches.models import Branch
from lis_core.catalog.models import LabTest, Profile, ReferredLab
from lis_core.common.models import UUIDModel
from lis_core.patients.models import Patient


class OrderStatus(models.TextChoices):
    PENDIENTE = "PENDIENTE", "Pending"
    EN_PROCESO = "EN_PROCESO", "In progress"
    COMPLETADO = "COMPLETADO", "Completed"
    ENTREGADO = "ENTREGADO", "Delivered"
    ANULADO = "ANULADO", "Cancelled"


class OrderSource(models.TextChoices):
    LABORATORIO = "LABORATORIO", "Laboratory"
    ADMISION = "ADMISION", "Admission desk"


class PatientType(models.TextChoices):
    CLINICA = "CLINICA", "Clinic"
    EXTERNO = "EXTERNO", "External"
    CONVENIO = "CONVENIO", "Agreement"


class OrderItemStatus(models.TextChoices):
    PENDIENTE = "PENDIENTE", "Pending"
    EN_PROCESO = "EN_PROCESO", "In progress"
    COMPLETADO = "COMPLETADO", "Completed"


class LabOrder(UUIDModel):
    """
    Billable unit of work. ``total_price`` always equals the sum of the items'
    ``price_snapshot``; paid amounts live only in the payment ledgers.
    """
    # May be backdated to the logical day of the order.
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    order_code = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="lab_orders")
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, null=True, blank=True, related_name="lab_orders")

    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.PENDIENTE, db_index=True)
    order_source = models.CharField(
        max_length=16,
        choices=OrderSource.choices,
        default=OrderSource.LABORATORIO,
        db_index=True,
    )
    patient_type = models.CharField(max_length=16, choices=PatientType.choices, blank=True, default="")
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    requested_by = models.CharField(max_length=255, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    admission_request = models.OneToOneField(
        "admissions.AdmissionRequest",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="lab_order",
    )

    delivered_at = models.DateTimeField(null=True, blank=True)
    admission_settled_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "orders_lab_order"
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["patient", "created_at"]),
        ]

    def __str__(self) -> str:
        return self.order_code


class LabOrderItem(UUIDModel):
    """
    One analysis on an order, with prices, referral and result template frozen
    at the moment it was added.
    """
    order = models.ForeignKey(LabOrder, on_delete=models.CASCADE, related_name="items")
    lab_test = models.ForeignKey(LabTest, on_delete=models.PROTECT, related_name="order_items")
    position = models.PositiveIntegerField(default=0)

    price_snapshot = models.DecimalField(max_digits=12, decimal_places=2)
    # Owed by the referring admission desk; the public price applies when unset.
    price_convention_snapshot = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    referred_lab = models.ForeignKey(
        ReferredLab,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="order_items",
    )
    external_lab_cost_snapshot = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    template_snapshot = models.JSONField(null=True, blank=True)

    promotion = models.ForeignKey(Profile, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    promotion_name = models.CharField(max_length=255, blank=True, default="")

    status = models.CharField(max_length=16, choices=OrderItemStatus.choices, default=OrderItemStatus.PENDIENTE)

    class Meta:
        db_table = "orders_lab_order_item"
        ordering = ["position", "created_at"]
        constraints = [
            models.UniqueConstraint(fields=["order", "lab_test"], name="uq_lab_order_item_test"),
        ]
        indexes = [
            models.Index(fields=["order", "position"]),
            models.Index(fields=["referred_lab"]),
        ]
