# lis_core/billing/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone

from lis_core.catalog.models import ReferredLab
from lis_core.common.models import UUIDModel
from lis_core.orders.models import LabOrder


class PaymentMethod(models.TextChoices):
    EFECTIVO = "EFECTIVO", "Cash"
    TARJETA = "TARJETA", "Card"
    TRANSFERENCIA = "TRANSFERENCIA", "Bank transfer"
    CREDITO = "CREDITO", "Credit"


class PaymentStatus(models.TextChoices):
    """Derived from the ledger, never stored."""
    PENDIENTE = "PENDIENTE", "Pending"
    PARCIAL = "PARCIAL", "Partially paid"
    PAGADO = "PAGADO", "Paid"


class Payment(UUIDModel):
    """
    Patient payment ledger row. The paid total of an order is always the sum
    of these rows.
    """
    order = models.ForeignKey(LabOrder, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.EFECTIVO)
    notes = models.CharField(max_length=300, blank=True, default="")
    paid_at = models.DateTimeField(default=timezone.now, db_index=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "billing_payment"
        ordering = ["paid_at", "created_at"]
        indexes = [
            models.Index(fields=["order", "paid_at"]),
        ]


class ReferredLabPayment(UUIDModel):
    """What the clinic paid an external lab for referred work on one order."""
    order = models.ForeignKey(LabOrder, on_delete=models.CASCADE, related_name="referred_lab_payments")
    referred_lab = models.ForeignKey(ReferredLab, on_delete=models.PROTECT, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    notes = models.CharField(max_length=300, blank=True, default="")
    paid_at = models.DateTimeField(default=timezone.now, db_index=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "billing_referred_lab_payment"
        ordering = ["paid_at", "created_at"]
        indexes = [
            models.Index(fields=["order", "referred_lab"]),
            models.Index(fields=["referred_lab", "paid_at"]),
        ]
