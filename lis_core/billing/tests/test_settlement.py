from decimal import Decimal

import pytest

from lis_core.admissions.services import AdmissionService
from lis_core.billing.services import AdmissionSettlementService
from lis_core.common.api.exceptions import ValidationFailed
from lis_core.orders.models import LabOrder, OrderStatus
from lis_core.orders.services import OrderService

pytestmark = pytest.mark.django_db


def test_settles_admission_orders_at_convention_price(patient, glucose, hemogram):
    admission_order = AdmissionService.create(patient_id=patient.id, test_ids=[glucose.id, hemogram.id]).order
    lab_order = OrderService.create_order(patient_id=patient.id, test_ids=[glucose.id])

    result = AdmissionSettlementService.settle_batch(order_ids=[admission_order.id, lab_order.id])

    # Glucosa at its 8.00 convention price, Hemograma at its 25.00 public price
    assert result.settled_total == Decimal("33.00")
    assert result.settled_order_ids == [admission_order.id]
    assert LabOrder.objects.get(id=admission_order.id).admission_settled_at is not None
    assert LabOrder.objects.get(id=lab_order.id).admission_settled_at is None


def test_settled_and_cancelled_orders_are_skipped(patient, glucose):
    settled = AdmissionService.create(patient_id=patient.id, test_ids=[glucose.id]).order
    cancelled = AdmissionService.create(patient_id=patient.id, test_ids=[glucose.id]).order
    AdmissionSettlementService.settle_batch(order_ids=[settled.id])
    OrderService.update_order(order_id=cancelled.id, status=OrderStatus.ANULADO)

    result = AdmissionSettlementService.settle_batch(order_ids=[settled.id, cancelled.id])

    assert result.settled_order_ids == []
    assert result.settled_total == Decimal("0.00")


def test_empty_batch_rejected():
    with pytest.raises(ValidationFailed):
        AdmissionSettlementService.settle_batch(order_ids=[])
