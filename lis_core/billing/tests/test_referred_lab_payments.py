from decimal import Decimal

import pytest

from lis_core.billing.selectors import referred_lab_balance_across_orders, referred_lab_order_summary
from lis_core.billing.services import PaymentService, ReferredLabPaymentService
from lis_core.common.api.exceptions import BalanceExceededError, ValidationFailed
from lis_core.orders.services import OrderService

pytestmark = pytest.mark.django_db


def _referred_order(patient, *tests):
    return OrderService.create_order(patient_id=patient.id, test_ids=[t.id for t in tests])


def test_summary_groups_cost_by_effective_lab(patient, thyroid, glucose, referred_lab):
    order = _referred_order(patient, thyroid, glucose)

    summary = referred_lab_order_summary(order)

    assert len(summary.labs) == 1
    lab = summary.labs[0]
    assert lab.referred_lab_id == referred_lab.id
    assert lab.cost == Decimal("40.00")
    assert lab.balance == Decimal("40.00")


def test_item_without_snapshot_falls_back_to_catalog(patient, thyroid, referred_lab):
    order = _referred_order(patient, thyroid)
    order.items.update(referred_lab=None, external_lab_cost_snapshot=None)

    lab = referred_lab_order_summary(order).labs[0]
    assert lab.referred_lab_id == referred_lab.id
    assert lab.cost == Decimal("40.00")


def test_pay_referred_lab_up_to_cost(patient, thyroid, referred_lab):
    order = _referred_order(patient, thyroid)

    receipt = ReferredLabPaymentService.record_payment(
        order_id=order.id, referred_lab_id=referred_lab.id, amount=Decimal("25.00"), notes="Factura 001"
    )
    assert receipt.paid_total == Decimal("25.00")
    assert receipt.balance == Decimal("15.00")

    with pytest.raises(BalanceExceededError):
        ReferredLabPaymentService.record_payment(order_id=order.id, referred_lab_id=referred_lab.id, amount=Decimal("15.01"))

    ReferredLabPaymentService.record_payment(order_id=order.id, referred_lab_id=referred_lab.id, amount=Decimal("15.00"))
    assert referred_lab_order_summary(order).total_balance == Decimal("0.00")


def test_lab_without_referred_work_on_order(patient, thyroid, other_lab):
    order = _referred_order(patient, thyroid)
    with pytest.raises(ValidationFailed):
        ReferredLabPaymentService.record_payment(order_id=order.id, referred_lab_id=other_lab.id, amount=Decimal("1.00"))


def test_ledgers_are_independent(patient, thyroid, referred_lab):
    order = _referred_order(patient, thyroid)
    ReferredLabPaymentService.record_payment(order_id=order.id, referred_lab_id=referred_lab.id, amount=Decimal("40.00"))

    receipt = PaymentService.record_payment(order_id=order.id, amount=Decimal("80.00"))
    assert receipt.paid_total == Decimal("80.00")


def test_balance_across_orders(patient, thyroid, referred_lab, other_lab):
    first = _referred_order(patient, thyroid)
    second = _referred_order(patient, thyroid)
    third = _referred_order(patient, thyroid)
    OrderService.set_item_referred_lab(order_id=third.id, item_id=third.items.get().id, referred_lab_id=other_lab.id)
    ReferredLabPaymentService.record_payment(order_id=first.id, referred_lab_id=referred_lab.id, amount=Decimal("40.00"))

    balance = referred_lab_balance_across_orders(referred_lab.id)

    assert balance.total_cost == Decimal("80.00")
    assert balance.total_paid == Decimal("40.00")
    assert balance.balance == Decimal("40.00")
    assert [o.order_id for o in balance.orders] == [first.id, second.id]
    assert balance.orders[1].balance == Decimal("40.00")


def test_in_house_test_owes_nothing_to_its_old_lab(patient, make_test, referred_lab):
    albumin = make_test(
        "ALB", "Albúmina", "30.00", is_referred=False, referred_lab=referred_lab, external_lab_cost=Decimal("15.00")
    )
    order = _referred_order(patient, albumin)

    assert referred_lab_order_summary(order).labs == []
    assert referred_lab_balance_across_orders(referred_lab.id).orders == []
    with pytest.raises(ValidationFailed):
        ReferredLabPaymentService.record_payment(order_id=order.id, referred_lab_id=referred_lab.id, amount=Decimal("5.00"))


def test_test_brought_in_house_after_ordering(patient, thyroid, glucose, referred_lab):
    order = _referred_order(patient, thyroid, glucose)
    thyroid.is_referred = False
    thyroid.save(update_fields=["is_referred"])

    summary = referred_lab_order_summary(order)
    balance = referred_lab_balance_across_orders(referred_lab.id)

    assert summary.labs == []
    assert summary.total_cost == Decimal("0.00")
    assert balance.total_cost == Decimal("0.00")
    assert balance.orders == []
