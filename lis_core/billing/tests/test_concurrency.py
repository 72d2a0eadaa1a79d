"""
Concurrent writers against a shared database. These need real row locks
across connections, so they are skipped on the in-memory SQLite test
database and run with LIS_TEST_POSTGRES=1.
"""
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from django.db import connection, connections
from rest_framework.test import APIClient

from lis_core.billing.models import Payment
from lis_core.billing.selectors import paid_total
from lis_core.billing.services import PaymentService
from lis_core.common.api.exceptions import BalanceExceededError, ConflictError
from lis_core.orders.models import LabOrder
from lis_core.orders.services import OrderService

pytestmark = [
    pytest.mark.django_db(transaction=True),
    pytest.mark.skipif(connection.vendor == "sqlite", reason="needs row locks shared across connections"),
]

WORKERS = 8


def _in_thread(fn):
    def _run(*args):
        try:
            return fn(*args)
        finally:
            connections.close_all()

    return _run


def _run_all(fn, args):
    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        return list(pool.map(_in_thread(fn), args))


@pytest.fixture
def order(patient, make_test):
    test = make_test("RX", "Radiografía de tórax", "100.00")
    return OrderService.create_order(patient_id=patient.id, test_ids=[test.id])


def test_parallel_payments_never_exceed_total(order):
    def pay(_):
        try:
            PaymentService.record_payment(order_id=order.id, amount=Decimal("20.00"))
            return "ok"
        except BalanceExceededError:
            return "rejected"

    outcomes = _run_all(pay, range(WORKERS))

    assert outcomes.count("ok") == 5
    assert outcomes.count("rejected") == WORKERS - 5
    assert paid_total(order.id) == Decimal("100.00")


def test_parallel_orders_get_distinct_codes(patient, glucose, settings):
    # Every writer may lose the race to all the others once
    settings.LIS_CODE_MAX_ATTEMPTS = WORKERS

    def create(_):
        return OrderService.create_order(patient_id=patient.id, test_ids=[glucose.id]).order_code

    codes = _run_all(create, range(WORKERS))

    assert len(set(codes)) == WORKERS
    assert sorted(c.rsplit("-", 1)[1] for c in codes) == [f"{n:04d}" for n in range(1, WORKERS + 1)]
    assert LabOrder.objects.count() == WORKERS


def test_parallel_retries_with_one_key_write_once(order, cashier_user):
    url = f"/api/v1/orders/{order.id}/payments/"

    def post(_):
        c = APIClient()
        c.force_authenticate(user=cashier_user)
        return c.post(url, {"amount": "30.00"}, format="json", HTTP_IDEMPOTENCY_KEY="pay-race").status_code

    statuses = _run_all(post, range(WORKERS))

    assert set(statuses) <= {201, ConflictError.status_code}
    assert 201 in statuses
    assert Payment.objects.filter(order=order).count() == 1
