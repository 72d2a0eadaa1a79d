
import pytest

from lis_core.admissions.services import AdmissionService
from lis_core.billing.models import Payment
from lis_core.orders.services import OrderService

pytestmark = pytest.mark.django_db


@pytest.fixture
def order(patient, make_test):
    test = make_test("RX", "Radiografía de tórax", "100.00")
    return OrderService.create_order(patient_id=patient.id, test_ids=[test.id])


def test_cashier_registers_payment(client_for, cashier_user, order):
    url = f"/api/v1/orders/{order.id}/payments/"
    c = client_for(cashier_user)

    r = c.post(url, {"amount": "60.00", "method": "TARJETA"}, format="json")
    assert r.status_code == 201, r.data
    assert r.data["payment_status"] == "PARCIAL"
    assert r.data["balance"] == "40.00"
    assert r.data["payment"]["method"] == "TARJETA"

    r = c.get(url)
    assert r.status_code == 200
    assert r.data["summary"]["paid_total"] == "60.00"
    assert len(r.data["payments"]) == 1


def test_payment_over_balance_is_rejected(client_for, cashier_user, order):
    r = client_for(cashier_user).post(f"/api/v1/orders/{order.id}/payments/", {"amount": "120.00"}, format="json")

    assert r.status_code == 400
    assert r.data["error"]["code"] == "balance_exceeded"
    assert r.data["error"]["details"]["balance"] == "100.00"


def test_retried_payment_is_written_once(client_for, cashier_user, order):
    c = client_for(cashier_user)
    url = f"/api/v1/orders/{order.id}/payments/"

    r1 = c.post(url, {"amount": "30.00"}, format="json", HTTP_IDEMPOTENCY_KEY="pay-1")
    r2 = c.post(url, {"amount": "30.00"}, format="json", HTTP_IDEMPOTENCY_KEY="pay-1")

    assert r1.data["payment"]["id"] == r2.data["payment"]["id"]
    assert Payment.objects.filter(order=order).count() == 1


def test_lab_staff_can_view_but_not_register(client_for, lab_user, order):
    c = client_for(lab_user)
    url = f"/api/v1/orders/{order.id}/payments/"

    assert c.get(url).status_code == 200
    assert c.post(url, {"amount": "10.00"}, format="json").status_code == 403


def test_readonly_cannot_see_payments(client_for, readonly_user, order):
    assert client_for(readonly_user).get(f"/api/v1/orders/{order.id}/payments/").status_code == 403


def test_referred_lab_payment_endpoints(client_for, cashier_user, patient, thyroid, referred_lab):
    order = OrderService.create_order(patient_id=patient.id, test_ids=[thyroid.id])
    c = client_for(cashier_user)
    url = f"/api/v1/orders/{order.id}/referred-lab-payments/"

    r = c.post(url, {"referred_lab_id": str(referred_lab.id), "amount": "15.00"}, format="json")
    assert r.status_code == 201, r.data
    assert r.data["balance"] == "25.00"

    r = c.get(url)
    assert r.data["summary"]["labs"][0]["paid"] == "15.00"
    assert r.data["payments"][0]["referred_lab_name"] == referred_lab.name

    r = c.get(f"/api/v1/billing/referred-labs/{referred_lab.id}/balance/")
    assert r.status_code == 200
    assert r.data["balance"] == "25.00"
    assert r.data["orders"][0]["order_code"] == order.order_code


def test_pending_payments_and_settlement(client_for, cashier_user, patient, glucose):
    admission_order = AdmissionService.create(patient_id=patient.id, test_ids=[glucose.id]).order
    c = client_for(cashier_user)

    r = c.get("/api/v1/billing/pending-payments/")
    assert r.status_code == 200
    assert [o["id"] for o in r.data["results"]] == [str(admission_order.id)]

    r = c.post("/api/v1/billing/settle-admission-batch/", {"order_ids": [str(admission_order.id)]}, format="json")
    assert r.status_code == 200, r.data
    assert r.data["settled_total"] == "8.00"
    assert r.data["settled_order_ids"] == [str(admission_order.id)]


def test_settlement_needs_payment_capability(client_for, admission_user, patient, glucose):
    admission_order = AdmissionService.create(patient_id=patient.id, test_ids=[glucose.id]).order
    r = client_for(admission_user).post(
        "/api/v1/billing/settle-admission-batch/", {"order_ids": [str(admission_order.id)]}, format="json"
    )
    assert r.status_code == 403


def test_unknown_referred_lab_balance_is_404(client_for, cashier_user):
    r = client_for(cashier_user).get("/api/v1/billing/referred-labs/00000000-0000-0000-0000-000000000000/balance/")
    assert r.status_code == 404
    assert r.data["error"]["code"] == "not_found"


def test_unknown_payment_method_is_validation_error(client_for, cashier_user, order):
    r = client_for(cashier_user).post(
        f"/api/v1/orders/{order.id}/payments/", {"amount": "10.00", "method": "YAPE"}, format="json"
    )

    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"
    assert not Payment.objects.filter(order=order).exists()


def test_failed_payment_frees_its_idempotency_key(client_for, cashier_user, order):
    c = client_for(cashier_user)
    url = f"/api/v1/orders/{order.id}/payments/"

    r1 = c.post(url, {"amount": "150.00"}, format="json", HTTP_IDEMPOTENCY_KEY="pay-2")
    assert r1.status_code == 400

    r2 = c.post(url, {"amount": "50.00"}, format="json", HTTP_IDEMPOTENCY_KEY="pay-2")
    assert r2.status_code == 201, r2.data
    assert r2.data["paid_total"] == "50.00"
    assert Payment.objects.filter(order=order).count() == 1
