import uuid

import pytest
from django.test import RequestFactory

from lis_core.common.api.exceptions import (
    BalanceExceededError,
    ReferenceUnavailableError,
    api_exception_handler,
    build_error_envelope,
)
from lis_core.common.middleware import RequestIdMiddleware

pytestmark = pytest.mark.django_db


def test_domain_error_carries_code_message_and_details():
    req = RequestFactory().post("/api/v1/orders/x/payments/")
    exc = BalanceExceededError("Payment of 50.00 exceeds the outstanding balance of 20.00.", details={"balance": "20.00"})

    resp = api_exception_handler(exc, {"request": req})

    assert resp.status_code == 400
    err = resp.data["error"]
    assert err["code"] == "balance_exceeded"
    assert "20.00" in err["message"]
    assert err["details"] == {"balance": "20.00"}
    assert err["request_id"]


def test_reference_unavailable_is_conflict():
    exc = ReferenceUnavailableError("Analysis no longer available: Glucosa.")
    resp = api_exception_handler(exc, {"request": RequestFactory().post("/")})

    assert resp.status_code == 409
    assert resp.data["error"]["code"] == "reference_unavailable"


def test_unhandled_error_becomes_server_error_envelope():
    resp = api_exception_handler(RuntimeError("boom"), {"request": RequestFactory().get("/")})

    assert resp.status_code == 500
    assert resp.data["error"]["code"] == "server_error"
    assert "boom" not in resp.data["error"]["message"]


def test_request_id_header_is_reused_in_envelope():
    req = RequestFactory().get("/", HTTP_X_REQUEST_ID="abc-123")
    RequestIdMiddleware(get_response=lambda r: None).process_request(req)

    body = build_error_envelope(request=req, code="not_found", message="Order not found.")
    assert body["error"]["request_id"] == "abc-123"


def test_api_not_found_uses_envelope(api_client):
    r = api_client.get(f"/api/v1/orders/{uuid.uuid4()}/")

    assert r.status_code == 404
    assert r.data["error"]["code"] == "not_found"
    assert r["X-Request-Id"] == r.data["error"]["request_id"]


def test_api_validation_error_uses_envelope(api_client):
    r = api_client.post("/api/v1/orders/", {"test_ids": []}, format="json")

    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"
    assert "patient_id" in r.data["error"]["details"]
