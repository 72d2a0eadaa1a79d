import pytest

pytestmark = pytest.mark.django_db


def test_schema_lists_lis_endpoints(anon_client):
    r = anon_client.get("/api/schema/", HTTP_ACCEPT="application/vnd.oai.openapi+json")

    assert r.status_code == 200
    paths = r.json()["paths"]
    assert "/api/v1/admissions/{id}/convert/" in paths
    assert "/api/v1/orders/{order_id}/payments/" in paths
    assert "/api/v1/billing/settle-admission-batch/" in paths


def test_schema_documents_idempotency_header_on_writes(anon_client):
    r = anon_client.get("/api/schema/", HTTP_ACCEPT="application/vnd.oai.openapi+json")

    params = r.json()["paths"]["/api/v1/orders/{order_id}/payments/"]["post"]["parameters"]
    assert any(p["name"] == "Idempotency-Key" and p["in"] == "header" for p in params)
