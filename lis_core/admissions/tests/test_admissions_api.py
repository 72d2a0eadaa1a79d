import pytest

from lis_core.admissions.models import AdmissionRequest, AdmissionStatus
from lis_core.orders.models import LabOrder

pytestmark = pytest.mark.django_db

URL = "/api/v1/admissions/"


def test_create_converts_and_returns_order(client_for, admission_user, patient, glucose, hemogram):
    c = client_for(admission_user)
    payload = {"patient_id": str(patient.id), "test_ids": [str(glucose.id), str(hemogram.id)]}

    r = c.post(URL, payload, format="json")

    assert r.status_code == 201, r.data
    assert r.data["conversion_error"] is None
    assert r.data["order_code"].startswith("ORD-")
    assert r.data["admission"]["status"] == AdmissionStatus.CONVERTIDA
    assert r.data["admission"]["total_price"] == "35.00"
    assert LabOrder.objects.get(id=r.data["order_id"]).admission_request_id is not None


def test_create_with_new_patient(client_for, admission_user, glucose):
    c = client_for(admission_user)
    payload = {
        "patient": {"dni": "72001122", "first_name": "Ana", "last_name": "Flores"},
        "test_ids": [str(glucose.id)],
    }

    r = c.post(URL, payload, format="json")

    assert r.status_code == 201, r.data
    assert r.data["admission"]["patient"]["dni"] == "72001122"


def test_create_is_idempotent(client_for, admission_user, patient, glucose):
    c = client_for(admission_user)
    payload = {"patient_id": str(patient.id), "test_ids": [str(glucose.id)]}

    r1 = c.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="adm-001")
    r2 = c.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="adm-001")

    assert r1.status_code == 201 and r2.status_code == 201
    assert r1.data["admission"]["id"] == r2.data["admission"]["id"]
    assert AdmissionRequest.objects.count() == 1


def test_price_adjustment_by_desk_is_denied(client_for, admission_user, supervisor_user, patient, make_test):
    echo = make_test("ECO", "Ecografía abdominal", "50.00")
    payload = {
        "patient_id": str(patient.id),
        "test_ids": [str(echo.id)],
        "adjustments": [{"lab_test_id": str(echo.id), "price_applied": "35.00", "adjustment_reason": "Convenio"}],
    }

    denied = client_for(admission_user).post(URL, payload, format="json")
    assert denied.status_code == 403
    assert denied.data["error"]["code"] == "permission_denied"
    assert not AdmissionRequest.objects.exists()

    ok = client_for(supervisor_user).post(URL, payload, format="json")
    assert ok.status_code == 201, ok.data
    assert ok.data["admission"]["total_price"] == "35.00"


def test_missing_tests_is_validation_error(client_for, admission_user, patient):
    r = client_for(admission_user).post(URL, {"patient_id": str(patient.id)}, format="json")
    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"


def test_cashier_cannot_use_admission_desk(client_for, cashier_user):
    assert client_for(cashier_user).get(URL).status_code == 403


def test_list_filters_by_status(client_for, admission_user, patient, glucose, monkeypatch):
    c = client_for(admission_user)
    monkeypatch.setattr("lis_core.admissions.services.convert_admission", _refuse)
    c.post(URL, {"patient_id": str(patient.id), "test_ids": [str(glucose.id)]}, format="json")

    r = c.get(URL, {"status": AdmissionStatus.PENDIENTE})

    assert r.status_code == 200
    assert r.data["count"] == 1
    assert r.data["results"][0]["status"] == AdmissionStatus.PENDIENTE


def test_failed_auto_conversion_is_reported(client_for, admission_user, patient, glucose, monkeypatch):
    monkeypatch.setattr("lis_core.admissions.services.convert_admission", _refuse)

    r = client_for(admission_user).post(URL, {"patient_id": str(patient.id), "test_ids": [str(glucose.id)]}, format="json")

    assert r.status_code == 201
    assert r.data["order_id"] is None
    assert r.data["conversion_error"] == "Analysis no longer available: Glucosa."


def test_manual_convert_then_conflict(client_for, admission_user, patient, glucose, monkeypatch):
    c = client_for(admission_user)
    monkeypatch.setattr("lis_core.admissions.services.convert_admission", _refuse)
    created = c.post(URL, {"patient_id": str(patient.id), "test_ids": [str(glucose.id)]}, format="json")
    admission_id = created.data["admission"]["id"]

    r1 = c.post(f"{URL}{admission_id}/convert/")
    r2 = c.post(f"{URL}{admission_id}/convert/")

    assert r1.status_code == 200, r1.data
    assert r1.data["order_code"].startswith("ORD-")
    assert r2.status_code == 409
    assert r2.data["error"]["code"] == "already_processed"


def test_cancel_and_purge(client_for, admission_user, admin_user, patient, glucose, monkeypatch):
    monkeypatch.setattr("lis_core.admissions.services.convert_admission", _refuse)
    desk = client_for(admission_user)
    created = desk.post(URL, {"patient_id": str(patient.id), "test_ids": [str(glucose.id)]}, format="json")
    admission_id = created.data["admission"]["id"]

    r = desk.delete(f"{URL}{admission_id}/")
    assert r.status_code == 200
    assert r.data["status"] == AdmissionStatus.CANCELADA

    assert desk.delete(f"{URL}{admission_id}/purge/").status_code == 403
    assert client_for(admin_user).delete(f"{URL}{admission_id}/purge/").status_code == 204
    assert not AdmissionRequest.objects.filter(id=admission_id).exists()


def test_patch_updates_notes(client_for, admission_user, patient, glucose, monkeypatch):
    monkeypatch.setattr("lis_core.admissions.services.convert_admission", _refuse)
    c = client_for(admission_user)
    created = c.post(URL, {"patient_id": str(patient.id), "test_ids": [str(glucose.id)]}, format="json")

    r = c.patch(f"{URL}{created.data['admission']['id']}/", {"notes": "Ayunas 12h"}, format="json")

    assert r.status_code == 200, r.data
    assert r.data["notes"] == "Ayunas 12h"


def _refuse(**kwargs):
    from lis_core.common.api.exceptions import ReferenceUnavailableError

    raise ReferenceUnavailableError("Analysis no longer available: Glucosa.")
