import uuid

import pytest

from lis_core.audit.services import AuditService

pytestmark = pytest.mark.django_db

URL = "/api/v1/audit/events/"


def test_admin_lists_and_filters_events(api_client):
    order_id = uuid.uuid4()
    AuditService.log(
        event_code="payment.recorded",
        entity_type="LabOrder",
        entity_id=order_id,
        actor_user_id=None,
        metadata={"amount": "60.00"},
    )
    AuditService.log(
        event_code="admission.created",
        entity_type="AdmissionRequest",
        entity_id=uuid.uuid4(),
        actor_user_id=None,
    )

    r = api_client.get(URL, {"entity_id": str(order_id)})

    assert r.status_code == 200
    assert len(r.data) == 1
    assert r.data[0]["event_code"] == "payment.recorded"
    assert r.data[0]["metadata"] == {"amount": "60.00"}


def test_bad_entity_id_is_validation_error(api_client):
    r = api_client.get(URL, {"entity_id": "nope"})
    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"


def test_non_admins_cannot_read_audit(client_for, cashier_user):
    assert client_for(cashier_user).get(URL).status_code == 403
