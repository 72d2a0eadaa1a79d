import pytest

pytestmark = pytest.mark.django_db


def test_me_reports_roles_and_capabilities(client_for, supervisor_user):
    r = client_for(supervisor_user).get("/api/v1/me/")

    assert r.status_code == 200
    assert r.data["roles"] == ["ADMISSION_SUPERVISOR"]
    assert r.data["capabilities"]["adjust_admission_price"] is True
    assert r.data["capabilities"]["register_payments"] is False


def test_group_less_user_is_readonly(client_for, readonly_user):
    r = client_for(readonly_user).get("/api/v1/me/")
    assert r.data["roles"] == ["READONLY"]
    assert not any(r.data["capabilities"].values())


def test_admin_gets_everything(api_client):
    assert all(api_client.get("/api/v1/me/").data["capabilities"].values())
