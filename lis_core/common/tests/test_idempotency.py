from datetime import timedelta
from types import SimpleNamespace

import pytest
from django.utils import timezone

from lis_core.common import idempotency
from lis_core.common.api.exceptions import ConflictError
from lis_core.common.idempotency import idempotent, release_key, reserve_key, save_response
from lis_core.common.models import IdempotencyRecord

PATH = "/api/v1/orders/"


def _request(key="key-1", user_id=7):
    return SimpleNamespace(
        user=SimpleNamespace(id=user_id),
        method="POST",
        path=PATH,
        META={"HTTP_IDEMPOTENCY_KEY": key} if key else {},
    )


@pytest.fixture
def memory_store(settings):
    settings.COMMON_IDEMPOTENCY_USE_DB = False
    idempotency._STORE.clear()
    yield
    idempotency._STORE.clear()


@pytest.mark.django_db
def test_claimed_key_conflicts_until_response_is_stored():
    assert reserve_key(7, "POST", PATH, "key-1") is None

    with pytest.raises(ConflictError) as exc:
        reserve_key(7, "POST", PATH, "key-1")
    assert exc.value.status_code == 409

    save_response(7, "POST", PATH, "key-1", {"id": "abc"}, status_code=201)
    assert reserve_key(7, "POST", PATH, "key-1") == {"id": "abc"}

    rec = IdempotencyRecord.objects.get()
    assert rec.is_pending is False
    assert rec.status_code == 201


@pytest.mark.django_db
def test_released_key_can_be_claimed_again():
    reserve_key(7, "POST", PATH, "key-1")
    release_key(7, "POST", PATH, "key-1")

    assert not IdempotencyRecord.objects.exists()
    assert reserve_key(7, "POST", PATH, "key-1") is None


@pytest.mark.django_db
def test_release_keeps_a_completed_response():
    reserve_key(7, "POST", PATH, "key-1")
    save_response(7, "POST", PATH, "key-1", {"id": "abc"}, status_code=201)
    release_key(7, "POST", PATH, "key-1")

    assert reserve_key(7, "POST", PATH, "key-1") == {"id": "abc"}


@pytest.mark.django_db
def test_stale_claim_is_taken_over(settings):
    settings.COMMON_IDEMPOTENCY_PENDING_TTL = 60
    reserve_key(7, "POST", PATH, "key-1")
    IdempotencyRecord.objects.update(updated_at=timezone.now() - timedelta(minutes=5))

    assert reserve_key(7, "POST", PATH, "key-1") is None
    assert IdempotencyRecord.objects.get().updated_at > timezone.now() - timedelta(minutes=1)


@pytest.mark.django_db
def test_keys_are_scoped_per_user():
    reserve_key(7, "POST", PATH, "key-1")
    assert reserve_key(8, "POST", PATH, "key-1") is None


@pytest.mark.django_db
def test_context_manager_releases_claim_when_write_fails():
    with pytest.raises(RuntimeError):
        with idempotent(_request()) as idem:
            assert idem.cached is None
            raise RuntimeError("boom")

    with idempotent(_request()) as idem:
        assert idem.cached is None
        idem.save({"id": "abc"}, status_code=201)

    with idempotent(_request()) as idem:
        assert idem.cached == {"id": "abc"}


@pytest.mark.django_db
def test_request_without_key_is_not_tracked():
    with idempotent(_request(key=None)) as idem:
        assert idem.cached is None
        idem.save({"id": "abc"}, status_code=201)

    assert not IdempotencyRecord.objects.exists()


def test_memory_store_follows_the_same_rules(memory_store):
    assert reserve_key(7, "POST", PATH, "key-1") is None
    with pytest.raises(ConflictError):
        reserve_key(7, "POST", PATH, "key-1")

    release_key(7, "POST", PATH, "key-1")
    assert reserve_key(7, "POST", PATH, "key-1") is None

    save_response(7, "POST", PATH, "key-1", {"id": "abc"})
    assert reserve_key(7, "POST", PATH, "key-1") == {"id": "abc"}
