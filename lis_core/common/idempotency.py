# lis_core/common/idempotency.py
"""
Replay protection for POST creates carrying an ``Idempotency-Key`` header.

The key is claimed before the write runs, so two concurrent requests with the
same key cannot both reach the service: the second one sees the claim and gets
a 409 (or the stored response, once the first has finished). A failed write
gives the key back so the client can retry with it.

    with idempotent(request) as idem:
        if idem.cached is not None:
            return Response(idem.cached, status=201)
        ...
        idem.save(out, status_code=201)
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from lis_core.common.api.exceptions import ConflictError
from lis_core.common.models import IdempotencyRecord

logger = logging.getLogger(__name__)

_LOCK = threading.Lock()
_STORE = {}  # in-memory store for local runs
_PENDING = object()


def _use_db() -> bool:
    """
    Enable the durable store with:
        COMMON_IDEMPOTENCY_USE_DB = True
    """
    return bool(getattr(settings, "COMMON_IDEMPOTENCY_USE_DB", False))


def _pending_ttl() -> timedelta:
    # A claim older than this belongs to a request that died mid-way
    return timedelta(seconds=int(getattr(settings, "COMMON_IDEMPOTENCY_PENDING_TTL", 120)))


def get_key(request):
    # In DRF test client: "HTTP_IDEMPOTENCY_KEY" becomes request.META["HTTP_IDEMPOTENCY_KEY"]
    return request.META.get("HTTP_IDEMPOTENCY_KEY")


def _norm(user_id, method, path, key):
    return (str(user_id), method.upper(), path, str(key))


def _in_progress(key) -> ConflictError:
    return ConflictError(
        "A request with this Idempotency-Key is still being processed.",
        details={"idempotency_key": str(key)},
    )


def _records(user_id, method, path, key):
    return IdempotencyRecord.objects.filter(
        user_id=int(user_id),
        method=method.upper(),
        path=path,
        idempotency_key=str(key),
    )


def reserve_key(user_id, method, path, key):
    """
    Claim ``key`` for this request.

    Returns the stored response when the key already completed, None when the
    claim succeeded. Raises ConflictError while another request holds it.
    """
    if not key:
        return None

    if not _use_db():
        norm = _norm(user_id, method, path, key)
        with _LOCK:
            stored = _STORE.get(norm)
            if stored is _PENDING:
                raise _in_progress(key)
            if stored is not None:
                return stored
            _STORE[norm] = _PENDING
        return None

    try:
        with transaction.atomic():
            IdempotencyRecord.objects.create(
                user_id=int(user_id),
                method=method.upper(),
                path=path,
                idempotency_key=str(key),
                is_pending=True,
                response_data={},
            )
        return None
    except IntegrityError:
        rec = _records(user_id, method, path, key).first()

    if rec is None:
        raise _in_progress(key)
    if not rec.is_pending:
        return rec.response_data

    now = timezone.now()
    stale = rec.updated_at < now - _pending_ttl()
    if stale and _records(user_id, method, path, key).filter(
        is_pending=True, updated_at=rec.updated_at
    ).update(updated_at=now):
        logger.warning("Took over stale idempotency claim %s %s", method.upper(), path)
        return None
    raise _in_progress(key)


def release_key(user_id, method, path, key) -> None:
    """Give a claimed key back after the write failed."""
    if not key:
        return

    if not _use_db():
        norm = _norm(user_id, method, path, key)
        with _LOCK:
            if _STORE.get(norm) is _PENDING:
                del _STORE[norm]
        return

    _records(user_id, method, path, key).filter(is_pending=True).delete()


def save_response(user_id, method, path, key, response_data, status_code: int = 200):
    if not key:
        return

    if not _use_db():
        with _LOCK:
            _STORE[_norm(user_id, method, path, key)] = response_data
        return

    IdempotencyRecord.objects.update_or_create(
        user_id=int(user_id),
        method=method.upper(),
        path=path,
        idempotency_key=str(key),
        defaults={
            "status_code": int(status_code),
            "response_data": response_data,
            "is_pending": False,
        },
    )


@dataclass
class IdempotentRequest:
    user_id: Any
    method: str
    path: str
    key: str | None
    cached: Any = None

    def save(self, response_data, status_code: int = 200) -> None:
        save_response(self.user_id, self.method, self.path, self.key, response_data, status_code=status_code)


@contextmanager
def idempotent(request):
    idem = IdempotentRequest(
        user_id=request.user.id,
        method=request.method,
        path=request.path,
        key=get_key(request),
    )
    idem.cached = reserve_key(idem.user_id, idem.method, idem.path, idem.key)
    claimed = bool(idem.key) and idem.cached is None
    try:
        yield idem
    except Exception:
        if claimed:
            release_key(idem.user_id, idem.method, idem.path, idem.key)
        raise
