# lis_core/common/models.py
from __future__ import annotations

import uuid
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class TimeStampedModel(models.Model):
    """
    Standard timestamps for all entities.
    """
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UUIDModel(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class IdempotencyRecord(TimeStampedModel):
    """
    Stores idempotent responses durably.

    Keyed by:
      (user_id, method, path, idempotency_key)

    A retried POST (admission create, payment registration) replays the first
    response instead of writing a second row.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user_id = models.BigIntegerField(db_index=True)
    method = models.CharField(max_length=16, db_index=True)
    path = models.CharField(max_length=255, db_index=True)
    idempotency_key = models.CharField(max_length=255, db_index=True)
    # Claimed by a request that has not stored its response yet
    is_pending = models.BooleanField(default=False)

    status_code = models.PositiveIntegerField(default=200)
    response_data = models.JSONField(default=dict, encoder=DjangoJSONEncoder)

    class Meta:
        db_table = "common_idempotency_record"
        constraints = [
            models.UniqueConstraint(
                fields=["user_id", "method", "path", "idempotency_key"],
                name="uq_idempo_user_method_path_key",
            )
        ]

    def __str__(self) -> str:
        return f"{self.method} {self.path} {self.idempotency_key}"
