# lis_core/audit/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError, transaction

from lis_core.audit.models import AuditEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    event_code: str
    entity_type: str
    entity_id: UUID
    actor_user_id: int | None
    metadata: Dict[str, Any]


def _json_safe(metadata: Dict[str, Any]) -> Dict[str, Any]:
    # Decimals, UUIDs and datetimes become strings
    encoder = DjangoJSONEncoder()
    return {
        k: v if v is None or isinstance(v, (str, int, float, bool, list, dict)) else encoder.default(v)
        for k, v in metadata.items()
    }


class AuditService:
    """
    Central audit writer. Persists into AuditEvent (immutable).
    """

    @staticmethod
    @transaction.atomic
    def log(
        *,
        event_code: str,
        entity_type: str,
        entity_id: UUID,
        actor_user_id: int | None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        metadata = _json_safe(metadata or {})

        AuditEvent.objects.create(
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_user_id=actor_user_id,
            metadata=metadata,
        )

        return AuditRecord(
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_user_id=actor_user_id,
            metadata=metadata,
        )

    @staticmethod
    def log_on_commit(**kwargs) -> None:
        """
        Write the audit row after the caller's transaction commits.
        A failed audit write is logged and never undoes the business write.
        """

        def _write():
            try:
                AuditService.log(**kwargs)
            except DatabaseError:
                logger.exception(
                    "Audit write failed for %s",
                    kwargs.get("event_code"),
                    extra={"entity_id": str(kwargs.get("entity_id"))},
                )

        transaction.on_commit(_write)
