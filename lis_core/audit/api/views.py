# lis_core/audit/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.response import Response

from lis_core.audit.api.serializers import AuditEventSerializer
from lis_core.audit.models import AuditEvent
from lis_core.audit.selectors import list_audit_events
from lis_core.common.api.exceptions import ValidationFailed
from lis_core.common.permissions import AuditPermission


class AuditEventViewSet(viewsets.GenericViewSet):
    """
    List audit events (administrators only).
    """
    permission_classes = [AuditPermission]

    serializer_class = AuditEventSerializer
    queryset = AuditEvent.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditEventSerializer(many=True)},
        parameters=[
            OpenApiParameter(
                name="entity_type",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Filter by entity type (e.g. LabOrder, AdmissionRequest).",
            ),
            OpenApiParameter(
                name="entity_id",
                type=OpenApiTypes.UUID,
                location=OpenApiParameter.QUERY,
                required=False,
            ),
            OpenApiParameter(
                name="event_code",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Filter by event code (e.g. payment.recorded, admission.purged).",
            ),
            OpenApiParameter(name="actor_user_id", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="limit",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Max records to return (default 200, max 500).",
            ),
        ],
    )
    def list(self, request):
        params = request.query_params

        entity_id = None
        if params.get("entity_id"):
            try:
                entity_id = UUID(str(params["entity_id"]))
            except ValueError:
                raise ValidationFailed("Invalid entity_id (UUID expected).")

        actor_user_id = None
        if params.get("actor_user_id"):
            try:
                actor_user_id = int(params["actor_user_id"])
            except ValueError:
                raise ValidationFailed("Invalid actor_user_id (int expected).")

        qs = list_audit_events(
            entity_type=params.get("entity_type") or None,
            entity_id=entity_id,
            event_code=params.get("event_code") or None,
            actor_user_id=actor_user_id,
        )

        try:
            limit_n = int(params.get("limit") or 200)
        except ValueError:
            limit_n = 200
        limit_n = max(1, min(limit_n, 500))

        return Response(AuditEventSerializer(qs[:limit_n], many=True).data, status=status.HTTP_200_OK)
