# lis_core/admissions/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from lis_core.admissions.api.serializers import (
    AdmissionCreateResultSerializer,
    AdmissionCreateSerializer,
    AdmissionListQuerySerializer,
    AdmissionRequestSerializer,
    AdmissionUpdateSerializer,
    ConversionResultSerializer,
)
from lis_core.admissions.conversion import convert_admission
from lis_core.admissions.models import AdmissionRequest
from lis_core.admissions.selectors import admissions_filtered, get_admission
from lis_core.admissions.services import AdmissionService
from lis_core.common.api.pagination import paginate
from lis_core.common.idempotency import idempotent
from lis_core.common.permissions import AdmissionPermission, request_capabilities


class AdmissionRequestViewSet(viewsets.GenericViewSet):
    """
    Admission desk pre-orders.
    Create tries to convert right away; a failed conversion comes back as
    ``conversion_error`` on a 201 response.
    """
    permission_classes = [AdmissionPermission]

    serializer_class = AdmissionRequestSerializer
    queryset = AdmissionRequest.objects.none()
    lookup_value_regex = "[0-9a-f-]{36}"

    @extend_schema(
        tags=["Admissions"],
        responses={200: AdmissionRequestSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="branch", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        params = AdmissionListQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        f = params.validated_data

        qs = admissions_filtered(
            status=f.get("status"),
            patient_id=f.get("patient"),
            branch_id=f.get("branch"),
            date_from=f.get("date_from"),
            date_to=f.get("date_to"),
        )
        return paginate(request, qs, AdmissionRequestSerializer)

    @extend_schema(tags=["Admissions"], responses={200: AdmissionRequestSerializer})
    def retrieve(self, request, pk=None):
        return Response(AdmissionRequestSerializer(get_admission(admission_id=pk)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Admissions"], request=AdmissionCreateSerializer, responses={201: AdmissionCreateResultSerializer})
    def create(self, request):
        with idempotent(request) as idem:
            if idem.cached is not None:
                return Response(idem.cached, status=status.HTTP_201_CREATED)

            ser = AdmissionCreateSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            data = ser.validated_data

            result = AdmissionService.create(
                patient_id=data.get("patient_id"),
                patient_draft=data.get("patient"),
                test_ids=data.get("test_ids") or [],
                profile_ids=data.get("profile_ids") or [],
                adjustments=data.get("adjustments") or [],
                can_adjust_price=request_capabilities(request).adjust_admission_price,
                branch_id=data.get("branch_id"),
                patient_type=data.get("patient_type", ""),
                requested_by=data.get("requested_by", ""),
                notes=data.get("notes", ""),
                actor=request.user,
            )

            out = AdmissionCreateResultSerializer(result).data
            idem.save(out, status_code=201)
        return Response(out, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Admissions"], request=AdmissionUpdateSerializer, responses={200: AdmissionRequestSerializer})
    def partial_update(self, request, pk=None):
        ser = AdmissionUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        AdmissionService.update(
            admission_id=pk,
            can_adjust_price=request_capabilities(request).adjust_admission_price,
            **ser.validated_data,
        )
        return Response(AdmissionRequestSerializer(get_admission(admission_id=pk)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Admissions"], responses={200: AdmissionRequestSerializer})
    def destroy(self, request, pk=None):
        """Cancels the request; the row is kept."""
        admission = AdmissionService.cancel(admission_id=pk)
        return Response(AdmissionRequestSerializer(get_admission(admission_id=admission.id)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Admissions"], request=None, responses={200: ConversionResultSerializer})
    @action(detail=True, methods=["post"], url_path="convert")
    def convert(self, request, pk=None):
        result = convert_admission(admission_request_id=pk, actor=request.user)
        return Response(ConversionResultSerializer(result).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Admissions"], responses={204: None})
    @action(detail=True, methods=["delete"], url_path="purge")
    def purge(self, request, pk=None):
        AdmissionService.purge(
            admission_id=pk,
            can_purge=request_capabilities(request).purge_admissions,
            actor_user_id=request.user.id,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
