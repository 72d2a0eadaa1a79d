# lis_core/orders/api/views.py
from __future__ import annotations

from django.db.models import Q
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from lis_core.billing.selectors import filter_by_payment_status, with_paid_total
from lis_core.common.api.pagination import paginate
from lis_core.common.idempotency import idempotent
from lis_core.common.permissions import OrderPermission
from lis_core.orders.api.serializers import (
    LabOrderItemSerializer,
    LabOrderSerializer,
    OrderCreateSerializer,
    OrderItemsAddSerializer,
    OrderListQuerySerializer,
    OrderRepeatSerializer,
    OrderUpdateSerializer,
    ReferredLabSelectSerializer,
    TemplateSnapshotUpdateSerializer,
)
from lis_core.orders.models import LabOrder
from lis_core.orders.selectors import get_order, orders_filtered
from lis_core.orders.services import OrderService
from lis_core.patients.selectors import search_patients


class OrderViewSet(viewsets.GenericViewSet):
    """
    Thin API layer:
    - serializers validation
    - idempotency caching on create
    - delegates writes to OrderService, reads to selectors
    """
    permission_classes = [OrderPermission]

    serializer_class = LabOrderSerializer
    queryset = LabOrder.objects.none()
    lookup_value_regex = "[0-9a-f-]{36}"

    @extend_schema(
        tags=["Orders"],
        responses={200: LabOrderSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="q", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False,
                             description="Order code, patient name, DNI or patient code."),
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="branch", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="order_source", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="payment_status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY,
                             required=False, description="PENDIENTE, PARCIAL or PAGADO (derived from payments)."),
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        params = OrderListQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        f = params.validated_data

        qs = orders_filtered(
            patient_id=f.get("patient"),
            status=f.get("status"),
            order_source=f.get("order_source"),
            branch_id=f.get("branch"),
            date_from=f.get("date_from"),
            date_to=f.get("date_to"),
        )

        q = (f.get("q") or "").strip()
        if q:
            qs = qs.filter(Q(order_code__icontains=q) | Q(patient__in=search_patients(q=q)))

        if f.get("payment_status"):
            qs = filter_by_payment_status(qs, f["payment_status"])
        else:
            qs = with_paid_total(qs)

        return paginate(request, qs, LabOrderSerializer)

    @extend_schema(tags=["Orders"], responses={200: LabOrderSerializer})
    def retrieve(self, request, pk=None):
        return Response(LabOrderSerializer(get_order(order_id=pk)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Orders"], request=OrderCreateSerializer, responses={201: LabOrderSerializer})
    def create(self, request):
        with idempotent(request) as idem:
            if idem.cached is not None:
                return Response(idem.cached, status=status.HTTP_201_CREATED)

            ser = OrderCreateSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            data = ser.validated_data

            order = OrderService.create_order(
                patient_id=data.get("patient_id"),
                patient_draft=data.get("patient"),
                test_ids=data.get("test_ids") or [],
                profile_ids=data.get("profile_ids") or [],
                order_date=data.get("order_date"),
                branch_id=data.get("branch_id"),
                patient_type=data.get("patient_type", ""),
                requested_by=data.get("requested_by", ""),
                notes=data.get("notes", ""),
                actor=request.user,
            )

            out = LabOrderSerializer(get_order(order_id=order.id)).data
            idem.save(out, status_code=201)
        return Response(out, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Orders"], request=OrderUpdateSerializer, responses={200: LabOrderSerializer})
    def partial_update(self, request, pk=None):
        ser = OrderUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        OrderService.update_order(order_id=pk, **ser.validated_data)
        return Response(LabOrderSerializer(get_order(order_id=pk)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Orders"], responses={204: None})
    def destroy(self, request, pk=None):
        OrderService.delete_order(order_id=pk, actor_user_id=request.user.id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(tags=["Orders"], request=OrderItemsAddSerializer, responses={200: LabOrderSerializer})
    @action(detail=True, methods=["post"], url_path="items")
    def items(self, request, pk=None):
        ser = OrderItemsAddSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        OrderService.add_items(order_id=pk, test_ids=ser.validated_data["test_ids"])
        return Response(LabOrderSerializer(get_order(order_id=pk)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Orders"], responses={200: LabOrderSerializer})
    @action(detail=True, methods=["delete"], url_path=r"items/(?P<item_id>[0-9a-f-]{36})")
    def remove_item(self, request, pk=None, item_id=None):
        OrderService.remove_item(order_id=pk, item_id=item_id)
        return Response(LabOrderSerializer(get_order(order_id=pk)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Orders"], request=TemplateSnapshotUpdateSerializer, responses={200: LabOrderItemSerializer})
    @action(detail=True, methods=["put"], url_path=r"items/(?P<item_id>[0-9a-f-]{36})/template-snapshot")
    def template_snapshot(self, request, pk=None, item_id=None):
        ser = TemplateSnapshotUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        item = OrderService.update_template_snapshot(order_id=pk, item_id=item_id, **ser.validated_data)
        return Response(LabOrderItemSerializer(item).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Orders"], request=ReferredLabSelectSerializer, responses={200: LabOrderItemSerializer})
    @action(detail=True, methods=["put"], url_path=r"items/(?P<item_id>[0-9a-f-]{36})/referred-lab")
    def referred_lab(self, request, pk=None, item_id=None):
        ser = ReferredLabSelectSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        item = OrderService.set_item_referred_lab(
            order_id=pk,
            item_id=item_id,
            referred_lab_id=ser.validated_data.get("referred_lab_id"),
        )
        return Response(LabOrderItemSerializer(item).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Orders"], request=OrderRepeatSerializer, responses={201: LabOrderSerializer})
    @action(detail=True, methods=["post"], url_path="repeat")
    def repeat(self, request, pk=None):
        with idempotent(request) as idem:
            if idem.cached is not None:
                return Response(idem.cached, status=status.HTTP_201_CREATED)

            ser = OrderRepeatSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            data = ser.validated_data

            order = OrderService.repeat_order(
                order_id=pk,
                patient_id=data.get("patient_id"),
                requested_by=data.get("requested_by"),
                notes=data.get("notes"),
                actor=request.user,
            )

            out = LabOrderSerializer(get_order(order_id=order.id)).data
            idem.save(out, status_code=201)
        return Response(out, status=status.HTTP_201_CREATED)
