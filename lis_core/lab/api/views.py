# lis_core/lab/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from lis_core.common.api.exceptions import NotFoundError
from lis_core.common.permissions import OrderPermission
from lis_core.lab.api.serializers import LabResultSerializer, LabResultWriteSerializer
from lis_core.lab.selectors import result_for_item
from lis_core.lab.services import LabResultService
from lis_core.orders.selectors import get_order_item


class OrderItemResultView(APIView):
    """
    /orders/<order_id>/items/<item_id>/result/
    - GET the captured result
    - PUT save or correct it
    """
    permission_classes = [OrderPermission]

    @extend_schema(tags=["Lab"], responses={200: LabResultSerializer})
    def get(self, request, order_id: UUID, item_id: UUID):
        get_order_item(order_id=order_id, item_id=item_id)
        result = result_for_item(order_item_id=item_id)
        if result is None:
            raise NotFoundError("No result captured for this analysis yet.", details={"item_id": str(item_id)})
        return Response(LabResultSerializer(result).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Lab"], request=LabResultWriteSerializer, responses={200: LabResultSerializer})
    def put(self, request, order_id: UUID, item_id: UUID):
        ser = LabResultWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = LabResultService.save_result(
            order_id=order_id,
            order_item_id=item_id,
            payload=ser.validated_data["payload"],
            comment=ser.validated_data.get("comment", ""),
            reported_by=request.user,
        )
        return Response(LabResultSerializer(result).data, status=status.HTTP_200_OK)
