# lis_core/billing/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from lis_core.billing.api.serializers import (
    LabBalanceSerializer,
    PaymentCreateSerializer,
    PaymentLedgerSerializer,
    PaymentReceiptSerializer,
    ReferredLabLedgerSerializer,
    ReferredLabPaymentCreateSerializer,
    ReferredLabReceiptSerializer,
    SettleBatchSerializer,
    SettlementResultSerializer,
)
from lis_core.billing.selectors import (
    order_payment_summary,
    pending_payment_orders,
    referred_lab_balance_across_orders,
    referred_lab_order_summary,
)
from lis_core.billing.services import (
    AdmissionSettlementService,
    PaymentService,
    ReferredLabPaymentService,
)
from lis_core.common.api.pagination import paginate
from lis_core.common.idempotency import idempotent
from lis_core.common.permissions import PaymentPermission, ReferredLabPaymentPermission
from lis_core.orders.api.serializers import LabOrderSerializer
from lis_core.orders.selectors import get_order


class OrderPaymentsView(APIView):
    """
    /orders/<order_id>/payments/
    - GET ledger rows plus the derived summary
    - POST record a payment
    """
    permission_classes = [PaymentPermission]

    @extend_schema(tags=["Billing"], responses={200: PaymentLedgerSerializer})
    def get(self, request, order_id: UUID):
        order = get_order(order_id=order_id)
        payload = {
            "summary": order_payment_summary(order),
            "payments": order.payments.select_related("recorded_by").order_by("paid_at", "created_at"),
        }
        return Response(PaymentLedgerSerializer(payload).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Billing"], request=PaymentCreateSerializer, responses={201: PaymentReceiptSerializer})
    def post(self, request, order_id: UUID):
        with idempotent(request) as idem:
            if idem.cached is not None:
                return Response(idem.cached, status=status.HTTP_201_CREATED)

            ser = PaymentCreateSerializer(data=request.data)
            ser.is_valid(raise_exception=True)

            receipt = PaymentService.record_payment(
                order_id=order_id,
                amount=ser.validated_data["amount"],
                method=ser.validated_data.get("method"),
                notes=ser.validated_data.get("notes", ""),
                paid_at=ser.validated_data.get("paid_at"),
                recorded_by=request.user,
            )

            out = PaymentReceiptSerializer(receipt).data
            idem.save(out, status_code=201)
        return Response(out, status=status.HTTP_201_CREATED)


class OrderReferredLabPaymentsView(APIView):
    """
    /orders/<order_id>/referred-lab-payments/
    - GET per-lab cost/paid/balance plus ledger rows
    - POST record a payment to an external lab
    """
    permission_classes = [ReferredLabPaymentPermission]

    @extend_schema(tags=["Billing"], responses={200: ReferredLabLedgerSerializer})
    def get(self, request, order_id: UUID):
        order = get_order(order_id=order_id)
        payload = {
            "summary": referred_lab_order_summary(order),
            "payments": order.referred_lab_payments.select_related("referred_lab").order_by("paid_at", "created_at"),
        }
        return Response(ReferredLabLedgerSerializer(payload).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Billing"],
        request=ReferredLabPaymentCreateSerializer,
        responses={201: ReferredLabReceiptSerializer},
    )
    def post(self, request, order_id: UUID):
        with idempotent(request) as idem:
            if idem.cached is not None:
                return Response(idem.cached, status=status.HTTP_201_CREATED)

            ser = ReferredLabPaymentCreateSerializer(data=request.data)
            ser.is_valid(raise_exception=True)

            receipt = ReferredLabPaymentService.record_payment(
                order_id=order_id,
                referred_lab_id=ser.validated_data["referred_lab_id"],
                amount=ser.validated_data["amount"],
                notes=ser.validated_data.get("notes", ""),
                paid_at=ser.validated_data.get("paid_at"),
                recorded_by=request.user,
            )

            out = ReferredLabReceiptSerializer(receipt).data
            idem.save(out, status_code=201)
        return Response(out, status=status.HTTP_201_CREATED)


class PendingPaymentsView(APIView):
    """Orders that still owe money (PENDIENTE or PARCIAL)."""
    permission_classes = [PaymentPermission]

    @extend_schema(tags=["Billing"], responses={200: LabOrderSerializer(many=True)})
    def get(self, request):
        return paginate(request, pending_payment_orders(), LabOrderSerializer)


class SettleAdmissionBatchView(APIView):
    permission_classes = [PaymentPermission]

    @extend_schema(tags=["Billing"], request=SettleBatchSerializer, responses={200: SettlementResultSerializer})
    def post(self, request):
        ser = SettleBatchSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = AdmissionSettlementService.settle_batch(
            order_ids=ser.validated_data["order_ids"],
            actor_user_id=request.user.id,
        )
        return Response(SettlementResultSerializer(result).data, status=status.HTTP_200_OK)


class ReferredLabBalanceView(APIView):
    """What the clinic owes one external lab across all orders."""
    permission_classes = [PaymentPermission]

    @extend_schema(tags=["Billing"], responses={200: LabBalanceSerializer})
    def get(self, request, lab_id: UUID):
        balance = referred_lab_balance_across_orders(lab_id)
        return Response(LabBalanceSerializer(balance).data, status=status.HTTP_200_OK)
