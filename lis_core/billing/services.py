# lis_core/billing/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from lis_core.audit.services import AuditService
from lis_core.billing.models import Payment, PaymentMethod, ReferredLabPayment
from lis_core.billing.selectors import (
    admission_orders_for_settlement,
    classify_payment_status,
    convention_total,
    paid_total,
    referred_lab_cost_by_lab,
    referred_lab_paid_by_lab,
)
from lis_core.catalog.models import ReferredLab
from lis_core.common.api.exceptions import (
    BalanceExceededError,
    InvalidStateError,
    NotFoundError,
    ValidationFailed,
)
from lis_core.common.dates import parse_clinic_datetime
from lis_core.common.money import ZERO, exceeds, money_sum, non_negative, to_money
from lis_core.orders.models import LabOrder, OrderStatus
from lis_core.orders.selectors import lock_order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentReceipt:
    payment: Payment
    paid_total: Decimal
    balance: Decimal
    payment_status: str


@dataclass(frozen=True)
class ReferredLabReceipt:
    payment: ReferredLabPayment
    paid_total: Decimal
    balance: Decimal


def _positive_amount(amount) -> Decimal:
    # Compared unrounded: a sub-cent amount is still positive
    try:
        amount = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationFailed("Payment amount must be a number.", details={"amount": str(amount)})
    if not amount.is_finite() or amount <= ZERO:
        raise ValidationFailed("Payment amount must be greater than zero.", details={"amount": str(amount)})
    return amount


def _whole_cents(amount: Decimal) -> Decimal:
    if to_money(amount) != amount:
        raise ValidationFailed("Payment amounts are recorded in whole cents.", details={"amount": str(amount)})
    return to_money(amount)


def _payment_method(method) -> str:
    method = method or PaymentMethod.EFECTIVO
    if method not in PaymentMethod.values:
        raise ValidationFailed(
            f"Unknown payment method {method}.",
            details={"method": str(method), "allowed": list(PaymentMethod.values)},
        )
    return method


def _paid_at(value):
    return timezone.now() if value in (None, "") else parse_clinic_datetime(value, field="paid_at")


def _ensure_payable(order: LabOrder) -> None:
    if order.status == OrderStatus.ANULADO:
        raise InvalidStateError(
            f"Order {order.order_code} is cancelled and cannot receive payments.",
            details={"order_code": order.order_code},
        )


class PaymentService:
    @staticmethod
    @transaction.atomic
    def record_payment(
        *,
        order_id: UUID,
        amount: Decimal,
        method: str = PaymentMethod.EFECTIVO,
        notes: str = "",
        paid_at=None,
        recorded_by=None,
    ) -> PaymentReceipt:
        """
        Register a patient payment.

        The order row stays locked until commit and the paid total is summed
        from the ledger after the lock, so concurrent registrations for the
        same order are checked one after the other.
        """
        amount = _positive_amount(amount)
        method = _payment_method(method)
        order = lock_order(order_id=order_id)
        _ensure_payable(order)

        already_paid = paid_total(order.id)
        balance = non_negative(to_money(order.total_price) - already_paid)
        if exceeds(amount, balance):
            raise BalanceExceededError(
                f"Payment of {amount} exceeds the outstanding balance of {balance} on order {order.order_code}.",
                details={"amount": str(amount), "balance": str(balance), "order_code": order.order_code},
            )
        amount = _whole_cents(amount)

        payment = Payment.objects.create(
            order=order,
            amount=amount,
            method=method,
            notes=(notes or "")[:300],
            paid_at=_paid_at(paid_at),
            recorded_by=recorded_by,
        )

        new_paid = to_money(already_paid + amount)
        new_balance = non_negative(to_money(order.total_price) - new_paid)
        actor_id = getattr(recorded_by, "id", None)

        logger.info(
            "Payment of %s (%s) recorded on order %s",
            amount,
            method,
            order.order_code,
            extra={"order_id": str(order.id), "amount": str(amount), "method": method, "actor_user_id": actor_id},
        )
        AuditService.log_on_commit(
            event_code="payment.recorded",
            entity_type="LabOrder",
            entity_id=order.id,
            actor_user_id=actor_id,
            metadata={
                "payment_id": str(payment.id),
                "order_code": order.order_code,
                "amount": str(amount),
                "method": method,
            },
        )
        return PaymentReceipt(
            payment=payment,
            paid_total=new_paid,
            balance=new_balance,
            payment_status=classify_payment_status(to_money(order.total_price), new_paid),
        )


class ReferredLabPaymentService:
    @staticmethod
    @transaction.atomic
    def record_payment(
        *,
        order_id: UUID,
        referred_lab_id: UUID,
        amount: Decimal,
        notes: str = "",
        paid_at=None,
        recorded_by=None,
    ) -> ReferredLabReceipt:
        """
        Register what the clinic paid an external lab for this order's
        referred work. Independent from the patient ledger.
        """
        amount = _positive_amount(amount)
        order = lock_order(order_id=order_id)

        lab = ReferredLab.objects.filter(id=referred_lab_id).first()
        if lab is None:
            raise NotFoundError("Referred lab not found.", details={"referred_lab_id": str(referred_lab_id)})

        cost = referred_lab_cost_by_lab(order).get(lab.id, ZERO)
        if cost <= ZERO:
            raise ValidationFailed(
                f"Order {order.order_code} has no referred work for {lab.name}.",
                details={"order_code": order.order_code, "referred_lab_id": str(lab.id)},
            )

        already_paid = referred_lab_paid_by_lab(order.id).get(lab.id, ZERO)
        balance = non_negative(cost - already_paid)
        if exceeds(amount, balance):
            raise BalanceExceededError(
                f"Payment of {amount} exceeds the {balance} still owed to {lab.name} on order {order.order_code}.",
                details={"amount": str(amount), "balance": str(balance), "referred_lab_id": str(lab.id)},
            )
        amount = _whole_cents(amount)

        payment = ReferredLabPayment.objects.create(
            order=order,
            referred_lab=lab,
            amount=amount,
            notes=(notes or "")[:300],
            paid_at=_paid_at(paid_at),
            recorded_by=recorded_by,
        )

        new_paid = to_money(already_paid + amount)
        actor_id = getattr(recorded_by, "id", None)
        logger.info(
            "Referred lab payment of %s to %s recorded on order %s",
            amount,
            lab.name,
            order.order_code,
            extra={"order_id": str(order.id), "referred_lab_id": str(lab.id), "actor_user_id": actor_id},
        )
        AuditService.log_on_commit(
            event_code="referred_lab_payment.recorded",
            entity_type="LabOrder",
            entity_id=order.id,
            actor_user_id=actor_id,
            metadata={
                "payment_id": str(payment.id),
                "referred_lab_id": str(lab.id),
                "amount": str(amount),
            },
        )
        return ReferredLabReceipt(payment=payment, paid_total=new_paid, balance=non_negative(cost - new_paid))


@dataclass(frozen=True)
class SettlementResult:
    settled_order_ids: list[UUID]
    settled_total: Decimal


class AdmissionSettlementService:
    @staticmethod
    @transaction.atomic
    def settle_batch(*, order_ids: Iterable[UUID], actor_user_id: int | None = None) -> SettlementResult:
        """
        Mark admission orders as settled with the referring desk. Orders that
        are cancelled, lab-originated or already settled are skipped.
        """
        order_ids = list(dict.fromkeys(order_ids))
        if not order_ids:
            raise ValidationFailed("Select at least one order to settle.")

        orders = list(admission_orders_for_settlement(order_ids).prefetch_related("items"))
        now = timezone.now()
        for order in orders:
            order.admission_settled_at = now
        LabOrder.objects.bulk_update(orders, ["admission_settled_at"])

        settled_total = money_sum(convention_total(o) for o in orders)
        settled_ids = [o.id for o in orders]

        logger.info("Settled %s admission orders for %s", len(orders), settled_total)
        for order in orders:
            AuditService.log_on_commit(
                event_code="admission.settled",
                entity_type="LabOrder",
                entity_id=order.id,
                actor_user_id=actor_user_id,
                metadata={"order_code": order.order_code},
            )
        return SettlementResult(settled_order_ids=settled_ids, settled_total=settled_total)
