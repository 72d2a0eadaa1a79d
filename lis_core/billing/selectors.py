# lis_core/billing/selectors.py
"""
Read side of both payment ledgers.

Nothing here reads a stored "paid" counter: every paid amount, balance and
payment status is re-derived from Payment / ReferredLabPayment rows.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from django.db.models import DecimalField, ExpressionWrapper, F, OuterRef, Q, QuerySet, Subquery, Sum, Value
from django.db.models.functions import Coalesce

from lis_core.billing.models import Payment, PaymentStatus, ReferredLabPayment
from lis_core.catalog.models import ReferredLab
from lis_core.common.api.exceptions import NotFoundError
from lis_core.common.money import EPSILON, ZERO, money_sum, non_negative, to_money
from lis_core.orders.models import LabOrder, LabOrderItem, OrderSource, OrderStatus
from lis_core.orders.pricing import effective_external_cost, effective_referred_lab_id
from lis_core.orders.selectors import orders_qs

_MONEY = DecimalField(max_digits=14, decimal_places=2)


def classify_payment_status(total: Decimal, paid: Decimal) -> str:
    """PENDIENTE if nothing paid, PARCIAL while short by more than EPSILON, else PAGADO."""
    if paid <= ZERO:
        return PaymentStatus.PENDIENTE
    if paid + EPSILON < total:
        return PaymentStatus.PARCIAL
    return PaymentStatus.PAGADO


# -------------------------------------------------------------------
# Patient payments
# -------------------------------------------------------------------

def paid_total(order_id: UUID) -> Decimal:
    total = Payment.objects.filter(order_id=order_id).aggregate(s=Sum("amount"))["s"]
    return to_money(total or ZERO)


def with_paid_total(qs: QuerySet[LabOrder]) -> QuerySet[LabOrder]:
    """Annotate ``paid_total_db`` and ``outstanding_db`` in one query."""
    paid = (
        Payment.objects.filter(order=OuterRef("pk"))
        .order_by()
        .values("order")
        .annotate(s=Sum("amount"))
        .values("s")[:1]
    )
    return qs.annotate(
        paid_total_db=Coalesce(Subquery(paid, output_field=_MONEY), Value(ZERO, output_field=_MONEY)),
    ).annotate(
        outstanding_db=ExpressionWrapper(F("total_price") - F("paid_total_db"), output_field=_MONEY),
    )


def filter_by_payment_status(qs: QuerySet[LabOrder], payment_status: str) -> QuerySet[LabOrder]:
    """Same thresholds as ``classify_payment_status``, expressed in SQL."""
    if "paid_total_db" not in qs.query.annotations:
        qs = with_paid_total(qs)

    if payment_status == PaymentStatus.PENDIENTE:
        return qs.filter(paid_total_db__lte=0)
    if payment_status == PaymentStatus.PARCIAL:
        return qs.filter(paid_total_db__gt=0, outstanding_db__gt=EPSILON)
    if payment_status == PaymentStatus.PAGADO:
        return qs.filter(paid_total_db__gt=0, outstanding_db__lte=EPSILON)
    return qs.none()


@dataclass(frozen=True)
class PaymentSummary:
    order_id: UUID
    total_price: Decimal
    paid_total: Decimal
    balance: Decimal
    payment_status: str


def order_payment_summary(order: LabOrder) -> PaymentSummary:
    paid = paid_total(order.id)
    total = to_money(order.total_price)
    return PaymentSummary(
        order_id=order.id,
        total_price=total,
        paid_total=paid,
        balance=non_negative(total - paid),
        payment_status=classify_payment_status(total, paid),
    )


def pending_payment_orders(limit: int | None = None) -> QuerySet[LabOrder]:
    """Orders still owing money (PENDIENTE or PARCIAL), newest first."""
    base = with_paid_total(orders_qs().exclude(status=OrderStatus.ANULADO)).order_by("-created_at")
    qs = base.filter(Q(paid_total_db__lte=0) | Q(outstanding_db__gt=EPSILON)).exclude(total_price__lte=0)
    return qs[:limit] if limit else qs


def convention_total(order: LabOrder) -> Decimal:
    """What the referring admission desk owes: convention price, else the item price."""
    return money_sum(
        item.price_convention_snapshot if item.price_convention_snapshot is not None else item.price_snapshot
        for item in order.items.all()
    )


def admission_orders_for_settlement(order_ids: Iterable[UUID]) -> QuerySet[LabOrder]:
    return LabOrder.objects.select_for_update().filter(
        id__in=list(order_ids),
        order_source=OrderSource.ADMISION,
        admission_settled_at__isnull=True,
    ).exclude(status=OrderStatus.ANULADO)


# -------------------------------------------------------------------
# Referred-lab payments
# -------------------------------------------------------------------

def referred_lab_cost_by_lab(order: LabOrder) -> dict[UUID, Decimal]:
    """External cost owed per lab, using each item's effective referral."""
    costs: dict[UUID, Decimal] = {}
    for item in LabOrderItem.objects.filter(order_id=order.id).select_related("lab_test"):
        lab_id = effective_referred_lab_id(item)
        if lab_id is None:
            continue
        costs[lab_id] = to_money(costs.get(lab_id, ZERO) + effective_external_cost(item))
    return costs


def referred_lab_paid_by_lab(order_id: UUID) -> dict[UUID, Decimal]:
    rows = (
        ReferredLabPayment.objects.filter(order_id=order_id)
        .order_by()
        .values("referred_lab_id")
        .annotate(s=Sum("amount"))
    )
    return {r["referred_lab_id"]: to_money(r["s"]) for r in rows}


@dataclass(frozen=True)
class ReferredLabBalance:
    referred_lab_id: UUID
    referred_lab_name: str
    cost: Decimal
    paid: Decimal
    balance: Decimal


@dataclass(frozen=True)
class ReferredLabOrderSummary:
    order_id: UUID
    labs: list[ReferredLabBalance] = field(default_factory=list)
    total_cost: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_balance: Decimal = ZERO


def referred_lab_order_summary(order: LabOrder) -> ReferredLabOrderSummary:
    costs = referred_lab_cost_by_lab(order)
    paid = referred_lab_paid_by_lab(order.id)
    lab_ids = list(dict.fromkeys([*costs, *paid]))
    names = dict(ReferredLab.objects.filter(id__in=lab_ids).values_list("id", "name"))

    labs = [
        ReferredLabBalance(
            referred_lab_id=lab_id,
            referred_lab_name=names.get(lab_id, ""),
            cost=costs.get(lab_id, ZERO),
            paid=paid.get(lab_id, ZERO),
            balance=non_negative(costs.get(lab_id, ZERO) - paid.get(lab_id, ZERO)),
        )
        for lab_id in lab_ids
    ]
    return ReferredLabOrderSummary(
        order_id=order.id,
        labs=labs,
        total_cost=money_sum(b.cost for b in labs),
        total_paid=money_sum(b.paid for b in labs),
        total_balance=money_sum(b.balance for b in labs),
    )


@dataclass(frozen=True)
class OrderLabBalance:
    order_id: UUID
    order_code: str
    cost: Decimal
    paid: Decimal
    balance: Decimal


@dataclass(frozen=True)
class LabBalance:
    referred_lab_id: UUID
    referred_lab_name: str
    total_cost: Decimal
    total_paid: Decimal
    balance: Decimal
    orders: list[OrderLabBalance]


def referred_lab_balance_across_orders(lab_id: UUID) -> LabBalance:
    """What the clinic owes one external lab, grouped over every order."""
    lab = ReferredLab.objects.filter(id=lab_id).first()
    if lab is None:
        raise NotFoundError("Referred lab not found.", details={"referred_lab_id": str(lab_id)})

    cost_rows = (
        LabOrderItem.objects.filter(
            Q(referred_lab_id=lab_id) | Q(referred_lab__isnull=True, lab_test__referred_lab_id=lab_id),
            lab_test__is_referred=True,
        )
        .order_by()
        .values("order_id", "order__order_code")
        .annotate(
            cost=Sum(
                Coalesce(
                    "external_lab_cost_snapshot",
                    "lab_test__external_lab_cost",
                    Value(ZERO, output_field=_MONEY),
                    output_field=_MONEY,
                )
            )
        )
    )
    paid_rows = (
        ReferredLabPayment.objects.filter(referred_lab_id=lab_id)
        .order_by()
        .values("order_id", "order__order_code")
        .annotate(s=Sum("amount"))
    )

    codes: dict[UUID, str] = {}
    costs: dict[UUID, Decimal] = {}
    paid: dict[UUID, Decimal] = {}
    for row in cost_rows:
        codes[row["order_id"]] = row["order__order_code"]
        costs[row["order_id"]] = to_money(row["cost"] or ZERO)
    for row in paid_rows:
        codes[row["order_id"]] = row["order__order_code"]
        paid[row["order_id"]] = to_money(row["s"] or ZERO)

    orders = [
        OrderLabBalance(
            order_id=order_id,
            order_code=code,
            cost=costs.get(order_id, ZERO),
            paid=paid.get(order_id, ZERO),
            balance=non_negative(costs.get(order_id, ZERO) - paid.get(order_id, ZERO)),
        )
        for order_id, code in sorted(codes.items(), key=lambda kv: kv[1])
    ]
    total_cost = money_sum(o.cost for o in orders)
    total_paid = money_sum(o.paid for o in orders)
    return LabBalance(
        referred_lab_id=lab.id,
        referred_lab_name=lab.name,
        total_cost=total_cost,
        total_paid=total_paid,
        balance=non_negative(total_cost - total_paid),
        orders=orders,
    )
