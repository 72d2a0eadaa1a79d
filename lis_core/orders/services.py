# lis_core/orders/services.py
from __future__ import annotations

import logging
from copy import deepcopy
from datetime import date, datetime
from typing import Iterable
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.db.models import Max, Sum
from django.utils import timezone

from lis_core.admissions.models import AdmissionRequest, AdmissionStatus
from lis_core.audit.services import AuditService
from lis_core.billing.selectors import paid_total, referred_lab_cost_by_lab, referred_lab_paid_by_lab
from lis_core.branches.selectors import require_branch
from lis_core.catalog.selectors import template_for
from lis_core.common.api.exceptions import InvalidStateError, ValidationFailed
from lis_core.common.codes import allocate_code, day_prefix
from lis_core.common.dates import clinic_today, parse_clinic_datetime, start_of_clinic_day
from lis_core.common.money import ZERO, exceeds, to_money
from lis_core.orders.models import (
    LabOrder,
    LabOrderItem,
    OrderItemStatus,
    OrderSource,
    OrderStatus,
)
from lis_core.orders.pricing import (
    ResolvedItem,
    default_referral,
    effective_referred_lab_id,
    referral_for_lab,
    resolve_items,
    total_price,
)
from lis_core.orders.selectors import get_order, get_order_item, lock_order
from lis_core.orders.snapshots import build_template_snapshot, merge_template_snapshot
from lis_core.patients.services import PatientService

logger = logging.getLogger(__name__)


def _item_from(order: LabOrder, item: ResolvedItem) -> LabOrderItem:
    referral = item.referral
    return LabOrderItem(
        order=order,
        lab_test=item.lab_test,
        position=item.position,
        price_snapshot=to_money(item.price_applied),
        price_convention_snapshot=item.price_convention,
        referred_lab_id=referral.referred_lab_id if referral else None,
        external_lab_cost_snapshot=referral.external_lab_cost if referral else None,
        template_snapshot=build_template_snapshot(item.lab_test),
        promotion=item.promotion,
        promotion_name=item.promotion_name,
        status=OrderItemStatus.PENDIENTE,
    )


class OrderService:
    """
    Write-model operations for lab orders.
    Every mutation that touches items recomputes ``total_price`` from the
    item price snapshots.
    """

    @staticmethod
    def materialize(
        *,
        code: str,
        patient_id: UUID,
        items: list[ResolvedItem],
        source: str,
        branch_id: UUID | None = None,
        patient_type: str = "",
        requested_by: str = "",
        notes: str = "",
        admission_request: AdmissionRequest | None = None,
        created_at: datetime | None = None,
        created_by=None,
    ) -> LabOrder:
        """Insert an order and its items. Callers own the transaction and the code."""
        order = LabOrder.objects.create(
            order_code=code,
            patient_id=patient_id,
            branch_id=branch_id,
            status=OrderStatus.PENDIENTE,
            order_source=source,
            patient_type=patient_type or "",
            total_price=total_price(items),
            requested_by=requested_by or "",
            notes=notes or "",
            admission_request=admission_request,
            created_at=created_at or timezone.now(),
            created_by=created_by,
        )
        LabOrderItem.objects.bulk_create([_item_from(order, item) for item in items])
        return order

    @staticmethod
    def _recalc_total(order: LabOrder) -> None:
        total = order.items.aggregate(s=Sum("price_snapshot"))["s"] or ZERO
        order.total_price = to_money(total)
        order.save(update_fields=["total_price", "updated_at"])

    @staticmethod
    def _ensure_not_cancelled(order: LabOrder, message: str) -> None:
        if order.status == OrderStatus.ANULADO:
            raise InvalidStateError(message, details={"order_code": order.order_code})

    @staticmethod
    def _ensure_ledgers_fit(order: LabOrder, referred_lab_ids: Iterable[UUID | None] = ()) -> None:
        """Paid amounts may never exceed what the order now owes."""
        paid = paid_total(order.id)
        if exceeds(paid, order.total_price):
            raise InvalidStateError(
                f"Order {order.order_code} already has {paid} paid; the total cannot drop to {order.total_price}.",
                details={"paid_total": str(paid), "total_price": str(order.total_price)},
            )

        costs = referred_lab_cost_by_lab(order)
        paid_by_lab = referred_lab_paid_by_lab(order.id)
        for lab_id in referred_lab_ids:
            if lab_id is None:
                continue
            lab_paid = paid_by_lab.get(lab_id, ZERO)
            if exceeds(lab_paid, costs.get(lab_id, ZERO)):
                raise InvalidStateError(
                    f"{lab_paid} was already paid to this referred lab on order {order.order_code}.",
                    details={"referred_lab_id": str(lab_id), "paid": str(lab_paid)},
                )

    @staticmethod
    @transaction.atomic
    def create_order(
        *,
        patient_id: UUID | None = None,
        patient_draft: dict | None = None,
        test_ids: Iterable[UUID] = (),
        profile_ids: Iterable[UUID] = (),
        order_date: date | None = None,
        branch_id: UUID | None = None,
        patient_type: str = "",
        requested_by: str = "",
        notes: str = "",
        actor=None,
    ) -> LabOrder:
        """
        Lab-originated order. ``order_date`` backdates the order (code prefix and
        ``created_at``) to an earlier clinic day.
        """
        require_branch(branch_id)
        patient = PatientService.resolve_or_register(patient_id=patient_id, draft=patient_draft)
        items = resolve_items(test_ids=test_ids, profile_ids=profile_ids)

        today = clinic_today()
        day = order_date or today
        if day > today:
            raise ValidationFailed("Orders cannot be dated in the future.", details={"order_date": str(day)})
        created_at = timezone.now() if day == today else start_of_clinic_day(day)

        order = allocate_code(
            model=LabOrder,
            field="order_code",
            prefix=day_prefix(settings.LIS_ORDER_CODE_PREFIX, day),
            create=lambda code: OrderService.materialize(
                code=code,
                patient_id=patient.id,
                items=items,
                source=OrderSource.LABORATORIO,
                branch_id=branch_id,
                patient_type=patient_type,
                requested_by=requested_by,
                notes=notes,
                created_at=created_at,
                created_by=actor,
            ),
        )
        logger.info("Lab order %s created with %s items", order.order_code, len(items))
        return order

    @staticmethod
    @transaction.atomic
    def repeat_order(
        *,
        order_id: UUID,
        patient_id: UUID | None = None,
        requested_by: str | None = None,
        notes: str | None = None,
        actor=None,
    ) -> LabOrder:
        """
        New lab order with the same analyses as ``order_id``, optionally for
        another patient. Prices, referrals and template snapshots are copied
        as they were on the original order; the catalog is not re-read.
        """
        source = get_order(order_id=order_id)
        source_items = list(source.items.order_by("position"))
        if not source_items:
            raise ValidationFailed(
                f"Order {source.order_code} has no analyses to repeat.",
                details={"order_code": source.order_code},
            )

        patient = PatientService.resolve_or_register(patient_id=patient_id) if patient_id else source.patient

        def _create(code: str) -> LabOrder:
            order = OrderService.materialize(
                code=code,
                patient_id=patient.id,
                items=[],
                source=OrderSource.LABORATORIO,
                branch_id=source.branch_id,
                patient_type=source.patient_type,
                requested_by=source.requested_by if requested_by is None else requested_by,
                notes=source.notes if notes is None else notes,
                created_by=actor,
            )
            LabOrderItem.objects.bulk_create(
                [
                    LabOrderItem(
                        order=order,
                        lab_test_id=item.lab_test_id,
                        position=item.position,
                        price_snapshot=item.price_snapshot,
                        referred_lab_id=item.referred_lab_id,
                        external_lab_cost_snapshot=item.external_lab_cost_snapshot,
                        template_snapshot=deepcopy(item.template_snapshot),
                        promotion_id=item.promotion_id,
                        promotion_name=item.promotion_name,
                        status=OrderItemStatus.PENDIENTE,
                    )
                    for item in source_items
                ]
            )
            OrderService._recalc_total(order)
            return order

        order = allocate_code(
            model=LabOrder,
            field="order_code",
            prefix=day_prefix(settings.LIS_ORDER_CODE_PREFIX, clinic_today()),
            create=_create,
        )
        logger.info(
            "Order %s repeated as %s",
            source.order_code,
            order.order_code,
            extra={"source_order_id": str(source.id), "order_id": str(order.id)},
        )
        return order

    @staticmethod
    @transaction.atomic
    def add_items(*, order_id: UUID, test_ids: Iterable[UUID]) -> LabOrder:
        order = lock_order(order_id=order_id)
        OrderService._ensure_not_cancelled(order, "Analyses cannot be added to a cancelled order.")

        existing = set(order.items.values_list("lab_test_id", flat=True))
        wanted = [t for t in dict.fromkeys(test_ids) if t not in existing]
        if not wanted:
            raise ValidationFailed("All requested analyses are already on the order.")

        items = resolve_items(test_ids=wanted, for_admission=order.order_source == OrderSource.ADMISION)

        start = (order.items.aggregate(m=Max("position"))["m"] or 0) + 1
        for offset, item in enumerate(items):
            item.position = start + offset
        LabOrderItem.objects.bulk_create([_item_from(order, item) for item in items])

        if order.status == OrderStatus.COMPLETADO:
            order.status = OrderStatus.EN_PROCESO
            order.save(update_fields=["status", "updated_at"])

        OrderService._recalc_total(order)
        return order

    @staticmethod
    @transaction.atomic
    def remove_item(*, order_id: UUID, item_id: UUID) -> LabOrder:
        order = lock_order(order_id=order_id)
        OrderService._ensure_not_cancelled(order, "Analyses cannot be removed from a cancelled order.")

        item = get_order_item(order_id=order.id, item_id=item_id)
        referred_lab_id = effective_referred_lab_id(item)
        item.delete()  # cascades to its result

        OrderService._recalc_total(order)
        OrderService._ensure_ledgers_fit(order, [referred_lab_id])
        return order

    @staticmethod
    @transaction.atomic
    def update_order(
        *,
        order_id: UUID,
        status: str | None = None,
        notes: str | None = None,
        requested_by: str | None = None,
        delivered_at=None,
    ) -> LabOrder:
        order = lock_order(order_id=order_id)

        if order.status == OrderStatus.ANULADO and status and status != OrderStatus.ANULADO:
            raise InvalidStateError(
                f"Order {order.order_code} is cancelled and cannot be reopened.",
                details={"order_code": order.order_code},
            )

        update_fields = ["updated_at"]
        if status:
            order.status = status
            update_fields.append("status")
            if status == OrderStatus.ENTREGADO and delivered_at is None and order.delivered_at is None:
                order.delivered_at = timezone.now()
                update_fields.append("delivered_at")
        if delivered_at is not None:
            order.delivered_at = parse_clinic_datetime(delivered_at, field="delivered_at")
            update_fields.append("delivered_at")
        if notes is not None:
            order.notes = notes
            update_fields.append("notes")
        if requested_by is not None:
            order.requested_by = requested_by
            update_fields.append("requested_by")

        order.save(update_fields=list(dict.fromkeys(update_fields)))
        return order

    @staticmethod
    @transaction.atomic
    def delete_order(*, order_id: UUID, actor_user_id: int | None = None) -> None:
        """
        Delete an order with its items, results and ledger rows. An order that
        came from an admission sends that admission back to PENDIENTE.
        """
        order = lock_order(order_id=order_id)
        admission_id = order.admission_request_id

        if admission_id:
            AdmissionRequest.objects.filter(id=admission_id).update(
                status=AdmissionStatus.PENDIENTE,
                converted_order=None,
                converted_at=None,
                updated_at=timezone.now(),
            )

        code = order.order_code
        order_pk = order.id
        order.delete()

        logger.info("Lab order %s deleted", code, extra={"admission_request_id": str(admission_id or "")})
        AuditService.log_on_commit(
            event_code="order.deleted",
            entity_type="LabOrder",
            entity_id=order_pk,
            actor_user_id=actor_user_id,
            metadata={
                "order_code": code,
                "admission_request_id": str(admission_id) if admission_id else None,
            },
        )

    @staticmethod
    @transaction.atomic
    def set_item_referred_lab(
        *,
        order_id: UUID,
        item_id: UUID,
        referred_lab_id: UUID | None = None,
    ) -> LabOrderItem:
        """
        Send a referred analysis to another configured lab (or back to the
        default one) and re-snapshot the external cost.
        """
        order = lock_order(order_id=order_id)
        item = get_order_item(order_id=order.id, item_id=item_id)
        test = item.lab_test

        if not test.is_referred:
            raise ValidationFailed(
                f"{test.name} is not a referred analysis.",
                details={"lab_test_id": str(test.id)},
            )

        if referred_lab_id:
            referral = referral_for_lab(test, referred_lab_id)
            if referral is None:
                raise ValidationFailed(
                    f"The selected lab is not configured for {test.name}.",
                    details={"referred_lab_id": str(referred_lab_id)},
                )
        else:
            referral = default_referral(test)

        previous_lab_id = effective_referred_lab_id(item)
        item.referred_lab_id = referral.referred_lab_id
        item.external_lab_cost_snapshot = referral.external_lab_cost
        item.save(update_fields=["referred_lab", "external_lab_cost_snapshot", "updated_at"])

        OrderService._ensure_ledgers_fit(order, [previous_lab_id])
        return item

    @staticmethod
    @transaction.atomic
    def update_template_snapshot(
        *,
        order_id: UUID,
        item_id: UUID,
        title: str | None = None,
        notes: str | None = None,
        parameters: list[dict] | None = None,
    ) -> LabOrderItem:
        lock_order(order_id=order_id)
        item = get_order_item(order_id=order_id, item_id=item_id)

        item.template_snapshot = merge_template_snapshot(
            previous=item.template_snapshot,
            template=template_for(item.lab_test),
            title=title,
            notes=notes,
            parameters=parameters,
        )
        item.save(update_fields=["template_snapshot", "updated_at"])
        return item
