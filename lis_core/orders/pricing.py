# lis_core/orders/pricing.py
"""
Per-item pricing for admissions and lab orders.

Nullable pricing fields resolve in one place, in this order:

* convention price: test ``price_to_admission`` -> test ``price``
* referral of a new item: default referred-lab option -> test ``referred_lab`` -> none
* external cost of a new item: option cost -> test ``external_lab_cost`` -> none
* effective referral of a stored item: item snapshot -> test catalog default -> none
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from lis_core.catalog.models import LabTest, Profile
from lis_core.catalog.selectors import active_profiles, available_tests_by_id
from lis_core.common.api.exceptions import CapabilityDenied, ValidationFailed
from lis_core.common.money import ZERO, differs, money_sum, split_evenly, to_money


@dataclass(frozen=True)
class PriceAdjustment:
    lab_test_id: UUID
    price_applied: Decimal
    reason: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "PriceAdjustment":
        return cls(
            lab_test_id=UUID(str(data["lab_test_id"])),
            price_applied=to_money(data["price_applied"]),
            reason=(data.get("adjustment_reason") or data.get("reason") or "").strip(),
        )


@dataclass(frozen=True)
class Referral:
    referred_lab_id: UUID | None
    external_lab_cost: Decimal | None


@dataclass
class ResolvedItem:
    lab_test: LabTest
    position: int
    price_base: Decimal
    price_applied: Decimal
    adjustment_reason: str = ""
    price_convention: Decimal | None = None
    referral: Referral | None = None
    promotion: Profile | None = None
    promotion_name: str = ""

    @property
    def is_adjusted(self) -> bool:
        return differs(self.price_applied, self.price_base)


# -------------------------------------------------------------------
# Fallback helpers
# -------------------------------------------------------------------

def convention_price(test: LabTest) -> Decimal:
    if test.price_to_admission is not None:
        return to_money(test.price_to_admission)
    return to_money(test.price)


def default_referral(test: LabTest) -> Referral | None:
    if not test.is_referred:
        return None

    options = list(test.referred_lab_options.all())
    option = next((o for o in options if o.is_default), None)
    if option is not None:
        cost = option.external_lab_cost if option.external_lab_cost is not None else test.external_lab_cost
        return Referral(referred_lab_id=option.referred_lab_id, external_lab_cost=cost)

    return Referral(referred_lab_id=test.referred_lab_id, external_lab_cost=test.external_lab_cost)


def referral_for_lab(test: LabTest, referred_lab_id: UUID) -> Referral | None:
    """The referral a test gets when sent to a specific lab, or None if not allowed."""
    for option in test.referred_lab_options.all():
        if option.referred_lab_id == referred_lab_id:
            cost = option.external_lab_cost if option.external_lab_cost is not None else test.external_lab_cost
            return Referral(referred_lab_id=referred_lab_id, external_lab_cost=cost)
    if test.referred_lab_id == referred_lab_id:
        return Referral(referred_lab_id=referred_lab_id, external_lab_cost=test.external_lab_cost)
    return None


def effective_referred_lab_id(item) -> UUID | None:
    # A test brought back in-house owes nothing to an external lab
    if not item.lab_test.is_referred:
        return None
    if item.referred_lab_id is not None:
        return item.referred_lab_id
    return item.lab_test.referred_lab_id


def effective_external_cost(item) -> Decimal:
    if item.external_lab_cost_snapshot is not None:
        return to_money(item.external_lab_cost_snapshot)
    if item.lab_test.external_lab_cost is not None:
        return to_money(item.lab_test.external_lab_cost)
    return ZERO


def check_price_adjustment(
    *,
    lab_test: LabTest,
    price_base: Decimal,
    price_applied: Decimal,
    can_adjust_price: bool,
) -> None:
    """
    Reject a changed price for callers without the adjustment capability.
    The value is compared, not whether an adjustment was sent.
    """
    if price_applied < ZERO:
        raise ValidationFailed(
            f"Applied price for {lab_test.name} cannot be negative.",
            details={"lab_test_id": str(lab_test.id)},
        )
    if differs(price_applied, price_base) and not can_adjust_price:
        raise CapabilityDenied(
            f"You are not allowed to change the price of {lab_test.name}.",
            details={
                "lab_test_id": str(lab_test.id),
                "price_base": str(to_money(price_base)),
                "price_applied": str(to_money(price_applied)),
            },
        )


# -------------------------------------------------------------------
# Resolver
# -------------------------------------------------------------------

def _bundle_items(profiles: Sequence[Profile], tests: dict[UUID, LabTest]) -> list[ResolvedItem]:
    items: list[ResolvedItem] = []
    seen: set[UUID] = set()

    for profile in profiles:
        members = [pi.lab_test_id for pi in profile.active_items if pi.lab_test_id in tests]
        if profile.package_price is not None:
            shares = split_evenly(profile.package_price, len(members))
        else:
            shares = [to_money(tests[tid].price) for tid in members]

        for test_id, share in zip(members, shares):
            if test_id in seen:
                continue
            seen.add(test_id)
            items.append(
                ResolvedItem(
                    lab_test=tests[test_id],
                    position=0,
                    price_base=share,
                    price_applied=share,
                    promotion=profile,
                    promotion_name=profile.name,
                )
            )
    return items


def resolve_items(
    *,
    test_ids: Iterable[UUID] = (),
    profile_ids: Iterable[UUID] = (),
    adjustments: Iterable[PriceAdjustment] = (),
    can_adjust_price: bool = False,
    for_admission: bool = False,
) -> list[ResolvedItem]:
    """
    Bundle members first (package price spread evenly), then the individually
    requested tests not already covered by a bundle. Inactive or soft-deleted
    tests are skipped; an empty result is a validation error.
    """
    test_ids = list(dict.fromkeys(test_ids))
    profiles = active_profiles(list(dict.fromkeys(profile_ids)))

    member_ids = [pi.lab_test_id for p in profiles for pi in p.active_items]
    tests = available_tests_by_id(set(test_ids) | set(member_ids))

    items = _bundle_items(profiles, tests)
    covered = {i.lab_test.id for i in items}

    for test_id in test_ids:
        if test_id in covered or test_id not in tests:
            continue
        covered.add(test_id)
        price = to_money(tests[test_id].price)
        items.append(ResolvedItem(lab_test=tests[test_id], position=0, price_base=price, price_applied=price))

    if not items:
        raise ValidationFailed("No valid tests: every requested analysis is inactive or unknown.")

    by_test = {i.lab_test.id: i for i in items}
    for adj in adjustments:
        item = by_test.get(adj.lab_test_id)
        if item is None:
            raise ValidationFailed(
                "Price adjustment refers to an analysis that is not part of the request.",
                details={"lab_test_id": str(adj.lab_test_id)},
            )
        check_price_adjustment(
            lab_test=item.lab_test,
            price_base=item.price_base,
            price_applied=adj.price_applied,
            can_adjust_price=can_adjust_price,
        )
        item.price_applied = to_money(adj.price_applied)
        item.adjustment_reason = adj.reason

    for position, item in enumerate(items):
        item.position = position
        item.referral = default_referral(item.lab_test)
        if for_admission:
            item.price_convention = convention_price(item.lab_test)

    return items


def total_price(items: Iterable[ResolvedItem]) -> Decimal:
    return money_sum(i.price_applied for i in items)
