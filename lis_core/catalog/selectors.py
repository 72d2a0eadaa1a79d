# lis_core/catalog/selectors.py
from __future__ import annotations

from typing import Iterable
from uuid import UUID

from django.db.models import Prefetch, QuerySet

from lis_core.catalog.models import LabTest, Profile, ProfileItem, ResultTemplate


def available_tests_qs() -> QuerySet[LabTest]:
    """Active, not soft-deleted tests with everything order items snapshot."""
    return (
        LabTest.objects.filter(is_active=True, deleted_at__isnull=True)
        .select_related("referred_lab", "template")
        .prefetch_related(
            "template__parameters__reference_ranges",
            "referred_lab_options",
        )
    )


def available_tests_by_id(ids: Iterable[UUID]) -> dict[UUID, LabTest]:
    ids = list(ids)
    if not ids:
        return {}
    return {t.id: t for t in available_tests_qs().filter(id__in=ids)}


def active_profiles(ids: Iterable[UUID]) -> list[Profile]:
    ids = list(ids)
    if not ids:
        return []
    members = ProfileItem.objects.filter(
        lab_test__is_active=True,
        lab_test__deleted_at__isnull=True,
    ).order_by("order")
    profiles = {
        p.id: p
        for p in Profile.objects.filter(id__in=ids, is_active=True).prefetch_related(
            Prefetch("items", queryset=members, to_attr="active_items")
        )
    }
    # Keep the caller's order
    return [profiles[pid] for pid in ids if pid in profiles]


def template_for(test: LabTest) -> ResultTemplate | None:
    try:
        return test.template
    except ResultTemplate.DoesNotExist:
        return None
