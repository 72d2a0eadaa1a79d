# lis_core/orders/snapshots.py
"""
Frozen copies of a test's result template, stored on each order item.

Snapshots hold plain JSON values only, so later catalog edits never change a
placed order. They are only rewritten through ``merge_template_snapshot``.
"""
from __future__ import annotations

import copy
from decimal import Decimal
from typing import Any

from lis_core.catalog.models import LabTest, ResultTemplate, ValueType
from lis_core.catalog.selectors import template_for
from lis_core.common.api.exceptions import ValidationFailed


def _number(value: Decimal | None) -> float | None:
    return None if value is None else float(value)


def _reference_range_snapshot(rr) -> dict[str, Any]:
    return {
        "age_group": rr.age_group,
        "sex": rr.sex,
        "ref_range_text": rr.ref_range_text,
        "ref_min": _number(rr.ref_min),
        "ref_max": _number(rr.ref_max),
        "order": rr.order,
    }


def _parameter_snapshot(param) -> dict[str, Any]:
    return {
        "id": str(param.id),
        "group_name": param.group_name,
        "param_name": param.param_name,
        "unit": param.unit,
        "ref_range_text": param.ref_range_text,
        "ref_min": _number(param.ref_min),
        "ref_max": _number(param.ref_max),
        "value_type": param.value_type,
        "select_options": list(param.select_options or []),
        "order": param.order,
        "ref_ranges": [
            _reference_range_snapshot(rr)
            for rr in sorted(param.reference_ranges.all(), key=lambda r: r.order)
        ],
    }


def build_template_snapshot(test: LabTest) -> dict[str, Any] | None:
    """None when the test has no result template (never an empty dict)."""
    template = template_for(test)
    if template is None:
        return None
    params = sorted(template.parameters.all(), key=lambda p: p.order)
    return {
        "title": template.title,
        "notes": template.notes,
        "items": [_parameter_snapshot(p) for p in params],
    }


_REQUIRED_PARAM_KEYS = ("id", "param_name", "value_type", "order")


def _validate_parameter(param: dict[str, Any], index: int) -> None:
    missing = [k for k in _REQUIRED_PARAM_KEYS if param.get(k) in (None, "")]
    if missing:
        raise ValidationFailed(
            f"Parameter #{index + 1} is missing {', '.join(missing)}.",
            details={"index": index, "missing": missing},
        )
    if param["value_type"] not in ValueType.values:
        raise ValidationFailed(
            f"Parameter {param['param_name']!r} has an invalid value type {param['value_type']!r}.",
            details={"index": index, "value_type": param["value_type"]},
        )
    try:
        order = int(param["order"])
    except (TypeError, ValueError):
        order = -1
    if order < 0:
        raise ValidationFailed(
            f"Parameter {param['param_name']!r} needs a non-negative order.",
            details={"index": index},
        )
    param["order"] = order


def merge_template_snapshot(
    *,
    previous: dict[str, Any] | None,
    template: ResultTemplate | None,
    title: str | None = None,
    notes: str | None = None,
    parameters: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """
    Overwrite one item's snapshot on operator request.

    Each provided parameter is merged over the previous parameter with the same
    id, so fields it omits are kept. Title and notes fall back to the previous
    snapshot, then to the catalog template.
    """
    previous = copy.deepcopy(previous) if previous else None
    if previous is None and template is None and parameters is None:
        raise ValidationFailed("This analysis has no result template to update.")

    if title is None:
        title = (previous or {}).get("title")
        if title is None and template is not None:
            title = template.title
    if notes is None:
        notes = (previous or {}).get("notes")
        if notes is None and template is not None:
            notes = template.notes

    previous_items = list((previous or {}).get("items") or [])
    if parameters is None:
        items = previous_items
    else:
        by_id = {str(p.get("id")): p for p in previous_items if p.get("id") is not None}
        items = []
        for param in parameters:
            base = copy.deepcopy(by_id.get(str(param.get("id")), {}))
            base.update(copy.deepcopy(param))
            items.append(base)

    for index, param in enumerate(items):
        _validate_parameter(param, index)

    return {
        "title": title or "",
        "notes": notes or "",
        "items": items,
    }
