# lis_core/common/codes.py
"""
Sequential human-readable codes (``ORD-20260212-0007``, ``ADM-20260212-0003``,
``PAC-0042``).

The next number is derived from the highest suffix already stored under the
prefix, and the insert is retried when a concurrent writer took the same code
first. The unique constraint on the code column is what makes this safe.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterable, TypeVar

from django.conf import settings
from django.db import IntegrityError, transaction

from lis_core.common.api.exceptions import AlreadyProcessedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CodeAllocationError(AlreadyProcessedError):
    default_detail = "Could not allocate a sequential code, please retry."
    default_code = "code_allocation_failed"


def _width() -> int:
    return int(getattr(settings, "LIS_CODE_SEQUENCE_WIDTH", 4))


def _max_attempts() -> int:
    return int(getattr(settings, "LIS_CODE_MAX_ATTEMPTS", 3))


def day_prefix(kind_prefix: str, day: date) -> str:
    return f"{kind_prefix}{day:%Y%m%d}-"


def parse_sequence(code: str) -> int:
    tail = (code or "").rsplit("-", 1)[-1]
    return int(tail) if tail.isdigit() else 0


def next_code(prefix: str, existing: Iterable[str], *, width: int | None = None) -> str:
    highest = max((parse_sequence(c) for c in existing), default=0)
    return f"{prefix}{highest + 1:0{width or _width()}d}"


def existing_codes(model, field: str, prefix: str) -> list[str]:
    return list(
        model.objects.filter(**{f"{field}__startswith": prefix}).values_list(field, flat=True)
    )


def allocate_code(
    *,
    model,
    field: str,
    prefix: str,
    create: Callable[[str], T],
    attempts: int | None = None,
) -> T:
    """
    Run ``create(code)`` with the next free code under ``prefix``.

    Each attempt reads the existing codes and inserts inside one atomic block.
    An IntegrityError caused by the candidate code being taken re-runs the
    whole block; any other IntegrityError propagates unchanged.
    """
    attempts = attempts or _max_attempts()

    for attempt in range(1, attempts + 1):
        code = None
        try:
            with transaction.atomic():
                code = next_code(prefix, existing_codes(model, field, prefix))
                return create(code)
        except IntegrityError:
            if code is None or not model.objects.filter(**{field: code}).exists():
                raise
            logger.warning(
                "Code %s already taken, retrying (attempt %s/%s)",
                code,
                attempt,
                attempts,
                extra={"model": model.__name__, "prefix": prefix},
            )

    logger.error("Gave up allocating a %s code under %s", model.__name__, prefix)
    raise CodeAllocationError(
        f"Could not allocate a sequential code under {prefix} after {attempts} attempts, please retry.",
        details={"prefix": prefix, "attempts": attempts},
    )
