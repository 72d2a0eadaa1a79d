# lis_core/common/dates.py
from __future__ import annotations

from datetime import date, datetime, time

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from lis_core.common.api.exceptions import ValidationFailed


def clinic_today() -> date:
    return timezone.localdate()


def start_of_clinic_day(day: date) -> datetime:
    return timezone.make_aware(datetime.combine(day, time.min), timezone.get_default_timezone())


def _parse_text(raw: str, field: str) -> datetime:
    try:
        parsed = parse_datetime(raw)
        if parsed is not None:
            return parsed
        day = parse_date(raw)
    except ValueError:
        day = None
    if day is None:
        raise ValidationFailed(f"Invalid {field}: {raw!r}", details={field: raw})
    return start_of_clinic_day(day)


def parse_clinic_datetime(value, *, field: str = "date") -> datetime:
    """
    Interpret ``value`` in the clinic's local calendar.

    Accepts an aware/naive ``datetime``, a ``date`` (start of that day) or one of
    ``YYYY-MM-DD``, ``YYYY-MM-DDTHH:MM[:SS]``, ``YYYY-MM-DD HH:MM``. Values that
    already carry an offset are kept as given.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return start_of_clinic_day(value)
    else:
        parsed = _parse_text(str(value or "").strip(), field)

    if timezone.is_naive(parsed):
        return timezone.make_aware(parsed, timezone.get_default_timezone())
    return parsed
