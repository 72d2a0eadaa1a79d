from datetime import date, datetime
from decimal import Decimal

import pytest
from django.utils import timezone

from lis_core.common.api.exceptions import ValidationFailed
from lis_core.common.dates import parse_clinic_datetime, start_of_clinic_day
from lis_core.common.money import exceeds, money_sum, non_negative, split_evenly, to_money


def test_split_evenly_puts_remainder_on_last_share():
    shares = split_evenly(Decimal("50.00"), 3)
    assert shares == [Decimal("16.66"), Decimal("16.66"), Decimal("16.68")]
    assert sum(shares) == Decimal("50.00")


def test_split_evenly_no_parts():
    assert split_evenly(Decimal("10.00"), 0) == []


def test_exceeds_tolerates_epsilon():
    assert not exceeds(Decimal("10.00005"), Decimal("10.00"))
    assert exceeds(Decimal("10.01"), Decimal("10.00"))


def test_money_helpers():
    assert to_money("3.005") == Decimal("3.01")
    assert money_sum(["1.10", None, Decimal("2.20")]) == Decimal("3.30")
    assert non_negative(Decimal("-4")) == Decimal("0.00")


@pytest.mark.parametrize("raw", ["2026-02-12", "2026-02-12T09:30", "2026-02-12T09:30:15", "2026-02-12 09:30"])
def test_parse_clinic_datetime_accepts_local_formats(raw):
    parsed = parse_clinic_datetime(raw, field="paid_at")
    assert timezone.is_aware(parsed)
    assert timezone.localtime(parsed).date() == date(2026, 2, 12)


def test_parse_clinic_datetime_naive_is_clinic_local():
    parsed = parse_clinic_datetime(datetime(2026, 2, 12, 23, 30))
    assert timezone.localtime(parsed).hour == 23


def test_parse_clinic_datetime_date_is_start_of_day():
    assert parse_clinic_datetime(date(2026, 2, 12)) == start_of_clinic_day(date(2026, 2, 12))


def test_parse_clinic_datetime_rejects_garbage():
    with pytest.raises(ValidationFailed):
        parse_clinic_datetime("12/02/2026", field="paid_at")
