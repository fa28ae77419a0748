# froc/utils/test_datetime_utils.py
"""
시간 유틸리티 테스트

사용법: python -m pytest froc/utils/test_datetime_utils.py -v
"""

import pytest
from datetime import datetime, date, timedelta, timezone
from froc.utils.datetime_utils import DateTimeUtils

UTC = timezone.utc


@pytest.mark.parametrize("value, expected", [
    ("2025-03-01T12:00:00Z", datetime(2025, 3, 1, 12, 0, tzinfo=UTC)),
    ("2025-03-01T21:00:00+09:00", datetime(2025, 3, 1, 12, 0, tzinfo=UTC)),
    ("2025-03-01T12:00:00", datetime(2025, 3, 1, 12, 0, tzinfo=UTC)),
    ("2025-03-01", datetime(2025, 3, 1, tzinfo=UTC)),
])
def test_parse_iso_datetime_normalizes_to_utc(value, expected):
    assert DateTimeUtils.parse_iso_datetime(value) == expected


@pytest.mark.parametrize("value", ["", "   ", "next tuesday"])
def test_parse_iso_datetime_rejects_garbage(value):
    with pytest.raises(ValueError):
        DateTimeUtils.parse_iso_datetime(value)


def test_add_days_crosses_month_end():
    """월말을 넘어가는 도착/반납 예정일"""
    start = datetime(2024, 1, 30, 23, 0, tzinfo=UTC)
    assert DateTimeUtils.add_days(start, 3) == datetime(2024, 2, 2, 23, 0, tzinfo=UTC)


def test_add_days_normalizes_other_timezones():
    seoul = timezone(timedelta(hours=9))
    result = DateTimeUtils.add_days(datetime(2024, 3, 1, 8, 0, tzinfo=seoul), 1)
    assert result.tzinfo == UTC
    assert result == datetime(2024, 3, 1, 23, 0, tzinfo=UTC)


def test_to_iso_string():
    assert DateTimeUtils.to_iso_string(datetime(2025, 3, 1, 12, 0, tzinfo=UTC)) == "2025-03-01T12:00:00Z"
    assert DateTimeUtils.to_iso_string(None) is None


def test_for_firestore_converts_nested_dates():
    converted = DateTimeUtils.for_firestore({
        'expectedArrivalDate': date(2025, 3, 4),
        'timestamp': datetime(2025, 3, 1, 12, 0),
        'buyer': {'joined': date(2024, 12, 25)},
        'expectedReturnDate': None,
    })

    assert converted['expectedArrivalDate'] == datetime(2025, 3, 4, tzinfo=UTC)
    assert converted['timestamp'].tzinfo == UTC
    assert isinstance(converted['buyer']['joined'], datetime)
    assert converted['expectedReturnDate'] is None


def test_from_firestore_parses_legacy_string_dates():
    converted = DateTimeUtils.from_firestore({
        'timestamp': datetime(2025, 3, 1, 12, 0),
        'expectedArrivalDate': "2025-03-04T12:00:00Z",
        'expectedReturnDate': "someday",
        'actionText': "2025-03-04",
    })

    assert converted['timestamp'].tzinfo == UTC
    assert converted['expectedArrivalDate'] == datetime(2025, 3, 4, 12, 0, tzinfo=UTC)
    assert converted['expectedReturnDate'] is None
    # 날짜 필드가 아닌 문자열은 건드리지 않음
    assert converted['actionText'] == "2025-03-04"
