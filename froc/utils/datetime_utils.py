# froc/utils/datetime_utils.py
"""
주문 레코드의 시각(timestamp, 도착/반납 예정일) 처리를 위한 유틸리티.

모든 시각은 UTC aware datetime 으로 다룹니다. 예전 앱 버전이 남긴 문서에는
날짜가 ISO 문자열로 저장된 경우가 있어 읽을 때 datetime 으로 되돌립니다.
"""

import logging
from datetime import datetime, date, timezone, time, timedelta
from typing import Any, Optional
from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)

# 문자열로 저장되었을 수 있는 레코드 날짜 필드
RECORD_DATE_FIELDS = ('timestamp', 'expectedArrivalDate', 'expectedReturnDate')


class DateTimeUtils:

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """naive 값은 UTC 로 간주합니다."""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def add_days(dt: datetime, days: int) -> datetime:
        return DateTimeUtils.ensure_utc(dt) + timedelta(days=days)

    @staticmethod
    def parse_iso_datetime(value: str) -> datetime:
        """
        '2025-03-01T12:00:00Z', '2025-03-01T21:00:00+09:00', '2025-03-01' 같은
        ISO 문자열을 UTC datetime 으로 파싱합니다. 실패하면 ValueError.
        """
        if not value or not value.strip():
            raise ValueError("빈 문자열은 날짜로 파싱할 수 없습니다")
        try:
            parsed = dateutil_parser.isoparse(value.strip())
        except (ValueError, OverflowError) as e:
            raise ValueError(f"잘못된 ISO 날짜 형식입니다: {value}") from e
        return DateTimeUtils.ensure_utc(parsed)

    @staticmethod
    def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
        if dt is None:
            return None
        return DateTimeUtils.ensure_utc(dt).isoformat().replace('+00:00', 'Z')

    @staticmethod
    def for_firestore(obj: Any) -> Any:
        """저장 직전 변환. date 는 해당 날짜 00:00 UTC 로 올립니다."""
        if isinstance(obj, datetime):
            return DateTimeUtils.ensure_utc(obj)
        if isinstance(obj, date):
            return datetime.combine(obj, time.min).replace(tzinfo=timezone.utc)
        if isinstance(obj, dict):
            return {k: DateTimeUtils.for_firestore(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [DateTimeUtils.for_firestore(item) for item in obj]
        return obj

    @staticmethod
    def from_firestore(data: dict) -> dict:
        """
        Firestore 문서 딕셔너리의 시각 값을 UTC datetime 으로 정규화합니다.
        - DatetimeWithNanoseconds 및 naive datetime 은 UTC aware 로 바꿉니다.
        - RECORD_DATE_FIELDS 에 문자열이 들어 있으면 ISO 로 파싱하고,
          파싱할 수 없으면 경고를 남기고 None 으로 둡니다.
        """
        normalized = {}
        for key, value in data.items():
            if isinstance(value, datetime):
                value = DateTimeUtils.ensure_utc(value)
            elif isinstance(value, str) and key in RECORD_DATE_FIELDS:
                try:
                    value = DateTimeUtils.parse_iso_datetime(value)
                except ValueError:
                    logger.warning(f"레코드 날짜 필드를 해석할 수 없어 비워 둡니다: {key}={value!r}")
                    value = None
            elif isinstance(value, dict):
                value = DateTimeUtils.from_firestore(value)
            normalized[key] = value
        return normalized
