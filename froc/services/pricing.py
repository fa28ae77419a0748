# froc/services/pricing.py
"""
배송 일정 및 금액 계산 (순수 함수).
입력이 같으면 언제나 같은 결과를 돌려주며, 시각은 호출자가 넘겨줍니다.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote as url_quote

from froc.core.errors import MalformedDuration
from froc.models.listing import Listing
from froc.utils.datetime_utils import DateTimeUtils

SHIPPING_DAYS = 3
RENT_FEE_RATE = 0.03
PURCHASE_FEE_RATE = 0.06
INSURANCE_RATE = 0.25


def parse_duration(value: Any) -> Optional[int]:
    """대여 기간 문자열을 양의 정수로 해석합니다. 해석할 수 없으면 None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        days = int(str(value).strip())
    except ValueError:
        return None
    return days if days > 0 else None


def require_duration(value: Any) -> int:
    """parse_duration 과 같지만 해석할 수 없으면 MalformedDuration"""
    days = parse_duration(value)
    if days is None:
        raise MalformedDuration(f"대여 기간은 양의 정수여야 합니다: {value!r}")
    return days


def expected_arrival(now: datetime) -> datetime:
    return DateTimeUtils.add_days(now, SHIPPING_DAYS)


def expected_return(now: datetime, duration_days: Any) -> Optional[datetime]:
    """도착 예정일 + 대여 기간. 기간이 양의 정수가 아니면 오류 대신 None."""
    days = parse_duration(duration_days)
    if days is None:
        return None
    return DateTimeUtils.add_days(now, SHIPPING_DAYS + days)


def rent_total(per_day_rate: float, duration_days: int) -> float:
    return per_day_rate * duration_days


def transaction_fee(is_rent: bool, amount: float) -> float:
    """amount 는 대여면 대여 총액, 구매면 구매 가격"""
    return amount * (RENT_FEE_RATE if is_rent else PURCHASE_FEE_RATE)


def insurance_hold(is_rent: bool, purchase_price: Optional[float]) -> float:
    """대여 보증금. 반납 확인 후 운영팀이 수동으로 돌려줍니다."""
    if not is_rent or not purchase_price:
        return 0.0
    return purchase_price * INSURANCE_RATE


@dataclass(frozen=True)
class Quote:
    """구매자가 송금해야 하는 금액 내역"""
    is_rent: bool
    base: float
    fee: float
    insurance: float
    duration_days: Optional[int] = None

    @property
    def total(self) -> float:
        return self.base + self.fee + self.insurance


def quote(listing: Listing, duration_days: Optional[int] = None) -> Quote:
    """
    리스팅과 대여 기간으로 결제 금액을 계산합니다.
    duration_days 가 있으면 대여, 없으면 구매로 봅니다.
    """
    is_rent = duration_days is not None
    if is_rent:
        base = rent_total(listing.rent_price_per_day, duration_days)
    else:
        base = listing.purchase_price
    return Quote(
        is_rent=is_rent,
        base=base,
        fee=transaction_fee(is_rent, base),
        insurance=insurance_hold(is_rent, listing.purchase_price),
        duration_days=duration_days,
    )


def build_payment_link(payment: Quote, recipient: str, size: str, description: str) -> str:
    """
    Venmo 앱을 여는 결제 딥링크를 만듭니다. 실제 결제는 외부 앱에서 이루어집니다.
    """
    lines = [
        f"Payment for {'renting' if payment.is_rent else 'buying'} the item",
        f"Size: {size}",
        f"Description: {description}",
        f"Duration: {payment.duration_days or 0} day(s)",
    ]
    if payment.is_rent:
        lines.append(f"Insurance cost: ${payment.insurance:.2f} (will be returned once the product is returned)")
    note = quote_text("\n".join(lines))
    return f"venmo://paycharge?txn=pay&recipients={quote_text(recipient)}&amount={payment.total:.2f}&note={note}"


def quote_text(text: str) -> str:
    return url_quote(text, safe="")


@dataclass(frozen=True)
class Countdown:
    days: int
    hours: int
    minutes: int
    seconds: int
    overdue: bool

    def __str__(self) -> str:
        return f"{self.days:02d} : {self.hours:02d} : {self.minutes:02d} : {self.seconds:02d}"


def countdown(expected_return_date: datetime, now: datetime) -> Countdown:
    """반납 기한까지 남은 시간. 0 에서 멈추고, 0 이하이면 overdue."""
    remaining = int((DateTimeUtils.ensure_utc(expected_return_date) - DateTimeUtils.ensure_utc(now)).total_seconds())
    if remaining <= 0:
        return Countdown(0, 0, 0, 0, overdue=True)
    return Countdown(
        days=remaining // 86400,
        hours=(remaining % 86400) // 3600,
        minutes=(remaining % 3600) // 60,
        seconds=remaining % 60,
        overdue=False,
    )
