# froc/models/order_record.py
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any

from froc.models.user import BuyerSnapshot
from froc.utils.datetime_utils import DateTimeUtils

class RecordKind(Enum):
    """알림 레코드 종류. 'type' 키로 저장되는 기존 값과 동일합니다."""
    COMMENT = "comment"
    PURCHASE = "purchase"
    LIKE = "like"
    RENT = "rent"
    RETURN = "return"
    FLAG = "flag"

class TransitionKind(Enum):
    """
    레코드가 워크플로우의 어느 단계인지 나타내는 명시적 태그.
    레코드 생성 시점에 결정되며, action_text 에서 역추론하지 않습니다.
    """
    AWAITING_APPROVAL = "AWAITING_APPROVAL"         # 관리자 inbox: 승인 대기
    FULFILLMENT_REQUESTED = "FULFILLMENT_REQUESTED" # 판매자 inbox: 발송 요청
    ORDER_CONFIRMED = "ORDER_CONFIRMED"             # 구매자 inbox: 발송 완료
    ITEM_RETURNED = "ITEM_RETURNED"                 # 판매자 inbox: 반납 완료
    REQUEST_DECLINED = "REQUEST_DECLINED"           # 관리자 inbox: 판매자가 거절
    COMMENTED = "COMMENTED"
    LIKED = "LIKED"
    USER_FLAGGED = "USER_FLAGGED"

ORDER_KINDS = (RecordKind.PURCHASE, RecordKind.RENT, RecordKind.RETURN)

@dataclass
class OrderRecord:
    """
    사용자별 'users/{uid}/notifications' 하위 컬렉션 문서 하나.
    워크플로우의 각 단계는 기존 레코드를 옮기지 않고 다음 당사자의 inbox 에 새 레코드를 만듭니다.
    같은 거래의 레코드들은 order_id 로 묶입니다.
    """
    recipient_id: str
    kind: RecordKind
    transition: TransitionKind
    action_text: str
    actor_username: str
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    order_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    product_info: str = ""
    price: float = 0.0 # 대여의 경우 이미 (일일 가격 x 기간) 이 반영된 금액
    size: str = ""
    rent_duration_days: str = ""
    note: str = ""
    venmo_handle: str = ""
    buyer_snapshot: Optional[BuyerSnapshot] = None
    seller_id: Optional[str] = None
    listing_id: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    ship_proof_image_url: Optional[str] = None
    expected_arrival_date: Optional[datetime] = None
    expected_return_date: Optional[datetime] = None
    icon: str = ""
    name: str = ""
    address: str = ""
    is_new: bool = True

    def __post_init__(self):
        if self.price is None or self.price < 0:
            raise ValueError(f"금액은 음수일 수 없습니다: {self.price}")

    @property
    def is_rent(self) -> bool:
        return self.kind == RecordKind.RENT

    @property
    def is_order_step(self) -> bool:
        return self.order_id is not None and self.kind in ORDER_KINDS

    def successor(self, **changes) -> "OrderRecord":
        """
        다음 단계 레코드를 만듭니다. 금액/사이즈/구매자 스냅샷/order_id 는 그대로 유지되고
        새 record_id, 현재 시각, is_new=True 가 부여됩니다.
        """
        changes.setdefault("record_id", str(uuid.uuid4()))
        changes.setdefault("timestamp", datetime.now(timezone.utc))
        changes.setdefault("is_new", True)
        return replace(self, **changes)

    def to_document(self) -> Dict[str, Any]:
        """Firestore 저장용 딕셔너리. 기존 데이터와 호환되도록 원래 키 이름을 사용합니다."""
        document = {
            "id": self.record_id,
            "orderId": self.order_id,
            "recipientId": self.recipient_id,
            "type": self.kind.value,
            "transition": self.transition.value,
            "username": self.actor_username,
            "actionText": self.action_text,
            "timestamp": self.timestamp,
            "productInfo": self.product_info,
            "price": float(self.price),
            "size": self.size,
            "duration": self.rent_duration_days,
            "name": self.name,
            "address": self.address,
            "imageUrls": list(self.image_urls),
            "shipImageUrl": self.ship_proof_image_url or "",
            "icon": self.icon,
            "buyer": self.buyer_snapshot.to_document() if self.buyer_snapshot else {},
            "sellerId": self.seller_id,
            "listingId": self.listing_id,
            "expectedArrivalDate": self.expected_arrival_date,
            "expectedReturnDate": self.expected_return_date,
            "note": self.note,
            "venmo": self.venmo_handle,
            "isNew": self.is_new,
        }
        return DateTimeUtils.for_firestore(document)

    @classmethod
    def from_document(cls, record_id: str, data: Dict[str, Any]) -> "OrderRecord":
        """
        Firestore 문서로부터 OrderRecord 를 복원합니다.
        transition 키가 없는 예전 문서는 kind 와 actionText 로 한 번만 태그를 추정합니다.
        """
        data = DateTimeUtils.from_firestore(dict(data))

        kind_str = data.get("type", RecordKind.COMMENT.value)
        try:
            kind = RecordKind(kind_str)
        except ValueError:
            logging.warning(f"Unknown record type '{kind_str}' for record {record_id}. Defaulting to comment.")
            kind = RecordKind.COMMENT

        transition_str = data.get("transition")
        transition = TransitionKind(transition_str) if transition_str else _legacy_transition(kind, data.get("actionText", ""))

        return cls(
            record_id=record_id,
            order_id=data.get("orderId"),
            recipient_id=data.get("recipientId", ""),
            kind=kind,
            transition=transition,
            action_text=data.get("actionText", ""),
            actor_username=data.get("username", ""),
            timestamp=data.get("timestamp") or datetime.now(timezone.utc),
            product_info=data.get("productInfo", ""),
            price=float(data.get("price") or 0.0),
            size=data.get("size", ""),
            rent_duration_days=data.get("duration", "") or "",
            note=data.get("note", "") or "",
            venmo_handle=data.get("venmo", "") or "",
            buyer_snapshot=BuyerSnapshot.from_document(data["buyer"]) if data.get("buyer") else None,
            seller_id=data.get("sellerId"),
            listing_id=data.get("listingId"),
            image_urls=list(data.get("imageUrls") or []),
            ship_proof_image_url=data.get("shipImageUrl") or None,
            expected_arrival_date=data.get("expectedArrivalDate"),
            expected_return_date=data.get("expectedReturnDate"),
            icon=data.get("icon", ""),
            name=data.get("name", ""),
            address=data.get("address", ""),
            is_new=bool(data.get("isNew", True)),
        )

def _legacy_transition(kind: RecordKind, action_text: str) -> TransitionKind:
    """transition 필드 도입 이전에 저장된 문서의 단계를 추정합니다."""
    if kind == RecordKind.COMMENT:
        return TransitionKind.COMMENTED
    if kind == RecordKind.LIKE:
        return TransitionKind.LIKED
    if kind == RecordKind.FLAG:
        return TransitionKind.USER_FLAGGED
    if kind == RecordKind.RETURN:
        return TransitionKind.ITEM_RETURNED
    if "admin" in action_text:
        return TransitionKind.AWAITING_APPROVAL
    if "confirmed" in action_text:
        return TransitionKind.ORDER_CONFIRMED
    return TransitionKind.FULFILLMENT_REQUESTED
