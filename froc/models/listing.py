# froc/models/listing.py
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any

from froc.utils.datetime_utils import DateTimeUtils

# iOS 클라이언트의 대여 기간 선택 범위 (1~40일)
DEFAULT_MIN_RENT_DAYS = 1
DEFAULT_MAX_RENT_DAYS = 40

class SaleOption(Enum):
    """리스팅의 거래 방식"""
    PURCHASE = "Purchase"
    RENT = "Rent"
    PURCHASE_OR_RENT = "Purchase or Rent"

@dataclass
class Comment:
    """리스팅에 달린 댓글. 리스팅 문서의 comments 하위 컬렉션에 순서대로 쌓입니다."""
    comment_id: str
    user_id: str
    username: str
    text: str
    profile_image_url: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_document(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "profilePictureURL": self.profile_image_url,
            "text": self.text,
            "timestamp": DateTimeUtils.for_firestore(self.timestamp),
        }

    @classmethod
    def from_document(cls, comment_id: str, data: Dict[str, Any]) -> "Comment":
        data = DateTimeUtils.from_firestore(dict(data))
        return cls(
            comment_id=comment_id,
            user_id=data.get("userId", ""),
            username=data.get("username", ""),
            text=data.get("text", ""),
            profile_image_url=data.get("profilePictureURL", ""),
            timestamp=data.get("timestamp") or datetime.now(timezone.utc),
        )

@dataclass
class Listing:
    """
    Firestore 'posts' 컬렉션의 문서 구조를 정의하는 데이터클래스 (판매/대여 의류 게시물).
    """
    listing_id: str
    owner_id: str
    sale_option: SaleOption
    image_urls: List[str] = field(default_factory=list)
    purchase_price: Optional[float] = None
    rent_price_per_day: Optional[float] = None
    sizes: List[str] = field(default_factory=list)
    min_rent_days: int = DEFAULT_MIN_RENT_DAYS
    max_rent_days: int = DEFAULT_MAX_RENT_DAYS
    title: str = ""
    description: str = ""
    categories: List[str] = field(default_factory=list)
    seasons: List[str] = field(default_factory=list)
    occasions: List[str] = field(default_factory=list)
    color: str = ""
    brand: str = ""
    gender: str = ""
    number_of_likes: int = 0
    liked_by: List[str] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if self.sale_option in (SaleOption.RENT, SaleOption.PURCHASE_OR_RENT) and self.rent_price_per_day is None:
            raise ValueError(f"대여 가능한 리스팅에는 일일 대여 가격이 필요합니다: {self.listing_id}")
        if self.sale_option in (SaleOption.PURCHASE, SaleOption.PURCHASE_OR_RENT) and self.purchase_price is None:
            raise ValueError(f"구매 가능한 리스팅에는 구매 가격이 필요합니다: {self.listing_id}")
        for price in (self.purchase_price, self.rent_price_per_day):
            if price is not None and price < 0:
                raise ValueError(f"가격은 음수일 수 없습니다: {price}")

    @property
    def supports_rent(self) -> bool:
        return self.sale_option in (SaleOption.RENT, SaleOption.PURCHASE_OR_RENT)

    @property
    def supports_purchase(self) -> bool:
        return self.sale_option in (SaleOption.PURCHASE, SaleOption.PURCHASE_OR_RENT)

    @property
    def product_info(self) -> str:
        """알림에 표시될 상품 설명 (설명이 없으면 제목)"""
        if not self.description or self.description == "Default product description":
            return self.title
        return self.description

    def to_document(self) -> Dict[str, Any]:
        """Firestore 저장용 딕셔너리. 가격은 iOS 클라이언트와 같이 문자열로 저장합니다."""
        return {
            "id": self.listing_id,
            "userId": self.owner_id,
            "imageUrls": list(self.image_urls),
            "saleOption": self.sale_option.value,
            "purchasePrice": "" if self.purchase_price is None else str(self.purchase_price),
            "rentPrice": "" if self.rent_price_per_day is None else str(self.rent_price_per_day),
            "sizes": list(self.sizes),
            "minRentDays": self.min_rent_days,
            "maxRentDays": self.max_rent_days,
            "title": self.title,
            "description": self.description,
            "clothingCategories": list(self.categories),
            "seasonalCollections": list(self.seasons),
            "occasions": list(self.occasions),
            "color": self.color,
            "brand": self.brand,
            "gender": self.gender,
            "numberOfLikes": self.number_of_likes,
            "likedBy": list(self.liked_by),
            "timestamp": DateTimeUtils.for_firestore(self.timestamp),
        }

    @classmethod
    def from_document(cls, listing_id: str, data: Dict[str, Any]) -> "Listing":
        """
        Firestore 문서로부터 Listing 인스턴스를 생성합니다.
        iOS 클라이언트는 가격을 문자열로 저장하므로 float 으로 변환합니다.
        """
        data = DateTimeUtils.from_firestore(dict(data))
        option_str = data.get("saleOption", SaleOption.PURCHASE.value)
        try:
            sale_option = SaleOption(option_str)
        except ValueError:
            logging.warning(f"Invalid saleOption '{option_str}' for listing {listing_id}. Defaulting to Purchase.")
            sale_option = SaleOption.PURCHASE

        return cls(
            listing_id=listing_id,
            owner_id=data.get("userId", ""),
            sale_option=sale_option,
            image_urls=list(data.get("imageUrls") or []),
            purchase_price=_to_price(data.get("purchasePrice")),
            rent_price_per_day=_to_price(data.get("rentPrice")),
            sizes=list(data.get("sizes") or []),
            min_rent_days=int(data.get("minRentDays") or DEFAULT_MIN_RENT_DAYS),
            max_rent_days=int(data.get("maxRentDays") or DEFAULT_MAX_RENT_DAYS),
            title=data.get("title", ""),
            description=data.get("description", ""),
            categories=list(data.get("clothingCategories") or []),
            seasons=list(data.get("seasonalCollections") or []),
            occasions=list(data.get("occasions") or []),
            color=data.get("color", ""),
            brand=data.get("brand", ""),
            gender=data.get("gender", ""),
            number_of_likes=int(data.get("numberOfLikes") or 0),
            liked_by=list(data.get("likedBy") or []),
            timestamp=data.get("timestamp") or datetime.now(timezone.utc),
        )

def _to_price(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)
