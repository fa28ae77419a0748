# froc/models/user.py
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

@dataclass
class User:
    """
    Firestore 'users' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    문서 키는 기존 iOS 클라이언트가 저장해 온 이름(firstName, numberOfBuyRents 등)을 유지합니다.
    """
    user_id: str
    username: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    address: str = ""
    profile_image_url: str = ""
    venmo_handle: Optional[str] = None
    followers: List[str] = field(default_factory=list)
    following: List[str] = field(default_factory=list)
    blocked_users: List[str] = field(default_factory=list)
    number_of_buy_rents: int = 0
    fcm_token: Optional[str] = None # 푸시 알림을 위한 FCM 토큰

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "address": self.address,
            "profilePictureURL": self.profile_image_url,
            "venmo": self.venmo_handle or "",
            "followers": list(self.followers),
            "following": list(self.following),
            "blockedUsers": list(self.blocked_users),
            "numberOfBuyRents": self.number_of_buy_rents,
            "fcmToken": self.fcm_token or "",
        }

    @classmethod
    def from_document(cls, user_id: str, data: Dict[str, Any]) -> "User":
        return cls(
            user_id=user_id,
            username=data.get("username", ""),
            email=data.get("email", ""),
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            address=data.get("address", ""),
            profile_image_url=data.get("profilePictureURL", ""),
            venmo_handle=data.get("venmo") or None,
            followers=list(data.get("followers") or []),
            following=list(data.get("following") or []),
            blocked_users=list(data.get("blockedUsers") or []),
            number_of_buy_rents=int(data.get("numberOfBuyRents") or 0),
            fcm_token=data.get("fcmToken") or None,
        )


@dataclass(frozen=True)
class BuyerSnapshot:
    """
    주문 요청 시점의 구매자 정보 사본.
    실시간 참조가 아니며, 이후 단계의 레코드에도 값 그대로 복사됩니다.
    """
    user_id: str
    username: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    address: str = ""
    profile_image_url: str = ""
    followers: tuple = ()
    number_of_buy_rents: int = 0

    @classmethod
    def of(cls, user: User) -> "BuyerSnapshot":
        return cls(
            user_id=user.user_id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            address=user.address,
            profile_image_url=user.profile_image_url,
            followers=tuple(user.followers),
            number_of_buy_rents=user.number_of_buy_rents,
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "address": self.address,
            "profilePictureURL": self.profile_image_url,
            "followers": list(self.followers),
            "numberOfBuyRents": self.number_of_buy_rents,
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "BuyerSnapshot":
        data = data or {}
        return cls(
            user_id=data.get("id", ""),
            username=data.get("username", ""),
            email=data.get("email", ""),
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            address=data.get("address", ""),
            profile_image_url=data.get("profilePictureURL", ""),
            followers=tuple(data.get("followers") or ()),
            number_of_buy_rents=int(data.get("numberOfBuyRents") or 0),
        )
