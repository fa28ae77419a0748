# froc/api/listings/services.py
import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from froc.core.errors import InvalidRequest
from froc.models.listing import Comment, Listing
from froc.models.order_record import OrderRecord, RecordKind, TransitionKind
from froc.models.user import BuyerSnapshot, User
from froc.services.directory_service import ListingCatalog, UserDirectory
from froc.services.inbox_repository import InboxRepository
from froc.services.notification_service import NotificationService
from froc.utils.datetime_utils import DateTimeUtils

class EngagementService:
    """
    좋아요/댓글/사용자 신고 알림을 담당하는 서비스.
    주문 워크플로우와 같은 inbox 에 레코드를 남기지만 상태 전이는 없습니다.
    """
    def __init__(self,
                 inbox_repository: InboxRepository,
                 user_directory: UserDirectory,
                 listing_catalog: ListingCatalog,
                 notification_service: NotificationService,
                 admin_id: str,
                 clock: Callable[[], datetime] = DateTimeUtils.now):
        self.inbox = inbox_repository
        self.users = user_directory
        self.listings = listing_catalog
        self.notifications = notification_service
        self.admin_id = admin_id
        self.clock = clock

    def like(self, listing_id: str, user_id: str) -> Optional[OrderRecord]:
        """
        좋아요를 토글합니다.
        새로 좋아요를 누른 경우에만 게시물 작성자에게 레코드를 남기고 알림을 보냅니다.
        좋아요 취소면 None 을 반환합니다.
        """
        user = self.users.get_user(user_id)
        is_liked, listing = self.listings.toggle_like(listing_id, user_id)
        if not is_liked:
            logging.info(f"좋아요 취소 (listing_id: {listing_id}, user_id: {user_id})")
            return None

        record = self._engagement_record(user, listing, RecordKind.LIKE, TransitionKind.LIKED,
                                         action_text="liked your post", icon="heart")
        self.inbox.append_record(listing.owner_id, record)
        self.notifications.deliver(listing.owner_id, f"{user.username} liked your post.")
        return record

    def comment(self, listing_id: str, user_id: str, text: str) -> OrderRecord:
        """댓글을 추가하고 게시물 작성자에게 알립니다."""
        text = (text or "").strip()
        if not text:
            raise InvalidRequest("댓글 내용이 비어 있습니다.")

        user = self.users.get_user(user_id)
        listing = self.listings.get_listing(listing_id)
        now = self.clock()
        self.listings.append_comment(listing_id, Comment(
            comment_id=str(uuid.uuid4()),
            user_id=user.user_id,
            username=user.username,
            text=text,
            profile_image_url=user.profile_image_url,
            timestamp=now,
        ))

        record = self._engagement_record(user, listing, RecordKind.COMMENT, TransitionKind.COMMENTED,
                                         action_text=f"commented '{text}'", icon="bubble.right")
        self.inbox.append_record(listing.owner_id, record)
        self.notifications.deliver(listing.owner_id, f"{user.username} commented: '{text}' on your post.")
        return record

    def flag_user(self, reporter_id: str, flagged_user_id: str, reason: str) -> OrderRecord:
        """사용자 신고. 관리자 inbox 에 flag 레코드가 남습니다."""
        if reporter_id == flagged_user_id:
            raise InvalidRequest("자기 자신은 신고할 수 없습니다.")
        reporter = self.users.get_user(reporter_id)
        self.users.get_user(flagged_user_id)

        record = OrderRecord(
            recipient_id=self.admin_id,
            kind=RecordKind.FLAG,
            transition=TransitionKind.USER_FLAGGED,
            action_text=f"Flagged {flagged_user_id} {reason}",
            actor_username=reporter.username,
            timestamp=self.clock(),
            product_info=f"Flagged User ID: {flagged_user_id}",
            buyer_snapshot=BuyerSnapshot.of(reporter),
            icon="flag",
            name=reporter.full_name,
        )
        self.inbox.append_record(self.admin_id, record)
        logging.warning(f"사용자 신고 접수: {reporter_id} -> {flagged_user_id} ({reason})")
        return record

    def _engagement_record(self, user: User, listing: Listing, kind: RecordKind,
                           transition: TransitionKind, action_text: str, icon: str) -> OrderRecord:
        price = listing.rent_price_per_day if listing.rent_price_per_day is not None else listing.purchase_price
        return OrderRecord(
            recipient_id=listing.owner_id,
            kind=kind,
            transition=transition,
            action_text=action_text,
            actor_username=user.username,
            timestamp=self.clock(),
            product_info=listing.product_info,
            price=price or 0.0,
            size=", ".join(listing.sizes),
            listing_id=listing.listing_id,
            seller_id=listing.owner_id,
            image_urls=list(listing.image_urls[:1]),
            icon=icon,
            name=user.full_name,
        )
