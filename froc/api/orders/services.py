# froc/api/orders/services.py
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

# 도메인 모델
from froc.models.listing import Listing
from froc.models.order_record import OrderRecord, RecordKind, TransitionKind
from froc.models.user import BuyerSnapshot, User

# 워크플로우 규칙
from froc.api.orders.routing import OrderRouter
from froc.api.orders.workflow import (
    OrderAction, OrderState, check_consumable, derive_state, next_state, step_rank, successor_id,
)

# 공용 서비스 및 유틸리티
from froc.core.errors import (
    CounterUpdateConflict, InvalidRequest, InvalidTransition, MalformedDuration, MissingShipmentProof, RecordNotFound,
)
from froc.services import pricing
from froc.services.directory_service import ListingCatalog, UserDirectory
from froc.services.inbox_repository import InboxRepository
from froc.services.notification_service import NotificationService
from froc.services.storage_service import StorageService
from froc.utils.datetime_utils import DateTimeUtils

FULFILLMENT_REQUEST_MESSAGE = "Your item has been requested for fulfillment!"

@dataclass
class TransitionResult:
    """전이 결과. delivered 가 False 여도 record 는 이미 저장되어 있습니다."""
    record: OrderRecord
    delivered: bool


def delivery_message(record: OrderRecord) -> Optional[str]:
    """레코드 단계에 해당하는 푸시 메시지 (알릴 대상이 없는 단계는 None)"""
    if record.transition == TransitionKind.AWAITING_APPROVAL:
        verb = "rent" if record.is_rent else "buy"
        return f"{record.actor_username} wants to {verb} '{record.product_info}'. Review the request."
    if record.transition == TransitionKind.FULFILLMENT_REQUESTED:
        return FULFILLMENT_REQUEST_MESSAGE
    if record.transition == TransitionKind.ORDER_CONFIRMED:
        return f"{record.actor_username} confirmed your order!"
    if record.transition == TransitionKind.ITEM_RETURNED:
        return f"{record.actor_username} returned your item"
    return None


class FulfillmentService:
    """
    구매/대여 주문의 처리 흐름(요청 -> 관리자 승인 -> 판매자 발송/거절 -> 반납)을 담당하는 서비스.
    모든 전이는 '검증 -> 증빙 확인 -> 레코드 저장 -> 카운터 트랜잭션 -> 알림' 순서로 진행되며,
    알림 실패는 이미 저장된 레코드를 되돌리지 않습니다.
    """
    def __init__(self,
                 inbox_repository: InboxRepository,
                 user_directory: UserDirectory,
                 listing_catalog: ListingCatalog,
                 notification_service: NotificationService,
                 storage_service: StorageService,
                 router: OrderRouter,
                 clock: Callable[[], datetime] = DateTimeUtils.now,
                 payment_recipient: str = "FROC-Marketplace"):
        self.inbox = inbox_repository
        self.users = user_directory
        self.listings = listing_catalog
        self.notifications = notification_service
        self.storage = storage_service
        self.router = router
        self.clock = clock
        self.payment_recipient = payment_recipient
        logging.info("FulfillmentService initialized with dependencies.")

    # ------------------------------------------------------------------
    # 주문 요청 (구매자)
    # ------------------------------------------------------------------
    def create_request(self, buyer: User, listing: Listing, size: str,
                       duration_days=None, note: str = "", venmo_handle: str = "") -> TransitionResult:
        """
        구매/대여 요청을 만들어 관리자 inbox 에 넣습니다.
        duration_days 가 주어지면 대여, 없으면 구매로 처리합니다.
        """
        if buyer.user_id == listing.owner_id:
            raise InvalidRequest("자신의 리스팅은 주문할 수 없습니다.")
        if size not in listing.sizes:
            raise InvalidRequest(f"'{size}' 사이즈는 이 리스팅에서 선택할 수 없습니다. (가능: {', '.join(listing.sizes)})")

        is_rent = duration_days not in (None, "")
        if is_rent and not listing.supports_rent:
            raise InvalidRequest("구매 전용 리스팅에는 대여 기간을 지정할 수 없습니다.")
        if not is_rent and not listing.supports_purchase:
            raise InvalidRequest("대여 전용 리스팅은 대여 기간이 필요합니다.")

        if is_rent:
            days = pricing.require_duration(duration_days)
            if not listing.min_rent_days <= days <= listing.max_rent_days:
                raise InvalidRequest(
                    f"대여 기간은 {listing.min_rent_days}~{listing.max_rent_days}일 사이여야 합니다: {days}"
                )
            kind = RecordKind.RENT
            price = pricing.rent_total(listing.rent_price_per_day, days)
        else:
            days = None
            kind = RecordKind.PURCHASE
            price = listing.purchase_price

        next_state(OrderState.CREATED, OrderAction.CREATE_REQUEST, kind)

        record = OrderRecord(
            recipient_id=self.router.admin_id,
            kind=kind,
            transition=TransitionKind.AWAITING_APPROVAL,
            action_text="admin wants to rent" if is_rent else "admin wants to buy",
            actor_username=buyer.username,
            order_id=str(uuid.uuid4()),
            timestamp=self.clock(),
            product_info=listing.product_info,
            price=price,
            size=size,
            rent_duration_days=str(days) if is_rent else "",
            note=note or "",
            venmo_handle=venmo_handle or buyer.venmo_handle or "",
            buyer_snapshot=BuyerSnapshot.of(buyer),
            seller_id=listing.owner_id,
            listing_id=listing.listing_id,
            image_urls=list(listing.image_urls),
            icon="tag" if is_rent else "cart",
            name=buyer.full_name,
            address=buyer.address,
        )
        self.inbox.append_record(record.recipient_id, record)
        logging.info(f"주문 요청 생성: order={record.order_id}, buyer={buyer.user_id}, listing={listing.listing_id}, kind={kind.value}, price={price}")

        delivered = self.notifications.deliver(record.recipient_id, delivery_message(record))
        return TransitionResult(record, delivered)

    def create_request_for(self, buyer_id: str, listing_id: str, size: str,
                           duration_days=None, note: str = "", venmo_handle: str = "") -> TransitionResult:
        """ID 로 구매자와 리스팅을 조회한 뒤 create_request 를 호출합니다."""
        buyer = self.users.get_user(buyer_id)
        listing = self.listings.get_listing(listing_id)
        return self.create_request(buyer, listing, size, duration_days, note, venmo_handle)

    def quote_for(self, listing_id: str, duration_days: Optional[int] = None) -> dict:
        """결제 금액 내역과 Venmo 결제 링크"""
        listing = self.listings.get_listing(listing_id)
        if duration_days is not None and not listing.supports_rent:
            raise InvalidRequest("구매 전용 리스팅에는 대여 기간을 지정할 수 없습니다.")
        if duration_days is None and not listing.supports_purchase:
            raise InvalidRequest("대여 전용 리스팅은 대여 기간이 필요합니다.")

        payment = pricing.quote(listing, duration_days)
        return {
            "listing_id": listing.listing_id,
            "is_rent": payment.is_rent,
            "duration_days": payment.duration_days,
            "base": payment.base,
            "fee": payment.fee,
            "insurance": payment.insurance,
            "total": payment.total,
            "payment_link": pricing.build_payment_link(
                payment, self.payment_recipient, ", ".join(listing.sizes), listing.product_info
            ),
        }

    # ------------------------------------------------------------------
    # 관리자 승인
    # ------------------------------------------------------------------
    def pending_approvals(self, admin_id: str) -> List[OrderRecord]:
        if not self.router.is_admin(admin_id):
            raise PermissionError("승인 대기 목록은 관리자만 조회할 수 있습니다.")
        return self.router.pending_approvals(self.inbox)

    def approve(self, admin_id: str, record_id: str) -> TransitionResult:
        """관리자가 요청을 승인하면 판매자 inbox 에 발송 요청 레코드가 생깁니다."""
        if not self.router.is_admin(admin_id):
            raise PermissionError("요청 승인은 관리자만 할 수 있습니다.")
        record = self.inbox.get_record(admin_id, record_id)
        self.router.authorize(admin_id, OrderAction.APPROVE, record)
        self._advance(record, OrderAction.APPROVE)

        seller_id = self.router.recipient_for(OrderAction.APPROVE, record)
        successor = record.successor(
            record_id=successor_id(record, OrderAction.APPROVE),
            recipient_id=seller_id,
            transition=TransitionKind.FULFILLMENT_REQUESTED,
            action_text=f"wants to {record.kind.value}",
            timestamp=self.clock(),
        )
        self._claim_step(record, OrderAction.APPROVE, successor)
        logging.info(f"주문 승인: order={record.order_id}, seller={seller_id}")

        delivered = self.notifications.deliver(seller_id, delivery_message(successor))
        return TransitionResult(successor, delivered)

    # ------------------------------------------------------------------
    # 판매자 발송 / 거절
    # ------------------------------------------------------------------
    def fulfill(self, seller_id: str, record_id: str, ship_proof_path: Optional[str], note: str = "") -> TransitionResult:
        """
        판매자가 배송 증빙 이미지와 함께 발송을 확정합니다.

        :param seller_id: 판매자 ID (JWT identity)
        :param record_id: 판매자 inbox 의 발송 요청 레코드 ID
        :param ship_proof_path: 업로드된 배송 증빙 이미지의 Storage 경로
        :param note: 구매자에게 남길 메모
        :return: 구매자 inbox 에 저장된 주문 확인 레코드와 알림 전송 여부
        """
        record = self.inbox.get_record(seller_id, record_id)
        self.router.authorize(seller_id, OrderAction.FULFILL, record)
        if not ship_proof_path:
            raise MissingShipmentProof("배송 증빙 이미지가 필요합니다.")
        self._advance(record, OrderAction.FULFILL)

        proof_url = self._resolve_proof(seller_id, "ship_proof", ship_proof_path)
        seller = self.users.get_user(seller_id)
        buyer_id = self.router.recipient_for(OrderAction.FULFILL, record)

        now = self.clock()
        expected_return_date = None
        if record.is_rent:
            try:
                expected_return_date = pricing.expected_return(now, pricing.require_duration(record.rent_duration_days))
            except MalformedDuration:
                logging.warning(f"대여 기간을 해석할 수 없어 반납 예정일을 비워둡니다: order={record.order_id}, duration={record.rent_duration_days!r}")

        successor = record.successor(
            record_id=successor_id(record, OrderAction.FULFILL),
            recipient_id=buyer_id,
            transition=TransitionKind.ORDER_CONFIRMED,
            action_text="confirmed your order!",
            actor_username=seller.username,
            timestamp=now,
            ship_proof_image_url=proof_url,
            expected_arrival_date=pricing.expected_arrival(now),
            expected_return_date=expected_return_date,
            note=note or "",
            icon="shippingbox",
            name=seller.first_name,
            address=seller.address,
        )
        self._claim_step(record, OrderAction.FULFILL, successor)
        try:
            count = self.inbox.increment_buy_rent_counter(buyer_id)
        except CounterUpdateConflict:
            # 확인 레코드는 이미 저장됨. 알림은 보내고 카운터는 수동 보정
            logging.error(f"numberOfBuyRents 반영 실패, 수동 보정 필요: order={record.order_id}, buyer={buyer_id}, record={successor.record_id}", exc_info=True)
            self.notifications.deliver(buyer_id, delivery_message(successor))
            raise
        logging.info(f"주문 발송 완료: order={record.order_id}, buyer={buyer_id}, numberOfBuyRents={count}")

        delivered = self.notifications.deliver(buyer_id, delivery_message(successor))
        return TransitionResult(successor, delivered)

    def decline_fulfillment(self, seller_id: str, record_id: str) -> None:
        """
        판매자가 발송을 거절합니다. 판매자 레코드는 삭제되고 아무에게도 알리지 않습니다.
        관리자의 요청 레코드는 REQUEST_DECLINED 로 바뀌어 주문이 취소 상태로 남습니다.
        """
        record = self.inbox.get_record(seller_id, record_id)
        self.router.authorize(seller_id, OrderAction.DECLINE, record)
        self._advance(record, OrderAction.DECLINE)

        self.inbox.delete_record(seller_id, record_id)
        if record.order_id:
            for step in self.inbox.find_by_order(record.order_id):
                if step.transition == TransitionKind.AWAITING_APPROVAL:
                    self.inbox.update_record(step.recipient_id, step.record_id,
                                             {'transition': TransitionKind.REQUEST_DECLINED.value})
        logging.info(f"판매자 발송 거절: order={record.order_id}, seller={seller_id}")

    # ------------------------------------------------------------------
    # 구매자 반납
    # ------------------------------------------------------------------
    def return_item(self, buyer_id: str, record_id: str, ship_proof_path: Optional[str]) -> TransitionResult:
        """대여한 상품을 반납 배송하고 원래 판매자에게 반납 레코드를 보냅니다."""
        record = self.inbox.get_record(buyer_id, record_id)
        if record.kind != RecordKind.RENT:
            raise InvalidTransition(f"반납은 대여 주문에서만 가능합니다 (kind: {record.kind.value})")
        self.router.authorize(buyer_id, OrderAction.RETURN_ITEM, record)
        if not ship_proof_path:
            raise MissingShipmentProof("반납 배송 증빙 이미지가 필요합니다.")
        self._advance(record, OrderAction.RETURN_ITEM)

        proof_url = self._resolve_proof(buyer_id, "return_proof", ship_proof_path)
        buyer = self.users.get_user(buyer_id)
        seller_id = self.router.recipient_for(OrderAction.RETURN_ITEM, record)

        successor = record.successor(
            record_id=successor_id(record, OrderAction.RETURN_ITEM),
            recipient_id=seller_id,
            kind=RecordKind.RETURN,
            transition=TransitionKind.ITEM_RETURNED,
            action_text="returned your item",
            actor_username=buyer.username,
            timestamp=self.clock(),
            ship_proof_image_url=proof_url,
            icon="archivebox",
            name=buyer.first_name,
            address=buyer.address,
        )
        self._claim_step(record, OrderAction.RETURN_ITEM, successor)
        logging.info(f"대여 상품 반납: order={record.order_id}, seller={seller_id}")

        delivered = self.notifications.deliver(seller_id, delivery_message(successor))
        return TransitionResult(successor, delivered)

    # ------------------------------------------------------------------
    # 조회 / 재전송
    # ------------------------------------------------------------------
    def order_history(self, order_id: str) -> List[OrderRecord]:
        """한 주문의 레코드 체인 (단계 순)"""
        records = self.inbox.find_by_order(order_id)
        if not records:
            raise RecordNotFound(f"주문을 찾을 수 없습니다: {order_id}")
        return sorted(records, key=lambda r: (step_rank(r), r.timestamp))

    def order_state(self, order_id: str) -> OrderState:
        return derive_state(self.order_history(order_id))

    def order_summary(self, user_id: str, order_id: str) -> dict:
        """주문 당사자(구매자, 판매자, 관리자)만 조회할 수 있습니다."""
        history = self.order_history(order_id)
        first = history[0]
        parties = {self.router.admin_id, first.seller_id}
        if first.buyer_snapshot:
            parties.add(first.buyer_snapshot.user_id)
        if user_id not in parties:
            raise PermissionError("이 주문을 조회할 권한이 없습니다.")
        return {"order_id": order_id, "state": derive_state(history), "records": history}

    def redeliver(self, order_id: str, requested_by: Optional[str] = None) -> TransitionResult:
        """
        가장 최근 단계의 알림을 그 단계의 수신자에게 다시 보냅니다.
        레코드는 건드리지 않으므로 여러 번 호출해도 안전합니다.
        """
        history = self.order_history(order_id)
        latest = history[-1]
        message = delivery_message(latest)
        if message is None:
            raise InvalidTransition(f"다시 보낼 알림이 없는 단계입니다: {latest.transition.value}")
        if requested_by is not None and requested_by not in (latest.recipient_id, self.router.admin_id) \
                and not self._is_sender(requested_by, latest):
            raise PermissionError("이 주문의 알림을 다시 보낼 권한이 없습니다.")

        delivered = self.notifications.deliver(latest.recipient_id, message)
        logging.info(f"알림 재전송: order={order_id}, recipient={latest.recipient_id}, delivered={delivered}")
        return TransitionResult(latest, delivered)

    # ------------------------------------------------------------------
    # 내부 헬퍼
    # ------------------------------------------------------------------
    def _advance(self, record: OrderRecord, action: OrderAction) -> OrderState:
        """레코드 단계와 주문 전체 상태 모두에서 action 이 허용되는지 확인합니다."""
        check_consumable(record, action)
        chain = self.inbox.find_by_order(record.order_id) if record.order_id else [record]
        return next_state(derive_state(chain or [record]), action, record.kind)

    def _claim_step(self, record: OrderRecord, action: OrderAction, successor: OrderRecord) -> None:
        """
        후속 레코드를 create-if-absent 로 저장해 record 단계를 소비합니다.
        같은 단계를 동시에 처리한 요청이 먼저 저장했다면 InvalidTransition.
        """
        if not self.inbox.create_record(successor.recipient_id, successor):
            logging.warning(f"이미 처리된 단계에 대한 중복 요청: order={record.order_id}, record={record.record_id}, action={action.value}")
            raise InvalidTransition(f"이미 처리된 단계입니다: {record.record_id} ({action.value})")

    def _resolve_proof(self, owner_id: str, upload_type: str, ship_proof_path: str) -> str:
        try:
            return self.storage.publish_proof(owner_id, upload_type, ship_proof_path)
        except FileNotFoundError as e:
            raise MissingShipmentProof(f"업로드된 증빙 이미지를 찾을 수 없습니다: {ship_proof_path}") from e

    def _is_sender(self, user_id: str, record: OrderRecord) -> bool:
        if record.transition == TransitionKind.ORDER_CONFIRMED:
            return user_id == record.seller_id
        if record.transition == TransitionKind.ITEM_RETURNED:
            return record.buyer_snapshot is not None and user_id == record.buyer_snapshot.user_id
        if record.transition == TransitionKind.AWAITING_APPROVAL:
            return record.buyer_snapshot is not None and user_id == record.buyer_snapshot.user_id
        return False
