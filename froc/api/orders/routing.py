# froc/api/orders/routing.py
import logging
from typing import List

from froc.api.orders.workflow import OrderAction, OrderState, derive_state
from froc.core.errors import InvalidTransition
from froc.models.order_record import OrderRecord, TransitionKind
from froc.services.inbox_repository import InboxRepository

class OrderRouter:
    """
    관리자 승인 게이트를 포함한 주문 레코드 라우팅 규칙.
    - 모든 요청은 판매자에게 바로 가지 않고 고정된 관리자 계정의 inbox 로 먼저 갑니다.
    - 각 단계에서 누가 행동할 수 있는지, 다음 레코드가 누구의 inbox 로 가는지를 결정합니다.
    """
    def __init__(self, admin_id: str):
        if not admin_id:
            raise ValueError("관리자 계정 ID(FROC_ADMIN_USER_ID)가 필요합니다.")
        self.admin_id = admin_id

    def is_admin(self, user_id: str) -> bool:
        return user_id == self.admin_id

    def recipient_for(self, action: OrderAction, record: OrderRecord) -> str:
        """action 이 만들어낼 다음 레코드의 수신자"""
        if action == OrderAction.CREATE_REQUEST:
            return self.admin_id
        if action in (OrderAction.APPROVE, OrderAction.RETURN_ITEM):
            if not record.seller_id:
                raise InvalidTransition(f"판매자 정보가 없는 레코드입니다: {record.record_id}")
            return record.seller_id
        if action == OrderAction.FULFILL:
            if not record.buyer_snapshot or not record.buyer_snapshot.user_id:
                raise InvalidTransition(f"구매자 정보가 없는 레코드입니다: {record.record_id}")
            return record.buyer_snapshot.user_id
        raise InvalidTransition(f"{action.value} 은(는) 새 레코드를 만들지 않습니다.")

    def authorize(self, actor_id: str, action: OrderAction, record: OrderRecord) -> None:
        """레코드를 소유한 당사자만 해당 단계를 진행할 수 있습니다."""
        if record.recipient_id != actor_id:
            raise PermissionError("다른 사용자의 레코드는 처리할 수 없습니다.")

        if action == OrderAction.APPROVE:
            allowed = self.is_admin(actor_id)
        elif action in (OrderAction.FULFILL, OrderAction.DECLINE):
            allowed = record.seller_id == actor_id
        elif action == OrderAction.RETURN_ITEM:
            allowed = record.buyer_snapshot is not None and record.buyer_snapshot.user_id == actor_id
        else:
            allowed = False

        if not allowed:
            logging.warning(f"권한 없는 워크플로우 액션 시도: {actor_id} -> {action.value} (record: {record.record_id})")
            raise PermissionError(f"{action.value} 을(를) 수행할 권한이 없습니다.")

    def pending_approvals(self, repository: InboxRepository) -> List[OrderRecord]:
        """관리자 승인 대기열 (오래된 요청부터). 이미 승인된 주문은 제외합니다."""
        records = repository.list_records(self.admin_id)
        pending = []
        for record in records:
            if record.transition != TransitionKind.AWAITING_APPROVAL:
                continue
            chain = repository.find_by_order(record.order_id) if record.is_order_step else [record]
            if derive_state(chain or [record]) == OrderState.ADMIN_REVIEW:
                pending.append(record)
        return sorted(pending, key=lambda r: r.timestamp)
