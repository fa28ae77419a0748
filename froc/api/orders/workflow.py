# froc/api/orders/workflow.py
"""
주문 처리 상태 머신 (순수 함수, I/O 없음)

  [CREATED] --CREATE_REQUEST--> ADMIN_REVIEW
  ADMIN_REVIEW --APPROVE--> SELLER_ACTION_PENDING
  SELLER_ACTION_PENDING --FULFILL--> BUYER_CONFIRMED        (구매는 여기서 종료)
  SELLER_ACTION_PENDING --DECLINE--> CANCELLED              (종료)
  BUYER_CONFIRMED --RETURN_ITEM--> SELLER_RETURN_RECEIVED   (대여 전용, 종료)

주문 하나의 상태는 같은 order_id 를 가진 레코드 체인으로부터 계산합니다.
"""

import uuid
from enum import Enum
from typing import Dict, Iterable, Tuple

from froc.core.errors import InvalidTransition
from froc.models.order_record import OrderRecord, RecordKind, TransitionKind

class OrderState(Enum):
    CREATED = "CREATED"
    ADMIN_REVIEW = "ADMIN_REVIEW"
    SELLER_ACTION_PENDING = "SELLER_ACTION_PENDING"
    BUYER_CONFIRMED = "BUYER_CONFIRMED"
    CANCELLED = "CANCELLED"
    SELLER_RETURN_RECEIVED = "SELLER_RETURN_RECEIVED"

class OrderAction(Enum):
    CREATE_REQUEST = "CREATE_REQUEST"
    APPROVE = "APPROVE"
    FULFILL = "FULFILL"
    DECLINE = "DECLINE"
    RETURN_ITEM = "RETURN_ITEM"

TRANSITIONS: Dict[Tuple[OrderState, OrderAction], OrderState] = {
    (OrderState.CREATED, OrderAction.CREATE_REQUEST): OrderState.ADMIN_REVIEW,
    (OrderState.ADMIN_REVIEW, OrderAction.APPROVE): OrderState.SELLER_ACTION_PENDING,
    (OrderState.SELLER_ACTION_PENDING, OrderAction.FULFILL): OrderState.BUYER_CONFIRMED,
    (OrderState.SELLER_ACTION_PENDING, OrderAction.DECLINE): OrderState.CANCELLED,
    (OrderState.BUYER_CONFIRMED, OrderAction.RETURN_ITEM): OrderState.SELLER_RETURN_RECEIVED,
}

# 각 액션이 소비하는 레코드의 단계
CONSUMED_STEP: Dict[OrderAction, TransitionKind] = {
    OrderAction.APPROVE: TransitionKind.AWAITING_APPROVAL,
    OrderAction.FULFILL: TransitionKind.FULFILLMENT_REQUESTED,
    OrderAction.DECLINE: TransitionKind.FULFILLMENT_REQUESTED,
    OrderAction.RETURN_ITEM: TransitionKind.ORDER_CONFIRMED,
}

# 레코드 단계가 나타내는 주문 상태
STEP_STATE: Dict[TransitionKind, OrderState] = {
    TransitionKind.AWAITING_APPROVAL: OrderState.ADMIN_REVIEW,
    TransitionKind.FULFILLMENT_REQUESTED: OrderState.SELLER_ACTION_PENDING,
    TransitionKind.ORDER_CONFIRMED: OrderState.BUYER_CONFIRMED,
    TransitionKind.REQUEST_DECLINED: OrderState.CANCELLED,
    TransitionKind.ITEM_RETURNED: OrderState.SELLER_RETURN_RECEIVED,
}

STATE_RANK: Dict[OrderState, int] = {
    OrderState.CREATED: 0,
    OrderState.ADMIN_REVIEW: 1,
    OrderState.SELLER_ACTION_PENDING: 2,
    OrderState.BUYER_CONFIRMED: 3,
    OrderState.CANCELLED: 3,
    OrderState.SELLER_RETURN_RECEIVED: 4,
}


def next_state(state: OrderState, action: OrderAction, kind: RecordKind) -> OrderState:
    """허용된 전이면 다음 상태를, 아니면 InvalidTransition 을 발생시킵니다."""
    if action == OrderAction.RETURN_ITEM and kind != RecordKind.RENT:
        raise InvalidTransition(f"반납은 대여 주문에서만 가능합니다 (kind: {kind.value})")
    target = TRANSITIONS.get((state, action))
    if target is None:
        raise InvalidTransition(f"{state.value} 상태에서 {action.value} 을(를) 할 수 없습니다.")
    return target


def check_consumable(record: OrderRecord, action: OrderAction) -> None:
    """액션이 이 레코드(단계)에 적용될 수 있는지 확인합니다."""
    if record.kind not in (RecordKind.PURCHASE, RecordKind.RENT):
        raise InvalidTransition(f"'{record.kind.value}' 레코드는 주문 워크플로우에 속하지 않습니다.")
    expected = CONSUMED_STEP[action]
    if record.transition != expected:
        raise InvalidTransition(
            f"{action.value} 은(는) {expected.value} 단계 레코드에만 적용됩니다 (현재: {record.transition.value})"
        )


def successor_id(record: OrderRecord, action: OrderAction) -> str:
    """
    record 에 action 을 적용해 생기는 다음 레코드의 ID.
    같은 레코드와 액션이면 항상 같은 값이므로 동시 요청 중 하나만 저장에 성공합니다.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"froc:{record.record_id}:{action.value}"))


def step_rank(record: OrderRecord) -> int:
    state = STEP_STATE.get(record.transition)
    return STATE_RANK[state] if state else -1


def derive_state(records: Iterable[OrderRecord]) -> OrderState:
    """레코드 체인에서 가장 많이 진행된 단계를 주문의 현재 상태로 봅니다."""
    state = OrderState.CREATED
    for record in records:
        candidate = STEP_STATE.get(record.transition)
        if candidate and STATE_RANK[candidate] > STATE_RANK[state]:
            state = candidate
    return state


def is_terminal(state: OrderState, kind: RecordKind) -> bool:
    if state in (OrderState.CANCELLED, OrderState.SELLER_RETURN_RECEIVED):
        return True
    return state == OrderState.BUYER_CONFIRMED and kind == RecordKind.PURCHASE
