# froc/api/orders/test_routing.py
import pytest

from froc.api.orders.routing import OrderRouter
from froc.api.orders.workflow import OrderAction
from froc.core.errors import InvalidTransition
from froc.models.order_record import OrderRecord, RecordKind, TransitionKind
from froc.models.user import BuyerSnapshot


@pytest.fixture
def router():
    return OrderRouter("admin")


def _record(recipient_id, transition, seller_id="seller", buyer_id="buyer"):
    return OrderRecord(
        recipient_id=recipient_id, kind=RecordKind.RENT, transition=transition,
        action_text="", actor_username="", order_id="o-1", seller_id=seller_id,
        buyer_snapshot=BuyerSnapshot(user_id=buyer_id, username="jane") if buyer_id else None,
    )


def test_admin_id_is_required():
    with pytest.raises(ValueError):
        OrderRouter("")


def test_recipients_follow_the_gate(router):
    request = _record("admin", TransitionKind.AWAITING_APPROVAL)
    assert router.recipient_for(OrderAction.CREATE_REQUEST, request) == "admin"
    assert router.recipient_for(OrderAction.APPROVE, request) == "seller"
    assert router.recipient_for(OrderAction.FULFILL, request) == "buyer"
    assert router.recipient_for(OrderAction.RETURN_ITEM, request) == "seller"


def test_missing_party_is_an_invalid_transition(router):
    with pytest.raises(InvalidTransition):
        router.recipient_for(OrderAction.APPROVE, _record("admin", TransitionKind.AWAITING_APPROVAL, seller_id=None))
    with pytest.raises(InvalidTransition):
        router.recipient_for(OrderAction.FULFILL, _record("seller", TransitionKind.FULFILLMENT_REQUESTED, buyer_id=None))
    with pytest.raises(InvalidTransition):
        router.recipient_for(OrderAction.DECLINE, _record("seller", TransitionKind.FULFILLMENT_REQUESTED))


def test_authorize_checks_inbox_owner_and_role(router):
    router.authorize("admin", OrderAction.APPROVE, _record("admin", TransitionKind.AWAITING_APPROVAL))
    router.authorize("seller", OrderAction.FULFILL, _record("seller", TransitionKind.FULFILLMENT_REQUESTED))
    router.authorize("buyer", OrderAction.RETURN_ITEM, _record("buyer", TransitionKind.ORDER_CONFIRMED))

    with pytest.raises(PermissionError):
        router.authorize("seller", OrderAction.FULFILL, _record("admin", TransitionKind.FULFILLMENT_REQUESTED))
    with pytest.raises(PermissionError):
        router.authorize("buyer", OrderAction.APPROVE, _record("buyer", TransitionKind.AWAITING_APPROVAL))
    with pytest.raises(PermissionError):
        router.authorize("buyer", OrderAction.DECLINE, _record("buyer", TransitionKind.FULFILLMENT_REQUESTED))
