# froc/models/test_order_record.py
from datetime import datetime, timezone

import pytest

from froc.models.listing import Listing, SaleOption
from froc.models.order_record import OrderRecord, RecordKind, TransitionKind
from froc.models.user import BuyerSnapshot


def test_negative_price_is_rejected():
    with pytest.raises(ValueError):
        OrderRecord(recipient_id="u", kind=RecordKind.PURCHASE, transition=TransitionKind.AWAITING_APPROVAL,
                    action_text="", actor_username="", price=-1.0)


def test_document_keeps_existing_keys():
    record = OrderRecord(
        recipient_id="seller", kind=RecordKind.RENT, transition=TransitionKind.FULFILLMENT_REQUESTED,
        action_text="wants to rent", actor_username="jane", order_id="o-1", price=40.0,
        rent_duration_days="2", buyer_snapshot=BuyerSnapshot(user_id="b", username="jane"),
    )
    doc = record.to_document()

    for key in ("type", "username", "actionText", "duration", "venmo", "buyer", "shipImageUrl", "isNew", "orderId", "transition"):
        assert key in doc
    assert doc["type"] == "rent"
    assert doc["buyer"]["id"] == "b"

    restored = OrderRecord.from_document(record.record_id, doc)
    assert restored.transition == TransitionKind.FULFILLMENT_REQUESTED
    assert restored.buyer_snapshot == record.buyer_snapshot


@pytest.mark.parametrize("kind, action_text, expected", [
    ("rent", "admin wants to rent", TransitionKind.AWAITING_APPROVAL),
    ("purchase", "wants to purchase", TransitionKind.FULFILLMENT_REQUESTED),
    ("rent", "confirmed your order!", TransitionKind.ORDER_CONFIRMED),
    ("return", "returned your item", TransitionKind.ITEM_RETURNED),
    ("like", "liked your post", TransitionKind.LIKED),
    ("flag", "Flagged x spam", TransitionKind.USER_FLAGGED),
])
def test_documents_without_transition_are_tagged_once(kind, action_text, expected):
    doc = {"type": kind, "actionText": action_text, "username": "jane", "price": 12.5,
           "timestamp": datetime(2024, 5, 1, tzinfo=timezone.utc)}
    assert OrderRecord.from_document("r1", doc).transition == expected


def test_successor_gets_new_identity():
    record = OrderRecord(recipient_id="admin", kind=RecordKind.PURCHASE, transition=TransitionKind.AWAITING_APPROVAL,
                         action_text="admin wants to buy", actor_username="jane", order_id="o-1", price=50.0, is_new=False)
    nxt = record.successor(recipient_id="seller", transition=TransitionKind.FULFILLMENT_REQUESTED)

    assert nxt.record_id != record.record_id
    assert nxt.order_id == "o-1"
    assert nxt.price == 50.0
    assert nxt.is_new is True


def test_listing_requires_prices_for_its_sale_option():
    with pytest.raises(ValueError):
        Listing(listing_id="l", owner_id="s", sale_option=SaleOption.RENT, purchase_price=10.0)
    with pytest.raises(ValueError):
        Listing(listing_id="l", owner_id="s", sale_option=SaleOption.PURCHASE_OR_RENT, rent_price_per_day=5.0)


def test_listing_reads_string_prices():
    listing = Listing.from_document("l", {"userId": "s", "saleOption": "Rent", "rentPrice": "12.5", "purchasePrice": ""})
    assert listing.rent_price_per_day == 12.5
    assert listing.purchase_price is None
    assert listing.max_rent_days == 40
