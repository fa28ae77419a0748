# froc/api/orders/test_services.py
"""
FulfillmentService 시나리오 테스트

사용법: python -m pytest froc/api/orders/test_services.py -v
"""

import threading
from datetime import timedelta

import pytest

from froc.api.orders.workflow import OrderState
from froc.conftest import ADMIN_ID, BUYER_ID, SELLER_ID, START
from froc.core.errors import (
    CounterUpdateConflict, InvalidRequest, InvalidTransition, MalformedDuration, MissingShipmentProof, RecordNotFound,
)
from froc.models.order_record import RecordKind, TransitionKind


def _request(service, parties, listing_key="rent_listing", size="M", duration=None):
    return service.create_request(parties["buyer"], parties[listing_key], size, duration).record


def _approved(service, parties, **kwargs):
    request = _request(service, parties, **kwargs)
    return service.approve(ADMIN_ID, request.record_id).record


def _fulfilled(service, parties, upload_proof, **kwargs):
    seller_record = _approved(service, parties, **kwargs)
    return service.fulfill(SELLER_ID, seller_record.record_id, upload_proof(SELLER_ID)).record


# ----------------------------------------------------------------------
# create_request
# ----------------------------------------------------------------------
def test_rent_request_goes_to_admin_with_total_price(fulfillment_service, parties, inbox_repository, notifications):
    result = fulfillment_service.create_request(parties["buyer"], parties["rent_listing"], "S", "5", note="for prom")
    record = result.record

    assert record.recipient_id == ADMIN_ID
    assert record.kind == RecordKind.RENT
    assert record.transition == TransitionKind.AWAITING_APPROVAL
    assert record.action_text == "admin wants to rent"
    assert record.icon == "tag"
    assert record.price == 100.0
    assert record.rent_duration_days == "5"
    assert record.is_new is True
    assert record.timestamp == START
    assert record.buyer_snapshot.user_id == BUYER_ID
    assert record.seller_id == SELLER_ID
    assert record.venmo_handle == "jane-doe"

    stored = inbox_repository.get_record(ADMIN_ID, record.record_id)
    assert stored.order_id == record.order_id
    assert result.delivered is True
    assert len(notifications.messages_for(ADMIN_ID)) == 1


def test_purchase_request_uses_purchase_price(fulfillment_service, parties):
    record = _request(fulfillment_service, parties, listing_key="purchase_listing")

    assert record.kind == RecordKind.PURCHASE
    assert record.action_text == "admin wants to buy"
    assert record.icon == "cart"
    assert record.price == 50.0
    assert record.rent_duration_days == ""


def test_purchase_listing_rejects_duration(fulfillment_service, parties, inbox_repository):
    with pytest.raises(InvalidRequest):
        fulfillment_service.create_request(parties["buyer"], parties["purchase_listing"], "M", "3")
    assert inbox_repository.list_records(ADMIN_ID) == []


def test_rent_listing_requires_duration(fulfillment_service, parties):
    with pytest.raises(InvalidRequest):
        fulfillment_service.create_request(parties["buyer"], parties["rent_listing"], "M", None)


@pytest.mark.parametrize("duration", ["abc", "0", "-2", "1", "15"])
def test_flexible_listing_rejects_duration_outside_range(fulfillment_service, parties, duration):
    with pytest.raises(InvalidRequest):
        fulfillment_service.create_request(parties["buyer"], parties["flexible_listing"], "L", duration)


@pytest.mark.parametrize("duration", ["abc", "0", "2.5"])
def test_unparseable_duration_is_malformed(fulfillment_service, parties, inbox_repository, duration):
    with pytest.raises(MalformedDuration) as excinfo:
        fulfillment_service.create_request(parties["buyer"], parties["rent_listing"], "M", duration)

    assert excinfo.value.error_code == "MALFORMED_DURATION"
    assert inbox_repository.list_records(ADMIN_ID) == []


def test_flexible_listing_chooses_rent_when_duration_given(fulfillment_service, parties):
    rent = _request(fulfillment_service, parties, listing_key="flexible_listing", size="L", duration=4)
    purchase = _request(fulfillment_service, parties, listing_key="flexible_listing", size="L")

    assert rent.kind == RecordKind.RENT and rent.price == 60.0
    assert purchase.kind == RecordKind.PURCHASE and purchase.price == 120.0
    assert rent.order_id != purchase.order_id


def test_unknown_size_is_rejected(fulfillment_service, parties):
    with pytest.raises(InvalidRequest):
        fulfillment_service.create_request(parties["buyer"], parties["rent_listing"], "XXL", 3)


def test_seller_cannot_order_own_listing(fulfillment_service, parties):
    with pytest.raises(InvalidRequest):
        fulfillment_service.create_request(parties["seller"], parties["rent_listing"], "M", 3)


def test_quote_for_rent_includes_fee_and_no_insurance_without_purchase_price(fulfillment_service, parties):
    quote = fulfillment_service.quote_for("listing-rent", 5)

    assert quote["base"] == 100.0
    assert quote["fee"] == pytest.approx(3.0)
    assert quote["insurance"] == 0.0
    assert quote["payment_link"].startswith("venmo://paycharge?txn=pay&recipients=FROC-Marketplace&amount=103.00")


# ----------------------------------------------------------------------
# approve
# ----------------------------------------------------------------------
def test_approve_copies_monetary_fields_to_seller(fulfillment_service, parties, clock, notifications):
    request = _request(fulfillment_service, parties, size="S", duration=7)
    clock.advance(hours=2)

    result = fulfillment_service.approve(ADMIN_ID, request.record_id)
    seller_record = result.record

    assert seller_record.recipient_id == SELLER_ID
    assert seller_record.transition == TransitionKind.FULFILLMENT_REQUESTED
    assert seller_record.action_text == "wants to rent"
    assert seller_record.record_id != request.record_id
    assert seller_record.order_id == request.order_id
    assert seller_record.timestamp == START + timedelta(hours=2)
    for name in ("price", "size", "rent_duration_days", "buyer_snapshot", "product_info", "kind"):
        assert getattr(seller_record, name) == getattr(request, name)
    assert notifications.messages_for(SELLER_ID) == ["Your item has been requested for fulfillment!"]
    assert fulfillment_service.order_state(request.order_id) == OrderState.SELLER_ACTION_PENDING


def test_only_admin_can_approve(fulfillment_service, parties):
    request = _request(fulfillment_service, parties, duration=3)
    with pytest.raises(PermissionError):
        fulfillment_service.approve(SELLER_ID, request.record_id)


def test_approve_twice_is_invalid(fulfillment_service, parties):
    request = _request(fulfillment_service, parties, duration=3)
    fulfillment_service.approve(ADMIN_ID, request.record_id)
    with pytest.raises(InvalidTransition):
        fulfillment_service.approve(ADMIN_ID, request.record_id)


def test_approve_with_stale_chain_writes_one_seller_record(fulfillment_service, parties, inbox_repository, notifications, monkeypatch):
    request = _request(fulfillment_service, parties, duration=3)
    chain_before = inbox_repository.find_by_order(request.order_id)
    fulfillment_service.approve(ADMIN_ID, request.record_id)

    # 동시에 들어온 두 번째 승인은 승인 전 체인을 읽은 상태
    monkeypatch.setattr(inbox_repository, "find_by_order", lambda order_id: list(chain_before))
    with pytest.raises(InvalidTransition):
        fulfillment_service.approve(ADMIN_ID, request.record_id)

    assert len(inbox_repository.list_records(SELLER_ID)) == 1
    assert len(notifications.messages_for(SELLER_ID)) == 1


def test_pending_approvals_is_oldest_first(fulfillment_service, parties, clock):
    first = _request(fulfillment_service, parties, duration=2)
    clock.advance(minutes=5)
    second = _request(fulfillment_service, parties, listing_key="purchase_listing")
    clock.advance(minutes=5)
    third = _request(fulfillment_service, parties, duration=3)
    fulfillment_service.approve(ADMIN_ID, third.record_id)

    pending = fulfillment_service.pending_approvals(ADMIN_ID)
    assert [r.record_id for r in pending] == [first.record_id, second.record_id]
    with pytest.raises(PermissionError):
        fulfillment_service.pending_approvals(BUYER_ID)


# ----------------------------------------------------------------------
# fulfill
# ----------------------------------------------------------------------
def test_fulfill_rent_sets_arrival_and_return_dates(fulfillment_service, parties, upload_proof, user_directory, notifications):
    confirmed = _fulfilled(fulfillment_service, parties, upload_proof, size="S", duration=7)

    assert confirmed.recipient_id == BUYER_ID
    assert confirmed.transition == TransitionKind.ORDER_CONFIRMED
    assert confirmed.action_text == "confirmed your order!"
    assert confirmed.actor_username == "sam"
    assert confirmed.icon == "shippingbox"
    assert confirmed.expected_arrival_date == START + timedelta(days=3)
    assert confirmed.expected_return_date == START + timedelta(days=10)
    assert confirmed.ship_proof_image_url.startswith("https://storage.local/froc-test/shipImages/seller-1/")
    assert user_directory.get_user(BUYER_ID).number_of_buy_rents == 1
    assert notifications.messages_for(BUYER_ID) == ["sam confirmed your order!"]


def test_fulfill_purchase_has_no_return_date(fulfillment_service, parties, upload_proof):
    confirmed = _fulfilled(fulfillment_service, parties, upload_proof, listing_key="purchase_listing")

    assert confirmed.expected_arrival_date == START + timedelta(days=3)
    assert confirmed.expected_return_date is None
    assert fulfillment_service.order_state(confirmed.order_id) == OrderState.BUYER_CONFIRMED


def test_fulfill_without_proof_writes_nothing(fulfillment_service, parties, inbox_repository, user_directory):
    seller_record = _approved(fulfillment_service, parties, duration=3)

    with pytest.raises(MissingShipmentProof):
        fulfillment_service.fulfill(SELLER_ID, seller_record.record_id, None)
    with pytest.raises(MissingShipmentProof):
        fulfillment_service.fulfill(SELLER_ID, seller_record.record_id, "shipImages/seller-1/never-uploaded.jpg")

    assert inbox_repository.list_records(BUYER_ID) == []
    assert user_directory.get_user(BUYER_ID).number_of_buy_rents == 0


def test_fulfill_with_someone_elses_proof_is_forbidden(fulfillment_service, parties, upload_proof, inbox_repository, storage):
    seller_record = _approved(fulfillment_service, parties, duration=3)
    buyers_photo = upload_proof(BUYER_ID)

    with pytest.raises(PermissionError):
        fulfillment_service.fulfill(SELLER_ID, seller_record.record_id, buyers_photo)

    assert inbox_repository.list_records(BUYER_ID) == []
    assert storage.published == set()


def test_fulfill_by_another_user_is_forbidden(fulfillment_service, parties, upload_proof):
    request = _request(fulfillment_service, parties, duration=3)
    seller_record = fulfillment_service.approve(ADMIN_ID, request.record_id).record

    # 관리자 inbox 의 요청 레코드로 발송을 시도
    with pytest.raises(PermissionError):
        fulfillment_service.fulfill(ADMIN_ID, request.record_id, upload_proof(ADMIN_ID))
    # 다른 사람 inbox 의 레코드는 보이지 않음
    with pytest.raises(RecordNotFound):
        fulfillment_service.fulfill(BUYER_ID, seller_record.record_id, upload_proof(BUYER_ID))


def test_buyer_cannot_return_someone_elses_confirmation(fulfillment_service, parties, upload_proof):
    seller_record = _approved(fulfillment_service, parties, duration=3)
    with pytest.raises(PermissionError):
        fulfillment_service.return_item(SELLER_ID, seller_record.record_id, upload_proof(SELLER_ID, "return_proof"))


def test_fulfill_with_legacy_malformed_duration_omits_return_date(fulfillment_service, parties, upload_proof, inbox_repository):
    seller_record = _approved(fulfillment_service, parties, duration=3)
    inbox_repository.update_record(SELLER_ID, seller_record.record_id, {"duration": "a week"})

    confirmed = fulfillment_service.fulfill(SELLER_ID, seller_record.record_id, upload_proof(SELLER_ID)).record

    assert confirmed.expected_arrival_date == START + timedelta(days=3)
    assert confirmed.expected_return_date is None


def test_delivery_failure_keeps_record_and_redeliver_succeeds(fulfillment_service, parties, upload_proof, notifications, inbox_repository):
    notifications.fail_for.add(BUYER_ID)
    seller_record = _approved(fulfillment_service, parties, duration=3)

    result = fulfillment_service.fulfill(SELLER_ID, seller_record.record_id, upload_proof(SELLER_ID))

    assert result.delivered is False
    assert inbox_repository.get_record(BUYER_ID, result.record.record_id).transition == TransitionKind.ORDER_CONFIRMED

    notifications.fail_for.clear()
    retry = fulfillment_service.redeliver(result.record.order_id)
    assert retry.delivered is True
    assert retry.record.record_id == result.record.record_id
    assert notifications.messages_for(BUYER_ID) == ["sam confirmed your order!"]
    assert len(inbox_repository.list_records(BUYER_ID)) == 1


def test_counter_conflict_leaves_confirmation_in_place(fulfillment_service, parties, upload_proof, store, inbox_repository,
                                                       notifications, monkeypatch, caplog):
    seller_record = _approved(fulfillment_service, parties, duration=3)
    monkeypatch.setattr(store, "compare_and_set", lambda *args, **kwargs: False)

    with pytest.raises(CounterUpdateConflict):
        fulfillment_service.fulfill(SELLER_ID, seller_record.record_id, upload_proof(SELLER_ID))

    assert [r.transition for r in inbox_repository.list_records(BUYER_ID)] == [TransitionKind.ORDER_CONFIRMED]
    assert notifications.messages_for(BUYER_ID) == ["sam confirmed your order!"]
    errors = [r for r in caplog.records if r.levelname == "ERROR"]
    assert any(seller_record.order_id in r.getMessage() for r in errors)


def test_concurrent_fulfills_of_one_record_confirm_once(fulfillment_service, parties, upload_proof, storage,
                                                        inbox_repository, user_directory, notifications, monkeypatch):
    seller_record = _approved(fulfillment_service, parties, duration=3)
    proof = upload_proof(SELLER_ID)
    both_checked = threading.Barrier(2, timeout=5)
    publish = storage._publish

    def _publish_after_both_checked(file_path):
        # 두 요청 모두 단계 검증을 통과한 뒤에 저장 단계로 진행
        both_checked.wait()
        return publish(file_path)

    monkeypatch.setattr(storage, "_publish", _publish_after_both_checked)
    results, errors = [], []

    def _fulfill():
        try:
            results.append(fulfillment_service.fulfill(SELLER_ID, seller_record.record_id, proof))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=_fulfill) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 1
    assert [type(e) for e in errors] == [InvalidTransition]
    confirmed = [r for r in inbox_repository.list_records(BUYER_ID) if r.transition == TransitionKind.ORDER_CONFIRMED]
    assert [r.record_id for r in confirmed] == [results[0].record.record_id]
    assert user_directory.get_user(BUYER_ID).number_of_buy_rents == 1
    assert notifications.messages_for(BUYER_ID) == ["sam confirmed your order!"]


def test_concurrent_fulfills_for_same_buyer_count_both(fulfillment_service, parties, upload_proof, user_directory):
    seller_records = [_approved(fulfillment_service, parties, duration=d) for d in (2, 3)]
    proofs = [upload_proof(SELLER_ID) for _ in seller_records]
    errors = []

    def _fulfill(record, proof):
        try:
            fulfillment_service.fulfill(SELLER_ID, record.record_id, proof)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=_fulfill, args=pair) for pair in zip(seller_records, proofs)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert user_directory.get_user(BUYER_ID).number_of_buy_rents == 2


# ----------------------------------------------------------------------
# decline
# ----------------------------------------------------------------------
def test_decline_removes_seller_record_and_cancels_order(fulfillment_service, parties, inbox_repository, notifications):
    seller_record = _approved(fulfillment_service, parties, duration=3)
    sent_before = list(notifications.sent)

    assert fulfillment_service.decline_fulfillment(SELLER_ID, seller_record.record_id) is None

    assert inbox_repository.list_records(SELLER_ID) == []
    assert inbox_repository.list_records(BUYER_ID) == []
    assert notifications.sent == sent_before
    assert fulfillment_service.order_state(seller_record.order_id) == OrderState.CANCELLED
    admin_records = inbox_repository.list_records(ADMIN_ID)
    assert [r.transition for r in admin_records] == [TransitionKind.REQUEST_DECLINED]
    assert fulfillment_service.pending_approvals(ADMIN_ID) == []


def test_cannot_decline_after_fulfill(fulfillment_service, parties, upload_proof):
    seller_record = _approved(fulfillment_service, parties, duration=3)
    fulfillment_service.fulfill(SELLER_ID, seller_record.record_id, upload_proof(SELLER_ID))

    with pytest.raises(InvalidTransition):
        fulfillment_service.decline_fulfillment(SELLER_ID, seller_record.record_id)


# ----------------------------------------------------------------------
# return
# ----------------------------------------------------------------------
def test_return_on_purchase_is_invalid(fulfillment_service, parties, upload_proof, inbox_repository):
    confirmed = _fulfilled(fulfillment_service, parties, upload_proof, listing_key="purchase_listing")

    with pytest.raises(InvalidTransition):
        fulfillment_service.return_item(BUYER_ID, confirmed.record_id, upload_proof(BUYER_ID, "return_proof"))
    assert [r.kind for r in inbox_repository.list_records(SELLER_ID)] == [RecordKind.PURCHASE]


def test_return_without_proof_is_rejected(fulfillment_service, parties, upload_proof):
    confirmed = _fulfilled(fulfillment_service, parties, upload_proof, duration=3)
    with pytest.raises(MissingShipmentProof):
        fulfillment_service.return_item(BUYER_ID, confirmed.record_id, "")


def test_return_twice_is_invalid(fulfillment_service, parties, upload_proof):
    confirmed = _fulfilled(fulfillment_service, parties, upload_proof, duration=3)
    fulfillment_service.return_item(BUYER_ID, confirmed.record_id, upload_proof(BUYER_ID, "return_proof"))

    with pytest.raises(InvalidTransition):
        fulfillment_service.return_item(BUYER_ID, confirmed.record_id, upload_proof(BUYER_ID, "return_proof"))


def test_end_to_end_rent(fulfillment_service, parties, upload_proof, user_directory, notifications, clock):
    request = fulfillment_service.create_request(parties["buyer"], parties["rent_listing"], "M", 5).record
    assert request.price == 100.0

    seller_record = fulfillment_service.approve(ADMIN_ID, request.record_id).record
    confirmed = fulfillment_service.fulfill(SELLER_ID, seller_record.record_id, upload_proof(SELLER_ID)).record
    assert confirmed.expected_return_date == START + timedelta(days=8)
    assert user_directory.get_user(BUYER_ID).number_of_buy_rents == 1

    clock.advance(days=7)
    returned = fulfillment_service.return_item(BUYER_ID, confirmed.record_id, upload_proof(BUYER_ID, "return_proof")).record

    assert returned.recipient_id == SELLER_ID
    assert returned.kind == RecordKind.RETURN
    assert returned.transition == TransitionKind.ITEM_RETURNED
    assert returned.action_text == "returned your item"
    assert returned.icon == "archivebox"
    assert returned.price == 100.0
    assert returned.expected_return_date == START + timedelta(days=8)
    assert "returnImages/buyer-1/" in returned.ship_proof_image_url
    assert notifications.messages_for(SELLER_ID)[-1] == "jane returned your item"

    history = fulfillment_service.order_history(request.order_id)
    assert [r.transition for r in history] == [
        TransitionKind.AWAITING_APPROVAL,
        TransitionKind.FULFILLMENT_REQUESTED,
        TransitionKind.ORDER_CONFIRMED,
        TransitionKind.ITEM_RETURNED,
    ]
    assert fulfillment_service.order_state(request.order_id) == OrderState.SELLER_RETURN_RECEIVED


def test_order_summary_is_limited_to_parties(fulfillment_service, parties, user_directory):
    from froc.models.user import User
    user_directory.save_user(User(user_id="stranger", username="stranger"))
    request = _request(fulfillment_service, parties, duration=3)

    summary = fulfillment_service.order_summary(BUYER_ID, request.order_id)
    assert summary["state"] == OrderState.ADMIN_REVIEW
    with pytest.raises(PermissionError):
        fulfillment_service.order_summary("stranger", request.order_id)


def test_unknown_order_is_not_found(fulfillment_service):
    with pytest.raises(RecordNotFound):
        fulfillment_service.order_history("missing-order")
