# froc/api/orders/routes.py
import logging
from flask import Blueprint, request, jsonify, Response, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from froc.api.orders.schemas import (
    OrderRecordSchema, OrderRequestCreateSchema, OrderSummarySchema, QuoteQuerySchema,
    QuoteResponseSchema, ShipmentProofSchema, TransitionResponseSchema, record_to_dict,
)
from froc.core.errors import FulfillmentError

orders_bp = Blueprint('orders_bp', __name__)


def _transition_response(result, status: int = 200):
    body = {"record": record_to_dict(result.record), "delivered": result.delivered}
    return jsonify(TransitionResponseSchema().dump(body)), status


@orders_bp.route('', methods=['POST'])
@jwt_required()
def create_order_request():
    """
    구매/대여 요청을 생성합니다. 요청은 관리자 승인 대기열로 들어갑니다.
    - 성공 시 관리자 inbox 에 저장된 레코드를 201 로 반환합니다.
    """
    fulfillment_service = current_app.services['fulfillment']
    user_id = get_jwt_identity()
    try:
        data = OrderRequestCreateSchema().load(request.get_json() or {})
        result = fulfillment_service.create_request_for(
            buyer_id=user_id,
            listing_id=data['listing_id'],
            size=data['size'],
            duration_days=data['duration_days'],
            note=data['note'],
            venmo_handle=data['venmo_handle'],
        )
        return _transition_response(result, 201)
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400


@orders_bp.route('/quote/<string:listing_id>', methods=['GET'])
@jwt_required()
def get_quote(listing_id: str):
    """결제해야 할 금액(기본 금액, 수수료, 보증금)과 Venmo 결제 링크를 조회합니다."""
    fulfillment_service = current_app.services['fulfillment']
    try:
        query = QuoteQuerySchema().load(request.args)
        quote = fulfillment_service.quote_for(listing_id, query['duration_days'])
        return jsonify(QuoteResponseSchema().dump(quote)), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400


@orders_bp.route('/pending-approvals', methods=['GET'])
@jwt_required()
def get_pending_approvals():
    """[관리자 전용] 승인 대기 중인 요청 목록 (오래된 순)"""
    fulfillment_service = current_app.services['fulfillment']
    user_id = get_jwt_identity()
    try:
        records = fulfillment_service.pending_approvals(user_id)
        return jsonify({"records": OrderRecordSchema(many=True).dump([record_to_dict(r) for r in records])}), 200
    except PermissionError as e:
        return jsonify({"error_code": "FORBIDDEN", "message": str(e)}), 403


@orders_bp.route('/records/<string:record_id>/approve', methods=['POST'])
@jwt_required()
def approve_request(record_id: str):
    """[관리자 전용] 요청을 승인하여 판매자에게 발송 요청을 보냅니다."""
    fulfillment_service = current_app.services['fulfillment']
    user_id = get_jwt_identity()
    try:
        result = fulfillment_service.approve(user_id, record_id)
        return _transition_response(result, 201)
    except PermissionError as e:
        return jsonify({"error_code": "FORBIDDEN", "message": str(e)}), 403


@orders_bp.route('/records/<string:record_id>/fulfill', methods=['POST'])
@jwt_required()
def fulfill_request(record_id: str):
    """
    [판매자 전용] 배송 증빙 이미지와 함께 발송을 확정합니다.
    - 구매자 inbox 에 도착/반납 예정일이 담긴 확인 레코드가 생성됩니다.
    """
    fulfillment_service = current_app.services['fulfillment']
    user_id = get_jwt_identity()
    try:
        data = ShipmentProofSchema().load(request.get_json() or {})
        result = fulfillment_service.fulfill(user_id, record_id, data['ship_proof_path'], data['note'])
        return _transition_response(result, 201)
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except PermissionError as e:
        return jsonify({"error_code": "FORBIDDEN", "message": str(e)}), 403


@orders_bp.route('/records/<string:record_id>/decline', methods=['POST'])
@jwt_required()
def decline_request(record_id: str):
    """[판매자 전용] 발송 요청을 거절합니다. 아무에게도 알림이 가지 않습니다."""
    fulfillment_service = current_app.services['fulfillment']
    user_id = get_jwt_identity()
    try:
        fulfillment_service.decline_fulfillment(user_id, record_id)
        return Response(status=204)
    except PermissionError as e:
        return jsonify({"error_code": "FORBIDDEN", "message": str(e)}), 403


@orders_bp.route('/records/<string:record_id>/return', methods=['POST'])
@jwt_required()
def return_item(record_id: str):
    """[구매자 전용] 대여한 상품의 반납 배송을 알립니다."""
    fulfillment_service = current_app.services['fulfillment']
    user_id = get_jwt_identity()
    try:
        data = ShipmentProofSchema().load(request.get_json() or {})
        result = fulfillment_service.return_item(user_id, record_id, data['ship_proof_path'])
        return _transition_response(result, 201)
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except PermissionError as e:
        return jsonify({"error_code": "FORBIDDEN", "message": str(e)}), 403


@orders_bp.route('/<string:order_id>', methods=['GET'])
@jwt_required()
def get_order(order_id: str):
    """주문의 현재 상태와 단계별 레코드를 조회합니다. (주문 당사자만 가능)"""
    fulfillment_service = current_app.services['fulfillment']
    user_id = get_jwt_identity()
    try:
        summary = fulfillment_service.order_summary(user_id, order_id)
        body = {
            "order_id": summary['order_id'],
            "state": summary['state'].value,
            "records": [record_to_dict(r) for r in summary['records']],
        }
        return jsonify(OrderSummarySchema().dump(body)), 200
    except PermissionError as e:
        return jsonify({"error_code": "FORBIDDEN", "message": str(e)}), 403


@orders_bp.route('/<string:order_id>/redeliver', methods=['POST'])
@jwt_required()
def redeliver_notification(order_id: str):
    """가장 최근 단계의 푸시 알림을 다시 보냅니다. 레코드는 변경되지 않습니다."""
    fulfillment_service = current_app.services['fulfillment']
    user_id = get_jwt_identity()
    try:
        result = fulfillment_service.redeliver(order_id, requested_by=user_id)
        return _transition_response(result, 200)
    except PermissionError as e:
        return jsonify({"error_code": "FORBIDDEN", "message": str(e)}), 403


@orders_bp.errorhandler(FulfillmentError)
def handle_fulfillment_error(error):
    """워크플로우 예외를 error_code/HTTP 상태로 변환합니다."""
    if error.http_status >= 500:
        logging.error(f"주문 처리 중 오류 발생: {error}", exc_info=True)
    else:
        logging.info(f"주문 요청 거부 ({error.error_code}): {error}")
    return jsonify({"error_code": error.error_code, "message": str(error)}), error.http_status
