# froc/api/inbox/routes.py
import logging
from flask import Blueprint, jsonify, Response, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity

from froc.api.inbox.schemas import InboxResponseSchema, MarkAllReadResponseSchema
from froc.api.orders.schemas import record_to_dict
from froc.core.errors import PersistenceFailure, RecordNotFound

inbox_bp = Blueprint('inbox_bp', __name__)

@inbox_bp.route('', methods=['GET'])
@jwt_required()
def get_inbox():
    """
    로그인한 사용자의 inbox 를 최신순으로 조회합니다.
    - 대여 확인 레코드에는 반납까지 남은 시간(return_countdown)이 함께 내려갑니다.
    """
    inbox_service = current_app.services['inbox']
    user_id = get_jwt_identity()
    try:
        partitioned = inbox_service.partition(user_id)
        body = {
            "unread": [record_to_dict(r, inbox_service.return_countdown(r)) for r in partitioned['unread']],
            "read": [record_to_dict(r, inbox_service.return_countdown(r)) for r in partitioned['read']],
            "unread_count": partitioned['unread_count'],
        }
        return jsonify(InboxResponseSchema().dump(body)), 200
    except PersistenceFailure as e:
        return jsonify({"error_code": e.error_code, "message": str(e)}), 503


@inbox_bp.route('/read-all', methods=['POST'])
@jwt_required()
def mark_all_read():
    """inbox 의 모든 레코드를 읽음 처리합니다."""
    inbox_service = current_app.services['inbox']
    user_id = get_jwt_identity()
    try:
        updated = inbox_service.mark_all_read(user_id)
        return jsonify(MarkAllReadResponseSchema().dump({"updated": updated})), 200
    except PersistenceFailure as e:
        logging.error(f"읽음 처리 실패 (user_id: {user_id}): {e}", exc_info=True)
        return jsonify({"error_code": e.error_code, "message": str(e)}), 503


@inbox_bp.route('/<string:record_id>', methods=['DELETE'])
@jwt_required()
def delete_record(record_id: str):
    """inbox 에서 레코드 하나를 삭제합니다. (본인 inbox 만 가능)"""
    inbox_service = current_app.services['inbox']
    user_id = get_jwt_identity()
    try:
        inbox_service.delete(user_id, record_id)
        return Response(status=204)
    except RecordNotFound as e:
        return jsonify({"error_code": "NOT_FOUND", "message": str(e)}), 404
    except PersistenceFailure as e:
        return jsonify({"error_code": e.error_code, "message": str(e)}), 503
