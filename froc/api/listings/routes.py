# froc/api/listings/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from froc.api.listings.schemas import CommentCreateSchema, FlagUserSchema, LikeResponseSchema
from froc.api.orders.schemas import OrderRecordSchema, record_to_dict
from froc.core.errors import InvalidRequest, PersistenceFailure, RecordNotFound

listings_bp = Blueprint('listings_bp', __name__)
users_bp = Blueprint('users_bp', __name__)

@listings_bp.route('/<string:listing_id>/like', methods=['POST'])
@jwt_required()
def toggle_like(listing_id: str):
    """게시물 좋아요를 누르거나 취소합니다. 새 좋아요만 작성자에게 알림이 갑니다."""
    engagement_service = current_app.services['engagement']
    user_id = get_jwt_identity()
    try:
        record = engagement_service.like(listing_id, user_id)
        body = {"is_liked": record is not None, "record_id": record.record_id if record else None}
        return jsonify(LikeResponseSchema().dump(body)), 200
    except RecordNotFound as e:
        return jsonify({"error_code": "RESOURCE_NOT_FOUND", "message": str(e)}), 404
    except PersistenceFailure as e:
        logging.error(f"좋아요 처리 실패 (listing_id: {listing_id}): {e}", exc_info=True)
        return jsonify({"error_code": "LIKE_TOGGLE_FAILED", "message": "좋아요 처리 중 오류가 발생했습니다."}), 503


@listings_bp.route('/<string:listing_id>/comments', methods=['POST'])
@jwt_required()
def create_comment(listing_id: str):
    """
    게시물에 댓글을 작성합니다.
    - 성공 시 작성자 inbox 에 저장된 알림 레코드를 201 로 반환합니다.
    """
    engagement_service = current_app.services['engagement']
    user_id = get_jwt_identity()
    try:
        data = CommentCreateSchema().load(request.get_json() or {})
        record = engagement_service.comment(listing_id, user_id, data['text'])
        return jsonify(OrderRecordSchema().dump(record_to_dict(record))), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except InvalidRequest as e:
        return jsonify({"error_code": e.error_code, "message": str(e)}), 400
    except RecordNotFound as e:
        return jsonify({"error_code": "RESOURCE_NOT_FOUND", "message": str(e)}), 404
    except PersistenceFailure as e:
        logging.error(f"댓글 생성 중 오류 발생 (listing_id: {listing_id}): {e}", exc_info=True)
        return jsonify({"error_code": "COMMENT_CREATION_FAILED", "message": "댓글 생성 중 오류가 발생했습니다."}), 503


@users_bp.route('/<string:user_id>/flag', methods=['POST'])
@jwt_required()
def flag_user(user_id: str):
    """사용자를 신고합니다. 신고 내용은 관리자 inbox 로 전달됩니다."""
    engagement_service = current_app.services['engagement']
    reporter_id = get_jwt_identity()
    try:
        data = FlagUserSchema().load(request.get_json() or {})
        record = engagement_service.flag_user(reporter_id, user_id, data['reason'])
        return jsonify({"record_id": record.record_id}), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except InvalidRequest as e:
        return jsonify({"error_code": e.error_code, "message": str(e)}), 400
    except RecordNotFound as e:
        return jsonify({"error_code": "USER_NOT_FOUND", "message": str(e)}), 404
