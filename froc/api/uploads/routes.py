# froc/api/uploads/routes.py

import logging
from flask import request, jsonify, Blueprint, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import Schema, fields, validate, ValidationError

from froc.services.storage_service import UPLOAD_PATHS

# 배송/반납 증빙 이미지 업로드용 블루프린트 ('/api/uploads')
uploads_bp = Blueprint('uploads', __name__)

class UploadUrlRequestSchema(Schema):
    """Pre-signed URL 발급 요청 형식"""
    upload_type = fields.Str(required=True, validate=validate.OneOf(list(UPLOAD_PATHS)))
    filename = fields.Str(required=True, validate=validate.Length(min=1))
    content_type = fields.Str(required=True, validate=validate.Regexp(r'^image/[\w.+-]+$', error="이미지 파일만 업로드할 수 있습니다."))


@uploads_bp.route('/url', methods=['POST'])
@jwt_required()
def get_upload_url():
    """
    증빙 이미지 업로드를 위한 Pre-signed URL을 발급합니다.
    클라이언트는 받은 URL 로 파일을 PUT 한 뒤, 응답의 file_path 를
    fulfill/return 요청의 ship_proof_path 로 보냅니다.
    """
    user_id = get_jwt_identity()
    storage_service = current_app.services['storage']

    try:
        data = UploadUrlRequestSchema().load(request.get_json() or {})
    except ValidationError as err:
        logging.warning(f"URL 발급 요청 실패 (잘못된 파라미터): {err.messages}")
        return jsonify({"error_code": "INVALID_PARAMETERS", "details": err.messages}), 400

    try:
        url_info = storage_service.generate_upload_url(user_id, **data)
    except Exception as e:
        logging.error(f"Pre-signed URL 생성 중 서버 오류 발생: {e}", exc_info=True)
        return jsonify({"error_code": "URL_GENERATION_FAILED", "message": "URL 생성 중 서버 오류가 발생했습니다."}), 500

    logging.info(f"증빙 업로드 URL 발급: user={user_id}, path={url_info['file_path']}")
    return jsonify(url_info), 200
