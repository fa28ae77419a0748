# froc/api/listings/schemas.py
from marshmallow import Schema, fields, validate

class CommentCreateSchema(Schema):
    """
    POST /api/listings/{listing_id}/comments
    """
    text = fields.Str(required=True, validate=validate.Length(min=1, max=1000, error="댓글은 1~1000자 사이여야 합니다."))

class FlagUserSchema(Schema):
    """POST /api/users/{user_id}/flag"""
    reason = fields.Str(required=True, validate=validate.Length(min=1, max=500))

class LikeResponseSchema(Schema):
    is_liked = fields.Bool(required=True)
    record_id = fields.Str(allow_none=True)
