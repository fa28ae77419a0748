# froc/api/inbox/schemas.py
from marshmallow import Schema, fields

from froc.api.orders.schemas import OrderRecordSchema # 레코드 형식은 주문 스키마의 것을 재사용

class InboxResponseSchema(Schema):
    """
    GET /api/inbox
    새 알림과 이전 알림을 나누어 반환합니다.
    """
    unread = fields.List(fields.Nested(OrderRecordSchema), dump_default=[])
    read = fields.List(fields.Nested(OrderRecordSchema), dump_default=[])
    unread_count = fields.Int(required=True)

class MarkAllReadResponseSchema(Schema):
    updated = fields.Int(required=True)
