# froc/api/orders/schemas.py
from marshmallow import Schema, fields, validate, validates_schema, ValidationError, pre_load

from froc.api.orders.workflow import OrderState
from froc.models.order_record import RecordKind, TransitionKind

class OrderRequestCreateSchema(Schema):
    """
    POST /api/orders
    구매/대여 요청 본문. duration_days 가 있으면 대여 요청으로 처리됩니다.
    """
    listing_id = fields.Str(required=True, validate=validate.Length(min=1))
    size = fields.Str(required=True, validate=validate.Length(min=1))
    duration_days = fields.Int(required=False, allow_none=True, load_default=None,
                               validate=validate.Range(min=1, error="대여 기간은 1일 이상이어야 합니다."))
    note = fields.Str(required=False, load_default="", validate=validate.Length(max=500))
    venmo_handle = fields.Str(required=False, load_default="")

    @pre_load
    def blank_duration_to_none(self, data, **kwargs):
        """iOS 클라이언트는 구매 요청에 빈 문자열 duration 을 보냅니다."""
        if isinstance(data, dict) and data.get('duration_days') == "":
            data = dict(data)
            data['duration_days'] = None
        return data

class QuoteQuerySchema(Schema):
    """GET /api/orders/quote/<listing_id> 쿼리 파라미터"""
    duration_days = fields.Int(required=False, allow_none=True, load_default=None,
                               validate=validate.Range(min=1))

class ShipmentProofSchema(Schema):
    """
    POST /api/orders/records/<record_id>/fulfill
    POST /api/orders/records/<record_id>/return
    ship_proof_path 는 /api/uploads/url 로 발급받아 업로드를 마친 Storage 경로입니다.
    """
    ship_proof_path = fields.Str(required=False, allow_none=True, load_default=None)
    note = fields.Str(required=False, load_default="", validate=validate.Length(max=500))

    @validates_schema
    def validate_proof(self, data, **kwargs):
        path = data.get('ship_proof_path')
        if path is not None and not path.strip():
            raise ValidationError('증빙 이미지 경로가 비어 있습니다.', 'ship_proof_path')

class BuyerSnapshotSchema(Schema):
    user_id = fields.Str()
    username = fields.Str()
    email = fields.Str()
    first_name = fields.Str()
    last_name = fields.Str()
    address = fields.Str()
    profile_image_url = fields.Str()
    followers = fields.List(fields.Str())
    number_of_buy_rents = fields.Int()

class OrderRecordSchema(Schema):
    """inbox/주문 레코드 응답 형식"""
    record_id = fields.Str(required=True)
    order_id = fields.Str(allow_none=True)
    recipient_id = fields.Str()
    kind = fields.Str(validate=validate.OneOf([e.value for e in RecordKind]))
    transition = fields.Str(validate=validate.OneOf([e.value for e in TransitionKind]))
    action_text = fields.Str()
    actor_username = fields.Str()
    timestamp = fields.DateTime()
    product_info = fields.Str()
    price = fields.Float()
    size = fields.Str()
    rent_duration_days = fields.Str()
    note = fields.Str()
    venmo_handle = fields.Str()
    buyer = fields.Nested(BuyerSnapshotSchema, allow_none=True)
    seller_id = fields.Str(allow_none=True)
    listing_id = fields.Str(allow_none=True)
    image_urls = fields.List(fields.Str())
    ship_proof_image_url = fields.Str(allow_none=True)
    expected_arrival_date = fields.DateTime(allow_none=True)
    expected_return_date = fields.DateTime(allow_none=True)
    icon = fields.Str()
    name = fields.Str()
    address = fields.Str()
    is_new = fields.Bool()

    # 대여 확인 레코드에만 채워지는 응답 전용 필드
    return_countdown = fields.Str(dump_only=True, allow_none=True)
    overdue = fields.Bool(dump_only=True, allow_none=True)

class TransitionResponseSchema(Schema):
    record = fields.Nested(OrderRecordSchema, required=True)
    delivered = fields.Bool(required=True)

class OrderSummarySchema(Schema):
    order_id = fields.Str(required=True)
    state = fields.Str(validate=validate.OneOf([e.value for e in OrderState]))
    records = fields.List(fields.Nested(OrderRecordSchema), dump_default=[])

class QuoteResponseSchema(Schema):
    listing_id = fields.Str(required=True)
    is_rent = fields.Bool(required=True)
    duration_days = fields.Int(allow_none=True)
    base = fields.Float(required=True)
    fee = fields.Float(required=True)
    insurance = fields.Float(required=True)
    total = fields.Float(required=True)
    payment_link = fields.Str(required=True)


def record_to_dict(record, countdown=None) -> dict:
    """OrderRecord 를 OrderRecordSchema 로 직렬화할 수 있는 딕셔너리로 바꿉니다."""
    snapshot = record.buyer_snapshot
    data = {
        "record_id": record.record_id,
        "order_id": record.order_id,
        "recipient_id": record.recipient_id,
        "kind": record.kind.value,
        "transition": record.transition.value,
        "action_text": record.action_text,
        "actor_username": record.actor_username,
        "timestamp": record.timestamp,
        "product_info": record.product_info,
        "price": record.price,
        "size": record.size,
        "rent_duration_days": record.rent_duration_days,
        "note": record.note,
        "venmo_handle": record.venmo_handle,
        "buyer": {
            "user_id": snapshot.user_id,
            "username": snapshot.username,
            "email": snapshot.email,
            "first_name": snapshot.first_name,
            "last_name": snapshot.last_name,
            "address": snapshot.address,
            "profile_image_url": snapshot.profile_image_url,
            "followers": list(snapshot.followers),
            "number_of_buy_rents": snapshot.number_of_buy_rents,
        } if snapshot else None,
        "seller_id": record.seller_id,
        "listing_id": record.listing_id,
        "image_urls": list(record.image_urls),
        "ship_proof_image_url": record.ship_proof_image_url,
        "expected_arrival_date": record.expected_arrival_date,
        "expected_return_date": record.expected_return_date,
        "icon": record.icon,
        "name": record.name,
        "address": record.address,
        "is_new": record.is_new,
    }
    if countdown is not None:
        data["return_countdown"] = str(countdown)
        data["overdue"] = countdown.overdue
    return data
