# froc/core/errors.py
"""
주문 처리(fulfillment) 워크플로우에서 사용하는 예외 클래스 모음.

- 검증 오류(InvalidRequest, InvalidTransition, MissingShipmentProof)는 어떤 쓰기도
  일어나기 전에 발생합니다.
- I/O 오류(PersistenceFailure, CounterUpdateConflict)는 이미 커밋된 이전 단계의
  레코드를 롤백하지 않습니다.
"""


class FulfillmentError(Exception):
    """워크플로우 예외의 공통 부모 클래스"""
    error_code = "FULFILLMENT_ERROR"
    http_status = 500


class InvalidRequest(FulfillmentError, ValueError):
    """주문 요청 입력값(사이즈, 대여 기간 등)이 리스팅 조건과 맞지 않음"""
    error_code = "INVALID_REQUEST"
    http_status = 400


class InvalidTransition(FulfillmentError):
    """현재 상태나 레코드 종류에서 허용되지 않는 액션"""
    error_code = "INVALID_TRANSITION"
    http_status = 409


class MissingShipmentProof(FulfillmentError):
    """배송/반납 증빙 이미지 없이 fulfill 또는 return 을 시도함"""
    error_code = "MISSING_SHIPMENT_PROOF"
    http_status = 400


class MalformedDuration(InvalidRequest):
    """대여 기간을 양의 정수로 해석할 수 없음"""
    error_code = "MALFORMED_DURATION"
    http_status = 400


class PersistenceFailure(FulfillmentError):
    """문서 저장소 읽기/쓰기 실패"""
    error_code = "PERSISTENCE_FAILURE"
    http_status = 503


class DeliveryFailure(FulfillmentError):
    """푸시 전송 실패. NotificationService.deliver 가 잡아서 False 로 바꿉니다."""
    error_code = "DELIVERY_FAILURE"
    http_status = 502


class CounterUpdateConflict(PersistenceFailure):
    """동시 수정으로 인해 카운터 트랜잭션이 재시도 한도 내에 성공하지 못함"""
    error_code = "COUNTER_UPDATE_CONFLICT"
    http_status = 503


class RecordNotFound(FulfillmentError, LookupError):
    """요청한 레코드/사용자/리스팅이 존재하지 않음"""
    error_code = "RECORD_NOT_FOUND"
    http_status = 404
