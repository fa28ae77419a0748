# froc/services/inbox_repository.py
import logging
from typing import Any, Dict, List

from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists

from froc.core.errors import CounterUpdateConflict, PersistenceFailure, RecordNotFound
from froc.models.order_record import OrderRecord
from froc.services.memory_store import MemoryStore

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'
INBOX_COLLECTION = 'notifications'
DEFAULT_MAX_RETRIES = 5
FIRESTORE_BATCH_LIMIT = 500


class InboxRepository:
    """
    사용자별 inbox(알림/주문 레코드) 저장소의 계약.
    레코드는 수신자의 'users/{uid}/notifications' 하위 컬렉션에 저장됩니다.
    """

    def append_record(self, user_id: str, record: OrderRecord) -> OrderRecord:
        raise NotImplementedError

    def create_record(self, user_id: str, record: OrderRecord) -> bool:
        """
        같은 record_id 의 레코드가 없을 때만 저장합니다.
        워크플로우 단계의 후속 레코드는 이 메서드로 써서 한 단계가 두 번 처리되지 않게 합니다.

        :return: 저장했으면 True, 이미 있으면 False
        """
        raise NotImplementedError

    def list_records(self, user_id: str) -> List[OrderRecord]:
        raise NotImplementedError

    def get_record(self, user_id: str, record_id: str) -> OrderRecord:
        raise NotImplementedError

    def update_record(self, user_id: str, record_id: str, fields: Dict[str, Any]) -> None:
        """fields 는 문서 키 이름 기준 (예: {'isNew': False})"""
        raise NotImplementedError

    def mark_all_read(self, user_id: str) -> int:
        raise NotImplementedError

    def delete_record(self, user_id: str, record_id: str) -> None:
        raise NotImplementedError

    def find_by_order(self, order_id: str) -> List[OrderRecord]:
        """모든 inbox 에서 같은 order_id 를 가진 레코드를 찾습니다."""
        raise NotImplementedError

    def increment_buy_rent_counter(self, user_id: str) -> int:
        """사용자의 numberOfBuyRents 를 트랜잭션으로 1 증가시키고 새 값을 반환합니다."""
        raise NotImplementedError


class FirestoreInboxRepository(InboxRepository):
    """Firestore 기반 inbox 저장소"""

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES):
        self.db = firestore.client()
        self.users_ref = self.db.collection(USERS_COLLECTION)
        self.max_retries = max_retries

    def _inbox(self, user_id: str):
        return self.users_ref.document(user_id).collection(INBOX_COLLECTION)

    def append_record(self, user_id: str, record: OrderRecord) -> OrderRecord:
        try:
            self._inbox(user_id).document(record.record_id).set(record.to_document())
            return record
        except Exception as e:
            logger.error(f"레코드 저장 실패 (user_id: {user_id}, record_id: {record.record_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"레코드를 저장하지 못했습니다: {record.record_id}") from e

    def create_record(self, user_id: str, record: OrderRecord) -> bool:
        try:
            self._inbox(user_id).document(record.record_id).create(record.to_document())
            return True
        except AlreadyExists:
            return False
        except Exception as e:
            logger.error(f"레코드 생성 실패 (user_id: {user_id}, record_id: {record.record_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"레코드를 저장하지 못했습니다: {record.record_id}") from e

    def list_records(self, user_id: str) -> List[OrderRecord]:
        try:
            docs = self._inbox(user_id).stream()
            return [_to_record(user_id, doc.id, doc.to_dict()) for doc in docs]
        except Exception as e:
            logger.error(f"inbox 조회 실패 (user_id: {user_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"inbox 를 조회하지 못했습니다: {user_id}") from e

    def get_record(self, user_id: str, record_id: str) -> OrderRecord:
        try:
            doc = self._inbox(user_id).document(record_id).get()
        except Exception as e:
            logger.error(f"레코드 조회 실패 (user_id: {user_id}, record_id: {record_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"레코드를 조회하지 못했습니다: {record_id}") from e
        if not doc.exists:
            raise RecordNotFound(f"레코드를 찾을 수 없습니다: {record_id}")
        return _to_record(user_id, doc.id, doc.to_dict())

    def update_record(self, user_id: str, record_id: str, fields: Dict[str, Any]) -> None:
        try:
            self._inbox(user_id).document(record_id).update(fields)
        except Exception as e:
            logger.error(f"레코드 수정 실패 (user_id: {user_id}, record_id: {record_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"레코드를 수정하지 못했습니다: {record_id}") from e

    def mark_all_read(self, user_id: str) -> int:
        """
        모든 레코드의 isNew 를 False 로 바꿉니다.
        배치 한도(500)를 넘지 않는 한 하나의 원자적 배치로 커밋됩니다.
        """
        try:
            docs = list(self._inbox(user_id).stream())
            for i in range(0, len(docs), FIRESTORE_BATCH_LIMIT):
                batch = self.db.batch()
                for doc in docs[i:i + FIRESTORE_BATCH_LIMIT]:
                    batch.update(doc.reference, {'isNew': False})
                batch.commit()
            return len(docs)
        except Exception as e:
            logger.error(f"읽음 처리 실패 (user_id: {user_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"읽음 처리에 실패했습니다: {user_id}") from e

    def delete_record(self, user_id: str, record_id: str) -> None:
        doc_ref = self._inbox(user_id).document(record_id)
        try:
            exists = doc_ref.get().exists
            if exists:
                doc_ref.delete()
        except Exception as e:
            logger.error(f"레코드 삭제 실패 (user_id: {user_id}, record_id: {record_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"레코드를 삭제하지 못했습니다: {record_id}") from e
        if not exists:
            raise RecordNotFound(f"삭제할 레코드가 없습니다: {record_id}")

    def find_by_order(self, order_id: str) -> List[OrderRecord]:
        try:
            docs = self.db.collection_group(INBOX_COLLECTION).where('orderId', '==', order_id).stream()
            return [_to_record(doc.reference.parent.parent.id, doc.id, doc.to_dict()) for doc in docs]
        except Exception as e:
            logger.error(f"주문 레코드 조회 실패 (order_id: {order_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"주문 레코드를 조회하지 못했습니다: {order_id}") from e

    def increment_buy_rent_counter(self, user_id: str) -> int:
        transaction = self.db.transaction(max_attempts=self.max_retries)
        user_ref = self.users_ref.document(user_id)

        @firestore.transactional
        def _increment_in_transaction(transaction, user_ref):
            snapshot = user_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise RecordNotFound(f"사용자를 찾을 수 없습니다: {user_id}")
            current = int(snapshot.to_dict().get('numberOfBuyRents') or 0)
            transaction.update(user_ref, {'numberOfBuyRents': current + 1})
            return current + 1

        try:
            return _increment_in_transaction(transaction, user_ref)
        except RecordNotFound:
            raise
        except Exception as e:
            logger.error(f"구매/대여 카운터 증가 실패 (user_id: {user_id}): {e}", exc_info=True)
            raise CounterUpdateConflict(f"카운터 트랜잭션이 {self.max_retries}회 안에 성공하지 못했습니다: {user_id}") from e


class InMemoryInboxRepository(InboxRepository):
    """MemoryStore 기반 참조 구현. 카운터는 버전 compare-and-set 루프로 증가시킵니다."""

    def __init__(self, store: MemoryStore, max_retries: int = DEFAULT_MAX_RETRIES):
        self.store = store
        self.max_retries = max_retries

    @staticmethod
    def _inbox_path(user_id: str) -> str:
        return f"{USERS_COLLECTION}/{user_id}/{INBOX_COLLECTION}"

    def append_record(self, user_id: str, record: OrderRecord) -> OrderRecord:
        self.store.set(self._inbox_path(user_id), record.record_id, record.to_document())
        return record

    def create_record(self, user_id: str, record: OrderRecord) -> bool:
        return self.store.create(self._inbox_path(user_id), record.record_id, record.to_document())

    def list_records(self, user_id: str) -> List[OrderRecord]:
        return [_to_record(user_id, doc_id, data) for doc_id, data in self.store.stream(self._inbox_path(user_id))]

    def get_record(self, user_id: str, record_id: str) -> OrderRecord:
        data = self.store.get(self._inbox_path(user_id), record_id)
        if data is None:
            raise RecordNotFound(f"레코드를 찾을 수 없습니다: {record_id}")
        return _to_record(user_id, record_id, data)

    def update_record(self, user_id: str, record_id: str, fields: Dict[str, Any]) -> None:
        try:
            self.store.update(self._inbox_path(user_id), record_id, fields)
        except KeyError:
            raise RecordNotFound(f"레코드를 찾을 수 없습니다: {record_id}")

    def mark_all_read(self, user_id: str) -> int:
        return self.store.update_all(self._inbox_path(user_id), {'isNew': False})

    def delete_record(self, user_id: str, record_id: str) -> None:
        if not self.store.delete(self._inbox_path(user_id), record_id):
            raise RecordNotFound(f"삭제할 레코드가 없습니다: {record_id}")

    def find_by_order(self, order_id: str) -> List[OrderRecord]:
        return [
            _to_record(path.split('/')[1], doc_id, data)
            for path, doc_id, data in self.store.collection_group(INBOX_COLLECTION)
            if data.get('orderId') == order_id
        ]

    def increment_buy_rent_counter(self, user_id: str) -> int:
        for attempt in range(1, self.max_retries + 1):
            version, data = self.store.get_versioned(USERS_COLLECTION, user_id)
            if data is None:
                raise RecordNotFound(f"사용자를 찾을 수 없습니다: {user_id}")
            new_value = int(data.get('numberOfBuyRents') or 0) + 1
            data['numberOfBuyRents'] = new_value
            if self.store.compare_and_set(USERS_COLLECTION, user_id, version, data):
                return new_value
            logger.info(f"카운터 동시 수정 감지, 재시도 {attempt}/{self.max_retries} (user_id: {user_id})")
        raise CounterUpdateConflict(f"카운터 트랜잭션이 {self.max_retries}회 안에 성공하지 못했습니다: {user_id}")


def _to_record(user_id: str, record_id: str, data: Dict[str, Any]) -> OrderRecord:
    """recipientId 가 없는 예전 문서는 저장 위치(inbox 소유자)로 채웁니다."""
    record = OrderRecord.from_document(record_id, data)
    if not record.recipient_id:
        record.recipient_id = user_id
    return record
