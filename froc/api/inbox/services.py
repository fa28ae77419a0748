# froc/api/inbox/services.py
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from froc.models.order_record import OrderRecord, TransitionKind
from froc.services.inbox_repository import InboxRepository
from froc.services.pricing import Countdown, countdown
from froc.utils.datetime_utils import DateTimeUtils

class InboxService:
    """사용자 inbox 조회 및 읽음 상태 관리"""
    def __init__(self, inbox_repository: InboxRepository, clock: Callable[[], datetime] = DateTimeUtils.now):
        self.inbox = inbox_repository
        self.clock = clock

    def list_inbox(self, user_id: str) -> List[OrderRecord]:
        """최신 레코드가 먼저 오도록 정렬합니다."""
        records = self.inbox.list_records(user_id)
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def partition(self, user_id: str) -> Dict[str, object]:
        """
        inbox 를 '새 알림'과 '이전 알림'으로 나눕니다.

        :return: {"unread": [...], "read": [...], "unread_count": int}
        """
        records = self.list_inbox(user_id)
        unread = [r for r in records if r.is_new]
        read = [r for r in records if not r.is_new]
        return {"unread": unread, "read": read, "unread_count": len(unread)}

    def mark_all_read(self, user_id: str) -> int:
        """모든 레코드를 읽음 처리합니다. 여러 번 호출해도 결과는 같습니다."""
        count = self.inbox.mark_all_read(user_id)
        logging.info(f"inbox 읽음 처리 완료 (user_id: {user_id}, count: {count})")
        return count

    def delete(self, user_id: str, record_id: str) -> None:
        """사용자 본인의 inbox 에서 레코드 하나를 삭제합니다."""
        self.inbox.delete_record(user_id, record_id)
        logging.info(f"inbox 레코드 삭제 (user_id: {user_id}, record_id: {record_id})")

    def return_countdown(self, record: OrderRecord) -> Optional[Countdown]:
        """반납 예정일이 있는 대여 확인 레코드의 남은 시간"""
        if record.transition != TransitionKind.ORDER_CONFIRMED or not record.is_rent:
            return None
        if record.expected_return_date is None:
            return None
        return countdown(record.expected_return_date, self.clock())
