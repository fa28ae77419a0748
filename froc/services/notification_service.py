# froc/services/notification_service.py
import logging
import threading
from typing import List, Optional, Set, Tuple

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from froc.core.errors import DeliveryFailure, RecordNotFound
from froc.services.directory_service import UserDirectory

class NotificationService:
    """
    푸시 알림 전송 게이트웨이.
    전송 실패는 호출자에게 치명적이지 않으므로 예외 대신 False 를 반환하고 로그만 남깁니다.
    """
    def __init__(self, user_directory: UserDirectory):
        self.user_directory = user_directory

    def deliver(self, user_id: str, message: str) -> bool:
        """
        사용자의 등록된 푸시 토큰을 찾아 메시지를 전송합니다.

        :param user_id: 알림을 받을 사용자 ID
        :param message: 알림 본문
        :return: 전송 성공 여부
        """
        try:
            user = self.user_directory.get_user(user_id)
        except RecordNotFound:
            logging.warning(f"푸시 전송 실패: 사용자를 찾을 수 없음 (ID: {user_id})")
            return False
        except Exception as e:
            logging.warning(f"푸시 전송 실패: 사용자 조회 오류 (ID: {user_id}): {e}")
            return False

        if not user.fcm_token:
            logging.warning(f"푸시 전송 실패: FCM 토큰이 없음 (ID: {user_id})")
            return False

        try:
            self._send(user_id, user.fcm_token, message)
            logging.info(f"푸시 전송 완료 -> {user_id}")
            return True
        except DeliveryFailure as e:
            logging.warning(f"푸시 전송 중 오류 발생 (ID: {user_id}): {e}", exc_info=True)
            return False

    def _send(self, user_id: str, token: str, message: str) -> None:
        """전송 실패는 DeliveryFailure 로 알립니다."""
        raise NotImplementedError


class FcmNotificationService(NotificationService):
    """Firebase Cloud Messaging 으로 전송합니다."""
    def __init__(self, user_directory: UserDirectory, title: str = "FROC"):
        super().__init__(user_directory)
        self.title = title

    def _send(self, user_id: str, token: str, message: str) -> None:
        try:
            messaging.send(messaging.Message(
                token=token,
                notification=messaging.Notification(title=self.title, body=message),
            ))
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            raise DeliveryFailure(f"FCM 전송 실패 ({user_id}): {e}") from e


class InMemoryNotificationService(NotificationService):
    """
    전송 내역을 메모리에 기록합니다. 개발/테스트용.
    fail_for 에 들어있는 사용자에게는 전송이 실패합니다.
    """
    def __init__(self, user_directory: UserDirectory, fail_for: Optional[Set[str]] = None):
        super().__init__(user_directory)
        self.fail_for: Set[str] = set(fail_for or ())
        self.sent: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def _send(self, user_id: str, token: str, message: str) -> None:
        if user_id in self.fail_for:
            raise DeliveryFailure(f"push transport unavailable for {user_id}")
        with self._lock:
            self.sent.append((user_id, message))

    def messages_for(self, user_id: str) -> List[str]:
        with self._lock:
            return [message for recipient, message in self.sent if recipient == user_id]
