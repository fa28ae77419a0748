# froc/services/storage_service.py
import uuid
import logging
from datetime import timedelta
from flask import Flask
from firebase_admin import storage

# upload_type -> 업로드 폴더 (사용자별)
UPLOAD_PATHS = {
    "ship_proof": "shipImages/{user_id}",
    "return_proof": "returnImages/{user_id}",
    "post_image": "posts/{user_id}",
}

SIGNED_URL_TTL = timedelta(minutes=15)


def build_destination(user_id: str, upload_type: str, filename: str) -> str:
    folder_template = UPLOAD_PATHS.get(upload_type)
    if not folder_template:
        raise ValueError(f"'{upload_type}'은(는) 유효한 업로드 타입이 아닙니다.")
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else 'jpg'
    return f"{folder_template.format(user_id=user_id)}/{uuid.uuid4()}.{extension}"


def is_owned_path(user_id: str, upload_type: str, file_path: str) -> bool:
    """file_path 가 user_id 의 upload_type 폴더 바로 아래 파일인지"""
    folder_template = UPLOAD_PATHS.get(upload_type)
    if not folder_template or not file_path:
        return False
    folder = folder_template.format(user_id=user_id) + "/"
    return file_path.startswith(folder) and "/" not in file_path[len(folder):]


class StorageService:
    """
    배송/반납 증빙 이미지를 위한 Firebase Storage 게이트웨이.

    클라이언트는 generate_upload_url 로 받은 Pre-signed URL 에 직접 업로드하고,
    워크플로우 단계(fulfill, return_item)에서 publish_proof 로 그 파일을
    공개 URL 로 바꿔 레코드의 shipImageUrl 에 저장합니다.
    """

    def __init__(self):
        self.bucket = None

    def init_app(self, app: Flask):
        bucket_name = app.config.get('FIREBASE_STORAGE_BUCKET')
        if not bucket_name:
            raise ValueError("FIREBASE_STORAGE_BUCKET 설정이 필요합니다.")
        self.bucket = storage.bucket(bucket_name)
        logging.info(f"StorageService: 버킷 '{bucket_name}' 연결 완료")

    def generate_upload_url(self, user_id: str, upload_type: str, filename: str, content_type: str) -> dict:
        """
        :param upload_type: "ship_proof", "return_proof", "post_image" 중 하나
        :return: {"upload_url": PUT 전용 서명 URL, "file_path": 이후 워크플로우 요청에 넘길 경로}
        """
        destination = build_destination(user_id, upload_type, filename)
        upload_url = self._require_bucket().blob(destination).generate_signed_url(
            version="v4",
            expiration=SIGNED_URL_TTL,
            method="PUT",
            content_type=content_type,
        )
        return {"upload_url": upload_url, "file_path": destination}

    def publish_proof(self, owner_id: str, upload_type: str, file_path: str) -> str:
        """
        owner_id 가 올린 증빙 파일을 공개로 전환하고 URL 을 돌려줍니다.
        다른 사람의 폴더를 가리키면 PermissionError, 파일이 없으면 FileNotFoundError.
        """
        if not is_owned_path(owner_id, upload_type, file_path):
            logging.warning(f"다른 사용자 경로의 증빙 이미지 사용 시도: {owner_id} -> {file_path}")
            raise PermissionError("본인이 업로드한 증빙 이미지만 사용할 수 있습니다.")
        return self._publish(file_path)

    def _require_bucket(self):
        if not self.bucket:
            raise RuntimeError("StorageService가 초기화되지 않았습니다. init_app을 먼저 호출해주세요.")
        return self.bucket

    def _publish(self, file_path: str) -> str:
        blob = self._require_bucket().blob(file_path)
        if not blob.exists():
            raise FileNotFoundError(f"파일을 찾을 수 없습니다: {file_path}")
        try:
            blob.make_public()
        except Exception as e:
            logging.error(f"증빙 이미지 공개 전환 실패 ({file_path}): {e}", exc_info=True)
            raise
        return blob.public_url


class InMemoryStorageService(StorageService):
    """URL 을 발급한 경로를 곧바로 업로드 완료로 취급하는 로컬 구현"""

    def __init__(self, bucket_name: str = "froc-local"):
        super().__init__()
        self.bucket_name = bucket_name
        self.uploaded = set()
        self.published = set()

    def init_app(self, app: Flask):
        self.bucket_name = app.config.get('FIREBASE_STORAGE_BUCKET') or self.bucket_name

    def generate_upload_url(self, user_id: str, upload_type: str, filename: str, content_type: str) -> dict:
        destination = build_destination(user_id, upload_type, filename)
        self.uploaded.add(destination)
        return {
            "upload_url": f"https://storage.local/upload/{self.bucket_name}/{destination}",
            "file_path": destination,
        }

    def _publish(self, file_path: str) -> str:
        if file_path not in self.uploaded:
            raise FileNotFoundError(f"파일을 찾을 수 없습니다: {file_path}")
        self.published.add(file_path)
        return f"https://storage.local/{self.bucket_name}/{file_path}"
