# froc/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import os
import logging
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from flask_jwt_extended import JWTManager
import firebase_admin
from firebase_admin import credentials

# - 설정 및 공용 예외
from froc.core.config import config_by_name
from froc.core.errors import FulfillmentError

# - API 블루프린트
from froc.api.orders.routes import orders_bp
from froc.api.inbox.routes import inbox_bp
from froc.api.listings.routes import listings_bp, users_bp
from froc.api.uploads.routes import uploads_bp

# - 서비스 모듈
from froc.services.memory_store import MemoryStore
from froc.services.inbox_repository import FirestoreInboxRepository, InMemoryInboxRepository
from froc.services.directory_service import (
    FirestoreListingCatalog, FirestoreUserDirectory, InMemoryListingCatalog, InMemoryUserDirectory,
)
from froc.services.notification_service import FcmNotificationService, InMemoryNotificationService
from froc.services.storage_service import InMemoryStorageService, StorageService
from froc.api.orders.routing import OrderRouter
from froc.api.orders.services import FulfillmentService
from froc.api.inbox.services import InboxService
from froc.api.listings.services import EngagementService

def create_app(config_name: str = None):
    """
    Flask 애플리케이션 팩토리 함수.

    :param config_name: 'development' 또는 'testing'. 없으면 FLASK_ENV 를 따릅니다.
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False

    # =====================================================================================
    # 4. 확장 기능 및 외부 서비스 초기화
    # =====================================================================================
    JWTManager(app)

    backend = app.config['FROC_BACKEND']
    if backend == 'firestore' and not firebase_admin._apps:
        cred_path = app.config.get('FIREBASE_CREDENTIALS_PATH')
        if not cred_path or not os.path.exists(cred_path):
            raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {cred_path}")
        cred = credentials.Certificate(cred_path)
        firebase_admin.initialize_app(cred, {
            'storageBucket': app.config['FIREBASE_STORAGE_BUCKET']
        })

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}

    # 5-1. 저장소/알림/스토리지 게이트웨이
    if backend == 'memory':
        store = MemoryStore()
        app.services['store'] = store
        app.services['inbox_repository'] = InMemoryInboxRepository(store, max_retries=app.config['COUNTER_MAX_RETRIES'])
        app.services['user_directory'] = InMemoryUserDirectory(store)
        app.services['listing_catalog'] = InMemoryListingCatalog(store)
        app.services['notifications'] = InMemoryNotificationService(app.services['user_directory'])
        storage_instance = InMemoryStorageService()
    elif backend == 'firestore':
        app.services['inbox_repository'] = FirestoreInboxRepository(max_retries=app.config['COUNTER_MAX_RETRIES'])
        app.services['user_directory'] = FirestoreUserDirectory()
        app.services['listing_catalog'] = FirestoreListingCatalog()
        app.services['notifications'] = FcmNotificationService(app.services['user_directory'], title=app.config['PUSH_TITLE'])
        storage_instance = StorageService()
    else:
        raise ValueError(f"알 수 없는 FROC_BACKEND 값입니다: {backend}")

    try:
        storage_instance.init_app(app)
        app.services['storage'] = storage_instance
        logging.info("Storage service initialized successfully")
    except Exception as e:
        logging.error(f"Failed to initialize storage service: {e}")
        raise

    # 5-2. 게이트웨이를 주입받는 도메인 서비스
    app.services['router'] = OrderRouter(app.config['FROC_ADMIN_USER_ID'])
    app.services['fulfillment'] = FulfillmentService(
        inbox_repository=app.services['inbox_repository'],
        user_directory=app.services['user_directory'],
        listing_catalog=app.services['listing_catalog'],
        notification_service=app.services['notifications'],
        storage_service=app.services['storage'],
        router=app.services['router'],
        payment_recipient=app.config['PAYMENT_RECIPIENT'],
    )
    app.services['inbox'] = InboxService(app.services['inbox_repository'])
    app.services['engagement'] = EngagementService(
        inbox_repository=app.services['inbox_repository'],
        user_directory=app.services['user_directory'],
        listing_catalog=app.services['listing_catalog'],
        notification_service=app.services['notifications'],
        admin_id=app.services['router'].admin_id,
    )

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(orders_bp, url_prefix='/api/orders')
    app.register_blueprint(inbox_bp, url_prefix='/api/inbox')
    app.register_blueprint(listings_bp, url_prefix='/api/listings')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(uploads_bp, url_prefix='/api/uploads')

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(FulfillmentError)
    def handle_fulfillment_error(err):
        if err.http_status >= 500:
            logging.error(f"Fulfillment error: {err}", exc_info=True)
        response = {"error_code": err.error_code, "message": str(err)}
        return jsonify(response), err.http_status

    @app.errorhandler(PermissionError)
    def handle_permission_error(err):
        return jsonify({"error_code": "FORBIDDEN", "message": str(err)}), 403

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        if isinstance(err, HTTPException):
            return err
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    # =====================================================================================
    # 8. 로깅 및 앱 반환
    # =====================================================================================
    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    logging.info(f"FROC app created for '{config_name}' environment ({backend} backend).")

    return app
