# froc/core/config.py

import os # 환경 변수를 읽기 위해 사용합니다.

class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # JWT 토큰 서명 키. 토큰 발급은 인증 제공자가 담당하고, 이 서버는 검증만 합니다.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')

    FIREBASE_STORAGE_BUCKET = os.getenv('FIREBASE_STORAGE_BUCKET')

    # 모든 주문 요청이 거쳐가는 관리자(승인 게이트) 계정의 user_id
    FROC_ADMIN_USER_ID = os.getenv('FROC_ADMIN_USER_ID', 'fhA46cyXc0M9loGVJuuBnkR8odx1')

    # 'firestore' 또는 'memory'. memory는 로컬 개발/테스트용 참조 구현을 사용합니다.
    FROC_BACKEND = os.getenv('FROC_BACKEND', 'firestore')

    # 구매/대여 횟수 카운터 트랜잭션 재시도 횟수
    COUNTER_MAX_RETRIES = int(os.getenv('COUNTER_MAX_RETRIES', 5))

    # 푸시 알림 제목
    PUSH_TITLE = os.getenv('PUSH_TITLE', 'FROC')

    # 결제 딥링크의 수취인 (Venmo 비즈니스 계정)
    PAYMENT_RECIPIENT = os.getenv('PAYMENT_RECIPIENT', 'FROC-Marketplace')

class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH')

class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다. Firebase 없이 인메모리 게이트웨이를 사용합니다."""
    TESTING = True
    DEBUG = False
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'froc-testing-secret-key-0123456789')
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')
    FIREBASE_STORAGE_BUCKET = os.getenv('FIREBASE_STORAGE_BUCKET', 'froc-test.appspot.com')
    FROC_ADMIN_USER_ID = 'admin'
    FROC_BACKEND = 'memory'

# FLASK_ENV 값에 따라 create_app에서 적절한 설정 클래스를 선택합니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig
)
