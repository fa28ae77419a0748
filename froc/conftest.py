# froc/conftest.py
"""
공용 pytest 픽스처.
모든 테스트는 인메모리 게이트웨이로 실행되므로 Firebase 프로젝트가 필요하지 않습니다.
"""

from datetime import datetime, timedelta, timezone

import pytest
from flask_jwt_extended import create_access_token

from froc import create_app
from froc.api.inbox.services import InboxService
from froc.api.listings.services import EngagementService
from froc.api.orders.routing import OrderRouter
from froc.api.orders.services import FulfillmentService
from froc.models.listing import Listing, SaleOption
from froc.models.user import User
from froc.services.directory_service import InMemoryListingCatalog, InMemoryUserDirectory
from froc.services.inbox_repository import InMemoryInboxRepository
from froc.services.memory_store import MemoryStore
from froc.services.notification_service import InMemoryNotificationService
from froc.services.storage_service import InMemoryStorageService

ADMIN_ID = "admin"
BUYER_ID = "buyer-1"
SELLER_ID = "seller-1"
START = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


def seed_parties(users: InMemoryUserDirectory, listings: InMemoryListingCatalog) -> dict:
    buyer = users.save_user(User(
        user_id=BUYER_ID, username="jane", email="jane@example.com",
        first_name="Jane", last_name="Doe", address="12 College Ave",
        venmo_handle="jane-doe", followers=["seller-1"], fcm_token="token-buyer",
    ))
    seller = users.save_user(User(
        user_id=SELLER_ID, username="sam", email="sam@example.com",
        first_name="Sam", last_name="Lee", address="99 Campus Rd", fcm_token="token-seller",
    ))
    admin = users.save_user(User(user_id=ADMIN_ID, username="froc_admin", fcm_token="token-admin"))
    rent_listing = listings.save_listing(Listing(
        listing_id="listing-rent", owner_id=SELLER_ID, sale_option=SaleOption.RENT,
        rent_price_per_day=20.0, sizes=["S", "M"], title="Silk dress",
        description="Green silk midi dress", image_urls=["https://img/rent.jpg"],
    ))
    purchase_listing = listings.save_listing(Listing(
        listing_id="listing-buy", owner_id=SELLER_ID, sale_option=SaleOption.PURCHASE,
        purchase_price=50.0, sizes=["M"], title="Denim jacket", image_urls=["https://img/buy.jpg"],
    ))
    flexible_listing = listings.save_listing(Listing(
        listing_id="listing-both", owner_id=SELLER_ID, sale_option=SaleOption.PURCHASE_OR_RENT,
        purchase_price=120.0, rent_price_per_day=15.0, sizes=["L"], title="Wool coat",
        min_rent_days=2, max_rent_days=14,
    ))
    return {
        "buyer": buyer, "seller": seller, "admin": admin,
        "rent_listing": rent_listing, "purchase_listing": purchase_listing,
        "flexible_listing": flexible_listing,
    }


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def inbox_repository(store):
    return InMemoryInboxRepository(store, max_retries=5)


@pytest.fixture
def user_directory(store):
    return InMemoryUserDirectory(store)


@pytest.fixture
def listing_catalog(store):
    return InMemoryListingCatalog(store)


@pytest.fixture
def notifications(user_directory):
    return InMemoryNotificationService(user_directory)


@pytest.fixture
def storage():
    return InMemoryStorageService("froc-test")


@pytest.fixture
def parties(user_directory, listing_catalog):
    return seed_parties(user_directory, listing_catalog)


@pytest.fixture
def fulfillment_service(inbox_repository, user_directory, listing_catalog, notifications, storage, clock, parties):
    return FulfillmentService(
        inbox_repository=inbox_repository,
        user_directory=user_directory,
        listing_catalog=listing_catalog,
        notification_service=notifications,
        storage_service=storage,
        router=OrderRouter(ADMIN_ID),
        clock=clock,
    )


@pytest.fixture
def inbox_service(inbox_repository, clock):
    return InboxService(inbox_repository, clock=clock)


@pytest.fixture
def engagement_service(inbox_repository, user_directory, listing_catalog, notifications, clock, parties):
    return EngagementService(
        inbox_repository=inbox_repository,
        user_directory=user_directory,
        listing_catalog=listing_catalog,
        notification_service=notifications,
        admin_id=ADMIN_ID,
        clock=clock,
    )


@pytest.fixture
def upload_proof(storage):
    """업로드를 마친 증빙 이미지의 Storage 경로를 만들어 줍니다."""
    def _upload(user_id: str, upload_type: str = "ship_proof") -> str:
        return storage.generate_upload_url(user_id, upload_type, "proof.jpg", "image/jpeg")["file_path"]
    return _upload


@pytest.fixture
def app():
    app = create_app('testing')
    seed_parties(app.services['user_directory'], app.services['listing_catalog'])
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _headers(user_id: str) -> dict:
        with app.app_context():
            token = create_access_token(identity=user_id)
        return {"Authorization": f"Bearer {token}"}
    return _headers
