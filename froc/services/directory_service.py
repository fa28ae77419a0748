# froc/services/directory_service.py
"""
사용자/리스팅 조회 접근자.
워크플로우 입장에서는 읽기 전용이며, 좋아요 토글과 댓글 추가만 리스팅을 수정합니다.
"""

import logging
from typing import Tuple

from firebase_admin import firestore

from froc.core.errors import PersistenceFailure, RecordNotFound
from froc.models.listing import Comment, Listing
from froc.models.user import User
from froc.services.memory_store import MemoryStore

USERS_COLLECTION = 'users'
LISTINGS_COLLECTION = 'posts'
COMMENTS_COLLECTION = 'comments'


class UserDirectory:
    def get_user(self, user_id: str) -> User:
        raise NotImplementedError


class ListingCatalog:
    def get_listing(self, listing_id: str) -> Listing:
        raise NotImplementedError

    def toggle_like(self, listing_id: str, user_id: str) -> Tuple[bool, Listing]:
        """좋아요 상태를 뒤집고 (새 상태, 갱신 전 리스팅) 을 반환합니다."""
        raise NotImplementedError

    def append_comment(self, listing_id: str, comment: Comment) -> None:
        raise NotImplementedError


class FirestoreUserDirectory(UserDirectory):
    def __init__(self):
        self.db = firestore.client()
        self.users_ref = self.db.collection(USERS_COLLECTION)

    def get_user(self, user_id: str) -> User:
        doc = self.users_ref.document(user_id).get()
        if not doc.exists:
            raise RecordNotFound(f"사용자를 찾을 수 없습니다: {user_id}")
        return User.from_document(doc.id, doc.to_dict())


class FirestoreListingCatalog(ListingCatalog):
    def __init__(self):
        self.db = firestore.client()
        self.listings_ref = self.db.collection(LISTINGS_COLLECTION)

    def get_listing(self, listing_id: str) -> Listing:
        doc = self.listings_ref.document(listing_id).get()
        if not doc.exists:
            raise RecordNotFound(f"리스팅을 찾을 수 없습니다: {listing_id}")
        listing = Listing.from_document(doc.id, doc.to_dict())
        comment_docs = (
            self.listings_ref.document(listing_id).collection(COMMENTS_COLLECTION)
            .order_by('timestamp').stream()
        )
        listing.comments = [Comment.from_document(c.id, c.to_dict()) for c in comment_docs]
        return listing

    def toggle_like(self, listing_id: str, user_id: str) -> Tuple[bool, Listing]:
        transaction = self.db.transaction()

        @firestore.transactional
        def _toggle_like_in_transaction(transaction, listing_ref):
            snapshot = listing_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise RecordNotFound(f"리스팅을 찾을 수 없습니다: {listing_id}")
            listing = Listing.from_document(snapshot.id, snapshot.to_dict())
            if user_id in listing.liked_by:
                transaction.update(listing_ref, {
                    'likedBy': firestore.ArrayRemove([user_id]),
                    'numberOfLikes': firestore.Increment(-1),
                })
                return False, listing
            transaction.update(listing_ref, {
                'likedBy': firestore.ArrayUnion([user_id]),
                'numberOfLikes': firestore.Increment(1),
            })
            return True, listing

        try:
            return _toggle_like_in_transaction(transaction, self.listings_ref.document(listing_id))
        except RecordNotFound:
            raise
        except Exception as e:
            logging.error(f"좋아요 토글 실패 (listing_id: {listing_id}, user_id: {user_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"좋아요 처리에 실패했습니다: {listing_id}") from e

    def append_comment(self, listing_id: str, comment: Comment) -> None:
        try:
            comments_ref = self.listings_ref.document(listing_id).collection(COMMENTS_COLLECTION)
            comments_ref.document(comment.comment_id).set(comment.to_document())
        except Exception as e:
            logging.error(f"댓글 저장 실패 (listing_id: {listing_id}): {e}", exc_info=True)
            raise PersistenceFailure(f"댓글을 저장하지 못했습니다: {listing_id}") from e


class InMemoryUserDirectory(UserDirectory):
    def __init__(self, store: MemoryStore):
        self.store = store

    def save_user(self, user: User) -> User:
        self.store.set(USERS_COLLECTION, user.user_id, user.to_document())
        return user

    def get_user(self, user_id: str) -> User:
        data = self.store.get(USERS_COLLECTION, user_id)
        if data is None:
            raise RecordNotFound(f"사용자를 찾을 수 없습니다: {user_id}")
        return User.from_document(user_id, data)


class InMemoryListingCatalog(ListingCatalog):
    def __init__(self, store: MemoryStore):
        self.store = store

    def save_listing(self, listing: Listing) -> Listing:
        self.store.set(LISTINGS_COLLECTION, listing.listing_id, listing.to_document())
        return listing

    def get_listing(self, listing_id: str) -> Listing:
        data = self.store.get(LISTINGS_COLLECTION, listing_id)
        if data is None:
            raise RecordNotFound(f"리스팅을 찾을 수 없습니다: {listing_id}")
        listing = Listing.from_document(listing_id, data)
        listing.comments = self._comments(listing_id)
        return listing

    def toggle_like(self, listing_id: str, user_id: str) -> Tuple[bool, Listing]:
        while True:
            version, data = self.store.get_versioned(LISTINGS_COLLECTION, listing_id)
            if data is None:
                raise RecordNotFound(f"리스팅을 찾을 수 없습니다: {listing_id}")
            listing = Listing.from_document(listing_id, data)
            liked_by = list(data.get('likedBy') or [])
            is_liked = user_id not in liked_by
            if is_liked:
                liked_by.append(user_id)
            else:
                liked_by.remove(user_id)
            data['likedBy'] = liked_by
            data['numberOfLikes'] = int(data.get('numberOfLikes') or 0) + (1 if is_liked else -1)
            if self.store.compare_and_set(LISTINGS_COLLECTION, listing_id, version, data):
                return is_liked, listing

    def append_comment(self, listing_id: str, comment: Comment) -> None:
        if self.store.get(LISTINGS_COLLECTION, listing_id) is None:
            raise RecordNotFound(f"리스팅을 찾을 수 없습니다: {listing_id}")
        self.store.set(f"{LISTINGS_COLLECTION}/{listing_id}/{COMMENTS_COLLECTION}", comment.comment_id, comment.to_document())

    def _comments(self, listing_id: str):
        docs = self.store.stream(f"{LISTINGS_COLLECTION}/{listing_id}/{COMMENTS_COLLECTION}")
        comments = [Comment.from_document(doc_id, data) for doc_id, data in docs]
        return sorted(comments, key=lambda c: c.timestamp)
