# froc/services/memory_store.py
"""
Firestore 없이 개발/테스트를 하기 위한 스레드 안전 인메모리 문서 저장소.
컬렉션 경로('users', 'users/{uid}/notifications')와 문서 ID로 데이터를 관리하며,
문서마다 버전을 두어 compare-and-set 으로 트랜잭션을 흉내냅니다.
"""

import copy
import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple


class MemoryStore:
    def __init__(self):
        self._lock = threading.RLock()
        # path -> {doc_id: (version, data)}
        self._collections: Dict[str, Dict[str, Tuple[int, Dict[str, Any]]]] = defaultdict(dict)

    def get(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self.get_versioned(path, doc_id)[1]

    def get_versioned(self, path: str, doc_id: str) -> Tuple[int, Optional[Dict[str, Any]]]:
        """(version, data) 를 반환합니다. 문서가 없으면 (0, None)."""
        with self._lock:
            entry = self._collections[path].get(doc_id)
            if entry is None:
                return 0, None
            version, data = entry
            return version, copy.deepcopy(data)

    def set(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            version, _ = self._collections[path].get(doc_id, (0, None))
            self._collections[path][doc_id] = (version + 1, copy.deepcopy(data))

    def create(self, path: str, doc_id: str, data: Dict[str, Any]) -> bool:
        """문서가 없을 때만 만들고 True, 이미 있으면 아무것도 하지 않고 False."""
        with self._lock:
            if doc_id in self._collections[path]:
                return False
            self._collections[path][doc_id] = (1, copy.deepcopy(data))
            return True

    def update(self, path: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """기존 문서의 일부 필드를 수정합니다. 문서가 없으면 KeyError."""
        with self._lock:
            if doc_id not in self._collections[path]:
                raise KeyError(f"{path}/{doc_id}")
            version, data = self._collections[path][doc_id]
            data = copy.deepcopy(data)
            data.update(copy.deepcopy(fields))
            self._collections[path][doc_id] = (version + 1, data)

    def compare_and_set(self, path: str, doc_id: str, expected_version: int, data: Dict[str, Any]) -> bool:
        """읽었던 버전이 그대로일 때만 쓰고 True, 그 사이 누가 바꿨으면 False."""
        with self._lock:
            version, _ = self._collections[path].get(doc_id, (0, None))
            if version != expected_version:
                return False
            self._collections[path][doc_id] = (version + 1, copy.deepcopy(data))
            return True

    def delete(self, path: str, doc_id: str) -> bool:
        with self._lock:
            return self._collections[path].pop(doc_id, None) is not None

    def stream(self, path: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return [(doc_id, copy.deepcopy(data)) for doc_id, (_, data) in self._collections[path].items()]

    def update_all(self, path: str, fields: Dict[str, Any]) -> int:
        """컬렉션의 모든 문서를 한 번에(원자적으로) 수정하고 수정한 문서 수를 반환합니다."""
        with self._lock:
            docs = self._collections[path]
            for doc_id, (version, data) in list(docs.items()):
                data = copy.deepcopy(data)
                data.update(copy.deepcopy(fields))
                docs[doc_id] = (version + 1, data)
            return len(docs)

    def collection_group(self, name: str) -> List[Tuple[str, str, Dict[str, Any]]]:
        """이름이 name 인 모든 하위 컬렉션의 문서를 (path, doc_id, data) 로 반환합니다."""
        with self._lock:
            return [
                (path, doc_id, copy.deepcopy(data))
                for path, docs in self._collections.items()
                if path.rsplit('/', 1)[-1] == name
                for doc_id, (_, data) in docs.items()
            ]
