from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .document_store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    StoredDocument,
    Subscription,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local document store with synchronous change notification.

    Mirrors the hosted store closely enough for local runs and tests: slash-separated
    paths, merge writes, store-assigned ids, server timestamps taken from `clock`, and
    watchers that receive the whole collection on subscribe and after every write.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utcnow
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._watchers: Dict[int, Tuple[str, SnapshotCallback, Optional[ErrorCallback]]] = {}
        self._next_watcher = 0
        self._lock = threading.RLock()

    @staticmethod
    def _normalize(path: str) -> str:
        return path.strip("/")

    def _resolve(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: (self._clock() if value is SERVER_TIMESTAMP else copy.deepcopy(value))
            for key, value in data.items()
        }

    def _children(self, collection_path: str) -> List[StoredDocument]:
        prefix = collection_path + "/"
        return [
            StoredDocument(id=path[len(prefix):], data=copy.deepcopy(data))
            for path, data in self._documents.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self._documents.get(self._normalize(path))
            return copy.deepcopy(data) if data is not None else None

    def merge_document(self, path: str, data: Dict[str, Any]) -> None:
        path = self._normalize(path)
        with self._lock:
            existing = self._documents.get(path, {})
            self._documents[path] = {**existing, **self._resolve(data)}
            self._notify(path)

    def add_document(self, collection_path: str, data: Dict[str, Any]) -> str:
        collection_path = self._normalize(collection_path)
        doc_id = uuid.uuid4().hex[:20]
        with self._lock:
            self._documents[f"{collection_path}/{doc_id}"] = self._resolve(data)
            self._notify(f"{collection_path}/{doc_id}")
        return doc_id

    def watch_collection(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        collection_path = self._normalize(collection_path)
        with self._lock:
            watcher_id = self._next_watcher
            self._next_watcher += 1
            self._watchers[watcher_id] = (collection_path, on_snapshot, on_error)
            self._deliver(watcher_id)

        def _cancel() -> None:
            with self._lock:
                self._watchers.pop(watcher_id, None)

        return Subscription(_cancel)

    def _notify(self, document_path: str) -> None:
        parent = document_path.rsplit("/", 1)[0]
        for watcher_id, (collection_path, _, _) in list(self._watchers.items()):
            if collection_path == parent:
                self._deliver(watcher_id)

    def _deliver(self, watcher_id: int) -> None:
        collection_path, on_snapshot, on_error = self._watchers[watcher_id]
        try:
            on_snapshot(self._children(collection_path))
        except Exception as exc:
            if on_error is None:
                raise
            logger.warning("Snapshot listener for %s failed: %s", collection_path, exc)
            on_error(exc)
