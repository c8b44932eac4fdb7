from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


class _ServerTimestamp:
    """Sentinel replaced by the store's own clock when a document is written."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def user_document_path(app_id: str, uid: str) -> str:
    return f"artifacts/{app_id}/users/{uid}"


def history_collection_path(app_id: str, uid: str) -> str:
    return f"{user_document_path(app_id, uid)}/studyHistory"


@dataclass
class StoredDocument:
    """Document id plus its field data, as delivered in a collection snapshot."""

    id: str
    data: Dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[List[StoredDocument]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """Handle for a live collection watch. `cancel` is idempotent."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._cancel()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()


class DocumentStore(ABC):
    """Abstract interface over the per-user document store."""

    @abstractmethod
    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        """Return the document's fields, or None when it does not exist."""

    @abstractmethod
    def merge_document(self, path: str, data: Dict[str, Any]) -> None:
        """Write fields into a document, keeping fields not mentioned in `data`."""

    @abstractmethod
    def add_document(self, collection_path: str, data: Dict[str, Any]) -> str:
        """Append a document with a store-assigned id and return that id."""

    @abstractmethod
    def watch_collection(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Deliver the full current set of documents now and after every change."""
