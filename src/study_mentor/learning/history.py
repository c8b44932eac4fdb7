from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from pydantic import ValidationError

from study_mentor.auth.session import Identity
from study_mentor.errors import StoreError
from study_mentor.learning.models import Exchange, PendingRequest
from study_mentor.storage.document_store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    StoredDocument,
    Subscription,
    history_collection_path,
)

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[List[Exchange]], None]
ErrorCallback = Callable[[StoreError], None]

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(exchange: Exchange):
    created = exchange.created_at
    if created is None:
        return (0, _OLDEST)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (1, created)


def sort_newest_first(exchanges: Sequence[Exchange]) -> List[Exchange]:
    """Order by creation time, newest first; unresolved timestamps sort as oldest."""
    return sorted(exchanges, key=_sort_key, reverse=True)


class HistorySubscription:
    """
    Live, identity-scoped view of the study history.

    Every store snapshot replaces the list wholesale and is re-sorted before the
    handler sees it. Records that do not parse are logged and left out, so one bad
    document cannot freeze the feed. After `cancel`, late snapshots are ignored.
    """

    def __init__(self, identity: Identity, on_update: UpdateCallback, on_error: Optional[ErrorCallback]):
        self.identity = identity
        self._on_update = on_update
        self._on_error = on_error
        self._entries: List[Exchange] = []
        self._lock = threading.Lock()
        self._handle: Optional[Subscription] = None
        self._cancelled = False
        self._first_delivery = threading.Event()

    @property
    def entries(self) -> List[Exchange]:
        with self._lock:
            return list(self._entries)

    @property
    def active(self) -> bool:
        return not self._cancelled

    def attach(self, handle: Subscription) -> None:
        self._handle = handle
        if self._cancelled:
            handle.cancel()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()

    def wait_for_first_snapshot(self, timeout: Optional[float] = None) -> bool:
        """Block until the store delivered its first snapshot (or failed). False on timeout."""
        return self._first_delivery.wait(timeout)

    def handle_snapshot(self, documents: List[StoredDocument]) -> None:
        if self._cancelled:
            return
        exchanges: List[Exchange] = []
        for doc in documents:
            try:
                exchanges.append(Exchange.from_document(doc.id, doc.data))
            except ValidationError as exc:
                logger.warning("Skipping unreadable history record %s: %s", doc.id, exc)
        ordered = sort_newest_first(exchanges)
        with self._lock:
            self._entries = ordered
        self._on_update(list(ordered))
        self._first_delivery.set()

    def handle_error(self, exc: Exception) -> None:
        if self._cancelled:
            return
        self._first_delivery.set()
        logger.error("History subscription for %s failed: %s", self.identity.uid, exc)
        if self._on_error is not None:
            error = exc if isinstance(exc, StoreError) else StoreError(
                str(exc), user_message="Failed to load your study history."
            )
            self._on_error(error)

    def __enter__(self) -> "HistorySubscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class HistoryFeed:
    """Subscribe to and append to the per-user `studyHistory` collection."""

    def __init__(self, store: DocumentStore, app_id: str):
        self.store = store
        self.app_id = app_id

    def collection_path(self, identity: Identity) -> str:
        return history_collection_path(self.app_id, identity.uid)

    def subscribe(
        self,
        identity: Identity,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> HistorySubscription:
        subscription = HistorySubscription(identity, on_update, on_error)
        handle = self.store.watch_collection(
            self.collection_path(identity),
            subscription.handle_snapshot,
            subscription.handle_error,
        )
        subscription.attach(handle)
        return subscription

    def record(
        self,
        identity: Identity,
        request: PendingRequest,
        response_text: str,
        mbti: Optional[str] = None,
    ) -> str:
        """Append one exchange; the timestamp is assigned by the store, not this process."""
        doc_id = self.store.add_document(
            self.collection_path(identity),
            {
                "type": request.mode.value,
                "prompt": request.prompt_text,
                "response": response_text,
                "mbti": mbti,
                "timestamp": SERVER_TIMESTAMP,
            },
        )
        logger.info("Recorded %s exchange %s for %s", request.mode.value, doc_id, identity.uid)
        return doc_id
