from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import RefreshError
from google.cloud import firestore
from google.oauth2.credentials import Credentials

from study_mentor.auth.session import AuthClient, Identity, expiry_from_id_token
from study_mentor.config.schema import FirebaseConfig
from study_mentor.errors import IdentityError, StoreError

from .document_store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    StoredDocument,
    Subscription,
)

logger = logging.getLogger(__name__)

# A bearer token that fails to refresh surfaces as RefreshError, not as an API error.
_STORE_ERRORS = (GoogleAPIError, RefreshError)


class IdentityTokenRefresher:
    """
    `refresh_handler` for google-auth credentials: trades the refresh token for a new ID token.

    google-auth calls it shortly before the current token expires, from whichever thread
    (a request or the watch stream) needs the credential next.
    """

    def __init__(self, auth_client: AuthClient, identity: Identity):
        self.auth_client = auth_client
        self.identity = identity
        self._lock = threading.Lock()

    def __call__(self, request: Any, scopes: Any = None) -> Tuple[str, datetime]:
        with self._lock:
            try:
                self.identity = self.auth_client.refresh(self.identity)
            except IdentityError as exc:
                raise RefreshError(f"Could not refresh the Firebase ID token: {exc}") from exc
            id_token = self.identity.id_token
        expiry = expiry_from_id_token(id_token)
        if expiry is None:
            raise RefreshError("Refreshed ID token carries no exp claim.")
        logger.info("Refreshed Firebase ID token for %s", self.identity.uid)
        return id_token, expiry


class FirestoreDocumentStore(DocumentStore):
    """
    Document store backed by Cloud Firestore, acting as the signed-in end user.

    The client authenticates with the user's Firebase ID token, so the project's
    security rules apply exactly as they would to the browser SDK.
    """

    def __init__(self, client: firestore.Client):
        self.client = client

    @classmethod
    def for_identity(
        cls,
        config: FirebaseConfig,
        identity: Identity,
        auth_client: Optional[AuthClient] = None,
    ) -> "FirestoreDocumentStore":
        """Open a client acting as `identity`; with an auth client the ID token is refreshed before it lapses."""
        refresh_handler = None
        if auth_client is not None and identity.refresh_token:
            refresh_handler = IdentityTokenRefresher(auth_client, identity)
        credentials = Credentials(
            token=identity.id_token,
            expiry=expiry_from_id_token(identity.id_token),
            refresh_handler=refresh_handler,
        )
        return cls(firestore.Client(project=config.project_id, credentials=credentials))

    @staticmethod
    def _normalize(path: str) -> str:
        return path.strip("/")

    @staticmethod
    def _to_firestore(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: (firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else value)
            for key, value in data.items()
        }

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            snapshot = self.client.document(self._normalize(path)).get()
        except _STORE_ERRORS as exc:
            raise StoreError(f"Failed to read {path}: {exc}") from exc
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def merge_document(self, path: str, data: Dict[str, Any]) -> None:
        try:
            self.client.document(self._normalize(path)).set(self._to_firestore(data), merge=True)
        except _STORE_ERRORS as exc:
            raise StoreError(f"Failed to write {path}: {exc}") from exc

    def add_document(self, collection_path: str, data: Dict[str, Any]) -> str:
        try:
            _, reference = self.client.collection(self._normalize(collection_path)).add(
                self._to_firestore(data)
            )
        except _STORE_ERRORS as exc:
            raise StoreError(f"Failed to append to {collection_path}: {exc}") from exc
        return reference.id

    def watch_collection(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        collection = self.client.collection(self._normalize(collection_path))

        # Runs on the watch's background thread.
        def _callback(documents, changes, read_time) -> None:
            try:
                on_snapshot(
                    [StoredDocument(id=doc.id, data=doc.to_dict() or {}) for doc in documents]
                )
            except Exception as exc:
                logger.exception("History snapshot for %s could not be delivered", collection_path)
                if on_error is not None:
                    on_error(exc)

        try:
            watch = collection.on_snapshot(_callback)
        except _STORE_ERRORS as exc:
            raise StoreError(f"Failed to watch {collection_path}: {exc}") from exc
        return Subscription(watch.unsubscribe)
