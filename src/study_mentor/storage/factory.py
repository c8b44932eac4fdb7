from __future__ import annotations

import logging
from typing import Optional

from study_mentor.auth.session import AuthClient, Identity
from study_mentor.config.schema import Settings
from study_mentor.errors import ConfigurationError
from study_mentor.storage.document_store import DocumentStore
from study_mentor.storage.memory_store import InMemoryDocumentStore

logger = logging.getLogger(__name__)


def create_document_store(
    settings: Settings,
    identity: Identity,
    shared_memory_store: Optional[InMemoryDocumentStore] = None,
    auth_client: Optional[AuthClient] = None,
) -> DocumentStore:
    """
    Instantiate the document store for one signed-in identity.

    The `memory` backend returns the process-wide store passed in (or a fresh one), so
    every session in the process sees the same data. The `firebase` backend opens a
    Firestore client authenticated as the identity, refreshing its token through
    `auth_client` when one is given.

    Raises `ConfigurationError` for an unusable backend so the session service can
    report it like any other failure.
    """
    if settings.backend == "memory":
        return shared_memory_store if shared_memory_store is not None else InMemoryDocumentStore()

    if settings.backend == "firebase":
        if not settings.firebase.is_complete:
            raise ConfigurationError("Firebase configuration is missing apiKey or projectId.")
        try:
            from study_mentor.storage.firestore_store import FirestoreDocumentStore
        except ImportError as e:
            logger.error(
                "google-cloud-firestore is required but not installed. "
                "Install with: pip install google-cloud-firestore"
            )
            raise ConfigurationError(
                "Firestore document store is required but not available. "
                "Install it with: pip install google-cloud-firestore",
                user_message="The study history store is not available on this server.",
            ) from e
        return FirestoreDocumentStore.for_identity(settings.firebase, identity, auth_client)

    raise ConfigurationError(f"Unknown store backend: {settings.backend}")
