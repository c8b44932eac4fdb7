from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional

from study_mentor.agents.gemini_client import GeminiClient
from study_mentor.auth.session import (
    AuthClient,
    Identity,
    IdentityToolkitClient,
    LocalAuthClient,
    SessionBootstrapper,
)
from study_mentor.config.loader import load_settings
from study_mentor.config.schema import Settings
from study_mentor.errors import ConfigurationError
from study_mentor.services.mentor_service import Gateway, StudyMentorService
from study_mentor.storage.document_store import DocumentStore
from study_mentor.storage.factory import create_document_store
from study_mentor.storage.memory_store import InMemoryDocumentStore
from study_mentor.utils.logging import configure_logging

logger = logging.getLogger(__name__)


class MentorSystem:
    """
    Process-wide facade that owns configuration and the shared clients.

    One `MentorSystem` is built at process start from an explicit `Settings` value.
    Each browser session (or CLI invocation) gets its own `StudyMentorService` from
    `new_session`, sharing the gateway client, the auth client and, for the memory
    backend, the in-process document store.

    Parameters
    ----------
    settings : Settings
        Validated configuration, usually from `load_settings`.
    gateway : Gateway, optional
        Replacement for the Gemini client (tests, alternative endpoints).
    auth_client : AuthClient, optional
        Replacement for the backend's default auth client.
    memory_store : InMemoryDocumentStore, optional
        Shared store for the memory backend; created when omitted.

    Raises
    ------
    ConfigurationError
        If the firebase backend is selected without a usable credential bundle.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: Optional[Gateway] = None,
        auth_client: Optional[AuthClient] = None,
        memory_store: Optional[InMemoryDocumentStore] = None,
    ):
        self.settings = settings
        configure_logging(settings.logging.level, settings.logging.use_json)

        if settings.backend == "firebase" and not settings.firebase.is_complete:
            logger.error("Firebase configuration is missing or invalid.")
            raise ConfigurationError(
                "Firebase configuration is missing apiKey or projectId.",
                user_message=(
                    "The Firebase configuration is missing or invalid. "
                    "Check the STUDY_MENTOR_FIREBASE_CONFIG environment variable."
                ),
            )

        self.gateway: Gateway = gateway or GeminiClient(settings.gateway)
        if auth_client is not None:
            self.auth_client = auth_client
        elif settings.backend == "firebase":
            self.auth_client = IdentityToolkitClient(settings.firebase, settings.auth)
        else:
            self.auth_client = LocalAuthClient()

        self.memory_store: Optional[InMemoryDocumentStore] = None
        if settings.backend == "memory":
            self.memory_store = memory_store or InMemoryDocumentStore()
        logger.info("Study mentor ready (backend=%s, app_id=%s)", settings.backend, settings.app_id)

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        environ: Optional[Mapping[str, str]] = None,
        **kwargs,
    ) -> "MentorSystem":
        """Load settings from YAML plus the deployment environment and build the system."""
        return cls(load_settings(config_path, environ=environ), **kwargs)

    def store_for(self, identity: Identity) -> DocumentStore:
        return create_document_store(self.settings, identity, self.memory_store, self.auth_client)

    def new_session(self) -> StudyMentorService:
        """Create the service for one browser session; call `start` on it to sign in."""
        bootstrapper = SessionBootstrapper(self.auth_client, self.settings.initial_auth_token)
        return StudyMentorService(self.settings, bootstrapper, self.gateway, self.store_for)
