from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from study_mentor.auth.session import Identity
from study_mentor.learning.models import Profile, normalize_mbti
from study_mentor.storage.document_store import DocumentStore, user_document_path

logger = logging.getLogger(__name__)


class ProfileStore:
    """Read and merge-write the learning-style field on the user document."""

    def __init__(self, store: DocumentStore, app_id: str):
        self.store = store
        self.app_id = app_id

    def profile_path(self, identity: Identity) -> str:
        return user_document_path(self.app_id, identity.uid)

    def load_profile(self, identity: Identity) -> Optional[Profile]:
        """Return the stored profile, or None when no MBTI has been chosen yet."""
        data = self.store.get_document(self.profile_path(identity))
        if not data or not data.get("mbti"):
            return None
        try:
            return Profile(mbti=data["mbti"])
        except ValidationError:
            logger.warning("Ignoring unrecognised MBTI %r for %s", data["mbti"], identity.uid)
            return None

    def save_profile(self, identity: Identity, mbti: str) -> Profile:
        """Validate the code and merge it into the user document, keeping other fields."""
        profile = Profile(mbti=normalize_mbti(mbti))
        self.store.merge_document(self.profile_path(identity), {"mbti": profile.mbti})
        logger.info("Saved MBTI %s for %s", profile.mbti, identity.uid)
        return profile
