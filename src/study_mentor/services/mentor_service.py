"""Per-session orchestration between the composer, the stores and the gateway.

The view talks only to `StudyMentorService`. Every failure is converted into a message
in the single error slot of `MentorState`; nothing is raised past this layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

from study_mentor.auth.session import Identity, SessionBootstrapper
from study_mentor.config.schema import Settings
from study_mentor.errors import StudyMentorError, SubmissionError
from study_mentor.learning.history import HistoryFeed, HistorySubscription
from study_mentor.learning.models import Exchange, ImageAttachment, ModeKey, PendingRequest, normalize_mbti
from study_mentor.learning.modes import StudyMode
from study_mentor.learning.profiles import ProfileStore
from study_mentor.services.composer import PromptComposer
from study_mentor.storage.document_store import DocumentStore
from study_mentor.utils.logging import bind_identity, get_logger

logger = get_logger(__name__)


class Gateway(Protocol):
    def generate(self, prompt: str, image: Optional[ImageAttachment] = None) -> str: ...


StoreFactory = Callable[[Identity], DocumentStore]


@dataclass
class MentorState:
    """Everything the view renders besides the composer input."""

    identity: Optional[Identity] = None
    mbti: Optional[str] = None
    response_text: str = ""
    error: str = ""
    is_loading: bool = False
    show_profile_prompt: bool = False
    history: List[Exchange] = field(default_factory=list)


class StudyMentorService:
    """Service layer for one browser session."""

    def __init__(
        self,
        settings: Settings,
        session: SessionBootstrapper,
        gateway: Gateway,
        store_factory: StoreFactory,
        composer: Optional[PromptComposer] = None,
    ):
        self.settings = settings
        self.session = session
        self.gateway = gateway
        self.store_factory = store_factory
        self.composer = composer or PromptComposer()
        self.state = MentorState()
        self.profiles: Optional[ProfileStore] = None
        self.history_feed: Optional[HistoryFeed] = None
        self._subscription: Optional[HistorySubscription] = None
        self._remove_listener = session.on_identity_changed(self._on_identity_changed)

    # -- lifecycle -----------------------------------------------------------------

    def start(self, restore: Optional[Identity] = None) -> MentorState:
        """Sign in (once) and load the profile and history for the resulting identity."""
        if self.state.identity is not None:
            return self.state
        try:
            self.session.start(restore)
        except StudyMentorError as exc:
            self._report(exc)
        return self.state

    def close(self) -> None:
        """Release the history subscription and stop following identity changes."""
        self._release_subscription()
        self._remove_listener()

    def _on_identity_changed(self, identity: Optional[Identity]) -> None:
        self._release_subscription()
        self.state.identity = identity
        self.state.mbti = None
        self.state.history = []
        self.profiles = None
        self.history_feed = None
        bind_identity(identity.uid if identity else None)
        if identity is None:
            return
        try:
            store = self.store_factory(identity)
        except StudyMentorError as exc:
            self._report(exc)
            return
        self.profiles = ProfileStore(store, self.settings.app_id)
        self.history_feed = HistoryFeed(store, self.settings.app_id)
        self._load_profile(identity)
        self._subscribe(identity)

    def _load_profile(self, identity: Identity) -> None:
        assert self.profiles is not None
        try:
            profile = self.profiles.load_profile(identity)
        except StudyMentorError as exc:
            self._report(exc, "Failed to load your profile.")
            return
        if profile is None:
            self.state.show_profile_prompt = True
        else:
            self.state.mbti = profile.mbti

    def _subscribe(self, identity: Identity) -> None:
        assert self.history_feed is not None
        try:
            self._subscription = self.history_feed.subscribe(
                identity, self._on_history, self._on_history_error
            )
        except StudyMentorError as exc:
            self._report(exc, "Failed to load your study history.")

    def _release_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def wait_for_history(self, timeout: Optional[float] = None) -> bool:
        """Block until the history feed delivered its first snapshot; False on timeout."""
        if self._subscription is None:
            return False
        return self._subscription.wait_for_first_snapshot(timeout)

    def _on_history(self, entries: List[Exchange]) -> None:
        self.state.history = entries

    def _on_history_error(self, exc: StudyMentorError) -> None:
        self._report(exc, "Failed to load your study history.")

    # -- profile -------------------------------------------------------------------

    def open_profile_prompt(self) -> None:
        self.state.show_profile_prompt = True

    def dismiss_profile_prompt(self) -> None:
        self.state.show_profile_prompt = False

    def choose_profile(self, mbti: str) -> bool:
        """Persist the chosen MBTI; on success update local state and close the prompt."""
        identity = self.state.identity
        if identity is None or self.profiles is None:
            return False
        try:
            code = normalize_mbti(mbti)
        except ValueError:
            self._report(SubmissionError(user_message=f"Unknown MBTI type: {mbti}"))
            return False
        try:
            profile = self.profiles.save_profile(identity, code)
        except StudyMentorError as exc:
            self._report(exc, "Failed to save your MBTI.")
            return False
        self.state.mbti = profile.mbti
        self.state.show_profile_prompt = False
        return True

    # -- composer ------------------------------------------------------------------

    @property
    def active_mode(self) -> StudyMode:
        return self.composer.mode

    def select_mode(self, mode: ModeKey | str) -> StudyMode:
        return self.composer.select_mode(mode)

    def set_prompt(self, text: Optional[str]) -> None:
        self.composer.set_prompt(text)

    def attach_image(self, name: str, raw: bytes, mime_type: Optional[str] = None) -> ImageAttachment:
        return self.composer.attach_image(name, raw, mime_type)

    def clear_image(self) -> None:
        self.composer.clear_image()

    def submit(self) -> Optional[str]:
        """
        Validate, call the gateway once, and record the exchange on success.

        Returns the response text, or None when the submission was rejected or failed.
        Loading state and the composer input are cleared whatever the outcome of the call.
        """
        if self.state.is_loading:
            return None
        mbti = self.state.mbti
        try:
            request = self.composer.build_request(mbti)
        except SubmissionError as exc:
            self._report(exc)
            # Mentor mode without a profile opens the prompt even for empty input.
            if self.active_mode.requires_profile and not mbti:
                self.state.show_profile_prompt = True
            return None

        self.state.is_loading = True
        self.state.response_text = ""
        self.state.error = ""
        log = logger.bind(mode=request.mode.value)
        try:
            text = self.gateway.generate(self.composer.compose(request, mbti), request.image)
            self.state.response_text = text
            self._record(request, text, mbti)
            log.info("submission_completed")
            return text
        except StudyMentorError as exc:
            self._report(exc)
            return None
        finally:
            self.state.is_loading = False
            self.composer.reset_input()

    def _record(self, request: PendingRequest, text: str, mbti: Optional[str]) -> None:
        identity = self.state.identity
        if identity is None or self.history_feed is None:
            logger.warning("exchange_not_recorded", reason="no identity")
            return
        self.history_feed.record(identity, request, text, mbti)

    def recall(self, entry: Exchange | str) -> Optional[Exchange]:
        """Load a history entry back into the composer and response pane. No network call."""
        if isinstance(entry, str):
            entry = next((item for item in self.state.history if item.id == entry), None)
            if entry is None:
                return None
        self.state.response_text = entry.response_text
        self.composer.set_prompt(entry.prompt_text)
        self.composer.select_mode(entry.mode)
        return entry

    # -- errors --------------------------------------------------------------------

    def _report(self, exc: StudyMentorError, fallback: Optional[str] = None) -> None:
        """Overwrite the single error slot; the newest failure wins."""
        message = exc.user_message
        if fallback and message == exc.default_message:
            message = fallback
        logger.warning("error_reported", error_type=type(exc).__name__, detail=str(exc))
        self.state.error = message
