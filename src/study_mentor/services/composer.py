from __future__ import annotations

from typing import Optional

from study_mentor.learning.models import ImageAttachment, ModeKey, PendingRequest
from study_mentor.learning.modes import StudyMode, get_mode


class PromptComposer:
    """
    Current composer input: active mode, prompt text and at most one attached image.

    Switching modes keeps both the text and the attachment. The attachment is only
    counted and sent while the active mode accepts images.
    """

    def __init__(self, mode: ModeKey = ModeKey.MENTOR):
        self.mode_key = ModeKey(mode)
        self.prompt_text = ""
        self.image: Optional[ImageAttachment] = None
        # Bumped whenever the attachment is dropped so the view can reset its file picker.
        self.image_revision = 0

    @property
    def mode(self) -> StudyMode:
        return get_mode(self.mode_key)

    def select_mode(self, mode: ModeKey | str) -> StudyMode:
        self.mode_key = ModeKey(mode)
        return self.mode

    def set_prompt(self, text: Optional[str]) -> None:
        self.prompt_text = text or ""

    def attach_image(self, name: str, raw: bytes, mime_type: Optional[str] = None) -> ImageAttachment:
        """Replace any previous attachment with the given file contents."""
        self.image = ImageAttachment.from_bytes(name, raw, mime_type)
        return self.image

    def clear_image(self) -> None:
        self.image = None
        self.image_revision += 1

    def reset_input(self) -> None:
        """Clear text and attachment after a gateway call, whatever its outcome."""
        self.prompt_text = ""
        self.clear_image()

    def build_request(self, mbti: Optional[str]) -> PendingRequest:
        """Snapshot the input as a request, raising `SubmissionError` if the mode rejects it."""
        mode = self.mode
        request = PendingRequest(
            mode=mode.key,
            prompt_text=self.prompt_text,
            image=self.image if mode.accepts_image else None,
        )
        mode.check(request, mbti)
        return request

    @staticmethod
    def compose(request: PendingRequest, mbti: Optional[str]) -> str:
        """Return the full instruction text sent to the gateway."""
        return get_mode(request.mode).build_prompt(request.prompt_text, mbti)
