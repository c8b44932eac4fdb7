"""
Study modes as a closed set of variants.

Each mode owns its presentation strings, its prompt template and the precondition a
submission must satisfy, so the composer never switches on the mode name.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from study_mentor.errors import ProfileRequiredError, SubmissionError
from study_mentor.learning.models import ModeKey, PendingRequest

MENTOR_TEMPLATE = """You are an AI learning mentor for elementary school students. This student's MBTI type is {mbti}.
Your role is not to give the answer directly, but to help the student solve the problem on their own.
Always follow these rules:
1. Never state the final answer to the problem.
2. For the student's question, guide them step by step through the concepts they need to know and the order in which to approach the problem.
3. Use a kind and encouraging tone, and communicate in a way that suits the student's MBTI ({mbti}) tendencies.
4. Explain difficult terms simply, at an elementary school student's level.

Student's question: "{prompt}\""""


@dataclass(frozen=True)
class StudyMode(ABC):
    """Base variant. Subclasses define `build_prompt`."""

    key: ModeKey
    label: str
    icon: str
    placeholder: str
    submit_label: str = "Ask the AI"
    accepts_image: bool = False
    requires_profile: bool = False

    @abstractmethod
    def build_prompt(self, prompt_text: str, mbti: Optional[str] = None) -> str:
        """Return the full instruction text for the gateway."""

    def has_input(self, request: PendingRequest) -> bool:
        """Text always counts; an attached image only counts where the mode sends it."""
        return bool(request.prompt_text) or (self.accepts_image and request.image is not None)

    def check(self, request: PendingRequest, mbti: Optional[str]) -> None:
        """Raise `SubmissionError` when the request may not be sent."""
        if not self.has_input(request):
            raise SubmissionError()
        if self.requires_profile and not mbti:
            raise ProfileRequiredError()


@dataclass(frozen=True)
class WrappedMode(StudyMode):
    """Mode whose template is a fixed instruction followed by the raw prompt."""

    template: str = "{prompt}"

    def build_prompt(self, prompt_text: str, mbti: Optional[str] = None) -> str:
        return self.template.format(prompt=prompt_text)


@dataclass(frozen=True)
class MentorMode(StudyMode):
    """Guides the student toward the answer, personalised by MBTI, without revealing it."""

    requires_profile: bool = True
    template: str = MENTOR_TEMPLATE

    def build_prompt(self, prompt_text: str, mbti: Optional[str] = None) -> str:
        if not mbti:
            raise ProfileRequiredError()
        return self.template.format(mbti=mbti, prompt=prompt_text)


MODES: Dict[ModeKey, StudyMode] = {
    ModeKey.MENTOR: MentorMode(
        key=ModeKey.MENTOR,
        label="AI Mentoring",
        icon="🎓",
        placeholder="Ask your AI mentor about a problem you want to solve! e.g. 'Why do we need fractions?'",
        submit_label="Request mentoring",
    ),
    ModeKey.QA: WrappedMode(
        key=ModeKey.QA,
        label="Ask a Question",
        icon="❓",
        placeholder="Ask anything! e.g. 'What did King Sejong achieve?'",
        template="Answer the following question in detail: {prompt}",
    ),
    ModeKey.SUMMARY: WrappedMode(
        key=ModeKey.SUMMARY,
        label="Summarize",
        icon="📖",
        placeholder="Paste the text you want summarized here.",
        template="Summarize the key points of the following text: {prompt}",
    ),
    ModeKey.QUIZ: WrappedMode(
        key=ModeKey.QUIZ,
        label="Make a Quiz",
        icon="📝",
        placeholder="Enter a topic or content for the quiz. e.g. 'Photosynthesis'",
        template=(
            "Create 3 multiple-choice quiz questions based on the following content or topic. "
            "Give the correct answer after each question: {prompt}"
        ),
    ),
    ModeKey.IMAGE: WrappedMode(
        key=ModeKey.IMAGE,
        label="Ask with an Image",
        icon="📷",
        placeholder="Enter your question about the image.",
        accepts_image=True,
        template="Answer the following question about this image: {prompt}",
    ),
}


def get_mode(key: ModeKey | str) -> StudyMode:
    """Look up a mode by key or raw string value."""
    try:
        return MODES[ModeKey(key)]
    except ValueError as exc:
        raise KeyError(f"Unknown study mode: {key!r}") from exc


def list_modes() -> List[StudyMode]:
    """Return modes in tab order."""
    return [MODES[key] for key in ModeKey]
