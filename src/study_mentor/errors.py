"""Failure categories surfaced to the student as a single error message."""

from __future__ import annotations

from typing import Optional


class StudyMentorError(Exception):
    """Base class; `user_message` is what the view shows in the error slot."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None, *, user_message: Optional[str] = None):
        self.user_message = user_message or self.default_message
        super().__init__(message or self.user_message)


class ConfigurationError(StudyMentorError, ValueError):
    """Required deployment configuration is missing or malformed. Fatal for the session."""

    default_message = "The app configuration is missing or invalid. Check the deployment environment."


class IdentityError(StudyMentorError, RuntimeError):
    """Sign-in with the auth service failed."""

    default_message = "Sign-in failed. Please reload the page."


class StoreError(StudyMentorError, RuntimeError):
    """A profile or history operation against the document store failed."""

    default_message = "The study store could not be reached."


class SubmissionError(StudyMentorError, ValueError):
    """The composer input was rejected before any network call."""

    default_message = "Enter a question, some text, or an image first."


class ProfileRequiredError(SubmissionError):
    """Mentor mode was requested before a learning-style profile was chosen."""

    default_message = "Choose your MBTI type before starting a mentoring session."


class GatewayError(StudyMentorError, RuntimeError):
    """The generative-content endpoint failed or returned an unusable body."""

    default_message = "The AI response could not be generated."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message=user_message)
        self.status_code = status_code


__all__ = [
    "StudyMentorError",
    "ConfigurationError",
    "IdentityError",
    "StoreError",
    "SubmissionError",
    "ProfileRequiredError",
    "GatewayError",
]
