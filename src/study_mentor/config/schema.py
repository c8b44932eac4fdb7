from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FirebaseConfig(BaseModel):
    """Web credential bundle for the Firebase project backing auth and history storage."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    api_key: str = Field("", alias="apiKey")
    project_id: str = Field("", alias="projectId")
    auth_domain: Optional[str] = Field(None, alias="authDomain")
    storage_bucket: Optional[str] = Field(None, alias="storageBucket")
    messaging_sender_id: Optional[str] = Field(None, alias="messagingSenderId")
    app_id: Optional[str] = Field(None, alias="appId")

    @property
    def is_complete(self) -> bool:
        """Return True when the bundle carries the fields needed to reach Firebase."""
        return bool(self.api_key and self.project_id)


class AuthConfig(BaseModel):
    """Endpoints used for anonymous, custom-token and refresh sign-in."""

    identity_toolkit_url: str = Field("https://identitytoolkit.googleapis.com/v1")
    secure_token_url: str = Field("https://securetoken.googleapis.com/v1")
    timeout_seconds: float = Field(30.0, gt=0)


class GatewayConfig(BaseModel):
    """Settings for the hosted generative-content endpoint."""

    base_url: str = Field("https://generativelanguage.googleapis.com/v1beta")
    model: str = Field("gemini-2.0-flash", description="Model identifier.")
    api_key: str = Field("", description="Empty keys are sent as-is.")
    timeout_seconds: float = Field(60.0, gt=0)
    empty_response_text: str = Field("No valid response was received.")
    empty_response_is_error: bool = Field(
        False,
        description="Raise instead of returning the placeholder when no text part is present.",
    )


class LoggingConfig(BaseModel):
    """Controls for logging output and format."""

    level: str = Field("INFO")
    use_json: bool = False


class Settings(BaseModel):
    """Top-level configuration for a study mentor process."""

    project_name: str = Field("AI Study Mentor")
    backend: Literal["firebase", "memory"] = Field(
        "firebase", description="firebase for the hosted services, memory for local runs."
    )
    app_id: str = Field("default-app-id", description="Tenant identifier used in store paths.")
    initial_auth_token: Optional[str] = None
    firebase: FirebaseConfig = Field(default_factory=FirebaseConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("app_id")
    @classmethod
    def app_id_not_blank(cls, value: str) -> str:
        """Reject identifiers that would produce an empty path segment."""
        value = value.strip()
        if not value or "/" in value:
            raise ValueError("app_id must be a non-empty path segment")
        return value

    @field_validator("initial_auth_token")
    @classmethod
    def blank_token_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None
