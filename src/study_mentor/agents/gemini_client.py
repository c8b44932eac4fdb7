from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from study_mentor.config.schema import GatewayConfig
from study_mentor.errors import GatewayError
from study_mentor.learning.models import ImageAttachment
from study_mentor.utils.logging import get_logger

logger = get_logger(__name__)


def build_payload(prompt: str, image: Optional[ImageAttachment] = None) -> Dict[str, Any]:
    """Role-tagged request body: the full prompt, plus the image as inline data when given."""
    parts: List[Dict[str, Any]] = [{"text": prompt}]
    if image is not None:
        parts.append({"inlineData": image.as_inline_data()})
    return {"contents": [{"role": "user", "parts": parts}]}


def extract_text(body: Any) -> Optional[str]:
    """Return `candidates[0].content.parts[0].text`, or None when any step is missing."""
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) and text else None


class GeminiClient:
    """Single request/response client for the `generateContent` endpoint."""

    def __init__(
        self,
        config: GatewayConfig,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config
        self.api_key = api_key if api_key is not None else config.api_key
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/models/{self.config.model}:generateContent"

    def generate(self, prompt: str, image: Optional[ImageAttachment] = None) -> str:
        """
        Send one prompt and return the answer text.

        A structurally empty answer yields the configured placeholder, unless
        `empty_response_is_error` is set. Transport failures, non-2xx statuses and
        non-JSON bodies raise `GatewayError`; there is no retry.
        """
        payload = build_payload(prompt, image)
        log = logger.bind(model=self.config.model, has_image=image is not None)
        try:
            response = self.session.post(
                self.endpoint,
                params={"key": self.api_key},
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as exc:
            log.error("gateway_unreachable", error=str(exc))
            raise GatewayError(
                f"Gateway request failed: {exc}",
                user_message=f"An error occurred while generating the AI response: {exc}",
            ) from exc

        if not response.ok:
            reason = response.reason or f"HTTP {response.status_code}"
            log.error("gateway_http_error", status=response.status_code, reason=reason)
            raise GatewayError(
                f"API request failed: {response.status_code} {reason}",
                status_code=response.status_code,
                user_message=f"An error occurred while generating the AI response: API request failed: {reason}",
            )

        try:
            body = response.json()
        except ValueError as exc:
            log.error("gateway_malformed_body")
            raise GatewayError(
                "Gateway returned a non-JSON body.",
                status_code=response.status_code,
                user_message="An error occurred while generating the AI response: malformed response.",
            ) from exc

        text = extract_text(body)
        if text is None:
            log.warning("gateway_empty_response", strict=self.config.empty_response_is_error)
            if self.config.empty_response_is_error:
                raise GatewayError(
                    "Gateway response contained no text part.",
                    status_code=response.status_code,
                    user_message=f"An error occurred while generating the AI response: {self.config.empty_response_text}",
                )
            return self.config.empty_response_text

        log.info("gateway_response", chars=len(text))
        return text
