"""Identity bootstrap against the auth service: restore, custom token, or anonymous."""

from __future__ import annotations

import base64
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from study_mentor.config.schema import AuthConfig, FirebaseConfig
from study_mentor.errors import IdentityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Opaque user handle plus the tokens needed to act as that user."""

    uid: str
    id_token: str = ""
    refresh_token: str = ""
    is_anonymous: bool = True


IdentityListener = Callable[[Optional[Identity]], None]


def _token_claims(id_token: str) -> Dict[str, Any]:
    """Decode a JWT payload without verifying it; the auth service already did."""
    try:
        payload = id_token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (IndexError, ValueError) as exc:
        raise IdentityError(f"Malformed ID token: {exc}") from exc
    if not isinstance(claims, dict):
        raise IdentityError("ID token payload is not a JSON object.")
    return claims


def uid_from_id_token(id_token: str) -> str:
    claims = _token_claims(id_token)
    uid = claims.get("user_id") or claims.get("sub")
    if not uid:
        raise IdentityError("ID token carries no user id claim.")
    return uid


def expiry_from_id_token(id_token: str) -> Optional[datetime]:
    """Return the `exp` claim as a naive UTC datetime, or None for tokens without one."""
    try:
        exp = _token_claims(id_token).get("exp")
    except IdentityError:
        return None
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc).replace(tzinfo=None)


class AuthClient(ABC):
    """Sign-in operations offered by the auth service."""

    @abstractmethod
    def sign_in_anonymously(self) -> Identity:
        """Create a fresh anonymous identity."""

    @abstractmethod
    def sign_in_with_custom_token(self, token: str) -> Identity:
        """Exchange a pre-provisioned token for an identity."""

    @abstractmethod
    def refresh(self, identity: Identity) -> Identity:
        """Re-establish a previously issued identity with fresh tokens."""


class IdentityToolkitClient(AuthClient):
    """Firebase Auth over its REST endpoints."""

    def __init__(
        self,
        firebase: FirebaseConfig,
        config: Optional[AuthConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.firebase = firebase
        self.config = config or AuthConfig()
        self.session = session or requests.Session()

    def _post(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self.session.post(
                url,
                params={"key": self.firebase.api_key},
                timeout=self.config.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise IdentityError(f"Auth service unreachable: {exc}") from exc
        if not response.ok:
            raise IdentityError(f"Auth request failed ({response.status_code}): {self._reason(response)}")
        try:
            return response.json()
        except ValueError as exc:
            raise IdentityError("Auth service returned a non-JSON body.") from exc

    @staticmethod
    def _field(data: Dict[str, Any], name: str) -> str:
        try:
            return data[name]
        except KeyError as exc:
            raise IdentityError(f"Auth response is missing {name!r}.") from exc

    @staticmethod
    def _reason(response: requests.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return response.reason or "unknown error"

    def sign_in_anonymously(self) -> Identity:
        data = self._post(
            f"{self.config.identity_toolkit_url}/accounts:signUp",
            json={"returnSecureToken": True},
        )
        return Identity(
            uid=self._field(data, "localId"),
            id_token=self._field(data, "idToken"),
            refresh_token=data.get("refreshToken", ""),
            is_anonymous=True,
        )

    def sign_in_with_custom_token(self, token: str) -> Identity:
        data = self._post(
            f"{self.config.identity_toolkit_url}/accounts:signInWithCustomToken",
            json={"token": token, "returnSecureToken": True},
        )
        return Identity(
            uid=uid_from_id_token(self._field(data, "idToken")),
            id_token=self._field(data, "idToken"),
            refresh_token=data.get("refreshToken", ""),
            is_anonymous=False,
        )

    def refresh(self, identity: Identity) -> Identity:
        if not identity.refresh_token:
            raise IdentityError("No refresh token to restore the session with.")
        data = self._post(
            f"{self.config.secure_token_url}/token",
            data={"grant_type": "refresh_token", "refresh_token": identity.refresh_token},
        )
        return Identity(
            uid=self._field(data, "user_id"),
            id_token=self._field(data, "id_token"),
            refresh_token=data.get("refresh_token", identity.refresh_token),
            is_anonymous=identity.is_anonymous,
        )


class LocalAuthClient(AuthClient):
    """In-process identities for the memory backend. Custom tokens are used as the uid."""

    def sign_in_anonymously(self) -> Identity:
        return Identity(uid=uuid.uuid4().hex)

    def sign_in_with_custom_token(self, token: str) -> Identity:
        if not token.strip():
            raise IdentityError("Empty custom token.")
        return Identity(uid=token.strip(), is_anonymous=False)

    def refresh(self, identity: Identity) -> Identity:
        return identity


class SessionBootstrapper:
    """
    Establish the session identity once and announce changes to listeners.

    `start` tries, in order: refreshing an identity handed over from an earlier run,
    the pre-provisioned custom token, then anonymous sign-in. It never retries a
    failed sign-in; the caller shows the error and the user reloads.
    """

    def __init__(self, auth_client: AuthClient, initial_auth_token: Optional[str] = None):
        self.auth_client = auth_client
        self.initial_auth_token = initial_auth_token
        self._identity: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []
        self._lock = threading.Lock()

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._identity

    def on_identity_changed(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def start(self, restore: Optional[Identity] = None) -> Identity:
        identity: Optional[Identity] = None
        if restore is not None:
            try:
                identity = self.auth_client.refresh(restore)
            except IdentityError as exc:
                logger.warning("Could not restore session for %s: %s", restore.uid, exc)

        if identity is None:
            try:
                if self.initial_auth_token:
                    identity = self.auth_client.sign_in_with_custom_token(self.initial_auth_token)
                else:
                    identity = self.auth_client.sign_in_anonymously()
            except IdentityError:
                logger.exception("Authentication failed")
                raise

        self._set_identity(identity)
        return identity

    def sign_out(self) -> None:
        self._set_identity(None)

    def _set_identity(self, identity: Optional[Identity]) -> None:
        previous = self._identity
        self._identity = identity
        if (previous.uid if previous else None) == (identity.uid if identity else None):
            return
        logger.info("Session identity changed to %s", identity.uid if identity else None)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(identity)
