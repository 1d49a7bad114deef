"""
Google identity verification

Clients send the ID token they got from Google Identity Services or Firebase
Authentication. The token is checked against Google's signing keys and the
configured audience, and the identity (``sub`` and email) is read from the
verified claims only.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from starlette.concurrency import run_in_threadpool

from biafridge.api.config import Settings
from biafridge.api.errors import Forbidden, InvalidGoogleToken, ServiceUnavailable, ValidationError
from biafridge.api.services.account_store import normalize_email

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}


@dataclass
class GoogleIdentity:
    user_id: str
    email: str
    name: Optional[str] = None


class GoogleTokenVerifier:
    """Verifies Google ID tokens. Firebase tokens are tried first when a project is set."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        firebase_project_id: Optional[str] = None,
    ):
        self.client_id = client_id
        self.firebase_project_id = firebase_project_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleTokenVerifier":
        return cls(settings.GOOGLE_OAUTH_CLIENT_ID, settings.FIREBASE_PROJECT_ID)

    @property
    def configured(self) -> bool:
        return bool(self.client_id or self.firebase_project_id)

    def _firebase_claims(self, token: str, request_adapter) -> dict:
        claims = google_id_token.verify_firebase_token(token, request_adapter, self.firebase_project_id)
        expected_issuer = f"https://securetoken.google.com/{self.firebase_project_id}"
        if claims.get("iss") != expected_issuer:
            raise ValueError(f"Unexpected issuer: {claims.get('iss')}")
        return claims

    def _oauth_claims(self, token: str, request_adapter) -> dict:
        claims = google_id_token.verify_oauth2_token(token, request_adapter, self.client_id)
        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise ValueError(f"Unexpected issuer: {claims.get('iss')}")
        return claims

    def verify_claims(self, token: str) -> dict:
        """Blocking: may fetch Google's certificates."""
        request_adapter = google_requests.Request()
        failures = []
        if self.firebase_project_id:
            try:
                return self._firebase_claims(token, request_adapter)
            except ValueError as exc:
                failures.append(f"firebase: {exc}")
        if self.client_id:
            try:
                return self._oauth_claims(token, request_adapter)
            except ValueError as exc:
                failures.append(f"oauth: {exc}")
        logger.warning(f"Google token verification failed: {'; '.join(failures)}")
        raise InvalidGoogleToken()

    async def verify(self, token: str) -> GoogleIdentity:
        """
        Verify an ID token and return the identity it proves

        Raises:
            ServiceUnavailable: Google sign-in is not configured
            ValidationError: empty token
            InvalidGoogleToken: bad signature, audience, issuer or expiry
            Forbidden: Google has not verified the account's email
        """
        if not self.configured:
            raise ServiceUnavailable("Google sign-in is not configured")
        if not token:
            raise ValidationError("id_token is required")

        claims = await run_in_threadpool(self.verify_claims, token)
        email = normalize_email(claims.get("email"))
        if not claims.get("sub") or not email:
            raise InvalidGoogleToken("Google account has no email address")
        if claims.get("email_verified") is False:
            raise Forbidden("Google has not verified this email address")
        return GoogleIdentity(user_id=claims["sub"], email=email, name=claims.get("name"))
