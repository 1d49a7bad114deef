"""
Unit Tests for Google ID token verification

Tests:
- Identity comes from verified claims only
- Firebase tokens first, then Google OAuth tokens
- Rejected, unconfigured and unverified-email cases
"""

import pytest

from biafridge.api.errors import Forbidden, InvalidGoogleToken, ServiceUnavailable
from biafridge.api.services import google_identity
from biafridge.api.services.google_identity import GoogleTokenVerifier


def claims(**overrides):
    values = {
        "iss": "https://accounts.google.com",
        "sub": "g-123",
        "email": "Gina@X.com",
        "email_verified": True,
        "name": "Gina",
    }
    values.update(overrides)
    return values


@pytest.fixture
def oauth_tokens(monkeypatch):
    """Replace Google's OAuth check with a lookup in this dict."""
    tokens = {}

    def verify(token, request, audience):
        assert audience == "client-1"
        if token not in tokens:
            raise ValueError("Could not verify token signature.")
        return tokens[token]

    monkeypatch.setattr(google_identity.google_id_token, "verify_oauth2_token", verify)
    return tokens


class TestVerify:
    async def test_identity_from_claims(self, oauth_tokens):
        oauth_tokens["good"] = claims()

        identity = await GoogleTokenVerifier(client_id="client-1").verify("good")

        assert identity.user_id == "g-123"
        assert identity.email == "gina@x.com"
        assert identity.name == "Gina"

    async def test_bad_signature(self, oauth_tokens):
        with pytest.raises(InvalidGoogleToken):
            await GoogleTokenVerifier(client_id="client-1").verify("forged")

    async def test_wrong_issuer(self, oauth_tokens):
        oauth_tokens["other"] = claims(iss="https://evil.example")
        with pytest.raises(InvalidGoogleToken):
            await GoogleTokenVerifier(client_id="client-1").verify("other")

    async def test_unverified_email(self, oauth_tokens):
        oauth_tokens["unverified"] = claims(email_verified=False)
        with pytest.raises(Forbidden):
            await GoogleTokenVerifier(client_id="client-1").verify("unverified")

    async def test_missing_email(self, oauth_tokens):
        oauth_tokens["no-email"] = claims(email=None)
        with pytest.raises(InvalidGoogleToken):
            await GoogleTokenVerifier(client_id="client-1").verify("no-email")

    async def test_not_configured(self):
        verifier = GoogleTokenVerifier()
        assert verifier.configured is False
        with pytest.raises(ServiceUnavailable):
            await verifier.verify("anything")


class TestFirebase:
    async def test_firebase_then_oauth(self, monkeypatch, oauth_tokens):
        def verify_firebase(token, request, audience):
            if token != "firebase":
                raise ValueError("Token has wrong audience")
            return claims(iss="https://securetoken.google.com/bia-app", sub="fb-uid")

        monkeypatch.setattr(google_identity.google_id_token, "verify_firebase_token", verify_firebase)
        oauth_tokens["oauth"] = claims()
        verifier = GoogleTokenVerifier(client_id="client-1", firebase_project_id="bia-app")

        assert (await verifier.verify("firebase")).user_id == "fb-uid"
        assert (await verifier.verify("oauth")).user_id == "g-123"

    async def test_firebase_issuer_must_match_project(self, monkeypatch):
        monkeypatch.setattr(
            google_identity.google_id_token,
            "verify_firebase_token",
            lambda token, request, audience: claims(iss="https://securetoken.google.com/other"),
        )
        with pytest.raises(InvalidGoogleToken):
            await GoogleTokenVerifier(firebase_project_id="bia-app").verify("token")
