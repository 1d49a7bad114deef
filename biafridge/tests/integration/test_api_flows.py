"""
Integration Tests for the HTTP API

Tests:
- Email sign-up, verification and login
- Google sign-up and login
- Fridge sharing through invites
- Items, categories and notifications
- Error bodies, auth and request ids
"""

import re
from datetime import timedelta

import pytest
from sqlalchemy import update

from biafridge.shared.models import Invite
from biafridge.shared.timeutils import utcnow


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def link_token(html, path):
    match = re.search(rf"{path}\?token=([A-Za-z0-9_\-]+)", html)
    assert match, f"no {path} link in mail"
    return match.group(1)


async def google_signup(client, google, user_id, email, name):
    response = await client.post(
        "/auth/google-signup", json={"id_token": google.issue(user_id, email), "name": name}
    )
    assert response.status_code == 201, response.text
    return response.json()


async def share_fridge(client, inviter_token, invitee_token, invitee_email, fridge_name="Family"):
    created = await client.post(
        "/invites",
        json={"invitee_email": invitee_email, "fridge_name": fridge_name},
        headers=bearer(inviter_token),
    )
    assert created.status_code == 200, created.text
    accepted = await client.post(
        "/invites/accept", json={"token": created.json()["token"]}, headers=bearer(invitee_token)
    )
    assert accepted.status_code == 200, accepted.text
    return created.json()["token"], accepted.json()["fridge_id"]


@pytest.fixture
async def max_user(client, google):
    data = await google_signup(client, google, "max-sub", "max@x.com", "Max")
    return data["access_token"], data["user"]


@pytest.fixture
async def yan_user(client, google):
    data = await google_signup(client, google, "yan-sub", "yan@x.com", "Yan")
    return data["access_token"], data["user"]


# ============================================================================
# Authentication
# ============================================================================

class TestEmailAuth:
    async def test_signup_verify_login(self, client, mailer):
        response = await client.post(
            "/auth/signup", json={"email": "Max@X.com", "password": "secret1", "name": "Max"}
        )
        assert response.status_code == 201
        body = response.json()
        assert body["email_sent"] is True
        assert body["verification_link"] is None

        login = await client.post("/auth/login", json={"email": "max@x.com", "password": "secret1"})
        assert login.status_code == 403
        assert login.json()["error"] == "email_not_verified"

        token = link_token(mailer.sent[-1]["html"], "verify-email")
        verified = await client.get("/auth/verify-email", params={"token": token})
        assert verified.status_code == 200

        login = await client.post("/auth/login", json={"email": "max@x.com", "password": "secret1"})
        assert login.status_code == 200
        data = login.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["fridge_id"] == body["fridge_id"]
        fridges_token = data["access_token"]

        fridges = await client.get("/fridges", headers=bearer(fridges_token))
        assert fridges.json()[0]["name"] == "Max's Fridge"
        assert fridges.json()[0]["members"] == [body["user_id"]]

    async def test_signup_returns_link_when_mail_fails(self, client, mailer):
        mailer.deliver = False
        response = await client.post(
            "/auth/signup", json={"email": "a@x.com", "password": "secret1", "name": "Ann"}
        )
        body = response.json()
        assert body["email_sent"] is False
        assert "/verify-email?token=" in body["verification_link"]

    async def test_duplicate_signup(self, client):
        payload = {"email": "a@x.com", "password": "secret1", "name": "Ann"}
        await client.post("/auth/signup", json=payload)
        response = await client.post("/auth/signup", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "conflict"
        assert {"error", "message", "timestamp"} <= set(body)

    async def test_invalid_email_is_a_validation_error(self, client):
        response = await client.post(
            "/auth/signup", json={"email": "not-an-email", "password": "secret1", "name": "Ann"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    async def test_check_email(self, client, max_user):
        response = await client.get("/auth/check-email/max@x.com")
        assert response.json()["has_google_account"] is True

    async def test_password_reset(self, client, mailer):
        await client.post("/auth/signup", json={"email": "a@x.com", "password": "secret1", "name": "Ann"})

        unknown = await client.post("/auth/password-reset/request", json={"email": "nobody@x.com"})
        requested = await client.post("/auth/password-reset/request", json={"email": "a@x.com"})
        assert unknown.json()["message"] == requested.json()["message"]

        token = link_token(mailer.sent[-1]["html"], "reset-password")
        confirmed = await client.post(
            "/auth/password-reset/confirm", json={"token": token, "new_password": "new-secret"}
        )
        assert confirmed.status_code == 200

        login = await client.post("/auth/login", json={"email": "a@x.com", "password": "new-secret"})
        assert login.status_code == 200


class TestGoogleAuth:
    async def test_login_requires_signup(self, client, google):
        response = await client.post(
            "/auth/google-login", json={"id_token": google.issue("g-1", "g@x.com"), "name": "Gina"}
        )
        assert response.status_code == 403
        assert response.json()["needs_signup"] is True

    async def test_signup_then_login(self, client, google, max_user):
        response = await client.post(
            "/auth/google-login", json={"id_token": google.issue("max-sub", "max@x.com")}
        )
        assert response.status_code == 200
        assert response.json()["user"]["fridge_id"] == max_user[1]["fridge_id"]
        assert response.json()["user"]["name"] == "Max"

    async def test_unverified_token_is_rejected(self, client, max_user):
        response = await client.post("/auth/google-login", json={"id_token": "forged"})
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_google_token"

    async def test_unverified_google_email_is_rejected(self, client, google):
        token = google.issue("g-1", "g@x.com", email_verified=False)
        response = await client.post("/auth/google-signup", json={"id_token": token, "name": "Gina"})
        assert response.status_code == 403

    async def test_cannot_sign_in_as_password_account(self, client, google):
        signup = await client.post(
            "/auth/signup", json={"email": "vic@x.com", "password": "secret1", "name": "Vic"}
        )
        victim_id = signup.json()["user_id"]
        token = google.issue(victim_id, "attacker@evil.com")

        login = await client.post("/auth/google-login", json={"id_token": token})
        assert login.status_code == 403
        register = await client.post("/auth/google-signup", json={"id_token": token, "name": "Eve"})
        assert register.status_code == 403

        check = await client.get("/auth/check-email/vic@x.com")
        assert check.json()["has_google_account"] is False

    async def test_name_ending_in_s(self, client, google):
        data = await google_signup(client, google, "chris-sub", "chris@x.com", "Chris")
        fridges = await client.get("/fridges", headers=bearer(data["access_token"]))
        assert fridges.json()[0]["name"] == "Chris' Fridge"

    async def test_me(self, client, max_user):
        response = await client.get("/auth/me", headers=bearer(max_user[0]))
        assert response.json()["email"] == "max@x.com"

    async def test_invalid_token(self, client):
        response = await client.get("/auth/me", headers=bearer("garbage"))
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"


# ============================================================================
# Fridges & invites
# ============================================================================

class TestFridgeSharing:
    async def test_ensure_is_idempotent(self, client, max_user):
        token, user = max_user
        first = await client.post("/fridges/ensure", json={}, headers=bearer(token))
        second = await client.post("/fridges/ensure", json={}, headers=bearer(token))

        assert first.json()["fridge_id"] == second.json()["fridge_id"] == user["fridge_id"]
        assert first.json()["members"] == ["max-sub"]

    async def test_ensure_cannot_claim_another_email(self, client, google, max_user, yan_user):
        eve = await google_signup(client, google, "eve-sub", "eve@x.com", "Eve")
        eve_token = eve["access_token"]

        ensured = await client.post(
            "/fridges/ensure", json={"email": "yan@x.com", "name": "Eve"}, headers=bearer(eve_token)
        )
        assert ensured.status_code == 200
        me = await client.get("/auth/me", headers=bearer(eve_token))
        assert me.json()["email"] == "eve@x.com"

        created = await client.post(
            "/invites",
            json={"invitee_email": "yan@x.com", "fridge_name": "Family"},
            headers=bearer(max_user[0]),
        )
        feed = (await client.get("/notifications", headers=bearer(eve_token))).json()
        assert not [entry for entry in feed if entry["type"] == "fridge_invite"]
        yan_feed = (await client.get("/notifications", headers=bearer(yan_user[0]))).json()
        tokens = [entry["meta"]["invite_token"] for entry in yan_feed if entry["type"] == "fridge_invite"]
        assert tokens == [created.json()["token"]]

    async def test_accept_keeps_callers_own_email(self, client, google, max_user, yan_user):
        eve = await google_signup(client, google, "eve-sub", "eve@x.com", "Eve")
        created = await client.post(
            "/invites",
            json={"invitee_email": "eve@x.com", "fridge_name": "Flat"},
            headers=bearer(max_user[0]),
        )

        accepted = await client.post(
            "/invites/accept",
            json={"token": created.json()["token"], "email": "yan@x.com"},
            headers=bearer(eve["access_token"]),
        )
        assert accepted.status_code == 200
        me = await client.get("/auth/me", headers=bearer(eve["access_token"]))
        assert me.json()["email"] == "eve@x.com"

    async def test_invite_and_accept(self, client, max_user, yan_user):
        invite_token, fridge_id = await share_fridge(client, max_user[0], yan_user[0], "yan@x.com")

        again = await client.post("/invites/accept", json={"token": invite_token}, headers=bearer(yan_user[0]))
        assert again.json() == {"fridge_id": fridge_id, "already_accepted": True}

        fridges = (await client.get("/fridges", headers=bearer(yan_user[0]))).json()
        assert fridges[0]["fridge_id"] == yan_user[1]["fridge_id"]
        assert fridges[0]["is_personal"] is True
        assert fridges[1]["fridge_id"] == fridge_id
        assert fridges[1]["name"] == "Family"
        assert set(fridges[1]["members"]) == {"max-sub", "yan-sub"}

        preview = await client.get(f"/invites/{invite_token}")
        assert preview.json()["status"] == "accepted"
        assert preview.json()["fridge_id"] == fridge_id

    async def test_invite_email_without_account(self, client, max_user):
        response = await client.post(
            "/invites",
            json={"invitee_email": "nobody@x.com", "fridge_name": "Family"},
            headers=bearer(max_user[0]),
        )
        assert response.json()["has_account"] is False
        assert response.json()["token"] is None

    async def test_expired_invite(self, client, session_factory, max_user, yan_user):
        created = await client.post(
            "/invites",
            json={"invitee_email": "yan@x.com", "fridge_name": "Family"},
            headers=bearer(max_user[0]),
        )
        token = created.json()["token"]
        async with session_factory() as session:
            await session.execute(
                update(Invite).where(Invite.token == token).values(expires_at=utcnow() - timedelta(hours=1))
            )
            await session.commit()

        response = await client.post("/invites/accept", json={"token": token}, headers=bearer(yan_user[0]))

        assert response.status_code == 410
        assert response.json()["error"] == "expired"
        assert (await client.get(f"/invites/{token}")).json()["status"] == "expired"

    async def test_unknown_invite(self, client, yan_user):
        response = await client.post("/invites/accept", json={"token": "nope"}, headers=bearer(yan_user[0]))
        assert response.status_code == 404

    async def test_rename_and_leave(self, client, max_user, yan_user):
        _, fridge_id = await share_fridge(client, max_user[0], yan_user[0], "yan@x.com")

        renamed = await client.put(
            f"/fridges/{fridge_id}/name", json={"name": "Flat"}, headers=bearer(yan_user[0])
        )
        assert renamed.json()["name"] == "Flat"

        left = await client.post(f"/fridges/{fridge_id}/leave", headers=bearer(yan_user[0]))
        assert left.json()["fridge_deleted"] is False
        left = await client.post(f"/fridges/{fridge_id}/leave", headers=bearer(max_user[0]))
        assert left.json()["fridge_deleted"] is True

    async def test_cannot_leave_personal_fridge(self, client, max_user):
        token, user = max_user
        response = await client.post(f"/fridges/{user['fridge_id']}/leave", headers=bearer(token))
        assert response.status_code == 400


# ============================================================================
# Items & categories
# ============================================================================

class TestItems:
    async def test_item_lifecycle(self, client, max_user):
        token, user = max_user
        fridge_id = user["fridge_id"]

        created = await client.post(
            "/fridge-items",
            json={"fridge_id": fridge_id, "name": "Milk", "expiry_date": "2030-01-01"},
            headers=bearer(token),
        )
        assert created.status_code == 201
        item = created.json()
        assert item["user_id"] == "max-sub"

        updated = await client.put(
            f"/fridge-items/{item['id']}", json={"is_opened": True}, headers=bearer(token)
        )
        assert updated.json()["is_opened"] is True
        assert updated.json()["opened_date"] is not None

        listed = await client.get("/fridge-items", params={"fridge_id": fridge_id}, headers=bearer(token))
        assert [i["name"] for i in listed.json()] == ["Milk"]

        deleted = await client.delete(f"/fridge-items/{item['id']}", headers=bearer(token))
        assert deleted.status_code == 200
        missing = await client.delete(f"/fridge-items/{item['id']}", headers=bearer(token))
        assert missing.status_code == 404

    async def test_non_member_is_forbidden(self, client, max_user, yan_user):
        response = await client.get(
            "/fridge-items", params={"fridge_id": max_user[1]["fridge_id"]}, headers=bearer(yan_user[0])
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_clear(self, client, max_user):
        token, user = max_user
        for name in ("Milk", "Eggs"):
            await client.post(
                "/fridge-items",
                json={"fridge_id": user["fridge_id"], "name": name, "expiry_date": "2030-01-01"},
                headers=bearer(token),
            )
        response = await client.delete(
            "/fridge-items", params={"fridge_id": user["fridge_id"]}, headers=bearer(token)
        )
        assert response.json()["deleted_count"] == 2

    async def test_category_from_other_fridge(self, client, max_user, yan_user):
        category = await client.post(
            "/categories",
            json={"fridge_id": yan_user[1]["fridge_id"], "name": "Dairy"},
            headers=bearer(yan_user[0]),
        )
        response = await client.post(
            "/fridge-items",
            json={
                "fridge_id": max_user[1]["fridge_id"],
                "name": "Milk",
                "expiry_date": "2030-01-01",
                "category_id": category.json()["id"],
            },
            headers=bearer(max_user[0]),
        )
        assert response.status_code == 400


class TestCategories:
    async def test_category_lifecycle(self, client, max_user):
        token, user = max_user
        fridge_id = user["fridge_id"]

        created = await client.post(
            "/categories", json={"fridge_id": fridge_id, "name": "Dairy"}, headers=bearer(token)
        )
        assert created.status_code == 201
        assert created.json()["color"] == "#6200ee"
        category_id = created.json()["id"]

        duplicate = await client.post(
            "/categories", json={"fridge_id": fridge_id, "name": "Dairy"}, headers=bearer(token)
        )
        assert duplicate.status_code == 400

        updated = await client.put(
            f"/categories/{category_id}",
            params={"fridge_id": fridge_id},
            json={"color": "#ff0000"},
            headers=bearer(token),
        )
        assert updated.json()["color"] == "#ff0000"

        deleted = await client.delete(
            f"/categories/{category_id}", params={"fridge_id": fridge_id}, headers=bearer(token)
        )
        assert deleted.status_code == 200
        listed = await client.get("/categories", params={"fridge_id": fridge_id}, headers=bearer(token))
        assert listed.json() == []


# ============================================================================
# Notifications
# ============================================================================

class TestNotifications:
    async def test_welcome_and_first_item(self, client, max_user):
        token, user = max_user
        tomorrow = (utcnow().date() + timedelta(days=1)).isoformat()
        await client.post(
            "/fridge-items",
            json={"fridge_id": user["fridge_id"], "name": "Milk", "expiry_date": tomorrow},
            headers=bearer(token),
        )

        feed = (await client.get("/notifications", headers=bearer(token))).json()
        types = {entry["type"] for entry in feed}
        assert types == {"account_created", "first_item_added", "item_expiring_tomorrow"}

        check = await client.post("/notifications/check-expiring-items", headers=bearer(token))
        assert check.json()["notifications_created"] == 0

        count = await client.get("/notifications/unread-count", headers=bearer(token))
        assert count.json()["count"] == 3

        read_all = await client.patch("/notifications/read-all", headers=bearer(token))
        assert read_all.json()["count"] == 3
        count = await client.get("/notifications/unread-count", headers=bearer(token))
        assert count.json()["count"] == 0

    async def test_first_item_notification_only_once(self, client, max_user):
        token, user = max_user
        payload = {"fridge_id": user["fridge_id"], "name": "Milk", "expiry_date": "2030-01-01"}

        first = await client.post("/fridge-items", json=payload, headers=bearer(token))
        await client.delete(f"/fridge-items/{first.json()['id']}", headers=bearer(token))
        await client.post("/fridge-items", json=payload, headers=bearer(token))

        feed = (await client.get("/notifications", headers=bearer(token))).json()
        assert [entry["type"] for entry in feed].count("first_item_added") == 1

    async def test_invite_shows_in_feed_until_accepted(self, client, max_user, yan_user):
        created = await client.post(
            "/invites",
            json={"invitee_email": "yan@x.com", "fridge_name": "Family"},
            headers=bearer(max_user[0]),
        )
        feed = (await client.get("/notifications", headers=bearer(yan_user[0]))).json()
        invite_entries = [entry for entry in feed if entry["type"] == "fridge_invite"]
        assert len(invite_entries) == 1
        assert invite_entries[0]["meta"]["invite_token"] == created.json()["token"]

        await client.post(
            "/invites/accept", json={"token": created.json()["token"]}, headers=bearer(yan_user[0])
        )
        feed = (await client.get("/notifications", headers=bearer(yan_user[0]))).json()
        assert any(entry["type"] == "fridge_joined" for entry in feed)
        assert all(entry["read"] for entry in feed if entry["type"] == "fridge_invite")

    async def test_mark_read_and_delete(self, client, max_user):
        token, _ = max_user
        feed = (await client.get("/notifications", headers=bearer(token))).json()
        notification_id = feed[0]["id"]

        marked = await client.patch(f"/notifications/{notification_id}/read", headers=bearer(token))
        assert marked.json()["read"] is True

        deleted = await client.delete(f"/notifications/{notification_id}", headers=bearer(token))
        assert deleted.status_code == 200
        missing = await client.delete(f"/notifications/{notification_id}", headers=bearer(token))
        assert missing.status_code == 404


# ============================================================================
# Service endpoints
# ============================================================================

class TestService:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.headers["X-Request-ID"]

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    async def test_malformed_request_id_is_replaced(self, client):
        response = await client.get("/", headers={"X-Request-ID": "bad id with spaces"})
        assert response.headers["X-Request-ID"] != "bad id with spaces"
        assert len(response.headers["X-Request-ID"]) == 32
