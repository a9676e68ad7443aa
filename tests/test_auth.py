from datetime import datetime, timedelta, timezone

from sqlmodel import select

from storefront.auth import create_session, extract_session_token, resolve_session
from storefront.models.audit import AuditAction, AuditLog
from storefront.models.base import as_utc, utc_now
from storefront.models.user import Account, Role, User, UserSession
from storefront.settings import get_settings

PASSWORD = "correct-horse"


def test_register_creates_customer_and_session(client, session):
    response = client.post("/api/auth/mobile/register", json={
        "name": "Awa Traoré",
        "email": "Awa@Example.com",
        "password": "long-enough",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["user"]["email"] == "awa@example.com"
    assert body["user"]["role"] == "CUSTOMER"

    user = session.exec(select(User).where(User.email == "awa@example.com")).one()
    assert user.hashed_password != "long-enough"
    assert resolve_session(session, body["token"])[1].id == user.id


def test_register_rejects_duplicate_email(client, make_user):
    make_user(email="taken@example.com")
    response = client.post("/api/auth/mobile/register", json={
        "name": "Someone", "email": "TAKEN@example.com", "password": "long-enough",
    })
    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "Email already exists"}


def test_register_rejects_short_password(client):
    response = client.post("/api/auth/mobile/register", json={
        "name": "Someone", "email": "short@example.com", "password": "short",
    })
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_login_returns_token(client, make_user):
    user = make_user(email="login@example.com")
    response = client.post("/api/auth/mobile/login", json={"email": "login@example.com", "password": PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == user.id
    assert body["token"]


def test_login_failure_is_audited(client, session, make_user):
    make_user(email="login@example.com")
    response = client.post("/api/auth/mobile/login", json={"email": "login@example.com", "password": "wrong-one"})
    assert response.status_code == 401
    assert response.json()["success"] is False

    entry = session.exec(select(AuditLog).where(AuditLog.action == AuditAction.LOGIN_FAILED)).one()
    assert entry.success is False


def test_login_rejects_account_without_password(client, make_user):
    make_user(email="apple-only@example.com", password=None)
    response = client.post("/api/auth/mobile/login", json={"email": "apple-only@example.com", "password": PASSWORD})
    assert response.status_code == 401


def test_me_requires_session(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_me_with_bearer_token(client, make_user, auth_headers):
    user = make_user()
    response = client.get("/api/auth/me", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["data"]["email"] == user.email


def test_session_cookie_is_accepted(client, make_user, auth_headers):
    user = make_user()
    token = auth_headers(user)["Authorization"].split(" ", 1)[1]
    settings = get_settings()

    client.cookies.set(settings.secure_session_cookie_name, token)
    response = client.get("/api/auth/me")
    assert response.status_code == 200
    assert response.json()["data"]["id"] == user.id


def test_bearer_header_wins_over_cookie():
    class FakeRequest:
        headers = {"Authorization": "Bearer from-header"}
        cookies = {"sissan.session_token": "from-cookie"}

    assert extract_session_token(FakeRequest()) == "from-header"


def test_logout_invalidates_token(client, session, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    assert client.get("/api/auth/me", headers=headers).status_code == 200

    response = client.post("/api/auth/mobile/logout", headers=headers)
    assert response.json() == {"success": True}
    assert client.get("/api/auth/me", headers=headers).status_code == 401
    assert session.exec(select(UserSession).where(UserSession.user_id == user.id)).first() is None


def test_logout_without_session_still_succeeds(client):
    response = client.post("/api/auth/mobile/logout")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_expired_session_is_rejected(client, make_user, expired_headers):
    user = make_user()
    response = client.get("/api/user/profile", headers=expired_headers(user))
    assert response.status_code == 401


def test_password_reset_flow(client, session, make_user, auth_headers):
    user = make_user(email="reset@example.com")
    headers = auth_headers(user)

    response = client.post("/api/auth/forgot-password", json={"email": "reset@example.com"})
    assert response.json()["success"] is True
    session.refresh(user)
    token = user.reset_token
    assert token

    assert client.post("/api/auth/validate-reset-token", json={"token": token}).json()["valid"] is True
    response = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert response.status_code == 200

    # Old sessions are revoked and the new password works
    assert client.get("/api/auth/me", headers=headers).status_code == 401
    response = client.post("/api/auth/mobile/login", json={"email": "reset@example.com", "password": "brand-new-pass"})
    assert response.status_code == 200
    assert client.post("/api/auth/validate-reset-token", json={"token": token}).json()["valid"] is False


def test_forgot_password_does_not_reveal_unknown_email(client):
    response = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_reset_password_rejects_expired_token(client, session, make_user):
    user = make_user()
    user.reset_token = "stale"
    user.reset_token_expiry = datetime.now(timezone.utc) - timedelta(minutes=5)
    session.add(user)
    session.commit()

    response = client.post("/api/auth/reset-password", json={"token": "stale", "password": "brand-new-pass"})
    assert response.status_code == 400


def test_phone_to_email_matches_formatting(client, make_user):
    make_user(email="phone@example.com", phone="+225 07 08 09 10 11")
    response = client.post("/api/auth/phone-to-email", json={"phone": "0708091011"})
    assert response.status_code == 200
    assert response.json()["email"] == "phone@example.com"

    assert client.post("/api/auth/phone-to-email", json={"phone": "0000000000"}).status_code == 404


def test_apple_sign_in_creates_and_links_user(client, session, monkeypatch):
    monkeypatch.setattr(
        "storefront.api.auth.verify_apple_identity_token",
        lambda token: {"sub": "apple-123", "email": "Apple@Example.com"},
    )
    response = client.post("/api/auth/sign-in/social", json={"provider": "apple", "idToken": "token"})
    assert response.status_code == 200
    user = session.exec(select(User).where(User.email == "apple@example.com")).one()
    assert user.role == Role.CUSTOMER
    assert user.hashed_password is None

    account = session.exec(select(Account).where(Account.account_id == "apple-123")).one()
    assert account.user_id == user.id

    # A second sign-in finds the same user through the linked account
    response = client.post("/api/auth/sign-in/social", json={"provider": "apple", "idToken": "token"})
    assert response.json()["user"]["id"] == user.id


def test_apple_sign_in_rejects_invalid_token(client, monkeypatch):
    monkeypatch.setattr("storefront.api.auth.verify_apple_identity_token", lambda token: None)
    response = client.post("/api/auth/sign-in/social", json={"provider": "apple", "idToken": "bad"})
    assert response.status_code == 401


def test_social_sign_in_rejects_other_providers(client):
    response = client.post("/api/auth/sign-in/social", json={"provider": "google", "idToken": "token"})
    assert response.status_code == 400


def test_update_phone_is_normalized(client, session, make_user, auth_headers):
    user = make_user()
    response = client.put("/api/auth/profile/phone", headers=auth_headers(user), json={"phone": "+225 07 08 09 10 11"})
    assert response.json() == {"success": True}
    assert user.phone == "0708091011"


def test_update_phone_conflict(client, make_user, auth_headers):
    make_user(phone="+225 01 02 03 04 05")
    user = make_user(phone="0700000000")
    headers = auth_headers(user)
    assert client.put("/api/auth/profile/phone", headers=headers, json={"phone": "01 02 03 04 05"}).status_code == 409
    assert client.put("/api/auth/profile/phone", headers=headers, json={"phone": "--"}).status_code == 400
    assert client.put("/api/auth/profile/phone", json={"phone": "0102030405"}).status_code == 401
    assert user.phone == "0700000000"

    # Re-saving your own number is not a conflict
    assert client.put("/api/auth/profile/phone", headers=headers, json={"phone": "07 00 00 00 00"}).status_code == 200


def test_timestamps_are_aware_utc():
    assert utc_now().utcoffset() == timedelta(0)
    assert User(email="new@example.com").created_at.tzinfo is not None
    assert as_utc(datetime(2026, 1, 1)) == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_fresh_session_outlives_now(session, make_user):
    user_session = create_session(session, make_user())
    assert resolve_session(session, user_session.token) is not None
