import time

import jwt
import pytest

from storefront import apple
from storefront.settings import Settings

SECRET = "test-signing-secret-that-is-long-enough"


@pytest.fixture(autouse=True)
def unverified_settings(monkeypatch):
    settings = Settings(apple_client_id="net.sissan.web", apple_app_id="net.sissan.app",
                        apple_verify_signature=False)
    monkeypatch.setattr(apple, "get_settings", lambda: settings)
    return settings


def make_token(**claims):
    payload = {
        "iss": apple.APPLE_ISSUER,
        "aud": "net.sissan.app",
        "sub": "001234.abcd",
        "email": "awa@privaterelay.appleid.com",
        "exp": int(time.time()) + 600,
        **claims,
    }
    return jwt.encode(payload, SECRET, algorithm="HS256")


def test_valid_token_for_either_audience():
    assert apple.verify_apple_identity_token(make_token()) == {
        "sub": "001234.abcd", "email": "awa@privaterelay.appleid.com",
    }
    assert apple.verify_apple_identity_token(make_token(aud="net.sissan.web"))["sub"] == "001234.abcd"


@pytest.mark.parametrize("claims", [
    {"aud": "com.other.app"},
    {"iss": "https://evil.example.com"},
    {"exp": int(time.time()) - 60},
    {"sub": ""},
])
def test_invalid_claims_are_rejected(claims):
    assert apple.verify_apple_identity_token(make_token(**claims)) is None


def test_garbage_is_rejected():
    assert apple.verify_apple_identity_token("not-a-jwt") is None


def test_no_configured_audience(monkeypatch):
    monkeypatch.setattr(apple, "get_settings", lambda: Settings(apple_verify_signature=False))
    assert apple.verify_apple_identity_token(make_token()) is None
