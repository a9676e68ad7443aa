import logging
from functools import lru_cache

import jwt
from jwt import InvalidTokenError, PyJWKClient, PyJWKClientError

from storefront.settings import get_settings

logger = logging.getLogger(__name__)

APPLE_ISSUER = "https://appleid.apple.com"
APPLE_KEYS_URL = "https://appleid.apple.com/auth/keys"


@lru_cache
def get_apple_jwk_client():
    return PyJWKClient(APPLE_KEYS_URL)

def valid_apple_audiences() -> list[str]:
    settings = get_settings()
    return [aud for aud in (settings.apple_client_id, settings.apple_app_id) if aud]

def verify_apple_identity_token(id_token: str) -> dict | None:
    """Validate a Sign in with Apple identity token.

    Web (Service ID) and mobile (App ID) tokens carry different audiences;
    both are accepted. Returns ``{"sub", "email"}`` or None when invalid.
    """
    settings = get_settings()
    audiences = valid_apple_audiences()
    if not audiences:
        logger.error("Apple sign-in attempted but no Apple client/app id is configured")
        return None

    try:
        if settings.apple_verify_signature:
            signing_key = get_apple_jwk_client().get_signing_key_from_jwt(id_token)
            payload = jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=audiences,
                issuer=APPLE_ISSUER,
            )
        else:
            payload = jwt.decode(
                id_token,
                options={"verify_signature": False, "verify_exp": True, "verify_aud": True, "verify_iss": True},
                audience=audiences,
                issuer=APPLE_ISSUER,
            )
    except (InvalidTokenError, PyJWKClientError) as e:
        logger.warning("Rejected Apple identity token: %s", e)
        return None

    if not payload.get("sub"):
        return None
    return {"sub": payload["sub"], "email": payload.get("email")}
