"""Token service — HS256 bearer tokens via PyJWT.

Two token families, each signed with its own secret:
- access tokens for signed-in app users (``sub`` = AuthUser.id), sent to
  the edge functions as ``Authorization: Bearer <token>``;
- Chrome extension tokens (``user_id`` = ChromeExtensionUser.id), 24h.
"""

from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from altleads.errors import TokenError

ALGORITHM = "HS256"


def _encode(payload, secret, ttl_seconds):
    now = datetime.now(timezone.utc)
    to_encode = dict(payload)
    to_encode.update({"iat": now, "exp": now + timedelta(seconds=ttl_seconds)})
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def _decode(token, secret):
    if not token:
        raise TokenError("Invalid token")
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenError("Token expired") from None
    except jwt.InvalidTokenError:
        raise TokenError("Invalid token") from None


def bearer_token(request):
    """Token from an ``Authorization: Bearer`` header, or None."""
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[7:].strip() or None


# ─── App access tokens ───────────────────────────────────────────

def create_access_token(auth_user):
    return _encode(
        {
            "sub": auth_user.id,
            "email": auth_user.email,
            "user_metadata": auth_user.metadata_dict,
        },
        current_app.config["ACCESS_TOKEN_SECRET"],
        current_app.config["ACCESS_TOKEN_TTL"],
    )


def decode_access_token(token):
    payload = _decode(token, current_app.config["ACCESS_TOKEN_SECRET"])
    if not payload.get("sub"):
        raise TokenError("Invalid token")
    return payload


# ─── Chrome extension tokens ─────────────────────────────────────

def create_extension_token(extension_user):
    return _encode(
        {"user_id": extension_user.id, "email": extension_user.email},
        current_app.config["CHROME_EXTENSION_JWT_SECRET"],
        current_app.config["CHROME_EXTENSION_TOKEN_TTL"],
    )


def decode_extension_token(token):
    payload = _decode(token, current_app.config["CHROME_EXTENSION_JWT_SECRET"])
    if not payload.get("user_id"):
        raise TokenError("Invalid token")
    return payload
