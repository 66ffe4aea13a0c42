"""Signed cookie values for the browser session.

Everything the server needs between requests lives in cookies: the Spotify
access token (with its expiry), the refresh token, a small user profile, and
optionally the Spotify app credentials the user entered on the settings page.
Each cookie value is a JWT signed with ``config.JWT_SECRET`` so it cannot be
tampered with client-side.

Note: the values are signed, not encrypted.  They are sent as ``HttpOnly``
cookies (except the display profile) and never exposed to page scripts.
"""

from __future__ import annotations

import time
from typing import Any, Optional

import jwt  # PyJWT

import config
from models import SpotifyCredentials, SpotifyUser

_ALGORITHM = "HS256"

ACCESS_TOKEN_COOKIE = "spotify_access_token"
REFRESH_TOKEN_COOKIE = "spotify_refresh_token"
USER_COOKIE = "spotify_user"
CREDENTIALS_COOKIE = "spotify_credentials"

SESSION_COOKIES = (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, USER_COOKIE)
ALL_COOKIES = (CREDENTIALS_COOKIE,) + SESSION_COOKIES

REFRESH_TTL = 60 * 60 * 24 * 30  # 30 days
USER_TTL = 60 * 60 * 24 * 30
CREDENTIALS_TTL = 60 * 60 * 24 * 365  # 1 year

# Refresh the access token when it is this close to expiring.
EXPIRY_BUFFER = 5 * 60


def _encode(payload: dict[str, Any], ttl: int) -> str:
    now = int(time.time())
    return jwt.encode({**payload, "iat": now, "exp": now + ttl}, config.JWT_SECRET, algorithm=_ALGORITHM)


def _decode(value: Optional[str]) -> Optional[dict]:
    """Verify and decode a cookie value; None if missing, tampered or expired."""
    if not value:
        return None
    try:
        return jwt.decode(value, config.JWT_SECRET, algorithms=[_ALGORITHM])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError):
        return None


# ---- access / refresh tokens ----------------------------------------------

def create_access_cookie(access_token: str, expires_in: int = 3600) -> str:
    expires_at = int(time.time()) + expires_in
    return _encode({"access_token": access_token, "expires_at": expires_at}, expires_in)


def read_access_cookie(value: Optional[str]) -> Optional[str]:
    """Return the access token if present and not about to expire."""
    payload = _decode(value)
    if not payload:
        return None
    if payload.get("expires_at", 0) - EXPIRY_BUFFER <= time.time():
        return None
    return payload.get("access_token")


def create_refresh_cookie(refresh_token: str) -> str:
    return _encode({"refresh_token": refresh_token}, REFRESH_TTL)


def read_refresh_cookie(value: Optional[str]) -> Optional[str]:
    payload = _decode(value)
    return payload.get("refresh_token") if payload else None


# ---- user profile ----------------------------------------------------------

def create_user_cookie(user: SpotifyUser) -> str:
    return _encode(
        {"sub": user.id, "name": user.name, "email": user.email, "image": user.image},
        USER_TTL,
    )


def read_user_cookie(value: Optional[str]) -> Optional[SpotifyUser]:
    payload = _decode(value)
    if not payload or not payload.get("sub"):
        return None
    return SpotifyUser(
        id=payload["sub"],
        name=payload.get("name") or payload["sub"],
        email=payload.get("email"),
        image=payload.get("image"),
    )


# ---- app credentials -------------------------------------------------------

def create_credentials_cookie(creds: SpotifyCredentials) -> str:
    return _encode(
        {"client_id": creds.client_id, "client_secret": creds.client_secret},
        CREDENTIALS_TTL,
    )


def read_credentials_cookie(value: Optional[str]) -> Optional[SpotifyCredentials]:
    payload = _decode(value)
    if not payload or not payload.get("client_id") or not payload.get("client_secret"):
        return None
    return SpotifyCredentials(payload["client_id"], payload["client_secret"])


def resolve_credentials(cookie_value: Optional[str]) -> Optional[SpotifyCredentials]:
    """Cookie-stored credentials first, then the environment, else None."""
    creds = read_credentials_cookie(cookie_value)
    if creds:
        return creds
    if config.SPOTIFY_CLIENT_ID and config.SPOTIFY_CLIENT_SECRET:
        return SpotifyCredentials(config.SPOTIFY_CLIENT_ID, config.SPOTIFY_CLIENT_SECRET)
    return None
