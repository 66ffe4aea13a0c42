"""Spotify Authorization Code flow.

Web-flow helpers used by the API server: build the authorize URL, exchange a
callback code for tokens, refresh an access token, fetch the user's profile,
and validate a pair of app credentials with the client-credentials grant.

The Spotify app credentials are passed in explicitly because users can
supply their own through the settings page (see :mod:`session`).
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

from aiohttp import BasicAuth, ClientResponse, ClientSession

import config
from models import SpotifyCredentials, SpotifyUser

logger = logging.getLogger(__name__)

SCOPES = " ".join([
    "user-read-email",
    "playlist-read-private",
    "playlist-read-collaborative",
    "user-library-read",
    "playlist-modify-public",
    "playlist-modify-private",
])

SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_ME_URL = "https://api.spotify.com/v1/me"


class SpotifyAuthError(RuntimeError):
    """Spotify's accounts service rejected a request."""

    def __init__(self, message: str, status: int = 0, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body or {}


def build_authorize_url(client_id: str, state: str) -> str:
    """Return the Spotify authorize URL the browser should be redirected to."""
    params = urlencode(
        {
            "client_id": client_id,
            "response_type": "code",
            "redirect_uri": config.SPOTIFY_REDIRECT_URI,
            "scope": SCOPES,
            "state": state,
        }
    )
    return f"{SPOTIFY_AUTH_URL}?{params}"


async def _read_json(resp: ClientResponse, what: str) -> Any:
    """Decode a response body; an unreadable body becomes a SpotifyAuthError."""
    try:
        return await resp.json(content_type=None)
    except ValueError:
        text = await resp.text()
        logger.error(f"[auth] {what} returned a non-JSON body: HTTP {resp.status} {text[:200]}")
        raise SpotifyAuthError(f"{what} failed: unreadable response", resp.status)


async def _token_request(creds: SpotifyCredentials, data: dict[str, str], what: str) -> dict[str, Any]:
    async with ClientSession() as session:
        async with session.post(
            SPOTIFY_TOKEN_URL,
            data=data,
            auth=BasicAuth(creds.client_id, creds.client_secret),
        ) as resp:
            body = await _read_json(resp, what)
            if resp.status != 200 or (isinstance(body, dict) and body.get("error")):
                logger.error(f"[auth] {what} failed: HTTP {resp.status} {body}")
                raise SpotifyAuthError(f"{what} failed: {body}", resp.status, body)
            return body


async def exchange_code(code: str, creds: SpotifyCredentials) -> dict[str, Any]:
    """Exchange an authorization *code* for a token payload.

    Returns the full Spotify response which includes at least::

        {
            "access_token": "...",
            "token_type": "Bearer",
            "scope": "...",
            "expires_in": 3600,
            "refresh_token": "..."
        }
    """
    return await _token_request(
        creds,
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.SPOTIFY_REDIRECT_URI,
        },
        "Token exchange",
    )


async def refresh_access_token(refresh_token: str, creds: SpotifyCredentials) -> dict[str, Any]:
    """Use a refresh token to obtain a new access token from Spotify."""
    return await _token_request(
        creds,
        {"grant_type": "refresh_token", "refresh_token": refresh_token},
        "Token refresh",
    )


async def verify_credentials(creds: SpotifyCredentials) -> dict[str, Any]:
    """Validate app credentials via the client-credentials grant.

    No user authorisation is involved, so this works before anyone logs in.
    """
    return await _token_request(creds, {"grant_type": "client_credentials"}, "Credential test")


async def get_spotify_user(access_token: str) -> SpotifyUser:
    """Fetch the current user's Spotify profile (/v1/me)."""
    async with ClientSession() as session:
        async with session.get(
            SPOTIFY_ME_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        ) as resp:
            body = await _read_json(resp, "Profile fetch")
            if resp.status != 200:
                raise SpotifyAuthError(f"Failed to fetch profile: {body}", resp.status, body)

    images = body.get("images") or []
    return SpotifyUser(
        id=body["id"],
        name=body.get("display_name") or body["id"],
        email=body.get("email"),
        image=images[0].get("url") if images else None,
    )
