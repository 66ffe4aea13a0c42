"""FastAPI server – Spotify OAuth, library fetch and the organizer endpoints.

Endpoints
---------
GET    /api/spotify/login            → redirect user to Spotify (or /settings)
GET    /api/spotify/callback         → exchange code, set cookies, go to /dashboard
GET    /api/spotify/logout           → clear session cookies

POST   /api/auth/save-credentials    → store Spotify app credentials (cookie)
GET    /api/auth/check-credentials   → are credentials configured?
POST   /api/auth/clear-credentials   → forget stored credentials
POST   /api/auth/test-credentials    → validate credentials with Spotify
GET    /api/auth/reset               → what is stored
POST   /api/auth/reset               → clear everything

GET    /api/songs                    → fetch Liked Songs into the library session
POST   /api/genres                   → normalised genre per artist
POST   /api/playlists                → create a playlist from raw track URIs

GET    /api/library/groups           → tracks grouped by decade / genre / mood
GET    /api/library/duplicates       → duplicate clusters
POST   /api/library/exclusions/{id}  → toggle a track's exclusion
DELETE /api/library/exclusions       → clear exclusions
GET    /api/library/search           → visible (non-excluded, matching) tracks
GET    /api/library/suggestion       → suggested name/description for a group
GET    /api/library/merge-suggestion → suggested name/description for a merge
POST   /api/library/playlist         → publish one group
POST   /api/library/bulk-create      → publish every unpublished group
POST   /api/library/merge            → publish several groups as one playlist

Protected routes read the Spotify access token and user profile from signed
cookies (see :mod:`session`) and refresh the token when it is close to expiry.

Run with::

    uvicorn server:app --host 127.0.0.1 --port 3000 --reload
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import asdict, dataclass
from typing import Optional

from aiohttp import ClientError
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
import uvicorn

import config
import session as cookies
from duplicates import count_redundant
from genres import normalize_artist_genres
from grouping import Grouping
from library import AlreadyPublishedError, InvalidSelectionError, LibrarySession, drop_session, get_session
from models import GroupMode, SpotifyCredentials, SpotifyUser, Track
from naming import emoji_for, merge_defaults, name_for
from spotify_auth import (
    SpotifyAuthError,
    build_authorize_url,
    exchange_code,
    get_spotify_user,
    refresh_access_token,
    verify_credentials,
)
from spotify_client import create_playlist, get_artists_genres, get_saved_tracks, playlist_creator

# Set up logging
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
# Silence noisy HTTP libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

# In-memory state store (for CSRF protection during OAuth).
_pending_states: set[str] = set()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(title="Spotify Organizer API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming request path for debugging."""
    logger.info(f"[request] {request.method} {request.url.path}")
    response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------

def _set_cookie(response: Response, name: str, value: str, max_age: int, httponly: bool = True) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        httponly=httponly,
        secure=config.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def _set_token_cookies(
    response: Response,
    access_token: str,
    expires_in: int,
    refresh_token: Optional[str] = None,
) -> None:
    _set_cookie(response, cookies.ACCESS_TOKEN_COOKIE, cookies.create_access_cookie(access_token, expires_in), expires_in)
    if refresh_token:
        _set_cookie(response, cookies.REFRESH_TOKEN_COOKIE, cookies.create_refresh_cookie(refresh_token), cookies.REFRESH_TTL)


def _delete_cookies(response: Response, names) -> None:
    for name in names:
        response.delete_cookie(name, path="/")


def _frontend(path: str) -> str:
    return f"{config.FRONTEND_URL.rstrip('/')}{path}"


# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------

@dataclass
class SpotifyContext:
    user: SpotifyUser
    token: str

    @property
    def library(self) -> LibrarySession:
        return get_session(self.user.id)


async def require_spotify(request: Request, response: Response) -> SpotifyContext:
    """FastAPI dependency: the logged-in user plus a valid access token.

    Refreshes an expiring access token and sets the new cookies on the
    response.  Raises 401 if the user must log in again.
    """
    user = cookies.read_user_cookie(request.cookies.get(cookies.USER_COOKIE))
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = cookies.read_access_cookie(request.cookies.get(cookies.ACCESS_TOKEN_COOKIE))
    if token:
        return SpotifyContext(user=user, token=token)

    refresh_token = cookies.read_refresh_cookie(request.cookies.get(cookies.REFRESH_TOKEN_COOKIE))
    creds = cookies.resolve_credentials(request.cookies.get(cookies.CREDENTIALS_COOKIE))
    if not refresh_token or creds is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        token_data = await refresh_access_token(refresh_token, creds)
    except SpotifyAuthError as e:
        logger.warning(f"Token refresh failed for {user.id}: {e}")
        raise HTTPException(status_code=401, detail="Session expired")
    except (ClientError, asyncio.TimeoutError) as e:
        logger.error(f"Token refresh unreachable for {user.id}: {type(e).__name__}: {e}")
        raise HTTPException(status_code=502, detail="Spotify is unreachable, try again shortly")

    _set_token_cookies(
        response,
        token_data["access_token"],
        token_data.get("expires_in", 3600),
        # Spotify may or may not return a new refresh token
        token_data.get("refresh_token"),
    )
    return SpotifyContext(user=user, token=token_data["access_token"])


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _track_to_dict(t: Track) -> dict:
    return asdict(t)


def _grouping_to_list(grouping: Grouping, library: LibrarySession) -> list[dict]:
    groups = []
    for name, tracks in grouping.items():
        record = library.record_for(name)
        groups.append({
            "name": name,
            "count": len(tracks),
            "emoji": emoji_for(name),
            "state": library.state_of(name),
            "published": library.is_published(name),
            "url": record.playlist_url if record else None,
            "trackIds": [t.id for t in tracks],
        })
    return groups


async def _ensure_genres(ctx: SpotifyContext, mode: Optional[str]) -> None:
    """Genre and mood grouping need the artist→genre map; fetch whatever is missing."""
    library = ctx.library
    if mode not in ("genre", "mood"):
        return
    missing = library.artists_without_genre()
    if not missing:
        return
    try:
        raw = await get_artists_genres(ctx.token, missing)
    except Exception:
        logger.exception("Failed to fetch genres")
        raise HTTPException(status_code=502, detail="Failed to fetch genres")
    library.update_genre_map(normalize_artist_genres(raw))


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class CredentialsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: Optional[str] = Field(None, alias="clientId")
    client_secret: Optional[str] = Field(None, alias="clientSecret")


class GenresRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    artist_ids: Optional[list[str]] = Field(None, alias="artistIds")


class PlaylistRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    track_uris: list[str] = Field(default_factory=list, alias="trackUris")
    description: Optional[str] = None


class GroupPlaylistRequest(BaseModel):
    mode: GroupMode
    group: str
    name: Optional[str] = None
    description: Optional[str] = None


class BulkCreateRequest(BaseModel):
    mode: GroupMode


class MergeRequest(BaseModel):
    mode: GroupMode
    groups: list[str] = Field(default_factory=list)
    name: Optional[str] = None
    description: Optional[str] = None


# ---------------------------------------------------------------------------
# OAuth routes
# ---------------------------------------------------------------------------

@app.get("/")
async def root():
    """Health check / root endpoint."""
    return {"status": "ok", "service": "Spotify Organizer API", "docs": "/docs"}


@app.get("/api/spotify/login")
async def login(request: Request):
    """Redirect to Spotify authorize page, or to settings if unconfigured."""
    creds = cookies.resolve_credentials(request.cookies.get(cookies.CREDENTIALS_COOKIE))
    if creds is None:
        return RedirectResponse(_frontend("/settings"))

    state = secrets.token_urlsafe(16)
    _pending_states.add(state)
    return RedirectResponse(build_authorize_url(creds.client_id, state))


@app.get("/api/spotify/callback")
async def callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
):
    """Handle Spotify redirect after user approves."""
    if error:
        return RedirectResponse(_frontend(f"/?error={error}"))

    if not state or state not in _pending_states:
        return RedirectResponse(_frontend("/?error=invalid_state"))
    _pending_states.discard(state)

    if not code:
        return RedirectResponse(_frontend("/?error=no_code"))

    creds = cookies.resolve_credentials(request.cookies.get(cookies.CREDENTIALS_COOKIE))
    if creds is None:
        return RedirectResponse(_frontend("/settings?error=no_credentials"))

    try:
        token_data = await exchange_code(code, creds)
        user = await get_spotify_user(token_data["access_token"])
    except SpotifyAuthError as e:
        logger.error(f"Callback error: {e}")
        err = e.body.get("error", "callback_failed") if isinstance(e.body, dict) else "callback_failed"
        return RedirectResponse(_frontend(f"/?error={err}"))
    except Exception:
        logger.exception("Callback error")
        return RedirectResponse(_frontend("/?error=callback_failed"))

    response = RedirectResponse(_frontend("/dashboard"))
    _set_token_cookies(
        response,
        token_data["access_token"],
        token_data.get("expires_in", 3600),
        token_data.get("refresh_token"),
    )
    # Readable by the page for display
    _set_cookie(response, cookies.USER_COOKIE, cookies.create_user_cookie(user), cookies.USER_TTL, httponly=False)
    logger.info(f"User {user.id} logged in")
    return response


@app.get("/api/spotify/logout")
async def logout(request: Request):
    user = cookies.read_user_cookie(request.cookies.get(cookies.USER_COOKIE))
    if user:
        drop_session(user.id)
    response = RedirectResponse(_frontend("/"))
    _delete_cookies(response, cookies.SESSION_COOKIES)
    return response


# ---------------------------------------------------------------------------
# Credential routes
# ---------------------------------------------------------------------------

@app.post("/api/auth/save-credentials")
async def save_credentials(body: CredentialsRequest, response: Response):
    client_id = (body.client_id or "").strip()
    client_secret = (body.client_secret or "").strip()
    if not client_id or not client_secret:
        raise HTTPException(status_code=400, detail="Client ID and Client Secret are required")

    creds = SpotifyCredentials(client_id, client_secret)
    _set_cookie(response, cookies.CREDENTIALS_COOKIE, cookies.create_credentials_cookie(creds), cookies.CREDENTIALS_TTL)
    return {"success": True}


@app.get("/api/auth/check-credentials")
async def check_credentials(request: Request):
    creds = cookies.resolve_credentials(request.cookies.get(cookies.CREDENTIALS_COOKIE))
    return {
        "hasCredentials": creds is not None,
        # The client id is not secret and is shown on the settings page.
        "clientId": creds.client_id if creds else None,
    }


@app.post("/api/auth/clear-credentials")
async def clear_credentials(response: Response):
    _delete_cookies(response, [cookies.CREDENTIALS_COOKIE])
    return {"success": True}


@app.post("/api/auth/test-credentials")
async def test_credentials_endpoint(request: Request, body: Optional[CredentialsRequest] = None):
    """Validate credentials from the body (before saving) or the stored ones."""
    if body and body.client_id and body.client_secret:
        creds: Optional[SpotifyCredentials] = SpotifyCredentials(body.client_id, body.client_secret)
    else:
        creds = cookies.resolve_credentials(request.cookies.get(cookies.CREDENTIALS_COOKIE))
    if creds is None:
        raise HTTPException(status_code=400, detail="No credentials configured")

    try:
        data = await verify_credentials(creds)
    except SpotifyAuthError as e:
        if e.status == 401 or (isinstance(e.body, dict) and e.body.get("error") == "invalid_client"):
            raise HTTPException(status_code=401, detail="Invalid credentials. Check the Client ID and Client Secret.")
        reason = (e.body.get("error_description") or e.body.get("error")) if isinstance(e.body, dict) else None
        raise HTTPException(status_code=e.status or 502, detail=f"Connection failed: {reason or 'unknown error'}")
    except Exception:
        logger.exception("Error testing credentials")
        raise HTTPException(status_code=500, detail="Failed to test credentials")

    return {
        "success": True,
        "tokenType": data.get("token_type"),
        "expiresIn": data.get("expires_in"),
    }


@app.get("/api/auth/reset")
async def reset_status(request: Request):
    """Report which pieces of data are stored in cookies."""
    status = {name: bool(request.cookies.get(name)) for name in cookies.ALL_COOKIES}
    return {"hasData": any(status.values()), "status": status}


@app.post("/api/auth/reset")
async def reset(request: Request, response: Response):
    """Factory reset: forget credentials, tokens, and the library session."""
    user = cookies.read_user_cookie(request.cookies.get(cookies.USER_COOKIE))
    if user:
        drop_session(user.id)
    _delete_cookies(response, cookies.ALL_COOKIES)
    return {"success": True, "cleared": list(cookies.ALL_COOKIES)}


# ---------------------------------------------------------------------------
# Spotify proxy routes
# ---------------------------------------------------------------------------

@app.get("/api/songs")
async def songs(ctx: SpotifyContext = Depends(require_spotify)):
    """Fetch the user's Liked Songs and load them into the library session."""
    try:
        tracks = await get_saved_tracks(ctx.token)
    except Exception:
        logger.exception("Error fetching songs")
        raise HTTPException(status_code=500, detail="Failed to fetch songs")

    ctx.library.load(tracks)
    return {"tracks": [_track_to_dict(t) for t in tracks]}


@app.post("/api/genres")
async def genres(body: GenresRequest, ctx: SpotifyContext = Depends(require_spotify)):
    """Normalised genre category per artist (defaults to the whole library)."""
    artist_ids = body.artist_ids if body.artist_ids is not None else ctx.library.artist_ids()
    try:
        raw = await get_artists_genres(ctx.token, artist_ids)
    except Exception:
        logger.exception("Error fetching genres")
        raise HTTPException(status_code=500, detail="Failed to fetch genres")

    normalized = normalize_artist_genres(raw)
    ctx.library.update_genre_map(normalized)
    return {"genres": normalized}


@app.post("/api/playlists")
async def playlists(body: PlaylistRequest, ctx: SpotifyContext = Depends(require_spotify)):
    """Create a Spotify playlist from raw track URIs."""
    if not body.name.strip() or not body.track_uris:
        raise HTTPException(status_code=400, detail="Playlist name and track URIs are required")

    try:
        playlist = await create_playlist(ctx.token, ctx.user.id, body.name, body.track_uris, body.description)
    except Exception:
        logger.exception("Error creating playlist")
        raise HTTPException(status_code=500, detail="Failed to create playlist")

    return {"success": True, "playlist": asdict(playlist)}


# ---------------------------------------------------------------------------
# Library organizer routes
# ---------------------------------------------------------------------------

@app.get("/api/library/groups")
async def library_groups(
    mode: GroupMode = Query(...),
    ctx: SpotifyContext = Depends(require_spotify),
):
    await _ensure_genres(ctx, mode)
    grouping = ctx.library.grouping(mode)
    return {
        "mode": mode,
        "total": len(ctx.library.tracks),
        "groups": _grouping_to_list(grouping, ctx.library),
    }


@app.get("/api/library/duplicates")
async def library_duplicates(ctx: SpotifyContext = Depends(require_spotify)):
    library = ctx.library
    groups = library.duplicates()
    return {
        "redundant": count_redundant(groups),
        "excluded": sorted(library.excluded),
        "groups": [
            {"key": list(g.key), "tracks": [_track_to_dict(t) for t in g.tracks]}
            for g in groups
        ],
    }


@app.post("/api/library/exclusions/{track_id}")
async def toggle_exclusion(track_id: str, ctx: SpotifyContext = Depends(require_spotify)):
    excluded = ctx.library.toggle_exclusion(track_id)
    return {"trackId": track_id, "excluded": excluded, "excludedCount": len(ctx.library.excluded)}


@app.delete("/api/library/exclusions")
async def clear_exclusions(ctx: SpotifyContext = Depends(require_spotify)):
    ctx.library.clear_exclusions()
    return {"excludedCount": 0}


@app.get("/api/library/search")
async def library_search(
    q: str = Query(""),
    ctx: SpotifyContext = Depends(require_spotify),
):
    tracks = ctx.library.visible(q)
    return {
        "count": len(tracks),
        "total": len(ctx.library.tracks),
        "tracks": [_track_to_dict(t) for t in tracks],
    }


@app.get("/api/library/suggestion")
async def library_suggestion(
    mode: GroupMode = Query(...),
    group: str = Query(...),
    ctx: SpotifyContext = Depends(require_spotify),
):
    await _ensure_genres(ctx, mode)
    tracks = ctx.library.grouping(mode).get(group)
    if not tracks:
        raise HTTPException(status_code=404, detail=f"Group '{group}' not found")
    return asdict(name_for(mode, group, len(tracks)))


@app.get("/api/library/merge-suggestion")
async def library_merge_suggestion(
    groups: list[str] = Query(...),
    ctx: SpotifyContext = Depends(require_spotify),
):
    return asdict(merge_defaults(groups))


def _publish_error(e: Exception) -> HTTPException:
    if isinstance(e, InvalidSelectionError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, AlreadyPublishedError):
        return HTTPException(status_code=409, detail=str(e))
    logger.error(f"Failed to create playlist: {type(e).__name__}: {e}")
    return HTTPException(status_code=502, detail="Failed to create playlist on Spotify.")


@app.post("/api/library/playlist")
async def library_create_playlist(body: GroupPlaylistRequest, ctx: SpotifyContext = Depends(require_spotify)):
    """Publish one group, optionally under a customised name/description."""
    await _ensure_genres(ctx, body.mode)
    try:
        record = await ctx.library.create_group_playlist(
            body.mode,
            body.group,
            playlist_creator(ctx.token, ctx.user.id),
            name=body.name,
            description=body.description,
        )
    except Exception as e:
        raise _publish_error(e)
    return {"success": True, "playlist": asdict(record)}


@app.post("/api/library/bulk-create")
async def library_bulk_create(body: BulkCreateRequest, ctx: SpotifyContext = Depends(require_spotify)):
    """Publish every not-yet-published group with auto-generated names."""
    await _ensure_genres(ctx, body.mode)
    outcomes = await ctx.library.bulk_create(body.mode, playlist_creator(ctx.token, ctx.user.id))
    return {
        "created": sum(1 for o in outcomes if o.ok),
        "failed": sum(1 for o in outcomes if not o.ok),
        "outcomes": [asdict(o) for o in outcomes],
    }


@app.post("/api/library/merge")
async def library_merge(body: MergeRequest, ctx: SpotifyContext = Depends(require_spotify)):
    """Publish several groups of the current grouping as one playlist."""
    await _ensure_genres(ctx, body.mode)
    groups = list(dict.fromkeys(body.groups))
    defaults = merge_defaults(groups)
    try:
        record = await ctx.library.merge(
            body.mode,
            groups,
            defaults.name if body.name is None else body.name,
            defaults.description if body.description is None else body.description,
            playlist_creator(ctx.token, ctx.user.id),
        )
    except Exception as e:
        raise _publish_error(e)
    return {"success": True, "playlist": asdict(record)}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run("server:app", host="127.0.0.1", port=3000, reload=True)
