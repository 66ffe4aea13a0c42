"""Spotify Web API helpers – saved tracks, artist genres, playlist creation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from aiohttp import ClientSession

import config
from models import Album, Artist, RemotePlaylist, Track

SPOTIFY_API = "https://api.spotify.com/v1"

# Maximum retries when Spotify returns 429 (Too Many Requests).
_MAX_RETRIES = 5

_SAVED_TRACKS_PAGE = 50
_ARTISTS_BATCH = 50
_ADD_TRACKS_CHUNK = 100

DEFAULT_DESCRIPTION = "Created by Spotify Organizer"

logger = logging.getLogger(__name__)

PlaylistCreator = Callable[[str, str, list[str]], Awaitable[RemotePlaylist]]


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def _get_json(session: ClientSession, url: str, token: str, label: str) -> dict:
    """GET with retries on 429 (honouring Retry-After) and backoff on errors."""
    cumulative_wait = 0
    for attempt in range(_MAX_RETRIES):
        try:
            async with session.get(url, headers=_auth_header(token)) as resp:
                if resp.status == 429:
                    retry_after = int(resp.headers.get("Retry-After", 1))
                    cumulative_wait += retry_after
                    logger.warning(
                        f"[{label}] Rate limited (429). Waiting {retry_after}s "
                        f"(attempt {attempt + 1}/{_MAX_RETRIES}, cumulative wait: {cumulative_wait}s)"
                    )
                    await asyncio.sleep(retry_after)
                    continue

                if resp.status != 200:
                    error_detail = await resp.text()
                    logger.error(f"[{label}] HTTP {resp.status} error: {error_detail[:200]}")
                    resp.raise_for_status()

                return await resp.json()
        except Exception as e:
            logger.error(f"[{label}] Request failed: {type(e).__name__}: {e}")
            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(2 ** attempt)
                continue
            raise
    raise RuntimeError("Spotify rate limit exceeded after max retries")


def track_from_saved_item(item: dict) -> Optional[Track]:
    """Build a :class:`Track` from one ``/me/tracks`` item.

    Returns None for local files and unavailable tracks (no id).
    """
    t = item.get("track")
    if not t or not t.get("id"):
        return None
    album = t.get("album") or {}
    return Track(
        id=t["id"],
        uri=t.get("uri") or f"spotify:track:{t['id']}",
        name=t.get("name", ""),
        artists=tuple(
            Artist(id=a.get("id") or "", name=a.get("name", ""))
            for a in t.get("artists", [])
        ),
        album=Album(
            release_date=album.get("release_date") or "",
            images=tuple(img["url"] for img in album.get("images", []) if img.get("url")),
        ),
        added_at=item.get("added_at"),
    )


async def get_saved_tracks(token: str, max_tracks: Optional[int] = None) -> list[Track]:
    """Return the user's Liked Songs, newest first (handles pagination).

    Stops at an empty or short page, or once ``max_tracks`` (default
    ``config.MAX_SONGS``) tracks have been collected.
    """
    limit = max_tracks if max_tracks is not None else config.MAX_SONGS
    tracks: list[Track] = []
    offset = 0

    async with ClientSession() as session:
        while True:
            url = f"{SPOTIFY_API}/me/tracks?limit={_SAVED_TRACKS_PAGE}&offset={offset}"
            data = await _get_json(session, url, token, "saved-tracks")
            items = data.get("items", [])
            if not items:
                break

            for item in items:
                track = track_from_saved_item(item)
                if track is not None:
                    tracks.append(track)
            offset += _SAVED_TRACKS_PAGE

            if len(items) < _SAVED_TRACKS_PAGE or len(tracks) >= limit:
                break

    logger.info(f"[saved-tracks] Fetched {len(tracks)} track(s)")
    return tracks[:limit]


async def get_artists_genres(token: str, artist_ids: list[str]) -> dict[str, list[str]]:
    """Return ``{artist_id: [raw genre, …]}`` for the given artists.

    Spotify allows 50 artists per request.  A batch that fails is logged and
    skipped, so the result may be partial.
    """
    ids = list(dict.fromkeys(a for a in artist_ids if a))
    genres: dict[str, list[str]] = {}

    async with ClientSession() as session:
        for i in range(0, len(ids), _ARTISTS_BATCH):
            batch = ids[i:i + _ARTISTS_BATCH]
            url = f"{SPOTIFY_API}/artists?ids={','.join(batch)}"
            try:
                data = await _get_json(session, url, token, "artists")
            except Exception as e:
                logger.error(f"[artists] Batch starting at {i} failed: {type(e).__name__}: {e}")
                continue
            for artist in data.get("artists", []):
                if artist:
                    genres[artist["id"]] = artist.get("genres", [])

    return genres


async def create_playlist(
    token: str,
    user_id: str,
    name: str,
    track_uris: list[str],
    description: Optional[str] = None,
) -> RemotePlaylist:
    """Create a private playlist and fill it, 100 tracks per request."""
    payload = {
        "name": name,
        "description": description or DEFAULT_DESCRIPTION,
        "public": False,
    }

    async with ClientSession() as session:
        async with session.post(
            f"{SPOTIFY_API}/users/{user_id}/playlists",
            headers=_auth_header(token),
            json=payload,
        ) as resp:
            if resp.status not in (200, 201):
                error_detail = await resp.text()
                logger.error(f"[create_playlist] HTTP {resp.status}: {error_detail}")
                resp.raise_for_status()
            data: dict[str, Any] = await resp.json()

        playlist_id = data["id"]
        for i in range(0, len(track_uris), _ADD_TRACKS_CHUNK):
            chunk = track_uris[i:i + _ADD_TRACKS_CHUNK]
            async with session.post(
                f"{SPOTIFY_API}/playlists/{playlist_id}/tracks",
                headers=_auth_header(token),
                json={"uris": chunk},
            ) as resp:
                if resp.status not in (200, 201):
                    error_detail = await resp.text()
                    logger.error(f"[add_tracks] HTTP {resp.status}: {error_detail}")
                    resp.raise_for_status()

    logger.info(f"[create_playlist] Created '{name}' ({len(track_uris)} tracks)")
    return RemotePlaylist(
        id=playlist_id,
        name=data.get("name", name),
        url=(data.get("external_urls") or {}).get("spotify"),
    )


def playlist_creator(token: str, user_id: str) -> PlaylistCreator:
    """Bind a token and user to :func:`create_playlist` for the library session."""

    async def _create(name: str, description: str, track_uris: list[str]) -> RemotePlaylist:
        return await create_playlist(token, user_id, name, track_uris, description)

    return _create
