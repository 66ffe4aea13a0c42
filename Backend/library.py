"""Per-user library session – the state behind the dashboard.

A :class:`LibrarySession` holds one user's fetched library and everything
they do to it while the server is running: the artist→genre map, tracks
excluded from playlists, and the playlists already published from groups.
Groupings, duplicates and search results are recomputed from that state on
every call; nothing here is persisted.

Publishing a group moves it through::

    unpublished → publishing → published      (remote create succeeded)
    unpublished → publishing → unpublished    (remote create failed)

Retrying is manual: call the create again.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Mapping, Optional, Sequence

from duplicates import count_redundant, find_duplicates
from grouping import Grouping, group_tracks
from models import (
    CreatedPlaylist,
    DuplicateGroup,
    PublicationState,
    PublishOutcome,
    RemotePlaylist,
    Track,
)
from naming import BULK_DESCRIPTION, merged_group_name, name_for, playlist_name
from search import exclude_tracks, visible_tracks
from spotify_client import PlaylistCreator

logger = logging.getLogger(__name__)


class InvalidSelectionError(ValueError):
    """Nothing to publish, or no name to publish it under."""


class AlreadyPublishedError(RuntimeError):
    """The group already has a playlist (or one is being created) this session."""


class LibrarySession:
    def __init__(self, user_id: str, tracks: Sequence[Track] = ()):
        self.user_id = user_id
        self.tracks: list[Track] = list(tracks)
        self.genre_map: Dict[str, str] = {}
        self.excluded: set[str] = set()
        self.created: list[CreatedPlaylist] = []
        self._states: Dict[str, PublicationState] = {}

    # ── library data ─────────────────────────────────────────────────────

    def load(self, tracks: Sequence[Track]) -> None:
        """Replace the library.  Exclusions and published playlists are kept."""
        self.tracks = list(tracks)
        self.genre_map = {}

    def set_genre_map(self, genre_map: Mapping[str, str]) -> None:
        self.genre_map = dict(genre_map)

    def update_genre_map(self, genre_map: Mapping[str, str]) -> None:
        """Merge newly fetched categories into the map."""
        self.genre_map.update(genre_map)

    def artists_without_genre(self) -> list[str]:
        """Library artists the genre map does not cover yet."""
        return [a for a in self.artist_ids() if a not in self.genre_map]

    def artist_ids(self) -> list[str]:
        """Every artist id in the library, first-seen order."""
        seen: Dict[str, None] = {}
        for track in self.tracks:
            for artist in track.artists:
                if artist.id:
                    seen.setdefault(artist.id, None)
        return list(seen)

    # ── exclusions ───────────────────────────────────────────────────────

    def toggle_exclusion(self, track_id: str) -> bool:
        """Flip a track's excluded flag; returns True if it is now excluded."""
        if track_id in self.excluded:
            self.excluded.discard(track_id)
            return False
        self.excluded.add(track_id)
        return True

    def clear_exclusions(self) -> None:
        self.excluded.clear()

    # ── derived views ────────────────────────────────────────────────────

    def grouping(self, mode: Optional[str]) -> Grouping:
        return group_tracks(self.tracks, mode, self.genre_map)

    def duplicates(self) -> list[DuplicateGroup]:
        return find_duplicates(self.tracks)

    def redundant_count(self) -> int:
        return count_redundant(self.duplicates())

    def visible(self, query: Optional[str] = None) -> list[Track]:
        return visible_tracks(self.tracks, self.excluded, query)

    def _publishable_uris(self, tracks: Sequence[Track]) -> list[str]:
        return [t.uri for t in exclude_tracks(tracks, self.excluded)]

    # ── publication state ────────────────────────────────────────────────

    def state_of(self, group_name: str) -> PublicationState:
        return self._states.get(group_name, "unpublished")

    def is_published(self, group_name: str) -> bool:
        return self.state_of(group_name) == "published"

    def record_for(self, group_name: str) -> Optional[CreatedPlaylist]:
        for record in self.created:
            if record.group_name == group_name:
                return record
        return None

    def _record(self, group_name: str, playlist: RemotePlaylist) -> CreatedPlaylist:
        record = CreatedPlaylist(
            group_name=group_name,
            playlist_id=playlist.id,
            playlist_name=playlist.name,
            playlist_url=playlist.url,
        )
        self.created.append(record)
        self._states[group_name] = "published"
        return record

    async def _publish(
        self,
        group_name: str,
        name: str,
        description: str,
        uris: list[str],
        creator: PlaylistCreator,
    ) -> CreatedPlaylist:
        state = self.state_of(group_name)
        if state != "unpublished":
            raise AlreadyPublishedError(f"'{group_name}' is already {state}")

        self._states[group_name] = "publishing"
        try:
            playlist = await creator(name, description, uris)
            return self._record(group_name, playlist)
        finally:
            if self._states.get(group_name) == "publishing":
                self._states[group_name] = "unpublished"

    # ── publish flows ────────────────────────────────────────────────────

    async def create_group_playlist(
        self,
        mode: str,
        group_name: str,
        creator: PlaylistCreator,
        name: Optional[str] = None,
        description: Optional[str] = None,
        today: Optional[date] = None,
    ) -> CreatedPlaylist:
        """Publish one group, with a custom or the suggested name/description.

        Raises InvalidSelectionError for an unknown/empty group or a blank
        name, and AlreadyPublishedError if the group was published already.
        Remote failures propagate after the group returns to unpublished.
        """
        tracks = self.grouping(mode).get(group_name)
        uris = self._publishable_uris(tracks)
        if not uris:
            raise InvalidSelectionError(f"Group '{group_name}' has no tracks to publish")

        suggested = name_for(mode, group_name, len(tracks), today)
        final_name = suggested.name if name is None else name.strip()
        if not final_name:
            raise InvalidSelectionError("Playlist name is required")
        final_description = suggested.description if description is None else description

        return await self._publish(group_name, final_name, final_description, uris, creator)

    async def bulk_create(
        self,
        mode: str,
        creator: PlaylistCreator,
        today: Optional[date] = None,
    ) -> list[PublishOutcome]:
        """Publish every unpublished group, one remote call at a time.

        A failing group is logged and reported in its outcome; the remaining
        groups are still attempted.
        """
        outcomes: list[PublishOutcome] = []
        for group_name, tracks in self.grouping(mode).items():
            if self.state_of(group_name) != "unpublished":
                continue
            uris = self._publishable_uris(tracks)
            if not uris:
                outcomes.append(PublishOutcome(group_name, ok=False, error="No tracks to publish"))
                continue
            try:
                record = await self._publish(
                    group_name,
                    playlist_name(mode, group_name, today),
                    BULK_DESCRIPTION,
                    uris,
                    creator,
                )
            except Exception as e:
                logger.error(f"[bulk] Failed to create playlist for '{group_name}': {type(e).__name__}: {e}")
                outcomes.append(PublishOutcome(group_name, ok=False, error=str(e) or type(e).__name__))
                continue
            outcomes.append(PublishOutcome(group_name, ok=True, playlist=record))

        created = sum(1 for o in outcomes if o.ok)
        logger.info(f"[bulk] Created {created}/{len(outcomes)} playlist(s) for user {self.user_id}")
        return outcomes

    async def merge(
        self,
        mode: str,
        group_names: Sequence[str],
        name: str,
        description: str,
        creator: PlaylistCreator,
    ) -> CreatedPlaylist:
        """Publish several groups as one playlist under a user-chosen name.

        The selection is a set: a group listed twice is merged once.
        """
        selected = list(dict.fromkeys(group_names))
        if not selected:
            raise InvalidSelectionError("Select at least one group to merge")
        if not name or not name.strip():
            raise InvalidSelectionError("Playlist name is required")

        grouping = self.grouping(mode)
        unknown = [g for g in selected if g not in grouping]
        if unknown:
            raise InvalidSelectionError(f"Unknown group(s): {', '.join(unknown)}")

        uris: list[str] = []
        for group_name in selected:
            uris.extend(self._publishable_uris(grouping.get(group_name)))
        if not uris:
            raise InvalidSelectionError("Selected groups have no tracks to publish")

        label = merged_group_name(selected)
        return await self._publish(label, name.strip(), description, uris, creator)


# ── in-memory session store ──────────────────────────────────────────────
# One session per Spotify user for the lifetime of the process.

_SESSIONS: Dict[str, LibrarySession] = {}


def get_session(user_id: str) -> LibrarySession:
    """Return the user's session, creating an empty one if needed."""
    session = _SESSIONS.get(user_id)
    if session is None:
        session = _SESSIONS[user_id] = LibrarySession(user_id)
    return session


def drop_session(user_id: str) -> None:
    _SESSIONS.pop(user_id, None)


def clear_sessions() -> None:
    _SESSIONS.clear()
