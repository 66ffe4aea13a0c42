"""Data classes shared across modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

GroupMode = Literal["decade", "genre", "mood"]

PublicationState = Literal["unpublished", "publishing", "published"]


@dataclass(frozen=True)
class Artist:
    id: str
    name: str


@dataclass(frozen=True)
class Album:
    release_date: str
    images: tuple[str, ...] = ()


@dataclass(frozen=True)
class Track:
    """A saved track from the user's library (read-only to the organizer)."""

    id: str
    uri: str
    name: str
    artists: tuple[Artist, ...]
    album: Album
    added_at: Optional[str] = None

    @property
    def primary_artist(self) -> Optional[Artist]:
        """First listed artist, or None for malformed tracks without one."""
        return self.artists[0] if self.artists else None


@dataclass
class DuplicateGroup:
    """Tracks sharing the same normalised (song name, primary artist) key."""

    key: tuple[str, str]
    tracks: list[Track] = field(default_factory=list)


@dataclass(frozen=True)
class PlaylistMeta:
    name: str
    description: str


@dataclass(frozen=True)
class RemotePlaylist:
    """What Spotify hands back after a playlist is created."""

    id: str
    name: str
    url: Optional[str] = None


@dataclass
class CreatedPlaylist:
    """A playlist published from a group during the current session."""

    group_name: str
    playlist_id: str
    playlist_name: str
    playlist_url: Optional[str] = None


@dataclass
class PublishOutcome:
    """Per-group result of a bulk create."""

    group_name: str
    ok: bool
    playlist: Optional[CreatedPlaylist] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class SpotifyCredentials:
    client_id: str
    client_secret: str


@dataclass(frozen=True)
class SpotifyUser:
    id: str
    name: str
    email: Optional[str] = None
    image: Optional[str] = None
