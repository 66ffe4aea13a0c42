"""Grouping engine – partition a track list by decade, genre or mood.

Public API
----------
group_tracks(tracks, mode, artist_genre_map)  → Grouping
group_by_decade(tracks)                       → Grouping
group_by_genre(tracks, artist_genre_map)      → Grouping
group_by_mood(tracks, artist_genre_map)       → Grouping

A :class:`Grouping` keeps groups in the order they were first seen; sorting
by a derived criterion is a separate, explicit step that returns a new
grouping.  Tracks inside a group always keep their input order.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, Iterator, Mapping, Optional, Sequence

from genres import OTHER
from models import Track
from moods import MOOD_BUCKETS, MoodInferencer

UNKNOWN_DECADE = "Unknown"

_YEAR_RE = re.compile(r"\s*(\d+)")


class Grouping:
    """Ordered association of group name → tracks."""

    def __init__(self, entries: Iterable[tuple[str, Sequence[Track]]] = ()):
        self._entries: list[tuple[str, list[Track]]] = []
        self._index: dict[str, int] = {}
        for name, tracks in entries:
            self.ensure(name).extend(tracks)

    def ensure(self, name: str) -> list[Track]:
        """Return the bucket for *name*, appending an empty one if new."""
        pos = self._index.get(name)
        if pos is None:
            pos = len(self._entries)
            self._index[name] = pos
            self._entries.append((name, []))
        return self._entries[pos][1]

    def add(self, name: str, track: Track) -> None:
        self.ensure(name).append(track)

    def get(self, name: str) -> list[Track]:
        pos = self._index.get(name)
        return list(self._entries[pos][1]) if pos is not None else []

    def names(self) -> list[str]:
        return [name for name, _ in self._entries]

    def items(self) -> list[tuple[str, list[Track]]]:
        return [(name, list(tracks)) for name, tracks in self._entries]

    def sorted_by(
        self,
        key: Callable[[tuple[str, list[Track]]], object],
        reverse: bool = False,
    ) -> "Grouping":
        """New grouping re-ordered by *key*; ties keep the current order."""
        return Grouping(sorted(self._entries, key=key, reverse=reverse))

    def without_empty(self) -> "Grouping":
        return Grouping((name, tracks) for name, tracks in self._entries if tracks)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grouping):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        sizes = ", ".join(f"{name!r}: {len(tracks)}" for name, tracks in self._entries)
        return f"Grouping({{{sizes}}})"


def _by_size(entry: tuple[str, list[Track]]) -> int:
    return len(entry[1])


# ── Decade ───────────────────────────────────────────────────────────────

def release_year(release_date: str) -> Optional[int]:
    """Year from the leading digits of a ``YYYY[-MM[-DD]]`` string.

    Returns None when there are no leading digits, or for Spotify's
    ``0000`` placeholder date.
    """
    m = _YEAR_RE.match(release_date or "")
    if not m:
        return None
    year = int(m.group(1))
    return year or None


def decade_label(release_date: str) -> str:
    year = release_year(release_date)
    if year is None:
        return UNKNOWN_DECADE
    return f"{year // 10 * 10}'s"


def _decade_sort_key(entry: tuple[str, list[Track]]) -> int:
    name = entry[0]
    # Unknown sorts after every real decade when ordering descending.
    return -1 if name == UNKNOWN_DECADE else int(name[:-2])


def group_by_decade(tracks: Iterable[Track]) -> Grouping:
    """Group by release decade, most recent first; ``Unknown`` last."""
    groups = Grouping()
    for track in tracks:
        groups.add(decade_label(track.album.release_date), track)
    return groups.sorted_by(_decade_sort_key, reverse=True)


# ── Genre ────────────────────────────────────────────────────────────────

def primary_genre(track: Track, artist_genre_map: Mapping[str, str]) -> str:
    artist = track.primary_artist
    if artist is None:
        return OTHER
    return artist_genre_map.get(artist.id) or OTHER


def group_by_genre(tracks: Iterable[Track], artist_genre_map: Mapping[str, str]) -> Grouping:
    """Group by the primary artist's canonical genre, largest group first."""
    groups = Grouping()
    for track in tracks:
        groups.add(primary_genre(track, artist_genre_map), track)
    return groups.sorted_by(_by_size, reverse=True)


# ── Mood ─────────────────────────────────────────────────────────────────

def group_by_mood(
    tracks: Iterable[Track],
    artist_genre_map: Mapping[str, str],
    inferencer: Optional[MoodInferencer] = None,
) -> Grouping:
    """Group into the fixed mood buckets, dropping empty ones, largest first."""
    inferencer = inferencer or MoodInferencer()
    groups = Grouping((bucket, []) for bucket in MOOD_BUCKETS)
    for track in tracks:
        artist = track.primary_artist
        mood = inferencer.infer(artist.id if artist else None, artist_genre_map)
        if mood not in groups:
            mood = OTHER
        groups.add(mood, track)
    return groups.without_empty().sorted_by(_by_size, reverse=True)


def group_tracks(
    tracks: Sequence[Track],
    mode: Optional[str],
    artist_genre_map: Optional[Mapping[str, str]] = None,
) -> Grouping:
    """Dispatch on grouping mode.  ``None``/``"none"`` yields an empty grouping."""
    genre_map = artist_genre_map or {}
    if mode == "decade":
        return group_by_decade(tracks)
    if mode == "genre":
        return group_by_genre(tracks, genre_map)
    if mode == "mood":
        return group_by_mood(tracks, genre_map)
    if mode in (None, "none"):
        return Grouping()
    raise ValueError(f"Unknown grouping mode: {mode!r}")
