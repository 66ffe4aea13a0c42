"""Track filtering: user exclusions, then free-text search."""

from __future__ import annotations

from typing import AbstractSet, Optional, Sequence

from models import Track


def exclude_tracks(tracks: Sequence[Track], excluded_ids: AbstractSet[str]) -> list[Track]:
    """Drop tracks the user excluded (e.g. a duplicate they don't want)."""
    if not excluded_ids:
        return list(tracks)
    return [t for t in tracks if t.id not in excluded_ids]


def _matches(track: Track, query: str) -> bool:
    if query in track.name.lower():
        return True
    if any(query in a.name.lower() for a in track.artists):
        return True
    # Plain substring on the raw date, so "199" finds the nineties.
    return query in track.album.release_date


def search_tracks(tracks: Sequence[Track], query: Optional[str]) -> list[Track]:
    """Case-insensitive substring search on name, artist names and release date.

    A blank query returns every track.
    """
    if not query or not query.strip():
        return list(tracks)
    q = query.lower()
    return [t for t in tracks if _matches(t, q)]


def visible_tracks(
    tracks: Sequence[Track],
    excluded_ids: AbstractSet[str],
    query: Optional[str] = None,
) -> list[Track]:
    """Exclusions first, then search – an excluded track never comes back."""
    return search_tracks(exclude_tracks(tracks, excluded_ids), query)
