"""Duplicate detection – the same song saved more than once.

Spotify often carries one recording under several track ids (single, album,
deluxe edition, compilation).  Tracks are considered duplicates when their
song name and primary artist name match after lower-casing and trimming.
"""

from __future__ import annotations

import logging
from typing import Iterable

from models import DuplicateGroup, Track

logger = logging.getLogger(__name__)


def duplicate_key(track: Track) -> tuple[str, str]:
    """``(song name, primary artist name)``, normalised.  No artist → ``""``."""
    artist = track.primary_artist
    artist_name = artist.name.lower().strip() if artist else ""
    return track.name.lower().strip(), artist_name


def find_duplicates(tracks: Iterable[Track]) -> list[DuplicateGroup]:
    """Return clusters with more than one member, biggest first.

    Clusters of equal size keep the order in which their key was first seen.
    """
    clusters: dict[tuple[str, str], list[Track]] = {}
    for track in tracks:
        clusters.setdefault(duplicate_key(track), []).append(track)

    duplicates = [
        DuplicateGroup(key=key, tracks=members)
        for key, members in clusters.items()
        if len(members) > 1
    ]
    duplicates.sort(key=lambda g: len(g.tracks), reverse=True)

    if duplicates:
        logger.debug(
            f"Found {len(duplicates)} duplicate cluster(s), "
            f"{count_redundant(duplicates)} redundant track(s)"
        )
    return duplicates


def count_redundant(groups: Iterable[DuplicateGroup]) -> int:
    """Extra copies across all clusters (cluster size minus the one to keep)."""
    return sum(len(g.tracks) - 1 for g in groups)
