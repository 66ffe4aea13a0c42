"""Mood inference from canonical genre.

Spotify no longer serves audio features to new apps, so mood is a static
lookup on the primary artist's normalised genre.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

from genres import OTHER

HIGH_ENERGY = "High Energy"
CHILL = "Chill/Vibe"
CALM = "Calm/Focus"
ALTERNATIVE = "Cool/Alternative"
GEEK = "Geek/Fun"

# Seed order of the mood buckets when grouping.
MOOD_BUCKETS: tuple[str, ...] = (HIGH_ENERGY, CHILL, CALM, ALTERNATIVE, GEEK, OTHER)

MOOD_FROM_GENRE: Mapping[str, str] = MappingProxyType({
    "Pop": HIGH_ENERGY,
    "Dance": HIGH_ENERGY,
    "Electronic": HIGH_ENERGY,
    "Techno": HIGH_ENERGY,
    "Trance": HIGH_ENERGY,
    "House": HIGH_ENERGY,
    "Hip-Hop": HIGH_ENERGY,
    "Trap": HIGH_ENERGY,
    "Rock": HIGH_ENERGY,
    "Metal": HIGH_ENERGY,
    "Punk": HIGH_ENERGY,

    "R&B": CHILL,
    "Soul": CHILL,
    "Jazz": CHILL,
    "Vaporwave": CHILL,
    "Lo-fi": CHILL,
    "Ambient": CHILL,
    "Country": CHILL,
    "Folk": CHILL,
    "Acoustic": CHILL,

    "Classical": CALM,

    "Indie": ALTERNATIVE,
    "Alternative": ALTERNATIVE,

    "Anime": GEEK,
    "Game": GEEK,
})


class MoodInferencer:
    def __init__(self, moods: Mapping[str, str] = MOOD_FROM_GENRE):
        self._moods = MappingProxyType(dict(moods))

    def mood_for_genre(self, genre: str) -> str:
        return self._moods.get(genre, OTHER)

    def infer(self, primary_artist_id: Optional[str], artist_genre_map: Mapping[str, str]) -> str:
        """Mood of a track given its primary artist id (``None`` if it has none)."""
        genre = artist_genre_map.get(primary_artist_id, OTHER) if primary_artist_id else OTHER
        return self.mood_for_genre(genre)


_default = MoodInferencer()


def infer_mood(primary_artist_id: Optional[str], artist_genre_map: Mapping[str, str]) -> str:
    return _default.infer(primary_artist_id, artist_genre_map)
