"""Genre normalisation – map Spotify's free-text artist genres to broad categories.

Spotify tags artists with very specific genres ("dance pop", "deep house",
"japanese city pop", …).  For grouping we collapse them into a small set of
canonical categories using an ordered ``(pattern, category)`` table:

1. each raw tag is lower-cased;
2. an exact match against the whole table is tried first;
3. failing that, the first pattern (in table order) contained in the tag wins;
4. the first tag that matches anything decides the category.

Tags that match nothing fall back to the first raw tag as-is, and an artist
with no genres at all lands in ``"Other"``.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence

OTHER = "Other"

# Order matters for the substring pass: "pop" is listed before "k-pop", so
# "k-pop girl group" (no exact entry) resolves to "Pop".
GENRE_MAPPINGS: tuple[tuple[str, str], ...] = (
    # Pop
    ("pop", "Pop"),
    ("dance pop", "Pop"),
    ("electro pop", "Pop"),
    ("indie pop", "Pop"),
    ("synth-pop", "Pop"),
    ("k-pop", "K-Pop"),
    ("j-pop", "J-Pop"),
    ("mandopop", "Mandopop"),
    ("c-pop", "C-Pop"),
    ("cantopop", "Cantopop"),
    # Rock
    ("rock", "Rock"),
    ("alternative rock", "Rock"),
    ("indie rock", "Rock"),
    ("classic rock", "Rock"),
    ("hard rock", "Rock"),
    ("punk rock", "Rock"),
    ("post-rock", "Rock"),
    # Electronic
    ("edm", "Electronic"),
    ("electronic", "Electronic"),
    ("house", "Electronic"),
    ("techno", "Electronic"),
    ("trance", "Trance"),
    ("dubstep", "Electronic"),
    ("drum and bass", "Electronic"),
    # Hip-Hop
    ("hip hop", "Hip-Hop"),
    ("rap", "Hip-Hop"),
    ("trap", "Hip-Hop"),
    # R&B
    ("r&b", "R&B"),
    ("soul", "R&B"),
    # Jazz
    ("jazz", "Jazz"),
    # Classical
    ("classical", "Classical"),
    ("orchestra", "Classical"),
    # Metal
    ("metal", "Metal"),
    ("heavy metal", "Metal"),
    ("death metal", "Metal"),
    # Country
    ("country", "Country"),
    # Anime / Game
    ("anime", "Anime"),
    ("video game music", "Game"),
    ("game", "Game"),
)


class GenreNormalizer:
    """Collapse raw genre tags into one canonical category.

    ``mappings`` is an ordered sequence of ``(pattern, category)`` pairs.
    Patterns are expected in lower case.
    """

    def __init__(self, mappings: Sequence[tuple[str, str]] = GENRE_MAPPINGS):
        self._mappings = tuple(mappings)
        # First declaration wins if a pattern is listed twice.
        exact: dict[str, str] = {}
        for pattern, category in self._mappings:
            exact.setdefault(pattern, category)
        self._exact = exact

    def _match(self, tag: str) -> Optional[str]:
        lowered = tag.lower()
        if lowered in self._exact:
            return self._exact[lowered]
        for pattern, category in self._mappings:
            if pattern in lowered:
                return category
        return None

    def normalize(self, raw_genres: Sequence[str]) -> str:
        for tag in raw_genres:
            category = self._match(tag)
            if category is not None:
                return category
        return raw_genres[0] if raw_genres else OTHER

    def normalize_many(self, raw_map: Mapping[str, Iterable[str]]) -> dict[str, str]:
        """Normalise every artist's tags: ``{artist_id: category}``."""
        return {artist_id: self.normalize(list(tags)) for artist_id, tags in raw_map.items()}


_default = GenreNormalizer()


def normalize_genre(raw_genres: Sequence[str]) -> str:
    """Normalise one artist's genre tags with the default table."""
    return _default.normalize(raw_genres)


def normalize_artist_genres(raw_map: Mapping[str, Iterable[str]]) -> dict[str, str]:
    """Build an artist→category map from raw Spotify genre lists."""
    return _default.normalize_many(raw_map)
