"""Playlist naming – display names and descriptions for published groups."""

from __future__ import annotations

from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from models import PlaylistMeta

DEFAULT_EMOJI = "🎵"

BULK_DESCRIPTION = "Bulk created via Spotify Organizer"

EMOJI_MAP: Mapping[str, str] = MappingProxyType({
    # Decades
    "2020's": "🔮",
    "2010's": "🔥",
    "2000's": "💿",
    "1990's": "📼",
    "1980's": "🕹️",
    "1970's": "🕺",
    "1960's": "☮️",

    # Genres
    "Pop": "🍭",
    "Rock": "🎸",
    "Hip-Hop": "🎤",
    "Electronic": "⚡",
    "Jazz": "🎷",
    "R&B": "🌹",
    "Classical": "🎻",
    "Metal": "🤘",
    "Country": "🤠",
    "K-Pop": "🇰🇷",
    "J-Pop": "🇯🇵",
    "Anime": "🏯",
    "Game": "🎮",
    "Other": "🎶",

    # Moods
    "High Energy": "🔥",
    "Chill/Vibe": "☕",
    "Calm/Focus": "🧘",
    "Cool/Alternative": "😎",
    "Geek/Fun": "👾",
})


def emoji_for(group_name: str, emoji_map: Mapping[str, str] = EMOJI_MAP) -> str:
    return emoji_map.get(group_name, DEFAULT_EMOJI)


def _today() -> date:
    return datetime.now(timezone.utc).date()


def playlist_name(
    mode: str,
    group_name: str,
    today: Optional[date] = None,
    emoji_map: Mapping[str, str] = EMOJI_MAP,
) -> str:
    """e.g. ``"📼 1990's Collection (2024-05-01)"`` or ``"🎸 Best of Rock (2024-05-01)"``."""
    emoji = emoji_for(group_name, emoji_map)
    stamp = (today or _today()).isoformat()
    if mode == "decade":
        return f"{emoji} {group_name} Collection ({stamp})"
    if mode == "mood":
        return f"{emoji} {group_name} Mix ({stamp})"
    return f"{emoji} Best of {group_name} ({stamp})"


def playlist_description(group_name: str, track_count: int) -> str:
    return (
        f"This playlist contains {track_count} {group_name} highlights. "
        "Auto-generated by Spotify Organizer."
    )


def name_for(
    mode: str,
    group_name: str,
    track_count: int,
    today: Optional[date] = None,
) -> PlaylistMeta:
    """Suggested name + description for publishing one group."""
    return PlaylistMeta(
        name=playlist_name(mode, group_name, today),
        description=playlist_description(group_name, track_count),
    )


def merge_defaults(group_names: Sequence[str]) -> PlaylistMeta:
    """Suggested name + description when merging several groups."""
    return PlaylistMeta(
        name=f"{DEFAULT_EMOJI} {' + '.join(group_names)} Mix",
        description=f"Merged playlist: {', '.join(group_names)}",
    )


def merged_group_name(group_names: Sequence[str]) -> str:
    """Label a merge is recorded under in the session's created playlists."""
    return f"Merged: {'+'.join(group_names)}"
