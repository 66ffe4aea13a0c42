"""Test configuration and fixtures."""

from __future__ import annotations

import pytest

import library
from models import Album, Artist, RemotePlaylist, Track


def build_track(
    track_id: str,
    name: str = "Song",
    artists: tuple[tuple[str, str], ...] = (("a1", "Artist"),),
    release_date: str = "2001-01-01",
) -> Track:
    """Synthetic saved track; *artists* is a tuple of ``(id, name)`` pairs."""
    return Track(
        id=track_id,
        uri=f"spotify:track:{track_id}",
        name=name,
        artists=tuple(Artist(id=aid, name=aname) for aid, aname in artists),
        album=Album(release_date=release_date),
    )


@pytest.fixture
def make_track():
    return build_track


class FakeCreator:
    """Stands in for the Spotify playlist-creation call.

    Records every call; fails for names listed in ``fail_on``.
    """

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, str, list[str]]] = []

    async def __call__(self, name: str, description: str, uris: list[str]) -> RemotePlaylist:
        self.calls.append((name, description, list(uris)))
        if any(marker in name for marker in self.fail_on):
            raise RuntimeError(f"Spotify said no to {name}")
        n = len(self.calls)
        return RemotePlaylist(id=f"pl{n}", name=name, url=f"https://open.spotify.com/playlist/pl{n}")


@pytest.fixture
def creator():
    return FakeCreator()


@pytest.fixture(autouse=True)
def _fresh_sessions():
    library.clear_sessions()
    yield
    library.clear_sessions()
