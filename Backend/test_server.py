"""HTTP-level tests for the FastAPI server (Spotify calls mocked)."""

from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from fastapi.testclient import TestClient

import config
import server
import session as cookies
from conftest import build_track
from models import RemotePlaylist, SpotifyCredentials, SpotifyUser
from spotify_auth import SpotifyAuthError

USER = SpotifyUser(id="user1", name="Test User")

TRACKS = [
    build_track("t1", name="Smells Like Teen Spirit", artists=(("nirvana", "Nirvana"),), release_date="1991-09-10"),
    build_track("t2", name="Creep", artists=(("radiohead", "Radiohead"),), release_date="1992"),
    build_track("t3", name="Creep", artists=(("radiohead", "Radiohead"),), release_date="2008"),
    build_track("t4", name="So What", artists=(("miles", "Miles Davis"),), release_date="1959"),
]


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(config, "SPOTIFY_CLIENT_ID", "")
    monkeypatch.setattr(config, "SPOTIFY_CLIENT_SECRET", "")
    return TestClient(server.app)


@pytest.fixture
def authed(client):
    client.cookies.set(cookies.USER_COOKIE, cookies.create_user_cookie(USER))
    client.cookies.set(cookies.ACCESS_TOKEN_COOKIE, cookies.create_access_cookie("tok", 3600))
    return client


@pytest.fixture
def loaded(authed):
    with patch("server.get_saved_tracks", AsyncMock(return_value=TRACKS)):
        assert authed.get("/api/songs").status_code == 200
    return authed


def _creator_returning(*playlists):
    """Stand-in for playlist_creator(token, user) yielding *playlists* in order."""
    create = AsyncMock(side_effect=list(playlists))
    return patch("server.playlist_creator", lambda token, user_id: create), create


def test_root(client):
    assert client.get("/").json()["status"] == "ok"


def test_protected_routes_require_login(client):
    assert client.get("/api/songs").status_code == 401
    assert client.get("/api/library/groups", params={"mode": "decade"}).status_code == 401


def test_expired_token_is_refreshed(client):
    client.cookies.set(cookies.USER_COOKIE, cookies.create_user_cookie(USER))
    client.cookies.set(cookies.REFRESH_TOKEN_COOKIE, cookies.create_refresh_cookie("rt"))
    client.cookies.set(
        cookies.CREDENTIALS_COOKIE,
        cookies.create_credentials_cookie(SpotifyCredentials("cid", "secret")),
    )
    refreshed = AsyncMock(return_value={"access_token": "new", "expires_in": 3600})
    with patch("server.refresh_access_token", refreshed), \
            patch("server.get_saved_tracks", AsyncMock(return_value=[])) as mock_songs:
        resp = client.get("/api/songs")

    assert resp.status_code == 200
    mock_songs.assert_awaited_once_with("new")
    assert cookies.ACCESS_TOKEN_COOKIE in resp.cookies


def test_failed_refresh_is_unauthorized(client):
    client.cookies.set(cookies.USER_COOKIE, cookies.create_user_cookie(USER))
    client.cookies.set(cookies.REFRESH_TOKEN_COOKIE, cookies.create_refresh_cookie("rt"))
    client.cookies.set(
        cookies.CREDENTIALS_COOKIE,
        cookies.create_credentials_cookie(SpotifyCredentials("cid", "secret")),
    )
    with patch("server.refresh_access_token", AsyncMock(side_effect=SpotifyAuthError("nope", 400))):
        assert client.get("/api/songs").status_code == 401


def test_unreachable_refresh_is_bad_gateway(client):
    client.cookies.set(cookies.USER_COOKIE, cookies.create_user_cookie(USER))
    client.cookies.set(cookies.REFRESH_TOKEN_COOKIE, cookies.create_refresh_cookie("rt"))
    client.cookies.set(
        cookies.CREDENTIALS_COOKIE,
        cookies.create_credentials_cookie(SpotifyCredentials("cid", "secret")),
    )
    down = AsyncMock(side_effect=aiohttp.ClientConnectionError("down"))
    with patch("server.refresh_access_token", down), \
            patch("server.get_saved_tracks", AsyncMock(return_value=[])) as mock_songs:
        resp = client.get("/api/songs")

    assert resp.status_code == 502
    mock_songs.assert_not_awaited()


def test_songs_loads_library(loaded):
    resp = loaded.get("/api/library/search")
    body = resp.json()
    assert body["count"] == 4
    assert [t["id"] for t in body["tracks"]] == ["t1", "t2", "t3", "t4"]


def test_songs_failure(authed):
    with patch("server.get_saved_tracks", AsyncMock(side_effect=RuntimeError("down"))):
        resp = authed.get("/api/songs")
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Failed to fetch songs"


def test_decade_groups(loaded):
    body = loaded.get("/api/library/groups", params={"mode": "decade"}).json()
    assert body["total"] == 4
    assert [(g["name"], g["count"]) for g in body["groups"]] == [
        ("2000's", 1), ("1990's", 2), ("1950's", 1),
    ]
    assert body["groups"][1]["state"] == "unpublished"
    assert body["groups"][1]["emoji"] == "📼"


def test_genre_groups_fetch_genres_once(loaded):
    raw = {"nirvana": ["grunge", "rock"], "radiohead": ["art rock"], "miles": ["jazz", "bebop"]}
    with patch("server.get_artists_genres", AsyncMock(return_value=raw)) as mock_genres:
        body = loaded.get("/api/library/groups", params={"mode": "genre"}).json()
        loaded.get("/api/library/groups", params={"mode": "mood"})

    assert mock_genres.await_count == 1
    assert [(g["name"], g["count"]) for g in body["groups"]] == [("Rock", 3), ("Jazz", 1)]


def test_genre_fetch_failure_is_bad_gateway(loaded):
    with patch("server.get_artists_genres", AsyncMock(side_effect=RuntimeError("down"))):
        resp = loaded.get("/api/library/groups", params={"mode": "mood"})
    assert resp.status_code == 502


def test_invalid_mode_rejected(loaded):
    assert loaded.get("/api/library/groups", params={"mode": "tempo"}).status_code == 422


def test_genres_endpoint(loaded):
    with patch("server.get_artists_genres", AsyncMock(return_value={"miles": ["cool jazz"]})):
        resp = loaded.post("/api/genres", json={"artistIds": ["miles"]})
    assert resp.json() == {"genres": {"miles": "Jazz"}}


def test_grouping_fetches_artists_missing_after_partial_genres(loaded):
    with patch("server.get_artists_genres", AsyncMock(return_value={"miles": ["jazz"]})):
        loaded.post("/api/genres", json={"artistIds": ["miles"]})

    rest = {"nirvana": ["grunge", "rock"], "radiohead": ["art rock"]}
    with patch("server.get_artists_genres", AsyncMock(return_value=rest)) as mock_genres:
        body = loaded.get("/api/library/groups", params={"mode": "genre"}).json()

    mock_genres.assert_awaited_once_with("tok", ["nirvana", "radiohead"])
    assert [(g["name"], g["count"]) for g in body["groups"]] == [("Rock", 3), ("Jazz", 1)]


def test_duplicates_and_exclusions(loaded):
    body = loaded.get("/api/library/duplicates").json()
    assert body["redundant"] == 1
    assert body["groups"][0]["key"] == ["creep", "radiohead"]

    toggled = loaded.post("/api/library/exclusions/t3").json()
    assert toggled == {"trackId": "t3", "excluded": True, "excludedCount": 1}
    assert loaded.get("/api/library/duplicates").json()["excluded"] == ["t3"]

    search = loaded.get("/api/library/search", params={"q": "creep"}).json()
    assert [t["id"] for t in search["tracks"]] == ["t2"]

    assert loaded.delete("/api/library/exclusions").json() == {"excludedCount": 0}
    search = loaded.get("/api/library/search", params={"q": "creep"}).json()
    assert search["count"] == 2


def test_suggestion(loaded):
    body = loaded.get("/api/library/suggestion", params={"mode": "decade", "group": "1990's"}).json()
    assert body["name"].startswith("📼 1990's Collection (")
    assert body["description"].startswith("This playlist contains 2 1990's highlights.")

    missing = loaded.get("/api/library/suggestion", params={"mode": "decade", "group": "1970's"})
    assert missing.status_code == 404


def test_merge_suggestion(loaded):
    body = loaded.get("/api/library/merge-suggestion", params=[("groups", "Rock"), ("groups", "Jazz")]).json()
    assert body == {"name": "🎵 Rock + Jazz Mix", "description": "Merged playlist: Rock, Jazz"}


def test_publish_group_then_conflict(loaded):
    patcher, create = _creator_returning(RemotePlaylist("p1", "Nineties", "http://pl/p1"))
    with patcher:
        resp = loaded.post("/api/library/playlist", json={"mode": "decade", "group": "1990's", "name": "Nineties"})
        again = loaded.post("/api/library/playlist", json={"mode": "decade", "group": "1990's"})

    assert resp.status_code == 200
    assert resp.json()["playlist"]["playlist_id"] == "p1"
    create.assert_awaited_once()
    assert again.status_code == 409

    groups = loaded.get("/api/library/groups", params={"mode": "decade"}).json()["groups"]
    nineties = next(g for g in groups if g["name"] == "1990's")
    assert nineties["published"] is True
    assert nineties["url"] == "http://pl/p1"


def test_publish_failure_is_bad_gateway(loaded):
    patcher, _ = _creator_returning(RuntimeError("spotify down"))
    with patcher:
        resp = loaded.post("/api/library/playlist", json={"mode": "decade", "group": "1990's"})
    assert resp.status_code == 502

    groups = loaded.get("/api/library/groups", params={"mode": "decade"}).json()["groups"]
    assert all(g["state"] == "unpublished" for g in groups)


def test_publish_blank_name_is_bad_request(loaded):
    resp = loaded.post("/api/library/playlist", json={"mode": "decade", "group": "1990's", "name": " "})
    assert resp.status_code == 400


def test_bulk_create(loaded):
    patcher, create = _creator_returning(
        RemotePlaylist("p1", "a"),
        RuntimeError("boom"),
        RemotePlaylist("p3", "c"),
    )
    with patcher:
        body = loaded.post("/api/library/bulk-create", json={"mode": "decade"}).json()

    assert body["created"] == 2
    assert body["failed"] == 1
    assert [o["group_name"] for o in body["outcomes"]] == ["2000's", "1990's", "1950's"]
    assert body["outcomes"][1]["ok"] is False
    assert create.await_count == 3


def test_merge(loaded):
    patcher, create = _creator_returning(RemotePlaylist("m1", "🎵 2000's + 1950's Mix"))
    with patcher:
        resp = loaded.post("/api/library/merge", json={"mode": "decade", "groups": ["2000's", "1950's"]})

    assert resp.status_code == 200
    assert resp.json()["playlist"]["group_name"] == "Merged: 2000's+1950's"
    name, description, uris = create.await_args.args
    assert name == "🎵 2000's + 1950's Mix"
    assert uris == ["spotify:track:t3", "spotify:track:t4"]


def test_merge_without_groups_is_bad_request(loaded):
    resp = loaded.post("/api/library/merge", json={"mode": "decade", "groups": []})
    assert resp.status_code == 400


def test_raw_playlist_route(authed):
    remote = RemotePlaylist("p1", "Mine", "http://pl/p1")
    with patch("server.create_playlist", AsyncMock(return_value=remote)) as mock_create:
        resp = authed.post("/api/playlists", json={"name": "Mine", "trackUris": ["spotify:track:1"]})

    assert resp.json() == {"success": True, "playlist": {"id": "p1", "name": "Mine", "url": "http://pl/p1"}}
    mock_create.assert_awaited_once_with("tok", "user1", "Mine", ["spotify:track:1"], None)
    assert authed.post("/api/playlists", json={"name": "", "trackUris": []}).status_code == 400


def test_credentials_lifecycle(client):
    assert client.get("/api/auth/check-credentials").json() == {"hasCredentials": False, "clientId": None}
    assert client.post("/api/auth/save-credentials", json={"clientId": "cid"}).status_code == 400

    resp = client.post("/api/auth/save-credentials", json={"clientId": "cid", "clientSecret": "secret"})
    assert resp.json() == {"success": True}

    assert client.get("/api/auth/check-credentials").json() == {"hasCredentials": True, "clientId": "cid"}
    assert client.get("/api/auth/reset").json()["status"][cookies.CREDENTIALS_COOKIE] is True

    cleared = client.post("/api/auth/clear-credentials")
    assert cleared.json() == {"success": True}
    assert "spotify_credentials=" in cleared.headers["set-cookie"]


def test_test_credentials(client):
    ok = AsyncMock(return_value={"token_type": "Bearer", "expires_in": 3600})
    with patch("server.verify_credentials", ok):
        resp = client.post("/api/auth/test-credentials", json={"clientId": "cid", "clientSecret": "secret"})
    assert resp.json() == {"success": True, "tokenType": "Bearer", "expiresIn": 3600}
    ok.assert_awaited_once_with(SpotifyCredentials("cid", "secret"))

    bad = AsyncMock(side_effect=SpotifyAuthError("bad", 400, {"error": "invalid_client"}))
    with patch("server.verify_credentials", bad):
        resp = client.post("/api/auth/test-credentials", json={"clientId": "cid", "clientSecret": "nope"})
    assert resp.status_code == 401

    assert client.post("/api/auth/test-credentials").status_code == 400


def test_test_credentials_with_non_object_error_body(client):
    odd = AsyncMock(side_effect=SpotifyAuthError("bad", 503, ["unavailable"]))
    with patch("server.verify_credentials", odd):
        resp = client.post("/api/auth/test-credentials", json={"clientId": "cid", "clientSecret": "secret"})
    assert resp.status_code == 503
    assert resp.json()["detail"] == "Connection failed: unknown error"


def test_merge_route_counts_repeated_group_once(loaded):
    patcher, create = _creator_returning(RemotePlaylist("m1", "Nineties"))
    with patcher:
        resp = loaded.post("/api/library/merge", json={"mode": "decade", "groups": ["1990's", "1990's"]})

    assert resp.json()["playlist"]["group_name"] == "Merged: 1990's"
    name, _, uris = create.await_args.args
    assert name == "🎵 1990's Mix"
    assert uris == ["spotify:track:t1", "spotify:track:t2"]


def test_login_without_credentials_redirects_to_settings(client):
    resp = client.get("/api/spotify/login", follow_redirects=False)
    assert resp.status_code == 307
    assert resp.headers["location"] == f"{config.FRONTEND_URL}/settings"


def test_login_redirects_to_spotify(client):
    client.cookies.set(
        cookies.CREDENTIALS_COOKIE,
        cookies.create_credentials_cookie(SpotifyCredentials("cid", "secret")),
    )
    resp = client.get("/api/spotify/login", follow_redirects=False)
    assert resp.headers["location"].startswith("https://accounts.spotify.com/authorize?client_id=cid")


def test_callback_rejects_unknown_state(client):
    resp = client.get("/api/spotify/callback", params={"code": "c", "state": "forged"}, follow_redirects=False)
    assert resp.headers["location"] == f"{config.FRONTEND_URL}/?error=invalid_state"


def test_reset_drops_library(loaded):
    loaded.post("/api/library/exclusions/t1")
    resp = loaded.post("/api/auth/reset")
    assert resp.json()["success"] is True

    # The session was dropped server-side; a fresh one has no tracks.
    assert server.get_session(USER.id).tracks == []
