"""
API endpoint tests for tunebox.

Exercises the REST surface end to end through TestClient, with a temporary
database and upload directory.
"""

import os

import pytest
from fastapi.testclient import TestClient

from tunebox.client import LibraryClient
from tunebox.config_manager import ConfigManager
from tunebox.database import new_id
from tunebox.library import LibraryManager
from tunebox.storage import FileStorage
from tunebox.user import UserManager
from tunebox.web.server import create_app

# Test user IDs
ALICE_ID = "alice-uuid-1234"
BOB_ID = "bob-uuid-5678"

ALICE = {"X-User-Id": ALICE_ID}
BOB = {"X-User-Id": BOB_ID}


@pytest.fixture
def app_components(temp_db, upload_dir):
    """Create all app components against temporary storage."""
    config_manager = ConfigManager(temp_db)
    config_manager.set("upload_directory", upload_dir)

    user_manager = UserManager(temp_db)
    file_storage = FileStorage(config_manager)
    library_manager = LibraryManager(temp_db, file_storage)

    return {
        "config": config_manager,
        "user": user_manager,
        "storage": file_storage,
        "library": library_manager,
    }


@pytest.fixture
def client(app_components):
    """Create a TestClient with both test users registered."""
    app = create_app(
        app_components["library"],
        app_components["config"],
        app_components["user"],
        app_components["storage"],
    )
    client = TestClient(app)
    client.post("/api/users", json={"user_id": ALICE_ID, "display_name": "Alice"})
    client.post("/api/users", json={"user_id": BOB_ID, "display_name": "Bob"})
    return client


def upload(client, headers=ALICE, content=b"ID3 audio", filename="track.mp3", **form):
    return client.post(
        "/api/songs/upload",
        headers=headers,
        files={"song": (filename, content, "audio/mpeg")},
        data=form,
    )


def upload_song(client, headers=ALICE, **form):
    response = upload(client, headers=headers, **form)
    assert response.status_code == 201
    return response.json()["song"]


def create_playlist(client, name="Mix", headers=ALICE):
    response = client.post("/api/playlists", headers=headers, json={"name": name})
    assert response.status_code == 201
    return response.json()


# =============================================================================
# Identity
# =============================================================================


class TestIdentity:
    """Caller identity handling."""

    def test_register_user(self, client):
        response = client.post("/api/users", json={"user_id": "carol-1", "display_name": "Carol"})
        assert response.status_code == 200
        assert response.json()["display_name"] == "Carol"

    def test_missing_identity(self, client):
        response = client.get("/api/songs")
        assert response.status_code == 401
        assert "message" in response.json()

    def test_unknown_identity(self, client):
        response = client.get("/api/songs", headers={"X-User-Id": "stranger"})
        assert response.status_code == 401


# =============================================================================
# Songs
# =============================================================================


class TestSongs:
    """Song upload, listing, update and delete."""

    def test_upload(self, client, upload_dir):
        response = upload(client, title="Hello", artist="Adele")

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Song uploaded successfully"
        song = body["song"]
        assert song["title"] == "Hello"
        assert song["artist"] == "Adele"
        assert song["user_id"] == ALICE_ID
        assert os.path.basename(song["file_path"]) in os.listdir(upload_dir)

    def test_upload_defaults(self, client):
        song = upload_song(client, filename="b-side.mp3")
        assert song["title"] == "b-side.mp3"
        assert song["artist"] == "Unknown Artist"

    def test_upload_rejects_unsupported_type(self, client, upload_dir):
        response = upload(client, filename="notes.txt")
        assert response.status_code == 400
        assert "message" in response.json()
        assert os.listdir(upload_dir) == []

    def test_upload_rejects_empty_file(self, client):
        response = upload(client, content=b"")
        assert response.status_code == 400

    def test_uploaded_bytes_are_served(self, client):
        song = upload_song(client, content=b"0123456789")

        response = client.get(f"/{song['file_path']}")
        assert response.status_code == 200
        assert response.content == b"0123456789"

    def test_range_request(self, client):
        song = upload_song(client, content=b"0123456789")

        response = client.get(f"/{song['file_path']}", headers={"Range": "bytes=2-5"})
        assert response.status_code == 206
        assert response.content == b"2345"

    def test_list_is_unscoped(self, client):
        mine = upload_song(client, title="Mine")
        theirs = upload_song(client, headers=BOB, title="Theirs")

        response = client.get("/api/songs", headers=BOB)
        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [mine["id"], theirs["id"]]

    def test_update(self, client):
        song = upload_song(client, title="Old", artist="Band")

        response = client.put(f"/api/songs/{song['id']}", headers=ALICE, json={"title": " New "})
        assert response.status_code == 200
        updated = response.json()["song"]
        assert updated["title"] == "New"
        assert updated["artist"] == "Band"

    def test_update_by_other_user(self, client):
        song = upload_song(client, title="Mine")

        response = client.put(f"/api/songs/{song['id']}", headers=BOB, json={"title": "Stolen"})
        assert response.status_code == 403

        songs = client.get("/api/songs", headers=ALICE).json()
        assert songs[0]["title"] == "Mine"

    def test_update_missing(self, client):
        response = client.put(f"/api/songs/{new_id()}", headers=ALICE, json={"title": "x"})
        assert response.status_code == 404

    def test_delete_cascades(self, client, upload_dir):
        song = upload_song(client)
        playlist = create_playlist(client, headers=BOB)
        client.post(f"/api/playlists/{playlist['id']}/songs", headers=BOB, json={"songId": song["id"]})
        client.post("/api/favorites", headers=BOB, json={"songId": song["id"]})

        response = client.delete(f"/api/songs/{song['id']}", headers=ALICE)
        assert response.status_code == 200

        assert client.get("/api/songs", headers=ALICE).json() == []
        assert client.get("/api/favorites", headers=BOB).json() == []
        playlists = client.get("/api/playlists", headers=BOB).json()
        assert playlists[0]["song_ids"] == []
        assert playlists[0]["songs"] == []
        assert os.listdir(upload_dir) == []

    def test_delete_by_other_user(self, client):
        song = upload_song(client)

        response = client.delete(f"/api/songs/{song['id']}", headers=BOB)
        assert response.status_code == 403
        assert len(client.get("/api/songs", headers=ALICE).json()) == 1

    def test_delete_missing(self, client):
        response = client.delete(f"/api/songs/{new_id()}", headers=ALICE)
        assert response.status_code == 404


# =============================================================================
# Playlists
# =============================================================================


class TestPlaylists:
    """Playlist CRUD and membership."""

    def test_create_and_list(self, client):
        playlist = create_playlist(client, name="  Road Trip ")
        assert playlist["name"] == "Road Trip"
        assert playlist["song_ids"] == []

        assert [p["id"] for p in client.get("/api/playlists", headers=ALICE).json()] == [playlist["id"]]
        assert client.get("/api/playlists", headers=BOB).json() == []

    def test_create_requires_name(self, client):
        response = client.post("/api/playlists", headers=ALICE, json={"name": "  "})
        assert response.status_code == 400

    def test_add_song_expands_on_list(self, client):
        song = upload_song(client, title="One")
        playlist = create_playlist(client)

        response = client.post(
            f"/api/playlists/{playlist['id']}/songs", headers=ALICE, json={"songId": song["id"]}
        )
        assert response.status_code == 200
        assert response.json()["song_ids"] == [song["id"]]

        listed = client.get("/api/playlists", headers=ALICE).json()[0]
        assert [s["title"] for s in listed["songs"]] == ["One"]

    def test_add_duplicate(self, client):
        song = upload_song(client)
        playlist = create_playlist(client)
        url = f"/api/playlists/{playlist['id']}/songs"

        client.post(url, headers=ALICE, json={"songId": song["id"]})
        response = client.post(url, headers=ALICE, json={"songId": song["id"]})

        assert response.status_code == 409
        assert client.get("/api/playlists", headers=ALICE).json()[0]["song_ids"] == [song["id"]]

    def test_add_to_other_users_playlist(self, client):
        song = upload_song(client)
        playlist = create_playlist(client)

        response = client.post(
            f"/api/playlists/{playlist['id']}/songs", headers=BOB, json={"songId": song["id"]}
        )
        assert response.status_code == 403

    def test_add_missing_song_id(self, client):
        playlist = create_playlist(client)
        response = client.post(f"/api/playlists/{playlist['id']}/songs", headers=ALICE, json={})
        assert response.status_code == 400

    def test_remove_song(self, client):
        song = upload_song(client)
        playlist = create_playlist(client)
        client.post(f"/api/playlists/{playlist['id']}/songs", headers=ALICE, json={"songId": song["id"]})

        url = f"/api/playlists/{playlist['id']}/songs/{song['id']}"
        response = client.delete(url, headers=ALICE)
        assert response.status_code == 200
        assert response.json()["song_ids"] == []

        assert client.delete(url, headers=ALICE).status_code == 404

    def test_delete_playlist(self, client):
        song = upload_song(client)
        playlist = create_playlist(client)
        client.post(f"/api/playlists/{playlist['id']}/songs", headers=ALICE, json={"songId": song["id"]})

        assert client.delete(f"/api/playlists/{playlist['id']}", headers=BOB).status_code == 403
        assert client.delete(f"/api/playlists/{playlist['id']}", headers=ALICE).status_code == 200
        assert client.get("/api/playlists", headers=ALICE).json() == []
        assert len(client.get("/api/songs", headers=ALICE).json()) == 1

    def test_delete_missing_playlist(self, client):
        assert client.delete(f"/api/playlists/{new_id()}", headers=ALICE).status_code == 404


# =============================================================================
# Favorites
# =============================================================================


class TestFavorites:
    """Favorite add, list and remove."""

    def test_add_and_list(self, client):
        song = upload_song(client)

        response = client.post("/api/favorites", headers=BOB, json={"songId": song["id"]})
        assert response.status_code == 201
        assert response.json()["status"] == "active"

        assert [s["id"] for s in client.get("/api/favorites", headers=BOB).json()] == [song["id"]]
        assert client.get("/api/favorites", headers=ALICE).json() == []

    def test_add_duplicate(self, client):
        song = upload_song(client)
        client.post("/api/favorites", headers=ALICE, json={"songId": song["id"]})

        response = client.post("/api/favorites", headers=ALICE, json={"songId": song["id"]})
        assert response.status_code == 409

    def test_add_invalid(self, client):
        assert client.post("/api/favorites", headers=ALICE, json={"songId": "bad"}).status_code == 400
        assert client.post("/api/favorites", headers=ALICE, json={}).status_code == 400
        assert (
            client.post("/api/favorites", headers=ALICE, json={"songId": new_id()}).status_code
            == 404
        )

    def test_remove_by_query(self, client):
        song = upload_song(client)
        client.post("/api/favorites", headers=ALICE, json={"songId": song["id"]})

        response = client.delete("/api/favorites", headers=ALICE, params={"songId": song["id"]})
        assert response.status_code == 200
        assert client.get("/api/favorites", headers=ALICE).json() == []

    def test_remove_by_body(self, client):
        song = upload_song(client)
        client.post("/api/favorites", headers=ALICE, json={"songId": song["id"]})

        response = client.request("DELETE", "/api/favorites", headers=ALICE, json={"songId": song["id"]})
        assert response.status_code == 200
        assert client.get("/api/favorites", headers=ALICE).json() == []

    def test_remove_not_favorited(self, client):
        song = upload_song(client)
        response = client.delete("/api/favorites", headers=ALICE, params={"songId": song["id"]})
        assert response.status_code == 404

    def test_remove_then_add_again(self, client):
        song = upload_song(client)
        client.post("/api/favorites", headers=ALICE, json={"songId": song["id"]})
        client.delete("/api/favorites", headers=ALICE, params={"songId": song["id"]})

        response = client.post("/api/favorites", headers=ALICE, json={"songId": song["id"]})
        assert response.status_code == 201
        assert len(client.get("/api/favorites", headers=ALICE).json()) == 1


# =============================================================================
# Config / errors
# =============================================================================


def test_get_config(client):
    response = client.get("/api/config")
    assert response.status_code == 200
    data = response.json()
    assert data["values"]["unknown_artist"] == "Unknown Artist"
    assert "upload_directory" in data["schema"]


class TestMalformedInput:
    """Bodies of the wrong shape are InvalidArgument errors."""

    def test_favorite_with_non_string_id(self, client):
        response = client.post("/api/favorites", headers=ALICE, json={"songId": 123})
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid songId")

    def test_playlist_member_with_non_string_id(self, client):
        playlist = create_playlist(client)
        response = client.post(
            f"/api/playlists/{playlist['id']}/songs", headers=ALICE, json={"songId": 123}
        )
        assert response.status_code == 400
        assert "message" in response.json()

    def test_playlist_name_not_a_string(self, client):
        response = client.post("/api/playlists", headers=ALICE, json={"name": ["Mix"]})
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid name")
        assert client.get("/api/playlists", headers=ALICE).json() == []

    def test_body_not_json(self, client):
        response = client.post(
            "/api/playlists",
            headers={**ALICE, "Content-Type": "application/json"},
            content=b"{not json",
        )
        assert response.status_code == 400
        assert "message" in response.json()

    def test_client_receives_message(self, client):
        library_client = LibraryClient(str(client.base_url), ALICE_ID, http=client)
        result = library_client.add_favorite(123)

        assert not result.ok
        assert result.status_code == 400
        assert result.message.startswith("Invalid songId")


def test_unexpected_error_is_500(client, app_components, monkeypatch):
    """Unexpected failures surface as a generic server error."""

    def explode():
        raise RuntimeError("database went away")

    monkeypatch.setattr(app_components["library"], "list_songs", explode)

    response = client.get("/api/songs", headers=ALICE)
    assert response.status_code == 500
    assert response.json() == {"message": "Server error"}
