"""
Tests for avatars, the login-screen profile list and presence pings.
"""
from albumhq.models.user import User

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _put_avatar(client, user_id, headers, filename="me.png", content=PNG_BYTES, content_type="image/png"):
    return client.put(
        f"/api/users/{user_id}/avatar",
        files={"file": (filename, content, content_type)},
        headers=headers,
    )


class TestAvatarUpload:
    """Test PUT /api/users/{id}/avatar."""

    def test_upload_own_avatar(self, client, db, test_user, auth_headers, upload_root):
        response = _put_avatar(client, test_user.id, auth_headers)
        assert response.status_code == 200
        assert "sig=" in response.json()["avatar_url"]

        db.refresh(test_user)
        assert test_user.avatar_path == f"avatars/{test_user.id}-avatar.png"
        assert (upload_root / test_user.avatar_path).read_bytes() == PNG_BYTES

    def test_replacing_removes_previous(self, client, test_user, auth_headers, upload_root):
        _put_avatar(client, test_user.id, auth_headers)
        _put_avatar(client, test_user.id, auth_headers, filename="me.jpg", content=b"\xff\xd8\xff", content_type="image/jpeg")
        assert [p.name for p in (upload_root / "avatars").iterdir()] == [f"{test_user.id}-avatar.jpg"]

    def test_cannot_change_someone_else(self, client, test_user, other_user, auth_headers):
        assert _put_avatar(client, other_user.id, auth_headers).status_code == 403

    def test_admin_can_change_anyone(self, client, db, other_user, admin_headers):
        assert _put_avatar(client, other_user.id, admin_headers).status_code == 200
        db.refresh(other_user)
        assert other_user.avatar_path

    def test_admin_unknown_user(self, client, admin_headers):
        assert _put_avatar(client, 9999, admin_headers).status_code == 404

    def test_must_be_image(self, client, test_user, auth_headers):
        response = _put_avatar(client, test_user.id, auth_headers, filename="clip.mp4", content=b"v", content_type="video/mp4")
        assert response.status_code == 400

    def test_size_limit(self, client, test_user, auth_headers, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "max_avatar_bytes", 10)
        response = _put_avatar(client, test_user.id, auth_headers, content=b"x" * 11)
        assert response.status_code == 413

    def test_requires_auth(self, client, test_user):
        assert _put_avatar(client, test_user.id, {}).status_code == 401


class TestAvatarDelivery:
    """Test GET/HEAD /api/users/{id}/avatar."""

    def test_signed_url(self, client, test_user, auth_headers):
        avatar_url = _put_avatar(client, test_user.id, auth_headers).json()["avatar_url"]
        response = client.get(avatar_url)
        assert response.status_code == 200
        assert response.content == PNG_BYTES
        assert response.headers["content-type"] == "image/png"

    def test_head(self, client, test_user, auth_headers):
        _put_avatar(client, test_user.id, auth_headers)
        response = client.head(f"/api/users/{test_user.id}/avatar", headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["content-length"] == str(len(PNG_BYTES))
        assert response.content == b""

    def test_unsigned_request_rejected(self, client, test_user, auth_headers):
        _put_avatar(client, test_user.id, auth_headers)
        assert client.get(f"/api/users/{test_user.id}/avatar").status_code == 401

    def test_no_avatar(self, client, test_user, auth_headers):
        assert client.get(f"/api/users/{test_user.id}/avatar", headers=auth_headers).status_code == 404

    def test_file_missing_on_disk(self, client, test_user, auth_headers, upload_root):
        _put_avatar(client, test_user.id, auth_headers)
        (upload_root / "avatars" / f"{test_user.id}-avatar.png").unlink()
        assert client.get(f"/api/users/{test_user.id}/avatar", headers=auth_headers).status_code == 404


class TestProfiles:
    """Test GET /api/profiles."""

    def test_public_list(self, client, db, test_user, other_user, auth_headers):
        _put_avatar(client, test_user.id, auth_headers)
        db.add(User(username="ghost", hashed_password="x", display_name="Ghost", is_active=False))
        db.commit()

        response = client.get("/api/profiles")
        assert response.status_code == 200
        profiles = response.json()
        assert [p["username"] for p in profiles] == ["alice", "bob"]

        alice, bob = profiles
        assert alice["display_name"] == "Alice"
        assert not alice["is_placeholder"]
        assert client.get(alice["avatar_url"]).content == PNG_BYTES
        assert bob["is_placeholder"]
        assert bob["avatar_url"] is None
        assert "hashed_password" not in alice

    def test_missing_file_is_placeholder(self, client, db, test_user):
        test_user.avatar_path = "avatars/gone.png"
        db.commit()
        [profile] = client.get("/api/profiles").json()
        assert profile["is_placeholder"]
        assert profile["avatar_url"] is None


class TestPresence:
    """Test POST /api/presence."""

    def test_updates_last_seen(self, client, db, test_user, auth_headers):
        assert test_user.last_seen_at is None
        response = client.post("/api/presence", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["last_seen_at"].endswith("Z")

        db.refresh(test_user)
        assert test_user.last_seen_at is not None

        listed = client.get("/api/users", headers=auth_headers).json()
        assert listed[0]["last_seen_at"] is not None

    def test_requires_auth(self, client):
        assert client.post("/api/presence").status_code == 401
