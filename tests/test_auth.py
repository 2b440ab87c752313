"""
Tests for authentication endpoints.
"""
from albumhq.auth import create_access_token, create_tokens
from albumhq.models.user import User
from albumhq.schemas.auth import password_policy_errors

TEST_PASSWORD = "Correct-Horse-42"

NEW_PASSWORD = "Brand-New-Secret-7"


class TestAuthEndpoints:
    """Test auth endpoints."""

    def test_login_success(self, client, test_user):
        """Test successful login."""
        response = client.post(
            "/api/auth/login/json",
            json={"username": "alice", "password": TEST_PASSWORD},
        )
        assert response.status_code == 200
        data = response.json()
        assert "access_token" in data
        assert "refresh_token" in data
        assert data["token_type"] == "bearer"

    def test_login_username_is_case_insensitive(self, client, test_user):
        response = client.post(
            "/api/auth/login/json",
            json={"username": "  ALICE ", "password": TEST_PASSWORD},
        )
        assert response.status_code == 200

    def test_login_form(self, client, test_user):
        """Test OAuth2 form login."""
        response = client.post(
            "/api/auth/login",
            data={"username": "alice", "password": TEST_PASSWORD},
        )
        assert response.status_code == 200
        assert "access_token" in response.json()

    def test_login_wrong_password(self, client, test_user):
        """Test login with wrong password fails."""
        response = client.post(
            "/api/auth/login/json",
            json={"username": "alice", "password": "wrongpassword"},
        )
        assert response.status_code == 401

    def test_login_nonexistent_user(self, client):
        """Test login with non-existent user fails."""
        response = client.post(
            "/api/auth/login/json",
            json={"username": "nobody", "password": "anypassword"},
        )
        assert response.status_code == 401

    def test_login_inactive_user(self, client, db, test_user):
        test_user.is_active = False
        db.commit()

        response = client.post(
            "/api/auth/login/json",
            json={"username": "alice", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401

    def test_get_current_user(self, client, test_user):
        """Test getting current user info."""
        login_response = client.post(
            "/api/auth/login/json",
            json={"username": "alice", "password": TEST_PASSWORD},
        )
        token = login_response.json()["access_token"]

        response = client.get(
            "/api/auth/me",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "alice"
        assert data["id"] == test_user.id
        assert data["role"] == "USER"

    def test_get_current_user_unauthenticated(self, client):
        """Test getting current user without auth fails."""
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_refresh_token(self, client, test_user):
        """Test token refresh."""
        login_response = client.post(
            "/api/auth/login/json",
            json={"username": "alice", "password": TEST_PASSWORD},
        )
        refresh_token = login_response.json()["refresh_token"]

        response = client.post(
            "/api/auth/refresh",
            json={"refresh_token": refresh_token},
        )
        assert response.status_code == 200
        data = response.json()
        assert "access_token" in data
        assert "refresh_token" in data

    def test_access_token_cannot_refresh(self, client, test_user):
        access_token, _ = create_tokens(test_user)
        response = client.post("/api/auth/refresh", json={"refresh_token": access_token})
        assert response.status_code == 401


class TestSessionVersion:
    """Tokens are revoked by bumping the user's session_version."""

    def test_token_without_matching_version_is_rejected(self, client, test_user):
        stale = create_access_token({"sub": str(test_user.id), "sv": test_user.session_version + 1})
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {stale}"})
        assert response.status_code == 401

    def test_logout_revokes_existing_tokens(self, client, test_user, auth_headers):
        response = client.post("/api/auth/logout", headers=auth_headers)
        assert response.status_code == 200

        response = client.get("/api/auth/me", headers=auth_headers)
        assert response.status_code == 401

    def test_logout_revokes_refresh_tokens(self, client, test_user, auth_headers):
        _, refresh_token = create_tokens(test_user)
        client.post("/api/auth/logout", headers=auth_headers)

        response = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert response.status_code == 401


class TestPasswordChange:
    """Test POST /api/auth/password."""

    def _change(self, client, headers, current=TEST_PASSWORD, new=NEW_PASSWORD, confirm=None):
        return client.post(
            "/api/auth/password",
            json={
                "current_password": current,
                "new_password": new,
                "confirm_password": new if confirm is None else confirm,
            },
            headers=headers,
        )

    def test_change_password_returns_fresh_tokens(self, client, db, test_user, auth_headers):
        response = self._change(client, auth_headers)
        assert response.status_code == 200
        new_token = response.json()["access_token"]

        # Old token is dead, new one works
        assert client.get("/api/auth/me", headers=auth_headers).status_code == 401
        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {new_token}"})
        assert me.status_code == 200

        db.refresh(test_user)
        assert test_user.session_version == 1

        login = client.post("/api/auth/login/json", json={"username": "alice", "password": NEW_PASSWORD})
        assert login.status_code == 200

    def test_wrong_current_password(self, client, test_user, auth_headers):
        response = self._change(client, auth_headers, current="not-it")
        assert response.status_code == 400
        assert "Current password" in response.json()["detail"]

    def test_confirmation_mismatch(self, client, test_user, auth_headers):
        response = self._change(client, auth_headers, confirm="Something-Else-9")
        assert response.status_code == 400
        assert "do not match" in response.json()["detail"]

    def test_weak_password_rejected(self, client, test_user, auth_headers):
        response = self._change(client, auth_headers, new="short")
        assert response.status_code == 400

    def test_same_password_rejected(self, client, test_user, auth_headers):
        response = self._change(client, auth_headers, new=TEST_PASSWORD)
        assert response.status_code == 400
        assert "differ" in response.json()["detail"]

    def test_requires_auth(self, client):
        response = self._change(client, {})
        assert response.status_code == 401


class TestPasswordPolicy:
    def test_strong_password_passes(self):
        assert password_policy_errors("Correct-Horse-42") == []

    def test_each_rule_is_reported(self):
        assert len(password_policy_errors("a")) == 4  # length, upper, digit, special
        assert any("uppercase" in e for e in password_policy_errors("correct-horse-42"))
        assert any("lowercase" in e for e in password_policy_errors("CORRECT-HORSE-42"))
        assert any("digit" in e for e in password_policy_errors("Correct-Horse-xx"))
        assert any("special" in e for e in password_policy_errors("CorrectHorse42x"))


class TestLoginLockout:
    """Failed logins lock the username for a while."""

    def _attempt(self, client, password, ip="10.0.0.1"):
        return client.post(
            "/api/auth/login/json",
            json={"username": "alice", "password": password},
            headers={"X-Forwarded-For": ip},
        )

    def test_three_failures_block_login(self, client, test_user):
        for _ in range(3):
            assert self._attempt(client, "wrong").status_code == 401

        response = self._attempt(client, TEST_PASSWORD)
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0

    def test_block_applies_from_other_ips(self, client, test_user):
        for _ in range(3):
            self._attempt(client, "wrong", ip="10.0.0.1")

        response = self._attempt(client, TEST_PASSWORD, ip="10.0.0.99")
        assert response.status_code == 429

    def test_success_clears_failures(self, client, test_user):
        for _ in range(2):
            self._attempt(client, "wrong")
        assert self._attempt(client, TEST_PASSWORD).status_code == 200

        for _ in range(2):
            self._attempt(client, "wrong")
        assert self._attempt(client, TEST_PASSWORD).status_code == 200


class TestUsers:
    """Test /api/users."""

    def test_list_users(self, client, test_user, other_user, auth_headers):
        response = client.get("/api/users", headers=auth_headers)
        assert response.status_code == 200
        usernames = [u["username"] for u in response.json()]
        assert usernames == ["alice", "bob"]
        assert "hashed_password" not in response.json()[0]

    def test_list_users_requires_auth(self, client):
        assert client.get("/api/users").status_code == 401

    def test_admin_creates_user(self, client, db, admin_headers):
        response = client.post(
            "/api/users",
            json={"username": "Carol", "password": NEW_PASSWORD, "display_name": "Carol"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["username"] == "carol"
        assert db.query(User).filter(User.username == "carol").count() == 1

    def test_duplicate_username_rejected(self, client, test_user, admin_headers):
        response = client.post(
            "/api/users",
            json={"username": "ALICE", "password": NEW_PASSWORD},
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_non_admin_cannot_create_user(self, client, test_user, auth_headers):
        response = client.post(
            "/api/users",
            json={"username": "dave", "password": NEW_PASSWORD},
            headers=auth_headers,
        )
        assert response.status_code == 403
