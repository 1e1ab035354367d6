"""Tests for user administration endpoints."""

from conftest import DEFAULT_PASSWORD
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from gatekeeper.models.user import Role, User
from gatekeeper.repositories.sessions import SessionRepository
from gatekeeper.repositories.users import UserRepository
from gatekeeper.services.passwords import verify_password
from gatekeeper.services.sessions import SessionManager

NEW_USER = {
    "email": "New.Reviewer@Example.com",
    "name": "New Reviewer",
    "password": "An0ther!Passw0rd",
    "role": "reviewer",
}


class TestCreateUser:
    """Tests for POST /api/auth/users."""

    def test_admin_creates_user(self, client: TestClient, make_user, login, db_session: Session):
        login(make_user())
        response = client.post("/api/auth/users", json=NEW_USER)
        assert response.status_code == 201
        data = response.json()
        assert data["user"]["email"] == "new.reviewer@example.com"
        assert data["user"]["role"] == "reviewer"
        assert data["user"]["isActive"] is True
        assert "otpauthUrl" not in data

        db_session.expire_all()
        stored = UserRepository(db_session).get_by_email("new.reviewer@example.com")
        assert stored.password_hash != NEW_USER["password"]
        assert verify_password(NEW_USER["password"], stored.password_hash)

    def test_created_user_can_login(self, client: TestClient, make_user, login):
        login(make_user())
        client.post("/api/auth/users", json=NEW_USER)
        client.post("/api/auth/logout")
        response = client.post(
            "/api/auth/login", json={"email": "new.reviewer@example.com", "password": NEW_USER["password"]}
        )
        assert response.status_code == 200

    def test_two_factor_enrollment(self, client: TestClient, make_user, login):
        """Enrolling returns the otpauth URL once, never the raw secret field."""
        login(make_user())
        response = client.post("/api/auth/users", json={**NEW_USER, "twoFactorEnabled": True})
        assert response.status_code == 201
        data = response.json()
        assert data["otpauthUrl"].startswith("otpauth://totp/")
        assert data["user"]["twoFactorEnabled"] is True
        assert "two_factor_secret" not in data["user"]

    def test_weak_password(self, client: TestClient, make_user, login):
        login(make_user())
        response = client.post("/api/auth/users", json={**NEW_USER, "password": "weakpass"})
        assert response.status_code == 400
        assert "uppercase letter" in response.json()["error"]

    def test_duplicate_email(self, client: TestClient, make_user, login):
        login(make_user())
        make_user(email="new.reviewer@example.com")
        response = client.post("/api/auth/users", json=NEW_USER)
        assert response.status_code == 409
        assert response.json()["error"] == "User with this email already exists"

    def test_missing_fields(self, client: TestClient, make_user, login):
        login(make_user())
        response = client.post("/api/auth/users", json={"email": "x@example.com"})
        assert response.status_code == 400
        assert response.json()["error"] == "All fields are required"

    def test_invalid_role(self, client: TestClient, make_user, login):
        login(make_user())
        response = client.post("/api/auth/users", json={**NEW_USER, "role": "owner"})
        assert response.status_code == 400

    def test_only_super_admin_grants_super_admin(self, client: TestClient, make_user, login):
        login(make_user())
        response = client.post("/api/auth/users", json={**NEW_USER, "role": "super_admin"})
        assert response.status_code == 403

    def test_super_admin_grants_super_admin(self, client: TestClient, make_user, login):
        login(make_user(role=Role.SUPER_ADMIN))
        response = client.post("/api/auth/users", json={**NEW_USER, "role": "super_admin"})
        assert response.status_code == 201

    def test_manager_cannot_create(self, client: TestClient, make_user, login):
        """Managers pass the gate for user pages but lack the create permission."""
        login(make_user(role=Role.MANAGER))
        response = client.post("/api/auth/users", json=NEW_USER)
        assert response.status_code == 403
        assert response.json()["error"] == "Insufficient permissions"


class TestListUsers:
    """Tests for GET /api/auth/users."""

    def test_manager_lists_users(self, client: TestClient, make_user, login):
        make_user(email="a@example.com", role=Role.REVIEWER)
        login(make_user(role=Role.MANAGER))
        response = client.get("/api/auth/users")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {item["email"] for item in data["items"]} == {"a@example.com", "admin@example.com"}

    def test_reviewer_is_forbidden(self, client: TestClient, make_user, login):
        login(make_user(role=Role.REVIEWER))
        assert client.get("/api/auth/users").status_code == 403

    def test_anonymous_is_401(self, client: TestClient):
        assert client.get("/api/auth/users").status_code == 401


class TestUpdateUser:
    """Tests for PATCH /api/auth/users/{id}."""

    def test_update_name_and_role(self, client: TestClient, make_user, login):
        login(make_user())
        target = make_user(email="target@example.com", role=Role.REVIEWER)
        response = client.patch(f"/api/auth/users/{target.id}", json={"name": "Renamed", "role": "manager"})
        assert response.status_code == 200
        assert response.json()["user"]["name"] == "Renamed"
        assert response.json()["user"]["role"] == "manager"

    def test_password_change_revokes_sessions(
        self, client: TestClient, make_user, login, db_session: Session, settings, clock
    ):
        login(make_user())
        target = make_user(email="target@example.com", role=Role.REVIEWER)
        sessions = SessionManager.from_settings(
            SessionRepository(db_session), UserRepository(db_session), settings, clock=clock
        )
        token = sessions.create_session(target.id).token

        response = client.patch(f"/api/auth/users/{target.id}", json={"password": "N3w!Password"})
        assert response.status_code == 200
        db_session.expire_all()
        assert sessions.get_session(token) is None

    def test_weak_new_password(self, client: TestClient, make_user, login):
        login(make_user())
        target = make_user(email="target@example.com")
        response = client.patch(f"/api/auth/users/{target.id}", json={"password": "short"})
        assert response.status_code == 400

    def test_cannot_deactivate_self(self, client: TestClient, make_user, login):
        admin = make_user()
        login(admin)
        response = client.patch(f"/api/auth/users/{admin.id}", json={"isActive": False})
        assert response.status_code == 400

    def test_unknown_user(self, client: TestClient, make_user, login):
        login(make_user())
        response = client.patch("/api/auth/users/9999", json={"name": "Nobody"})
        assert response.status_code == 404
        assert response.json()["error"] == "User not found"


class TestDeactivateUser:
    """Tests for DELETE /api/auth/users/{id}."""

    def test_deactivation_ends_sessions_and_logins(
        self, client: TestClient, make_user, login, db_session: Session, settings, clock
    ):
        """A deactivated user is signed out everywhere and cannot sign in again."""
        login(make_user())
        target = make_user(email="target@example.com", role=Role.REVIEWER)
        sessions = SessionManager.from_settings(
            SessionRepository(db_session), UserRepository(db_session), settings, clock=clock
        )
        token = sessions.create_session(target.id).token

        response = client.delete(f"/api/auth/users/{target.id}")
        assert response.status_code == 200
        assert response.json() == {"success": True}

        db_session.expire_all()
        assert db_session.get(User, target.id).is_active is False
        assert sessions.get_session(token) is None

        client.post("/api/auth/logout")
        response = client.post("/api/auth/login", json={"email": "target@example.com", "password": DEFAULT_PASSWORD})
        assert response.status_code == 401

    def test_cannot_delete_self(self, client: TestClient, make_user, login):
        admin = make_user()
        login(admin)
        response = client.delete(f"/api/auth/users/{admin.id}")
        assert response.status_code == 400
        assert response.json()["error"] == "Cannot delete your own account"


class TestTwoFactorQr:
    """Tests for GET /api/auth/users/{id}/2fa-qr."""

    def test_qr_for_enrolled_user(self, client: TestClient, make_user, login):
        login(make_user())
        target = make_user(email="target@example.com", two_factor=True)
        response = client.get(f"/api/auth/users/{target.id}/2fa-qr")
        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "target@example.com"
        assert data["qrCode"].startswith("data:image/png;base64,")
        assert target.two_factor_secret in data["otpauthUrl"]

    def test_qr_without_enrollment(self, client: TestClient, make_user, login):
        login(make_user())
        target = make_user(email="target@example.com")
        response = client.get(f"/api/auth/users/{target.id}/2fa-qr")
        assert response.status_code == 400
        assert response.json()["error"] == "2FA is not enabled for this user"


class TestSuperAdminTargets:
    """Tests that only a super admin can change a super admin account."""

    def test_admin_cannot_reset_super_admin_password(self, client: TestClient, make_user, login):
        """An admin must not take over a super admin by resetting its password."""
        login(make_user())
        root = make_user(email="root@example.com", role=Role.SUPER_ADMIN)
        response = client.patch(f"/api/auth/users/{root.id}", json={"password": "Tak30ver!Pass"})
        assert response.status_code == 403
        assert response.json()["error"] == "Only a super admin can modify a super admin account"

        client.post("/api/auth/logout")
        response = client.post("/api/auth/login", json={"email": root.email, "password": "Tak30ver!Pass"})
        assert response.status_code == 401
        response = client.post("/api/auth/login", json={"email": root.email, "password": DEFAULT_PASSWORD})
        assert response.status_code == 200

    def test_admin_cannot_demote_super_admin(self, client: TestClient, make_user, login, db_session: Session):
        login(make_user())
        root = make_user(email="root@example.com", role=Role.SUPER_ADMIN)
        response = client.patch(f"/api/auth/users/{root.id}", json={"role": "reviewer"})
        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.get(User, root.id).role == "super_admin"

    def test_admin_cannot_deactivate_super_admin(self, client: TestClient, make_user, login, db_session: Session):
        login(make_user())
        root = make_user(email="root@example.com", role=Role.SUPER_ADMIN)
        response = client.delete(f"/api/auth/users/{root.id}")
        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.get(User, root.id).is_active is True

    def test_super_admin_manages_super_admin(self, client: TestClient, make_user, login):
        login(make_user(email="owner@example.com", role=Role.SUPER_ADMIN))
        root = make_user(email="root@example.com", role=Role.SUPER_ADMIN)
        response = client.patch(f"/api/auth/users/{root.id}", json={"name": "Renamed Root"})
        assert response.status_code == 200
        assert client.delete(f"/api/auth/users/{root.id}").status_code == 200
