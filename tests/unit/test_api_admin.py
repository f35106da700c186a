"""Tests for the admin user management endpoints."""

import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.tokens import create_session_token
from app.models.user import User, UserRole
from app.repositories.oauth_link_repository import OAuthLinkRepository
from app.repositories.user_repository import UserRepository
from tests.conftest import auth_headers, create_user


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await create_user(db_session, email="admin@example.com", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def superuser(db_session: AsyncSession) -> User:
    return await create_user(
        db_session, email="root@example.com", role=UserRole.SUPERUSER
    )


class TestAccessControl:
    async def test_regular_user_rejected(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        user = await create_user(db_session)

        response = await client.get("/api/v1/admin/users", headers=auth_headers(user))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "ADMIN_REQUIRED"

    async def test_role_read_from_database(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        user = await create_user(db_session)
        # Token claims admin but the stored role is user
        token = create_session_token(user_id=user.id, role=UserRole.ADMIN)

        response = await client.get(
            "/api/v1/admin/users", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 403

    async def test_unauthenticated(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/admin/users")

        assert response.status_code == 401


class TestListUsers:
    async def test_pagination_meta(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        for i in range(3):
            await create_user(db_session, email=f"user{i}@example.com")

        response = await client.get(
            "/api/v1/admin/users",
            headers=auth_headers(admin),
            params={"page": 1, "per_page": 2},
        )

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 2
        assert body["meta"]["total"] == 4
        assert body["meta"]["total_pages"] == 2

    async def test_filters(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        await create_user(db_session, email="verified@example.com")
        await create_user(db_session, email="pending@example.com", verified=False)

        unverified = await client.get(
            "/api/v1/admin/users",
            headers=auth_headers(admin),
            params={"email_verified": "false"},
        )
        admins = await client.get(
            "/api/v1/admin/users",
            headers=auth_headers(admin),
            params={"role": "admin"},
        )
        search = await client.get(
            "/api/v1/admin/users",
            headers=auth_headers(admin),
            params={"search": "VERIF"},
        )

        assert [u["email"] for u in unverified.json()["data"]] == [
            "pending@example.com"
        ]
        assert [u["email"] for u in admins.json()["data"]] == ["admin@example.com"]
        assert [u["email"] for u in search.json()["data"]] == ["verified@example.com"]

    async def test_no_secrets_in_listing(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        await create_user(db_session, email="linked@example.com", provider="google")

        response = await client.get(
            "/api/v1/admin/users",
            headers=auth_headers(admin),
            params={"search": "linked"},
        )

        item = response.json()["data"][0]
        assert item["providers"] == ["google"]
        assert set(item) == {
            "id",
            "email",
            "name",
            "role",
            "email_verified",
            "providers",
            "created_at",
        }

    async def test_per_page_capped(self, client: AsyncClient, admin: User) -> None:
        response = await client.get(
            "/api/v1/admin/users",
            headers=auth_headers(admin),
            params={"per_page": 101},
        )

        assert response.status_code == 400


class TestUpdateRole:
    async def test_promote_and_revoke_sessions(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        target = await create_user(db_session)
        target_headers = auth_headers(target)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}/role",
            headers=auth_headers(admin),
            json={"role": "admin"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["role"] == "admin"
        stale = await client.get("/api/v1/auth/me", headers=target_headers)
        assert stale.status_code == 401
        reloaded = await UserRepository.get_by_id(
            db_session, target.id, include_secrets=True
        )
        assert reloaded.role is UserRole.ADMIN

    async def test_own_role(self, client: AsyncClient, admin: User) -> None:
        response = await client.patch(
            f"/api/v1/admin/users/{admin.id}/role",
            headers=auth_headers(admin),
            json={"role": "user"},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CANNOT_CHANGE_OWN_ROLE"

    async def test_admin_cannot_grant_superuser(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        target = await create_user(db_session)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}/role",
            headers=auth_headers(admin),
            json={"role": "superuser"},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    async def test_admin_cannot_demote_superuser(
        self, client: AsyncClient, admin: User, superuser: User
    ) -> None:
        response = await client.patch(
            f"/api/v1/admin/users/{superuser.id}/role",
            headers=auth_headers(admin),
            json={"role": "user"},
        )

        assert response.status_code == 403

    async def test_superuser_can_grant_superuser(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        superuser: User,
    ) -> None:
        target = await create_user(db_session)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}/role",
            headers=auth_headers(superuser),
            json={"role": "superuser"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["role"] == "superuser"

    async def test_unknown_user(self, client: AsyncClient, admin: User) -> None:
        response = await client.patch(
            f"/api/v1/admin/users/{uuid.uuid4()}/role",
            headers=auth_headers(admin),
            json={"role": "admin"},
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_invalid_role_value(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        target = await create_user(db_session)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}/role",
            headers=auth_headers(admin),
            json={"role": "owner"},
        )

        assert response.status_code == 400


class TestUpdateUser:
    async def test_updates_profile_fields(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        target = await create_user(db_session, verified=False)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}",
            headers=auth_headers(admin),
            json={
                "name": "Renamed",
                "image": "https://cdn.example.com/a.png",
                "email_verified": True,
            },
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["name"] == "Renamed"
        assert data["email_verified"] is True
        reloaded = await UserRepository.get_by_id(
            db_session, target.id, include_secrets=True
        )
        assert reloaded.image == "https://cdn.example.com/a.png"
        assert reloaded.email_verified is not None

    async def test_email_change_is_normalized_and_unverified(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        target = await create_user(db_session)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}",
            headers=auth_headers(admin),
            json={"email": "Moved@Example.com"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == "moved@example.com"
        assert data["email_verified"] is False

    async def test_email_change_with_verified_flag(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        target = await create_user(db_session)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}",
            headers=auth_headers(admin),
            json={"email": "moved@example.com", "email_verified": True},
        )

        assert response.status_code == 200
        assert response.json()["data"]["email_verified"] is True

    async def test_duplicate_email(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        target = await create_user(db_session)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}",
            headers=auth_headers(admin),
            json={"email": "ADMIN@example.com"},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "EMAIL_ALREADY_EXISTS"
        db_session.expunge_all()
        reloaded = await UserRepository.get_by_id(db_session, target.id)
        assert reloaded.email == "alice@example.com"

    async def test_malformed_email(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        target = await create_user(db_session)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}",
            headers=auth_headers(admin),
            json={"email": "not-an-email"},
        )

        assert response.status_code == 400

    @pytest.mark.parametrize(
        "field, value",
        [
            ("role", "admin"),
            ("password_hash", "$2b$04$abcdefghijklmnopqrstuv"),
            ("verification_code_hash", "x"),
            ("password_reset_code_hash", "x"),
            ("token_invalidated_before", "2020-01-01T00:00:00Z"),
        ],
    )
    async def test_rejects_protected_fields(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin: User,
        field: str,
        value: str,
    ) -> None:
        target = await create_user(db_session)

        response = await client.patch(
            f"/api/v1/admin/users/{target.id}",
            headers=auth_headers(admin),
            json={"name": "x", field: value},
        )

        assert response.status_code == 400
        db_session.expunge_all()
        reloaded = await UserRepository.get_by_id(db_session, target.id)
        assert reloaded.role is UserRole.USER
        assert reloaded.name is None

    async def test_admin_cannot_edit_superuser(
        self, client: AsyncClient, admin: User, superuser: User
    ) -> None:
        response = await client.patch(
            f"/api/v1/admin/users/{superuser.id}",
            headers=auth_headers(admin),
            json={"name": "demoted"},
        )

        assert response.status_code == 403

    async def test_unknown_user(self, client: AsyncClient, admin: User) -> None:
        response = await client.patch(
            f"/api/v1/admin/users/{uuid.uuid4()}",
            headers=auth_headers(admin),
            json={"name": "x"},
        )

        assert response.status_code == 404

    async def test_regular_user_rejected(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        user = await create_user(db_session)
        other = await create_user(db_session, email="bob@example.com")

        response = await client.patch(
            f"/api/v1/admin/users/{other.id}",
            headers=auth_headers(user),
            json={"email_verified": False},
        )

        assert response.status_code == 403


class TestDeleteUser:
    async def test_deletes_user_and_links(
        self, client: AsyncClient, db_session: AsyncSession, admin: User
    ) -> None:
        target = await create_user(
            db_session, provider="google", provider_account_id="g-9"
        )
        target_headers = auth_headers(target)

        response = await client.delete(
            f"/api/v1/admin/users/{target.id}", headers=auth_headers(admin)
        )

        assert response.status_code == 204
        db_session.expunge_all()
        assert await UserRepository.get_by_id(db_session, target.id) is None
        assert (
            await OAuthLinkRepository.get_by_provider_and_account_id(
                db_session, "google", "g-9"
            )
            is None
        )
        after = await client.get("/api/v1/auth/me", headers=target_headers)
        assert after.status_code == 401

    async def test_cannot_delete_self(self, client: AsyncClient, admin: User) -> None:
        response = await client.delete(
            f"/api/v1/admin/users/{admin.id}", headers=auth_headers(admin)
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CANNOT_DELETE_SELF"

    async def test_admin_cannot_delete_superuser(
        self, client: AsyncClient, admin: User, superuser: User
    ) -> None:
        response = await client.delete(
            f"/api/v1/admin/users/{superuser.id}", headers=auth_headers(admin)
        )

        assert response.status_code == 403

    async def test_unknown_user(self, client: AsyncClient, admin: User) -> None:
        response = await client.delete(
            f"/api/v1/admin/users/{uuid.uuid4()}", headers=auth_headers(admin)
        )

        assert response.status_code == 404
