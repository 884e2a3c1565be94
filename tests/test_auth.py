"""Tests for password hashing, JWT tokens and the auth routes."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.domain.exceptions import PermissionDeniedError
from homepro.services.auth_service import (
    authenticate,
    create_access_token,
    create_user,
    decode_token,
    get_user_by_email,
    hash_password,
    update_profile,
    verify_password,
)


def _build_app_client(db_session: AsyncSession):
    from fastapi import FastAPI
    from homepro.app.error_handlers import install_error_handlers
    from homepro.app.routes.auth import router as auth_router
    from homepro.infra.database import get_db

    test_app = FastAPI()
    install_error_handlers(test_app)
    test_app.include_router(auth_router)

    async def _override_get_db():
        yield db_session

    test_app.dependency_overrides[get_db] = _override_get_db

    return AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://testserver",
    )


class TestAuthService:
    def test_password_round_trip(self):
        hashed = hash_password("correct horse battery")
        assert hashed != "correct horse battery"
        assert verify_password("correct horse battery", hashed)
        assert not verify_password("wrong", hashed)

    def test_token_carries_subject_and_role(self):
        payload = decode_token(create_access_token("user-1", "contractor"))
        assert payload["sub"] == "user-1"
        assert payload["role"] == "contractor"

    def test_garbage_token(self):
        assert decode_token("not.a.jwt") is None

    async def test_emails_are_case_insensitive(self, db_session):
        user = await create_user(db_session, "Jane@Example.com", "s3cret-pass", "Jane", "homeowner")
        assert user.email == "jane@example.com"
        found = await get_user_by_email(db_session, "JANE@example.COM")
        assert found.id == user.id

    def test_token_with_unknown_role_is_rejected(self):
        assert decode_token(create_access_token("user-1", "admin")) is None

    async def test_homeowner_business_name_is_dropped(self, db_session):
        user = await create_user(
            db_session, "home@example.com", "s3cret-pass", "Hal", "homeowner", business_name="Hal Inc"
        )
        assert user.business_name is None

    async def test_authenticate_stamps_login(self, db_session):
        await create_user(db_session, "pro@example.com", "long-enough-pw", "Pat", "contractor")
        assert await authenticate(db_session, "pro@example.com", "wrong-password") is None

        user = await authenticate(db_session, " PRO@example.com ", "long-enough-pw")
        assert user is not None
        assert user.last_login_at is not None

    async def test_homeowner_cannot_set_business_name(self, db_session):
        user = await create_user(db_session, "own@example.com", "long-enough-pw", "Olive", "homeowner")
        with pytest.raises(PermissionDeniedError):
            await update_profile(db_session, user, {"business_name": "Olive Co"})

        user = await update_profile(db_session, user, {"phone": "555-0100", "name": None})
        assert user.phone == "555-0100"
        assert user.name == "Olive"


class TestAuthRoutes:
    async def test_signup_login_me(self, db_session):
        async with _build_app_client(db_session) as client:
            resp = await client.post(
                "/api/auth/signup",
                json={
                    "email": "pro@example.com",
                    "password": "long-enough-pw",
                    "name": "Pat Pro",
                    "role": "contractor",
                    "business_name": "Pat's Plumbing",
                },
            )
            assert resp.status_code == 200
            assert resp.json()["user"]["role"] == "contractor"

            resp = await client.post(
                "/api/auth/login", json={"email": "pro@example.com", "password": "long-enough-pw"}
            )
            assert resp.status_code == 200
            token = resp.json()["access_token"]

            resp = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
            assert resp.status_code == 200
            assert resp.json()["business_name"] == "Pat's Plumbing"

    async def test_duplicate_signup(self, db_session):
        body = {"email": "dup@example.com", "password": "long-enough-pw", "name": "Dup"}
        async with _build_app_client(db_session) as client:
            assert (await client.post("/api/auth/signup", json=body)).status_code == 200
            resp = await client.post("/api/auth/signup", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Email already registered"}

    async def test_bad_password(self, db_session):
        await create_user(db_session, "owner@example.com", "long-enough-pw", "Owner", "homeowner")
        async with _build_app_client(db_session) as client:
            resp = await client.post(
                "/api/auth/login", json={"email": "owner@example.com", "password": "nope"}
            )
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid email or password"}

    async def test_expired_or_forged_token(self, db_session):
        async with _build_app_client(db_session) as client:
            resp = await client.get("/api/auth/me", headers={"Authorization": "Bearer forged"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid or expired token"}
