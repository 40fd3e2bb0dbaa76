"""Integration tests for the /api/v1/users endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from src.main import create_app

API = "/api/v1/users"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def avatar_file(name: str = "avatar.png", field: str = "Avatar") -> dict:
    return {field: (name, PNG, "image/png")}


async def register(
    client: AsyncClient,
    username: str = "alice",
    email: str = "alice@example.com",
    password: str = "Secret123",
    **extra,
):
    return await client.post(
        f"{API}/register",
        data={"username": username, "email": email, "password": password, **extra},
        files=avatar_file(),
    )


async def login(client: AsyncClient, password: str = "Secret123", **identifier):
    identifier = identifier or {"username": "alice"}
    return await client.post(f"{API}/login", json={**identifier, "password": password})


def assert_error_envelope(response, status_code: int):
    body = response.json()
    assert response.status_code == status_code, response.text
    assert body["statusCode"] == status_code
    assert body["success"] is False
    assert body["data"] is None
    assert isinstance(body["message"], str) and body["message"]
    assert isinstance(body["errors"], list)


class TestRegister:
    """Tests for POST /users/register."""

    @pytest.mark.asyncio
    async def test_register_returns_sanitized_user(self, client: AsyncClient):
        response = await register(client, fullName="Alice")

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["statusCode"] == 201
        assert body["success"] is True
        user = body["data"]
        assert user["username"] == "alice"
        assert user["fullName"] == "Alice"
        assert user["avatarUrl"]
        assert user["coverImageUrl"] is None
        assert "password" not in user
        assert "passwordHash" not in user
        assert "refreshToken" not in user
        assert "refreshTokenHash" not in user

    @pytest.mark.asyncio
    async def test_register_with_cover_image(self, client: AsyncClient):
        response = await client.post(
            f"{API}/register",
            data={"username": "alice", "email": "alice@example.com", "password": "Secret123"},
            files={**avatar_file(), **avatar_file("cover.png", field="CoverImg")},
        )

        assert response.status_code == 201, response.text
        assert response.json()["data"]["coverImageUrl"]

    @pytest.mark.asyncio
    async def test_missing_avatar(self, client: AsyncClient):
        response = await client.post(
            f"{API}/register",
            data={"username": "alice", "email": "alice@example.com", "password": "Secret123"},
        )

        assert_error_envelope(response, 400)

    @pytest.mark.asyncio
    async def test_blank_field(self, client: AsyncClient):
        response = await register(client, username="   ")

        assert_error_envelope(response, 400)
        assert response.json()["message"] == "All fields are required"

    @pytest.mark.asyncio
    async def test_weak_password_lists_errors(self, client: AsyncClient):
        response = await register(client, password="weak")

        assert_error_envelope(response, 400)
        assert response.json()["errors"][0]["field"] == "password"

    @pytest.mark.asyncio
    async def test_duplicate_account(self, client: AsyncClient):
        await register(client)

        response = await register(client, username="alice2")

        assert_error_envelope(response, 409)

    @pytest.mark.asyncio
    async def test_blob_store_failure(self, client: AsyncClient, blob_store):
        blob_store.fail = True

        response = await register(client)

        assert_error_envelope(response, 500)
        blob_store.fail = False
        assert (await register(client)).status_code == 201


class TestSession:
    """Tests for login, refresh and logout."""

    @pytest.mark.asyncio
    async def test_register_login_refresh_replay(self, client: AsyncClient):
        assert (await register(client)).status_code == 201

        response = await login(client, email="Alice@Example.com")
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        original = data["refreshToken"]
        assert data["user"]["username"] == "alice"
        assert data["accessToken"]
        assert response.cookies.get("accessToken") == data["accessToken"]
        assert response.cookies.get("refreshToken") == original
        set_cookie = response.headers.get_list("set-cookie")
        assert all("HttpOnly" in c and "Secure" in c for c in set_cookie)

        rotated = await client.post(f"{API}/refreshToken", json={"refreshToken": original})
        assert rotated.status_code == 200, rotated.text
        new_pair = rotated.json()["data"]
        assert new_pair["refreshToken"] != original
        assert new_pair["accessToken"] != data["accessToken"]

        client.cookies.clear()
        replay = await client.post(f"{API}/refreshToken", json={"refreshToken": original})
        assert_error_envelope(replay, 401)

    @pytest.mark.asyncio
    async def test_refresh_from_cookie(self, client: AsyncClient):
        await register(client)
        await login(client)

        response = await client.post(f"{API}/refreshToken")

        assert response.status_code == 200, response.text
        assert response.cookies.get("refreshToken") == response.json()["data"]["refreshToken"]

    @pytest.mark.asyncio
    async def test_refresh_without_token(self, client: AsyncClient):
        response = await client.post(f"{API}/refreshToken")

        assert_error_envelope(response, 401)

    @pytest.mark.asyncio
    async def test_login_failures(self, client: AsyncClient):
        await register(client)

        assert_error_envelope(await login(client, password="Wrong1234"), 404)
        assert_error_envelope(await login(client, username="nobody"), 404)
        assert_error_envelope(
            await client.post(f"{API}/login", json={"password": "Secret123"}), 400
        )

    @pytest.mark.asyncio
    async def test_logout_clears_cookies_and_revokes(self, client: AsyncClient):
        await register(client)
        tokens = (await login(client)).json()["data"]

        response = await client.post(f"{API}/logout")

        assert response.status_code == 200, response.text
        assert response.json()["data"] == {}
        assert "accessToken" not in client.cookies
        refresh = await client.post(f"{API}/refreshToken", json={"refreshToken": tokens["refreshToken"]})
        assert_error_envelope(refresh, 401)

    @pytest.mark.asyncio
    async def test_logout_requires_authentication(self, client: AsyncClient):
        response = await client.post(f"{API}/logout")

        assert_error_envelope(response, 401)
        assert response.headers["www-authenticate"] == "Bearer"


class TestSessionGate:
    """Tests for access-token checks on protected routes."""

    @pytest.mark.asyncio
    async def test_get_user_with_bearer(self, client: AsyncClient, test_user, auth_headers):
        response = await client.get(f"{API}/getUser", headers=auth_headers)

        assert response.status_code == 200, response.text
        assert response.json()["data"]["id"] == str(test_user.id)

    @pytest.mark.asyncio
    async def test_no_token(self, client: AsyncClient):
        assert_error_envelope(await client.get(f"{API}/getUser"), 401)

    @pytest.mark.asyncio
    async def test_garbage_token(self, client: AsyncClient):
        response = await client.get(f"{API}/getUser", headers={"Authorization": "Bearer garbage"})

        assert_error_envelope(response, 401)

    @pytest.mark.asyncio
    async def test_refresh_token_is_not_an_access_token(self, client: AsyncClient, test_user, jwt_manager):
        token, _, _ = jwt_manager.create_refresh_token(test_user)

        response = await client.get(f"{API}/getUser", headers={"Authorization": f"Bearer {token}"})

        assert_error_envelope(response, 401)

    @pytest.mark.asyncio
    async def test_cookie_wins_over_header(self, client: AsyncClient, test_user, auth_headers):
        response = await client.get(
            f"{API}/getUser",
            headers={**auth_headers, "Cookie": "accessToken=garbage"},
        )

        assert_error_envelope(response, 401)

    @pytest.mark.asyncio
    async def test_deleted_identity(self, client: AsyncClient, test_user, auth_headers, db_session):
        await db_session.delete(test_user)
        await db_session.commit()

        response = await client.get(f"{API}/getUser", headers=auth_headers)

        assert_error_envelope(response, 401)
        assert response.json()["message"] == "Identity not found"


class TestProfile:
    """Tests for the profile endpoints."""

    @pytest.mark.asyncio
    async def test_change_password(self, client: AsyncClient, test_user, auth_headers):
        wrong = await client.patch(
            f"{API}/changePassword",
            json={"oldPassword": "Nope12345", "newPassword": "BrandNew456"},
            headers=auth_headers,
        )
        assert_error_envelope(wrong, 400)

        response = await client.patch(
            f"{API}/changePassword",
            json={"oldPassword": "TestPassword123", "newPassword": "BrandNew456"},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        assert response.json()["data"] == {}

        assert (await login(client, password="BrandNew456", username="testuser")).status_code == 200

    @pytest.mark.asyncio
    async def test_update_profile(self, client: AsyncClient, test_user, auth_headers):
        response = await client.patch(
            f"{API}/updateProfile",
            json={"fullName": "Renamed", "email": "Renamed@Example.com"},
            headers=auth_headers,
        )

        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["fullName"] == "Renamed"
        assert data["email"] == "renamed@example.com"

    @pytest.mark.asyncio
    async def test_update_profile_needs_a_field(self, client: AsyncClient, test_user, auth_headers):
        response = await client.patch(f"{API}/updateProfile", json={}, headers=auth_headers)

        assert_error_envelope(response, 400)

    @pytest.mark.asyncio
    async def test_update_profile_email_taken(self, client: AsyncClient, test_user, auth_headers):
        await register(client)

        response = await client.patch(
            f"{API}/updateProfile",
            json={"email": "alice@example.com"},
            headers=auth_headers,
        )

        assert_error_envelope(response, 409)

    @pytest.mark.asyncio
    async def test_update_avatar_and_cover(self, client: AsyncClient, test_user, auth_headers, blob_store):
        avatar = await client.patch(f"{API}/updateAvatar", files=avatar_file(), headers=auth_headers)
        cover = await client.patch(
            f"{API}/updateCoverImg",
            files=avatar_file("cover.png", field="CoverImg"),
            headers=auth_headers,
        )

        assert avatar.status_code == 200, avatar.text
        assert avatar.json()["data"]["avatarUrl"] in blob_store.blobs
        assert cover.status_code == 200, cover.text
        assert cover.json()["data"]["coverImageUrl"] in blob_store.blobs

    @pytest.mark.asyncio
    async def test_update_avatar_requires_file(self, client: AsyncClient, test_user, auth_headers):
        response = await client.patch(f"{API}/updateAvatar", headers=auth_headers)

        assert_error_envelope(response, 400)


class TestApplication:
    """Health, request ids and rate limiting."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-ID": "abc-123"})

        assert response.headers["x-request-id"] == "abc-123"

    @pytest.mark.asyncio
    async def test_unknown_route_uses_envelope(self, client: AsyncClient):
        assert_error_envelope(await client.get(f"{API}/nope"), 404)

    @pytest.mark.asyncio
    async def test_auth_routes_are_rate_limited(self, settings, services):
        limited = settings.model_copy(update={"rate_limit_enabled": True, "rate_limit_auth_per_minute": 2})
        app = create_app(limited, services)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="https://test") as ac:
            statuses = [
                (await ac.post(f"{API}/login", json={"username": "x", "password": "y"})).status_code
                for _ in range(3)
            ]

        assert statuses == [404, 404, 429]
