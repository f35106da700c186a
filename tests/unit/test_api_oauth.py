"""Tests for the OAuth initiation and callback endpoints.

The provider round trip is replaced by patching fetch_profile; the state
cookie is minted directly with create_oauth_state_cookie.
"""

from collections.abc import Iterator
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from httpx import AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.oauth import OAuthProfile, create_oauth_state_cookie
from app.core.tokens import decode_session_token
from app.repositories.oauth_link_repository import OAuthLinkRepository
from app.repositories.user_repository import UserRepository
from tests.conftest import create_user

_STATE = "state-abc"


@pytest.fixture
def configured_providers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "google_client_id", "google-client")
    monkeypatch.setattr(settings, "google_client_secret", SecretStr("google-secret"))
    monkeypatch.setattr(settings, "facebook_client_id", "fb-client")
    monkeypatch.setattr(settings, "facebook_client_secret", SecretStr("fb-secret"))


def _state_cookie_header(provider: str = "google", state: str = _STATE) -> dict:
    cookie = create_oauth_state_cookie(
        provider=provider, state=state, code_verifier="verifier-1"
    )
    return {"Cookie": f"oauth_state={cookie}"}


def _profile(**overrides) -> OAuthProfile:
    fields = {
        "provider_account_id": "g-123",
        "email": "alice@example.com",
        "email_verified": True,
        "name": "Alice",
        "access_token": "provider-at",
    }
    fields.update(overrides)
    return OAuthProfile(**fields)


@pytest.fixture
def provider_returns() -> Iterator[AsyncMock]:
    mock = AsyncMock(return_value=_profile())
    with patch("app.api.v1.auth_oauth.fetch_profile", new=mock):
        yield mock


async def _callback(client: AsyncClient, provider: str = "google") -> httpx.Response:
    client.cookies.clear()
    return await client.get(
        f"/api/v1/auth/callback/{provider}",
        params={"code": "auth-code", "state": _STATE},
        headers=_state_cookie_header(provider),
    )


def _session_token(response: httpx.Response) -> str:
    for header in response.headers.get_list("set-cookie"):
        name, _, rest = header.partition("=")
        if name == settings.auth_cookie_name:
            return rest.split(";", 1)[0]
    msg = "No session cookie set"
    raise AssertionError(msg)


class TestInitiate:
    async def test_google_redirect_with_pkce(
        self, client: AsyncClient, configured_providers: None
    ) -> None:
        response = await client.get("/api/v1/auth/providers/google")

        assert response.status_code == 307
        location = urlparse(response.headers["location"])
        assert location.netloc == "accounts.google.com"
        params = parse_qs(location.query)
        assert params["client_id"] == ["google-client"]
        assert params["response_type"] == ["code"]
        assert params["code_challenge_method"] == ["S256"]
        assert params["redirect_uri"] == ["http://test/api/v1/auth/callback/google"]
        cookie = response.headers["set-cookie"]
        assert cookie.startswith("oauth_state=")
        assert "Path=/api/v1/auth/callback" in cookie

    async def test_facebook_redirect_without_pkce(
        self, client: AsyncClient, configured_providers: None
    ) -> None:
        response = await client.get("/api/v1/auth/providers/facebook")

        assert response.status_code == 307
        params = parse_qs(urlparse(response.headers["location"]).query)
        assert "code_challenge" not in params
        assert params["client_id"] == ["fb-client"]

    async def test_unknown_provider(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/auth/providers/myspace")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_unconfigured_provider(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "google_client_id", "")

        response = await client.get("/api/v1/auth/providers/google")

        assert response.status_code == 400


class TestCallback:
    async def test_new_user_created_and_signed_in(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        configured_providers: None,
        provider_returns: AsyncMock,
    ) -> None:
        response = await _callback(client)

        assert response.status_code == 307
        assert response.headers["location"] == settings.frontend_url
        claims = decode_session_token(_session_token(response))

        user = await UserRepository.get_by_id(db_session, claims.user_id)
        assert user is not None
        assert user.email == "alice@example.com"
        assert user.is_email_verified is True
        assert [link.provider for link in user.oauth_links] == ["google"]
        assert provider_returns.await_args.kwargs["code_verifier"] == "verifier-1"

    async def test_unverified_provider_email_creates_unverified_user(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        configured_providers: None,
        provider_returns: AsyncMock,
    ) -> None:
        provider_returns.return_value = _profile(email_verified=False)

        response = await _callback(client)

        assert response.status_code == 307
        claims = decode_session_token(_session_token(response))
        user = await UserRepository.get_by_id(db_session, claims.user_id)
        assert user.is_email_verified is False

    async def test_links_to_verified_password_account(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        configured_providers: None,
        provider_returns: AsyncMock,
    ) -> None:
        existing = await create_user(db_session)

        response = await _callback(client)

        assert response.status_code == 307
        claims = decode_session_token(_session_token(response))
        assert claims.user_id == existing.id
        link = await OAuthLinkRepository.get_by_provider_and_account_id(
            db_session, "google", "g-123"
        )
        assert link is not None
        assert link.user_id == existing.id

    async def test_returning_user_is_idempotent(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        configured_providers: None,
        provider_returns: AsyncMock,
    ) -> None:
        first = await _callback(client)
        second = await _callback(client)

        first_id = decode_session_token(_session_token(first)).user_id
        second_id = decode_session_token(_session_token(second)).user_id
        assert first_id == second_id
        user = await UserRepository.get_by_id(db_session, first_id)
        assert len(user.oauth_links) == 1

    async def test_unverified_existing_account_blocks_linking(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        configured_providers: None,
        provider_returns: AsyncMock,
    ) -> None:
        await create_user(db_session, verified=False)

        response = await _callback(client)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ACCOUNT_LINKING_BLOCKED"

    async def test_missing_provider_email(
        self,
        client: AsyncClient,
        configured_providers: None,
        provider_returns: AsyncMock,
    ) -> None:
        provider_returns.return_value = _profile(email=None)

        response = await _callback(client)

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "MISSING_PROVIDER_EMAIL"

    @pytest.mark.parametrize(
        "params",
        [{"state": _STATE}, {"code": "auth-code"}],
        ids=["missing-code", "missing-state"],
    )
    async def test_missing_query_params(
        self, client: AsyncClient, params: dict[str, str]
    ) -> None:
        response = await client.get(
            "/api/v1/auth/callback/google",
            params=params,
            headers=_state_cookie_header(),
        )

        assert response.status_code == 400

    async def test_missing_state_cookie(self, client: AsyncClient) -> None:
        response = await client.get(
            "/api/v1/auth/callback/google",
            params={"code": "auth-code", "state": _STATE},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_state_mismatch(
        self, client: AsyncClient, provider_returns: AsyncMock
    ) -> None:
        response = await client.get(
            "/api/v1/auth/callback/google",
            params={"code": "auth-code", "state": "forged"},
            headers=_state_cookie_header(),
        )

        assert response.status_code == 400
        provider_returns.assert_not_awaited()

    async def test_provider_http_error(
        self,
        client: AsyncClient,
        configured_providers: None,
        provider_returns: AsyncMock,
    ) -> None:
        provider_returns.side_effect = httpx.ConnectError("provider down")

        response = await _callback(client)

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "OAuth authentication failed"
