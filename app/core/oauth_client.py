"""OAuth HTTP client - token exchange and userinfo fetching.

HTTP client functions for exchanging authorization codes for tokens and
fetching the external profile from OAuth providers.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from app.core.config import settings
from app.core.oauth import OAuthProfile, get_provider_config, profile_from_userinfo

# HTTP client timeout for OAuth token exchange and userinfo
_OAUTH_HTTP_TIMEOUT = 10.0


def _client_credentials(provider: str) -> tuple[str, str]:
    config = get_provider_config(provider)
    client_id = getattr(settings, config.client_id_setting)
    client_secret = getattr(settings, config.client_secret_setting)
    if hasattr(client_secret, "get_secret_value"):
        client_secret = client_secret.get_secret_value()
    return client_id, client_secret


def is_provider_configured(provider: str) -> bool:
    """Whether client credentials are set for the provider."""
    client_id, client_secret = _client_credentials(provider)
    return bool(client_id and client_secret)


async def exchange_code_for_tokens(
    *,
    provider: str,
    code: str,
    code_verifier: str | None,
    redirect_uri: str,
) -> dict[str, Any]:
    """Exchange authorization code for OAuth tokens.

    Args:
        provider: Provider name.
        code: Authorization code from callback.
        code_verifier: PKCE code verifier (None for providers without PKCE).
        redirect_uri: Callback URL used in initiation.

    Returns:
        Token response dict (access_token, refresh_token, expires_in, ...).

    Raises:
        httpx.HTTPStatusError: If token exchange fails.
    """
    config = get_provider_config(provider)
    client_id, client_secret = _client_credentials(provider)
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
        "client_secret": client_secret,
    }
    if code_verifier is not None:
        data["code_verifier"] = code_verifier

    async with httpx.AsyncClient() as client:
        resp = await client.post(
            config.token_url,
            data=data,
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result


async def fetch_userinfo(
    *,
    provider: str,
    access_token: str,
) -> dict[str, Any]:
    """Fetch user info from the OAuth provider.

    Raises:
        httpx.HTTPStatusError: If userinfo request fails.
    """
    config = get_provider_config(provider)

    async with httpx.AsyncClient() as client:
        resp = await client.get(
            config.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result


async def fetch_profile(
    *,
    provider: str,
    code: str,
    code_verifier: str | None,
    redirect_uri: str,
) -> OAuthProfile:
    """Exchange the authorization code and map the userinfo to a profile.

    Raises:
        httpx.HTTPError: If either provider call fails.
        KeyError: If the token response carries no access_token.
    """
    tokens = await exchange_code_for_tokens(
        provider=provider,
        code=code,
        code_verifier=code_verifier,
        redirect_uri=redirect_uri,
    )
    access_token = tokens["access_token"]
    userinfo = await fetch_userinfo(provider=provider, access_token=access_token)

    expires_at = None
    expires_in = tokens.get("expires_in")
    if isinstance(expires_in, int | float) and expires_in > 0:
        expires_at = datetime.now(UTC) + timedelta(seconds=expires_in)

    return profile_from_userinfo(
        get_provider_config(provider),
        userinfo,
        access_token=access_token,
        refresh_token=tokens.get("refresh_token"),
        token_expires_at=expires_at,
    )
