"""OAuth utilities - PKCE, state cookies, provider registry and profiles.

PKCE code verifier/challenge generation, state carried between initiation
and callback in a signed code-token cookie, and the provider registry.

Providers are an open set: each entry is an OAuthProviderConfig that says
where the endpoints are, which settings hold the client credentials, and
how to read the provider's userinfo payload. register_provider() adds one.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from app.core.errors import ExpiredTokenError, InvalidTokenError
from app.core.tokens import create_code_token, decode_code_token

# PKCE code verifier length (RFC 7636 allows 43-128)
_VERIFIER_LENGTH = 128

# Characters allowed in PKCE code verifier (RFC 7636 §4.1)
# unreserved = ALPHA / DIGIT / "-" / "." / "_" / "~"
_UNRESERVED_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"

# Default TTL for OAuth state cookie (10 minutes)
_DEFAULT_STATE_TTL = 600


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier.

    RFC 7636 §4.1: 128-character string from unreserved characters.
    """
    return "".join(secrets.choice(_UNRESERVED_CHARS) for _ in range(_VERIFIER_LENGTH))


def generate_code_challenge(verifier: str) -> str:
    """Generate a PKCE code challenge from a verifier.

    RFC 7636 §4.2: BASE64URL(SHA256(code_verifier)), no padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def create_oauth_state_cookie(
    *,
    provider: str,
    state: str,
    code_verifier: str | None,
    ttl_seconds: int = _DEFAULT_STATE_TTL,
) -> str:
    """Create a signed cookie value holding OAuth state and PKCE verifier.

    Stored as a cookie between the initiation redirect and callback. The
    provider is bound into the token so a state minted for one provider
    cannot complete another provider's callback.
    """
    claims: dict[str, Any] = {"provider": provider, "state": state}
    if code_verifier is not None:
        claims["code_verifier"] = code_verifier
    return create_code_token(claims, ttl_seconds=ttl_seconds)


@dataclass(frozen=True)
class OAuthState:
    """Verified contents of the OAuth state cookie."""

    provider: str
    code_verifier: str | None


def validate_oauth_state_cookie(
    *,
    cookie_value: str,
    provider: str,
    expected_state: str,
) -> OAuthState | None:
    """Validate an OAuth state cookie.

    Verifies signature, expiry, provider binding and state match.

    Returns:
        OAuthState if valid, None if any check fails.
    """
    try:
        claims = decode_code_token(cookie_value)
    except (InvalidTokenError, ExpiredTokenError):
        return None

    if claims.get("provider") != provider:
        return None
    if not secrets.compare_digest(str(claims.get("state", "")), expected_state):
        return None

    return OAuthState(provider=provider, code_verifier=claims.get("code_verifier"))


# ===================================================================
# OAuth Provider Configuration
# ===================================================================


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Configuration for an OAuth provider.

    Attributes:
        authorization_url: Provider's authorization endpoint.
        token_url: Provider's token exchange endpoint.
        userinfo_url: Provider's userinfo endpoint.
        scopes: OAuth scopes to request.
        client_id_setting: Settings attribute holding the client id.
        client_secret_setting: Settings attribute holding the client secret.
        supports_pkce: Whether to send a PKCE challenge.
        id_field: Userinfo key of the stable account id.
        email_field: Userinfo key of the email address.
        email_verified_field: Userinfo key of the verified flag. None means
            the provider only ever returns confirmed addresses.
        name_field: Userinfo key of the display name.
        image_field: Dotted userinfo path of the avatar URL.
    """

    authorization_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]
    client_id_setting: str
    client_secret_setting: str
    supports_pkce: bool = True
    id_field: str = "sub"
    email_field: str = "email"
    email_verified_field: str | None = "email_verified"
    name_field: str = "name"
    image_field: str = "picture"


@dataclass(frozen=True)
class OAuthProfile:
    """External identity as reported by a provider.

    Attributes:
        provider_account_id: Provider-assigned stable id.
        email: Email address, lower-cased. None if the provider sent none.
        email_verified: Whether the provider asserts ownership of the email.
        name: Display name.
        image: Avatar URL.
        access_token: Provider access token.
        refresh_token: Provider refresh token.
        token_expires_at: Access token expiry.
    """

    provider_account_id: str | None
    email: str | None
    email_verified: bool = False
    name: str | None = None
    image: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None


_PROVIDERS: dict[str, OAuthProviderConfig] = {
    "google": OAuthProviderConfig(  # nosec B106 - token_url is an endpoint, not a password
        authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
        scopes=("openid", "email", "profile"),
        client_id_setting="google_client_id",
        client_secret_setting="google_client_secret",
    ),
    "facebook": OAuthProviderConfig(  # nosec B106 - token_url is an endpoint, not a password
        authorization_url="https://www.facebook.com/v19.0/dialog/oauth",
        token_url="https://graph.facebook.com/v19.0/oauth/access_token",
        userinfo_url="https://graph.facebook.com/me?fields=id,name,email,picture",
        scopes=("email", "public_profile"),
        client_id_setting="facebook_client_id",
        client_secret_setting="facebook_client_secret",
        supports_pkce=False,
        id_field="id",
        # Graph API only returns confirmed addresses
        email_verified_field=None,
        image_field="picture.data.url",
    ),
}


def register_provider(name: str, config: OAuthProviderConfig) -> None:
    """Add or replace a provider in the registry."""
    _PROVIDERS[name] = config


def supported_providers() -> tuple[str, ...]:
    return tuple(_PROVIDERS)


def get_provider_config(provider: str) -> OAuthProviderConfig:
    """Get OAuth configuration for a provider.

    Args:
        provider: Provider name (e.g., "google", "facebook").

    Returns:
        OAuthProviderConfig for the provider.

    Raises:
        ValueError: If provider is not supported.
    """
    config = _PROVIDERS.get(provider)
    if config is None:
        msg = f"Unsupported OAuth provider: {provider}"
        raise ValueError(msg)
    return config


def _lookup(payload: dict[str, Any], path: str) -> Any:
    value: Any = payload
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _as_bool(value: Any) -> bool:
    # Some providers send "true"/"false" strings
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def profile_from_userinfo(
    config: OAuthProviderConfig,
    userinfo: dict[str, Any],
    *,
    access_token: str | None = None,
    refresh_token: str | None = None,
    token_expires_at: datetime | None = None,
) -> OAuthProfile:
    """Map a provider userinfo payload onto an OAuthProfile.

    Missing fields map to None; the linker decides whether that is fatal.
    """
    raw_id = _lookup(userinfo, config.id_field)
    raw_email = _lookup(userinfo, config.email_field)
    email = raw_email.strip().lower() if isinstance(raw_email, str) else None

    if config.email_verified_field is None:
        email_verified = email is not None
    else:
        email_verified = _as_bool(_lookup(userinfo, config.email_verified_field))

    name = _lookup(userinfo, config.name_field)
    image = _lookup(userinfo, config.image_field)
    return OAuthProfile(
        provider_account_id=str(raw_id) if raw_id not in (None, "") else None,
        email=email or None,
        email_verified=email_verified,
        name=name if isinstance(name, str) else None,
        image=image if isinstance(image, str) else None,
        access_token=access_token,
        refresh_token=refresh_token,
        token_expires_at=token_expires_at,
    )
