"""OAuth authentication endpoints.

OAuth initiation and callback for every registered provider. Uses PKCE for
the authorization code flow where the provider supports it.
"""

import logging
import secrets
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from starlette.responses import Response

from app.api.deps import DbSession
from app.core.account_linking import resolve_oauth_identity
from app.core.auth import set_auth_cookie
from app.core.config import settings
from app.core.errors import ValidationError
from app.core.oauth import (
    create_oauth_state_cookie,
    generate_code_challenge,
    generate_code_verifier,
    get_provider_config,
    validate_oauth_state_cookie,
)
from app.core.oauth_client import fetch_profile, is_provider_configured
from app.core.rate_limiting import OAUTH_CALLBACK_LIMIT, OAUTH_INITIATE_LIMIT, limiter
from app.core.tokens import create_session_token

logger = logging.getLogger(__name__)

router = APIRouter()

# Cookie name for OAuth state/PKCE storage
_OAUTH_STATE_COOKIE = "oauth_state"
_OAUTH_STATE_COOKIE_PATH = "/api/v1/auth/callback"
_OAUTH_STATE_TTL = 600


def _get_api_callback_url(request: Request, provider: str) -> str:
    """Build the OAuth callback URL from the request's base URL."""
    base = str(request.base_url).rstrip("/")
    return f"{base}/api/v1/auth/callback/{provider}"


def _require_provider(provider: str) -> None:
    try:
        get_provider_config(provider)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


# ===================================================================
# GET /auth/providers/{provider}: OAuth initiation
# ===================================================================


@router.get("/providers/{provider}")
@limiter.limit(OAUTH_INITIATE_LIMIT)
async def oauth_initiate(
    provider: str,
    request: Request,
) -> Response:
    """Redirect to OAuth provider's authorization URL.

    Generates state for CSRF protection (and a PKCE verifier + challenge
    where supported), stores them in a signed cookie, and redirects to the
    provider.

    Rate limit: 10 per hour per IP.
    """
    _require_provider(provider)
    config = get_provider_config(provider)
    if not is_provider_configured(provider):
        raise ValidationError(f"OAuth provider {provider} is not configured")

    state = secrets.token_urlsafe(32)
    code_verifier = generate_code_verifier() if config.supports_pkce else None

    state_cookie = create_oauth_state_cookie(
        provider=provider,
        state=state,
        code_verifier=code_verifier,
        ttl_seconds=_OAUTH_STATE_TTL,
    )

    params = {
        "client_id": getattr(settings, config.client_id_setting),
        "redirect_uri": _get_api_callback_url(request, provider),
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "state": state,
    }
    if code_verifier is not None:
        params["code_challenge"] = generate_code_challenge(code_verifier)
        params["code_challenge_method"] = "S256"

    # Google-specific: request offline access for refresh token
    if provider == "google":
        params["access_type"] = "offline"
        params["prompt"] = "consent"

    auth_url = f"{config.authorization_url}?{urlencode(params)}"

    redirect = RedirectResponse(url=auth_url, status_code=307)
    redirect.set_cookie(
        key=_OAUTH_STATE_COOKIE,
        value=state_cookie,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        max_age=_OAUTH_STATE_TTL,
        path=_OAUTH_STATE_COOKIE_PATH,
    )
    return redirect


# ===================================================================
# GET /auth/callback/{provider}: OAuth callback
# ===================================================================


@router.get("/callback/{provider}")
@limiter.limit(OAUTH_CALLBACK_LIMIT)
async def oauth_callback(
    provider: str,
    request: Request,
    db: DbSession,
    code: str | None = None,
    state: str | None = None,
) -> Response:
    """Handle OAuth provider callback after user consent.

    Validates state, exchanges the code, fetches the profile, resolves it
    to a user (returning, linked, or new), sets the session cookie and
    redirects to the frontend.
    """
    if not code:
        raise ValidationError("Missing authorization code")
    if not state:
        raise ValidationError("Missing state parameter")

    _require_provider(provider)

    state_cookie = request.cookies.get(_OAUTH_STATE_COOKIE)
    if not state_cookie:
        raise ValidationError("Missing OAuth state cookie")

    oauth_state = validate_oauth_state_cookie(
        cookie_value=state_cookie,
        provider=provider,
        expected_state=state,
    )
    if oauth_state is None:
        raise ValidationError("Invalid or expired OAuth state")

    try:
        profile = await fetch_profile(
            provider=provider,
            code=code,
            code_verifier=oauth_state.code_verifier,
            redirect_uri=_get_api_callback_url(request, provider),
        )
    except (httpx.HTTPError, KeyError):
        logger.exception("OAuth token exchange failed", extra={"provider": provider})
        raise ValidationError("OAuth authentication failed") from None

    user, created = await resolve_oauth_identity(db, provider=provider, profile=profile)
    await db.commit()
    logger.info(
        "OAuth sign-in",
        extra={"user_id": str(user.id), "provider": provider, "new_user": created},
    )

    token = create_session_token(user_id=user.id, role=user.role)

    redirect = RedirectResponse(url=settings.frontend_url, status_code=307)
    set_auth_cookie(redirect, token)
    redirect.delete_cookie(
        key=_OAUTH_STATE_COOKIE,
        path=_OAUTH_STATE_COOKIE_PATH,
    )
    return redirect
