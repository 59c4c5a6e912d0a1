"""FastAPI dependencies: shared clients, request auth and service wiring.

Clients are built once per process from `Settings` and shared by all requests.
Tests swap any of these out through `app.dependency_overrides`.
"""

from __future__ import annotations

import hmac
import logging
from functools import lru_cache

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from radar.core.accounts import resolve_account
from radar.core.content_fetcher import ContentFetcher
from radar.core.digest_pipeline import DigestGenerator
from radar.core.errors import RadarError, Unauthenticated, UpstreamFailure
from radar.core.invites import InviteService
from radar.core.llm_providers import LLMProvider, OpenAIChatProvider
from radar.core.models import AuthContext
from radar.core.settings import Settings, get_settings
from radar.core.sources import SourceRegistry
from radar.core.storage import DB, get_db
from radar.providers.auth_provider import AuthClient, AuthProviderError
from radar.providers.email import EmailClient
from radar.providers.social import SocialClient
from radar.providers.youtube import YouTubeClient

logger = logging.getLogger(__name__)

SESSION_COOKIE = "sb-access-token"

bearer_scheme = HTTPBearer(auto_error=False)


def settings_dep() -> Settings:
    return get_settings()


def db_dep() -> DB:
    return get_db()


@lru_cache(maxsize=1)
def _auth_client(base_url: str, service_key: str) -> AuthClient:
    return AuthClient(base_url, service_key)


def get_auth_client(settings: Settings = Depends(settings_dep)) -> AuthClient:
    return _auth_client(settings.auth_url, settings.auth_service_key)


@lru_cache(maxsize=1)
def _email_client(api_key: str, sender: str) -> EmailClient:
    return EmailClient(api_key, sender)


def get_email_client(settings: Settings = Depends(settings_dep)) -> EmailClient:
    return _email_client(settings.resend_api_key, settings.email_from)


def get_social_client(settings: Settings = Depends(settings_dep)) -> SocialClient:
    return SocialClient(settings.x_bearer_token)


def get_youtube_client(settings: Settings = Depends(settings_dep)) -> YouTubeClient:
    return YouTubeClient(settings.youtube_api_key, timeout=settings.lookup_timeout)


@lru_cache(maxsize=1)
def _llm(model: str, api_key: str) -> LLMProvider:
    return OpenAIChatProvider(model=model, api_key=api_key)


def get_llm(settings: Settings = Depends(settings_dep)) -> LLMProvider:
    return _llm(settings.digest_model, settings.openai_api_key)


@lru_cache(maxsize=1)
def _fetcher(timeout: float) -> ContentFetcher:
    return ContentFetcher(timeout=timeout)


def get_content_fetcher(settings: Settings = Depends(settings_dep)) -> ContentFetcher:
    return _fetcher(settings.full_article_timeout)


def get_source_registry(
    db: DB = Depends(db_dep),
    settings: Settings = Depends(settings_dep),
) -> SourceRegistry:
    return SourceRegistry(db, settings.max_sources_per_account, settings.source_warn_threshold)


def get_invite_service(
    db: DB = Depends(db_dep),
    settings: Settings = Depends(settings_dep),
    auth: AuthClient = Depends(get_auth_client),
    email: EmailClient = Depends(get_email_client),
) -> InviteService:
    return InviteService(db, settings, auth, email)


def get_digest_generator(
    db: DB = Depends(db_dep),
    llm: LLMProvider = Depends(get_llm),
    settings: Settings = Depends(settings_dep),
) -> DigestGenerator:
    return DigestGenerator(db, llm, settings.base_url)


# --- request authentication ----------------------------------------------------


def _session_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE) or None


async def get_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    db: DB = Depends(db_dep),
    auth: AuthClient = Depends(get_auth_client),
) -> AuthContext:
    """Resolve the caller's user and tenant account, provisioning one if needed."""
    token = _session_token(request, credentials)
    if not token:
        raise Unauthenticated()
    try:
        user = await auth.get_user(token)
    except AuthProviderError as e:
        raise UpstreamFailure(str(e), service="auth") from e
    if user is None:
        raise Unauthenticated()
    return resolve_account(db, user)


def _secret_matches(credentials: HTTPAuthorizationCredentials | None, secret: str) -> bool:
    if credentials is None or not credentials.credentials:
        return False
    return hmac.compare_digest(credentials.credentials.encode(), secret.encode())


def require_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    settings: Settings = Depends(settings_dep),
) -> None:
    # No secret configured: dev mode, triggers are open
    if not settings.cron_secret:
        return
    if not _secret_matches(credentials, settings.cron_secret):
        raise Unauthenticated()


def require_ingest_key(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    settings: Settings = Depends(settings_dep),
) -> None:
    if not settings.ingest_api_key:
        logger.error("INGEST_API_KEY not configured")
        raise RadarError("Server configuration error")
    if not _secret_matches(credentials, settings.ingest_api_key):
        raise Unauthenticated()
