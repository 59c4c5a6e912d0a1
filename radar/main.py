from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from radar.core import content as content_store
from radar.core import topics as topic_registry
from radar.core.content_fetcher import ContentFetcher
from radar.core.digest_job import run_digest_batch
from radar.core.digest_pipeline import DigestCadence, DigestGenerator
from radar.core.errors import RadarError, ValidationError
from radar.core.ingest import ingest_tweets
from radar.core.interactions import apply_interaction
from radar.core.invites import InviteService
from radar.core.llm_providers import LLMProvider
from radar.core.models import AuthContext
from radar.core.preferences import get_preferences, save_preferences
from radar.core.settings import Settings
from radar.core.source_lookup import lookup_source
from radar.core.sources import SourceRegistry
from radar.core.storage import DB, init_db
from radar.core.whats_hot import list_posts, publish
from radar.dependencies import (
    db_dep,
    get_auth_context,
    get_content_fetcher,
    get_digest_generator,
    get_email_client,
    get_invite_service,
    get_llm,
    get_social_client,
    get_source_registry,
    get_youtube_client,
    require_cron_secret,
    require_ingest_key,
    settings_dep,
)
from radar.providers.email import EmailClient
from radar.providers.social import SocialClient
from radar.providers.youtube import YouTubeClient

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again."

app = FastAPI(title="radar")


@app.on_event("startup")
def _startup() -> None:
    init_db()


@app.exception_handler(RadarError)
async def radar_error_handler(request: Request, exc: RadarError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def _require_id(value: Any, what: str = "ID") -> str:
    if not value or not isinstance(value, str):
        raise ValidationError(f"{what} is required")
    return value


# --- sources -------------------------------------------------------------------


@app.get("/sources")
def sources_list(
    ctx: AuthContext = Depends(get_auth_context),
    registry: SourceRegistry = Depends(get_source_registry),
):
    return [s.to_dict() for s in registry.list(ctx.account_id)]


@app.get("/sources/quota")
def sources_quota(
    ctx: AuthContext = Depends(get_auth_context),
    registry: SourceRegistry = Depends(get_source_registry),
):
    return registry.quota(ctx.account_id).to_dict()


@app.post("/sources")
def sources_create(
    payload: dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    registry: SourceRegistry = Depends(get_source_registry),
):
    return registry.create(ctx.account_id, payload).to_dict()


@app.patch("/sources")
def sources_update(
    payload: dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    registry: SourceRegistry = Depends(get_source_registry),
):
    source_id = _require_id(payload.get("id"))
    return registry.update(ctx.account_id, source_id, payload).to_dict()


@app.delete("/sources")
def sources_delete(
    id: str | None = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
    registry: SourceRegistry = Depends(get_source_registry),
):
    registry.delete(ctx.account_id, _require_id(id))
    return {"success": True}


@app.post("/sources/lookup")
async def sources_lookup(
    payload: dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    youtube: YouTubeClient = Depends(get_youtube_client),
    settings: Settings = Depends(settings_dep),
):
    suggestion = await lookup_source(payload.get("url"), youtube, settings.lookup_timeout)
    return suggestion.to_dict()


# --- topics --------------------------------------------------------------------


@app.get("/topics")
def topics_list(ctx: AuthContext = Depends(get_auth_context), db: DB = Depends(db_dep)):
    return [t.to_dict() for t in topic_registry.list_topics(db, ctx.account_id)]


@app.post("/topics")
def topics_create(
    payload: dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
):
    topic = topic_registry.create_topic(
        db, ctx.account_id, payload.get("name"), payload.get("color"), payload.get("icon")
    )
    return topic.to_dict()


@app.patch("/topics")
def topics_update(
    payload: dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
):
    topic_id = _require_id(payload.get("id"))
    return topic_registry.update_topic(db, ctx.account_id, topic_id, payload).to_dict()


@app.delete("/topics")
def topics_delete(
    id: str | None = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
):
    topic_registry.delete_topic(db, ctx.account_id, _require_id(id))
    return {"success": True}


@app.post("/topics/seed")
def topics_seed(ctx: AuthContext = Depends(get_auth_context), db: DB = Depends(db_dep)):
    return topic_registry.seed_default_topics(db, ctx.account_id)


# --- content -------------------------------------------------------------------


@app.get("/content")
def content_list(
    topic: str | None = None,
    search: str | None = None,
    saved: bool = False,
    limit: int = 50,
    offset: int = 0,
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
):
    entries = content_store.query_content(
        db,
        ctx.account_id,
        topic_slug=topic,
        search=search,
        saved_only=saved,
        limit=limit,
        offset=offset,
    )
    return [e.to_dict() for e in entries]


@app.delete("/content")
def content_delete(
    id: str | None = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
):
    content_store.delete_content(db, ctx.account_id, _require_id(id))
    return {"success": True}


@app.get("/content/{item_id}")
def content_detail(item_id: str, ctx: AuthContext = Depends(get_auth_context), db: DB = Depends(db_dep)):
    return content_store.get_content(db, ctx.account_id, item_id).to_dict()


@app.get("/content/{item_id}/full-article")
async def content_full_article(
    item_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
    fetcher: ContentFetcher = Depends(get_content_fetcher),
):
    body = await content_store.get_full_article(db, fetcher, ctx.account_id, item_id)
    return {"content": body}


@app.post("/content/{item_id}/summarize")
async def content_summarize(
    item_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
    llm: LLMProvider = Depends(get_llm),
):
    return await content_store.summarize_content(db, llm, ctx.account_id, item_id)


# --- interactions --------------------------------------------------------------


@app.post("/interactions")
def interactions_apply(
    payload: dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
):
    interaction = apply_interaction(
        db,
        ctx.account_id,
        payload.get("content_item_id"),
        payload.get("action"),
        payload.get("value"),
    )
    return interaction.to_dict()


# --- preferences ---------------------------------------------------------------


@app.get("/preferences")
def preferences_get(ctx: AuthContext = Depends(get_auth_context), db: DB = Depends(db_dep)):
    return get_preferences(db, ctx.account_id).to_dict()


@app.post("/preferences")
def preferences_save(
    payload: dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
):
    return save_preferences(db, ctx.account_id, payload).to_dict()


# --- digests -------------------------------------------------------------------


def _cadence(value: Any) -> DigestCadence:
    try:
        return DigestCadence(value)
    except ValueError:
        raise ValidationError("Invalid digest type") from None


@app.post("/digests/preview")
async def digests_preview(
    payload: dict[str, Any] = Body(default_factory=dict),
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
    generator: DigestGenerator = Depends(get_digest_generator),
):
    cadence = _cadence(payload.get("type", DigestCadence.MORNING.value))
    digest = await generator.generate(get_preferences(db, ctx.account_id), cadence)
    return digest.to_dict()


async def _run_cron_digest(
    cadence: DigestCadence,
    db: DB,
    generator: DigestGenerator,
    email: EmailClient,
    settings: Settings,
) -> dict[str, Any]:
    run = await run_digest_batch(db, generator, email, cadence, job_log=settings.job_log_enabled)
    return {"success": True, **run.to_dict()}


@app.get("/cron/morning-digest", dependencies=[Depends(require_cron_secret)])
async def cron_morning_digest(
    db: DB = Depends(db_dep),
    generator: DigestGenerator = Depends(get_digest_generator),
    email: EmailClient = Depends(get_email_client),
    settings: Settings = Depends(settings_dep),
):
    return await _run_cron_digest(DigestCadence.MORNING, db, generator, email, settings)


@app.get("/cron/evening-digest", dependencies=[Depends(require_cron_secret)])
async def cron_evening_digest(
    db: DB = Depends(db_dep),
    generator: DigestGenerator = Depends(get_digest_generator),
    email: EmailClient = Depends(get_email_client),
    settings: Settings = Depends(settings_dep),
):
    return await _run_cron_digest(DigestCadence.EVENING, db, generator, email, settings)


@app.get("/cron/weekly-digest", dependencies=[Depends(require_cron_secret)])
async def cron_weekly_digest(
    db: DB = Depends(db_dep),
    generator: DigestGenerator = Depends(get_digest_generator),
    email: EmailClient = Depends(get_email_client),
    settings: Settings = Depends(settings_dep),
):
    return await _run_cron_digest(DigestCadence.WEEKLY, db, generator, email, settings)


@app.get("/cron/invite-reminders", dependencies=[Depends(require_cron_secret)])
async def cron_invite_reminders(invites: InviteService = Depends(get_invite_service)):
    summary = await invites.send_reminders()
    return {"success": True, "summary": summary.to_dict()}


# --- ingestion -----------------------------------------------------------------


@app.post("/ingest/tweets", dependencies=[Depends(require_ingest_key)])
def ingest_tweets_endpoint(payload: dict[str, Any] = Body(...), db: DB = Depends(db_dep)):
    result = ingest_tweets(
        db,
        payload.get("account_id"),
        payload.get("tweets"),
        topic_id=payload.get("topic_id"),
        source_id=payload.get("source_id"),
    )
    return result.to_dict()


# --- invites -------------------------------------------------------------------


@app.get("/invites/accept")
def invites_accept_link(
    token: str | None = None,
    db: DB = Depends(db_dep),
    settings: Settings = Depends(settings_dep),
    invites: InviteService = Depends(get_invite_service),
):
    try:
        target = invites.check_token(token)
    except Exception:
        logger.exception("Invite link check failed")
        target = "/signup?error=server_error"
    return RedirectResponse(f"{settings.base_url}{target}", status_code=307)


@app.post("/invites/accept")
async def invites_accept(
    payload: dict[str, Any] = Body(...),
    invites: InviteService = Depends(get_invite_service),
):
    user_id = payload.get("user_id") or payload.get("userId")
    return await invites.accept(payload.get("token"), user_id)


@app.post("/invites")
async def invites_create(
    payload: dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    invites: InviteService = Depends(get_invite_service),
):
    invite = await invites.create(
        account_id=ctx.account_id,
        user_id=ctx.user_id,
        email=payload.get("email"),
        name=payload.get("name"),
    )
    return {"success": True, "invite": invite.to_public_dict()}


@app.get("/invites")
def invites_list(
    ctx: AuthContext = Depends(get_auth_context),
    invites: InviteService = Depends(get_invite_service),
):
    return invites.list(ctx.user_id)


@app.delete("/invites/{invite_id}")
def invites_cancel(
    invite_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    invites: InviteService = Depends(get_invite_service),
):
    invite = invites.cancel(ctx.user_id, invite_id)
    return {"success": True, "invite": invite.to_public_dict()}


# --- what's hot ----------------------------------------------------------------


@app.post("/publish")
async def publish_post(
    payload: dict[str, Any] = Body(...),
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
    social: SocialClient = Depends(get_social_client),
):
    return await publish(db, social, ctx.account_id, payload)


@app.get("/publish")
def publish_list(
    page: int = 1,
    limit: int = 10,
    topic_id: str | None = None,
    ctx: AuthContext = Depends(get_auth_context),
    db: DB = Depends(db_dep),
):
    return list_posts(db, ctx.account_id, page=page, limit=limit, topic_id=topic_id)
