"""Account resolution: map an authenticated user to their tenant account."""

from __future__ import annotations

import logging

from radar.core.models import AuthContext
from radar.core.storage import DB
from radar.providers.auth_provider import AuthUser

logger = logging.getLogger(__name__)


def account_slug_candidates(user_id: str) -> list[str]:
    """Short slug from the user id, then the full id if the short one is taken."""
    return [f"radar-{user_id[:8]}", f"radar-{user_id}"]


def default_account_name(user: AuthUser) -> str:
    if user.name:
        return user.name
    if user.email:
        return user.email.split("@")[0]
    return "My Radar"


def resolve_account(db: DB, user: AuthUser) -> AuthContext:
    """Primary membership first, else the oldest active one, else provision a new account."""
    memberships = db.list_active_memberships(user.id)
    if memberships:
        return AuthContext(account_id=memberships[0]["account_id"], user_id=user.id)

    logger.info(f"No account for user {user.id}, provisioning one")
    db.upsert_profile(user.id, user.email, user.name)
    account_id = db.provision_account(
        user_id=user.id,
        name=default_account_name(user),
        slug_candidates=account_slug_candidates(user.id),
        owner_email=user.email,
    )
    return AuthContext(account_id=account_id, user_id=user.id)
