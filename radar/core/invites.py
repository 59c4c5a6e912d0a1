"""Invite lifecycle: pending -> accepted | cancelled | expired.

Tokens are 64 hex chars from `secrets`. Expiry is enforced whenever a token is
used, whether or not the periodic sweep has flipped the row yet.
"""

from __future__ import annotations

import logging
import math
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode

from radar.core.emails import render_email
from radar.core.errors import Forbidden, NotFound, ValidationError, expect_str
from radar.core.models import InviteStatus, UserInvite
from radar.core.settings import Settings
from radar.core.storage import DB
from radar.core.timeutil import parse_timestamp, to_iso, utcnow
from radar.providers.auth_provider import AuthClient, AuthProviderError
from radar.providers.email import EmailClient, EmailError

logger = logging.getLogger(__name__)

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def generate_token() -> str:
    return secrets.token_hex(32)


@dataclass
class ReminderSummary:
    checked: int = 0
    sent: int = 0
    failed: int = 0
    expired: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"checked": self.checked, "sent": self.sent, "failed": self.failed, "expired": self.expired}


def is_reminder_due(invite: UserInvite, now: datetime, interval_hours: int) -> bool:
    """Never-reminded invites are due at once, others after the interval."""
    last = parse_timestamp(invite.last_reminder_at)
    if last is None:
        return True
    return last < now - timedelta(hours=interval_hours)


def days_until_expiry(invite: UserInvite, now: datetime) -> int:
    remaining = (invite.expires_at() - now).total_seconds() / 86400
    return max(1, math.ceil(remaining))


class InviteService:
    def __init__(self, db: DB, settings: Settings, auth: AuthClient, email: EmailClient) -> None:
        self.db = db
        self.settings = settings
        self.auth = auth
        self.email = email

    # Runtime-tunable through app_settings
    def _setting(self, key: str) -> int:
        return self.db.get_int_setting(key, getattr(self.settings, key))

    def accept_url(self, token: str) -> str:
        return f"{self.settings.base_url}/invites/accept?{urlencode({'token': token})}"

    def _inviter_name(self, user_id: str | None) -> str | None:
        profile = self.db.get_profile(user_id) if user_id else None
        if not profile:
            return None
        if profile["name"]:
            return profile["name"]
        return profile["email"].split("@")[0] if profile["email"] else None

    def require_super_admin(self, user_id: str) -> None:
        profile = self.db.get_profile(user_id)
        if not profile or not profile["is_super_admin"]:
            raise Forbidden("Only super admins can manage invites")

    async def create(
        self,
        *,
        account_id: str,
        user_id: str,
        email: str | None,
        name: str | None = None,
    ) -> UserInvite:
        self.require_super_admin(user_id)
        email = expect_str(email, "email")
        if not email or not _EMAIL.match(email):
            raise ValidationError("Valid email address is required")
        normalized = email.lower()

        if normalized in await self.auth.list_user_emails():
            raise ValidationError("This email is already registered")

        existing = self.db.find_open_invite(normalized)
        if existing is not None:
            if existing.status == InviteStatus.PENDING:
                raise ValidationError("This email already has a pending invite")
            raise ValidationError("This email has already accepted an invite")

        expiry_days = self._setting("invite_expiry_days")
        token = generate_token()
        invite = self.db.insert_invite(
            account_id=account_id,
            email=normalized,
            name=expect_str(name, "name"),
            token=token,
            token_expires_at=to_iso(utcnow() + timedelta(days=expiry_days)),
            invited_by_user_id=user_id,
        )

        html = render_email(
            "invite.html",
            invitee_name=invite.name,
            inviter_name=self._inviter_name(user_id) or "Someone",
            accept_url=self.accept_url(token),
            expires_in_days=expiry_days,
        )
        try:
            await self.email.send(normalized, "You're invited to Radar", html)
        except EmailError:
            # The invite stands; a reminder will retry delivery
            logger.exception(f"Invite email to {normalized} failed")
        return invite

    def list(self, user_id: str, now: datetime | None = None) -> dict[str, Any]:
        self.require_super_admin(user_id)
        expired = self.db.expire_overdue_invites(to_iso(now or utcnow()))
        if expired:
            logger.info(f"Expired {len(expired)} overdue invites")
        invites = self.db.list_invites()
        stats = {"total": len(invites)}
        for status in InviteStatus:
            stats[status.value] = sum(1 for i in invites if i.status == status)
        return {"invites": [i.to_public_dict() for i in invites], "stats": stats}

    def cancel(self, user_id: str, invite_id: str) -> UserInvite:
        self.require_super_admin(user_id)
        invite = self.db.get_invite(invite_id)
        if invite is None:
            raise NotFound("Invite not found")
        if not self.db.transition_invite(
            invite_id, from_status=InviteStatus.PENDING.value, to_status=InviteStatus.CANCELLED.value
        ):
            raise ValidationError("Only pending invites can be cancelled")
        cancelled = self.db.get_invite(invite_id)
        assert cancelled is not None
        return cancelled

    def _expire_if_overdue(self, invite: UserInvite, now: datetime) -> bool:
        if invite.status == InviteStatus.EXPIRED:
            return True
        if invite.expires_at() < now:
            self.db.transition_invite(
                invite.id, from_status=InviteStatus.PENDING.value, to_status=InviteStatus.EXPIRED.value
            )
            return True
        return False

    def check_token(self, token: str | None, now: datetime | None = None) -> str:
        """Where the public accept link should send the browser (a path with query)."""
        if not token:
            return "/signup?error=missing_token"
        invite = self.db.get_invite_by_token(token)
        if invite is None:
            return "/signup?error=invalid_token"
        if invite.status == InviteStatus.ACCEPTED:
            return "/login?message=invite_already_accepted"
        if invite.status == InviteStatus.CANCELLED:
            return "/signup?error=invite_cancelled"
        if self._expire_if_overdue(invite, now or utcnow()):
            return "/signup?error=invite_expired"

        params = {"invite": token, "email": invite.email}
        if invite.name:
            params["name"] = invite.name
        return f"/signup?{urlencode(params)}"

    async def accept(self, token: str | None, user_id: str | None, now: datetime | None = None) -> dict[str, Any]:
        """Mark the invite accepted after signup and auto-confirm the new user's email."""
        token = expect_str(token, "token")
        user_id = expect_str(user_id, "user_id")
        if not token:
            raise ValidationError("Token is required")
        invite = self.db.get_invite_by_token(token)
        if invite is None or invite.status != InviteStatus.PENDING:
            raise ValidationError("Invalid or already used invite")
        if self._expire_if_overdue(invite, now or utcnow()):
            raise ValidationError("Invite has expired")

        if not self.db.transition_invite(
            invite.id,
            from_status=InviteStatus.PENDING.value,
            to_status=InviteStatus.ACCEPTED.value,
            accepted_by_user_id=user_id,
        ):
            raise ValidationError("Invalid or already used invite")

        auto_confirmed = False
        if user_id:
            try:
                await self.auth.confirm_email(user_id)
                auto_confirmed = True
            except AuthProviderError:
                logger.exception(f"Could not auto-confirm invited user {user_id}")
        return {"success": True, "message": "Invite accepted", "auto_confirmed": auto_confirmed}

    async def send_reminders(self, now: datetime | None = None) -> ReminderSummary:
        """Remind due pending invites, then expire the overdue ones.

        A failed send is counted and the batch moves on.
        """
        now = now or utcnow()
        max_reminders = self._setting("invite_reminder_max")
        interval_hours = self._setting("invite_reminder_interval_hours")

        due = [
            invite
            for invite in self.db.pending_invites_for_reminder(max_reminders, to_iso(now))
            if is_reminder_due(invite, now, interval_hours)
        ]
        summary = ReminderSummary(checked=len(due))
        logger.info(f"Found {len(due)} invites due for reminders")

        for invite in due:
            reminder_number = invite.reminder_count + 1
            try:
                html = render_email(
                    "invite_reminder.html",
                    invitee_name=invite.name,
                    inviter_name=self._inviter_name(invite.invited_by_user_id),
                    accept_url=self.accept_url(invite.token),
                    days_until_expiry=days_until_expiry(invite, now),
                    reminder_number=reminder_number,
                )
                await self.email.send(invite.email, "Reminder: your Radar invite is waiting", html)
            except EmailError:
                summary.failed += 1
                logger.exception(f"Reminder {reminder_number} to {invite.email} failed")
                continue
            self.db.record_invite_reminder(invite.id, reminder_number, to_iso(now))
            summary.sent += 1

        summary.expired = len(self.db.expire_overdue_invites(to_iso(now)))
        logger.info(f"Invite reminders: {summary.to_dict()}")
        return summary
