"""Tests for the invite lifecycle and reminder sweep."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import pytest

from radar.core.errors import Forbidden, NotFound, ValidationError
from radar.core.invites import InviteService, days_until_expiry, is_reminder_due
from radar.core.models import InviteStatus
from radar.core.timeutil import parse_timestamp, to_iso, utcnow
from radar.providers.auth_provider import AuthProviderError
from radar.providers.email import EmailError


@pytest.fixture
def auth():
    client = MagicMock()
    client.list_user_emails = AsyncMock(return_value={"taken@example.com"})
    client.confirm_email = AsyncMock(return_value=None)
    return client


@pytest.fixture
def email():
    client = MagicMock()
    client.send = AsyncMock(return_value="email-1")
    return client


@pytest.fixture
def service(db, settings, auth, email, account_id):
    db.set_super_admin("user-1")
    return InviteService(db, settings, auth, email)


async def _invite(service, account_id, address="friend@example.com", name="Friend"):
    return await service.create(account_id=account_id, user_id="user-1", email=address, name=name)


@pytest.mark.asyncio
class TestCreate:
    async def test_creates_pending_invite_and_emails(self, service, account_id, email):
        invite = await _invite(service, account_id, address="  Friend@Example.com ")
        assert invite.status == InviteStatus.PENDING
        assert invite.email == "friend@example.com"
        assert len(invite.token) == 64
        assert invite.reminder_count == 0

        email.send.assert_awaited_once()
        to, subject, html = email.send.await_args.args
        assert to == "friend@example.com"
        assert "invited" in subject
        assert service.accept_url(invite.token) in html

    async def test_expiry_from_settings(self, service, account_id):
        invite = await _invite(service, account_id)
        remaining = invite.expires_at() - utcnow()
        assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)

    async def test_expiry_override_from_app_settings(self, db, service, account_id):
        db.set_setting("invite_expiry_days", "2")
        invite = await _invite(service, account_id)
        assert invite.expires_at() - utcnow() <= timedelta(days=2)

    async def test_requires_super_admin(self, db, service, account_id):
        db.set_super_admin("user-1", False)
        with pytest.raises(Forbidden):
            await _invite(service, account_id)

    async def test_rejects_bad_email(self, service, account_id):
        with pytest.raises(ValidationError):
            await _invite(service, account_id, address="nope")

    async def test_rejects_registered_email(self, service, account_id):
        with pytest.raises(ValidationError, match="already registered"):
            await _invite(service, account_id, address="taken@example.com")

    async def test_rejects_second_pending_invite(self, service, account_id):
        await _invite(service, account_id)
        with pytest.raises(ValidationError, match="pending"):
            await _invite(service, account_id)

    async def test_cancelled_invite_can_be_reissued(self, service, account_id):
        first = await _invite(service, account_id)
        service.cancel("user-1", first.id)
        second = await _invite(service, account_id)
        assert second.token != first.token

    async def test_email_failure_keeps_invite(self, db, service, account_id, email):
        email.send.side_effect = EmailError("down")
        invite = await _invite(service, account_id)
        assert db.get_invite(invite.id).status == InviteStatus.PENDING


@pytest.mark.asyncio
class TestCheckAndAccept:
    async def test_check_token_redirects(self, service, account_id):
        invite = await _invite(service, account_id)
        target = service.check_token(invite.token)
        parsed = urlparse(target)
        assert parsed.path == "/signup"
        assert parse_qs(parsed.query) == {
            "invite": [invite.token],
            "email": ["friend@example.com"],
            "name": ["Friend"],
        }

    async def test_check_token_errors(self, service, account_id):
        assert service.check_token(None) == "/signup?error=missing_token"
        assert service.check_token("bogus") == "/signup?error=invalid_token"

        invite = await _invite(service, account_id)
        later = utcnow() + timedelta(days=8)
        assert service.check_token(invite.token, now=later) == "/signup?error=invite_expired"
        assert service.db.get_invite(invite.id).status == InviteStatus.EXPIRED

    async def test_accept(self, db, service, account_id, auth):
        invite = await _invite(service, account_id)
        result = await service.accept(invite.token, "new-user")
        assert result == {"success": True, "message": "Invite accepted", "auto_confirmed": True}
        auth.confirm_email.assert_awaited_once_with("new-user")

        stored = db.get_invite(invite.id)
        assert stored.status == InviteStatus.ACCEPTED
        assert stored.accepted_by_user_id == "new-user"
        assert service.check_token(invite.token) == "/login?message=invite_already_accepted"

    async def test_accept_twice_rejected(self, service, account_id):
        invite = await _invite(service, account_id)
        await service.accept(invite.token, "new-user")
        with pytest.raises(ValidationError):
            await service.accept(invite.token, "someone-else")

    async def test_accept_after_expiry_rejected(self, db, service, account_id):
        invite = await _invite(service, account_id)
        with pytest.raises(ValidationError, match="expired"):
            await service.accept(invite.token, "late-user", now=utcnow() + timedelta(days=8))
        assert db.get_invite(invite.id).status == InviteStatus.EXPIRED

    async def test_confirm_failure_still_accepts(self, service, account_id, auth):
        auth.confirm_email.side_effect = AuthProviderError("nope")
        invite = await _invite(service, account_id)
        result = await service.accept(invite.token, "new-user")
        assert result["auto_confirmed"] is False

    async def test_cancelled_invite_cannot_be_accepted(self, service, account_id):
        invite = await _invite(service, account_id)
        service.cancel("user-1", invite.id)
        assert service.check_token(invite.token) == "/signup?error=invite_cancelled"
        with pytest.raises(ValidationError):
            await service.accept(invite.token, "new-user")


@pytest.mark.asyncio
class TestListCancel:
    async def test_list_with_stats(self, service, account_id):
        await _invite(service, account_id, address="a@example.com")
        b = await _invite(service, account_id, address="b@example.com")
        service.cancel("user-1", b.id)

        listing = service.list("user-1")
        assert listing["stats"]["total"] == 2
        assert listing["stats"]["pending"] == 1
        assert listing["stats"]["cancelled"] == 1
        assert all("token" not in i for i in listing["invites"])

    async def test_list_expires_overdue(self, service, account_id):
        await _invite(service, account_id)
        listing = service.list("user-1", now=utcnow() + timedelta(days=8))
        assert listing["stats"]["expired"] == 1

    async def test_cancel_only_pending(self, service, account_id):
        invite = await _invite(service, account_id)
        await service.accept(invite.token, "new-user")
        with pytest.raises(ValidationError):
            service.cancel("user-1", invite.id)
        with pytest.raises(NotFound):
            service.cancel("user-1", "missing")


@pytest.mark.asyncio
class TestReminders:
    async def test_sends_due_reminders(self, db, service, account_id, email):
        invite = await _invite(service, account_id)
        email.send.reset_mock()

        summary = await service.send_reminders()
        assert summary.to_dict() == {"checked": 1, "sent": 1, "failed": 0, "expired": 0}
        assert email.send.await_args.args[0] == "friend@example.com"
        assert db.get_invite(invite.id).reminder_count == 1

        # Not due again until the interval passes
        again = await service.send_reminders()
        assert again.checked == 0
        later = await service.send_reminders(now=utcnow() + timedelta(hours=25))
        assert later.sent == 1
        assert db.get_invite(invite.id).reminder_count == 2

    async def test_reminder_cap(self, db, service, account_id):
        invite = await _invite(service, account_id)
        db.record_invite_reminder(invite.id, 3, to_iso(utcnow() - timedelta(days=2)))
        summary = await service.send_reminders()
        assert summary.checked == 0

    async def test_failed_send_counted(self, db, service, account_id, email):
        invite = await _invite(service, account_id)
        email.send.side_effect = EmailError("down")
        summary = await service.send_reminders()
        assert summary.failed == 1
        assert summary.sent == 0
        assert db.get_invite(invite.id).reminder_count == 0

    async def test_sweep_expires_overdue(self, db, service, account_id):
        invite = await _invite(service, account_id)
        summary = await service.send_reminders(now=utcnow() + timedelta(days=8))
        assert summary.checked == 0
        assert summary.expired == 1
        assert db.get_invite(invite.id).status == InviteStatus.EXPIRED


def test_reminder_due_and_days_left():
    now = utcnow()
    invite = MagicMock(
        last_reminder_at=None,
        expires_at=lambda: now + timedelta(days=2, hours=1),
    )
    assert is_reminder_due(invite, now, 24) is True
    assert days_until_expiry(invite, now) == 3

    invite.last_reminder_at = to_iso(now - timedelta(hours=2))
    assert is_reminder_due(invite, now, 24) is False
    assert parse_timestamp(invite.last_reminder_at) < now
