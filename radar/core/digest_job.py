"""Digest batch runs triggered by the cron endpoints.

Each run walks every account subscribed to the cadence, one at a time. A
failing account is recorded in `errors` and the run moves on. Start and
completion are written to the `job_runs` table under the run's `log_id`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from radar.core.digest_pipeline import DigestCadence, DigestGenerator
from radar.core.storage import DB
from radar.core.timeutil import utcnow
from radar.providers.email import EmailClient, EmailError

logger = logging.getLogger(__name__)


class DigestRunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class DigestRun:
    cadence: DigestCadence
    log_id: str | None = None
    status: DigestRunStatus = DigestRunStatus.RUNNING
    processed: int = 0
    sent: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.cadence.value,
            "status": self.status.value,
            "processed": self.processed,
            "sent": self.sent,
            "errors": self.errors,
            "log_id": self.log_id,
        }


class AccountDigestError(Exception):
    pass


async def deliver_digest(
    db: DB,
    generator: DigestGenerator,
    email: EmailClient,
    entry: dict[str, Any],
    cadence: DigestCadence,
    now: datetime,
    log_id: str | None = None,
) -> bool:
    """Generate and send one account's digest. True if an email went out."""
    prefs = entry["preferences"]
    recipient = prefs.email_address or entry.get("owner_email")
    if not recipient:
        raise AccountDigestError("no email address on file")

    digest = await generator.generate(prefs, cadence, now)
    if digest.item_count == 0:
        logger.info(f"[{log_id}] No {cadence.value} content for {prefs.account_id}, skipping send")
        return False

    try:
        email_id = await email.send(recipient, digest.subject, digest.html)
    except EmailError as e:
        raise AccountDigestError(f"email delivery failed: {e}") from e

    db.log_digest(prefs.account_id, cadence.value, email_id, digest.item_count)
    return True


async def run_digest_batch(
    db: DB,
    generator: DigestGenerator,
    email: EmailClient,
    cadence: DigestCadence,
    *,
    job_log: bool = True,
    now: datetime | None = None,
) -> DigestRun:
    now = now or utcnow()
    run = DigestRun(cadence=cadence)
    if job_log:
        run.log_id = db.start_job_run(f"digest_{cadence.value}", {"cadence": cadence.value})

    recipients = db.list_digest_recipients(cadence.frequencies)
    logger.info(f"[{run.log_id}] {cadence.value} digest run for {len(recipients)} accounts")

    try:
        for entry in recipients:
            account_id = entry["preferences"].account_id
            try:
                if await deliver_digest(db, generator, email, entry, cadence, now, run.log_id):
                    run.sent += 1
                run.processed += 1
            except AccountDigestError as e:
                logger.warning(f"[{run.log_id}] Digest for {account_id} failed: {e}")
                run.errors.append(f"{account_id}: {e}")
            except Exception as e:
                logger.exception(f"[{run.log_id}] Unexpected digest failure for {account_id}")
                run.errors.append(f"{account_id}: {type(e).__name__}")
    except BaseException:
        run.status = DigestRunStatus.FAILED
        if run.log_id:
            db.finish_job_run(run.log_id, run.status.value, run.to_dict())
        raise

    run.status = DigestRunStatus.COMPLETED
    if run.log_id:
        db.finish_job_run(run.log_id, run.status.value, run.to_dict())
    logger.info(
        f"[{run.log_id}] {cadence.value} digest run done: "
        f"{run.processed} processed, {run.sent} sent, {len(run.errors)} errors"
    )
    return run
