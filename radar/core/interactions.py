"""Per-account annotations on content items (like, save, dismiss, note, read)."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from radar.core.errors import NotFound, ValidationError, expect_str
from radar.core.models import ContentInteraction
from radar.core.storage import DB
from radar.core.timeutil import now_iso

logger = logging.getLogger(__name__)


class InteractionAction(str, Enum):
    LIKE = "like"  # toggle
    SAVE = "save"  # toggle
    DISMISS = "dismiss"  # one-way
    NOTE = "note"
    READ = "read"  # first read wins


def apply_interaction(
    db: DB,
    account_id: str,
    content_item_id: Any,
    action: Any,
    value: Any = None,
) -> ContentInteraction:
    content_item_id = expect_str(content_item_id, "content_item_id")
    action = expect_str(action, "action")
    if not content_item_id or not action:
        raise ValidationError("content_item_id and action are required")
    try:
        parsed = InteractionAction(action)
    except ValueError:
        raise ValidationError(f"Unknown action: {action}") from None

    if not db.content_exists(account_id, content_item_id):
        raise NotFound("Content not found")

    if parsed == InteractionAction.NOTE:
        if value is not None and not isinstance(value, str):
            raise ValidationError("Note must be a string")
    elif parsed == InteractionAction.READ:
        value = now_iso()

    return db.upsert_interaction(account_id, content_item_id, parsed.value, value)
