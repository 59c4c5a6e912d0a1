from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

from radar.core.models import (
    Account,
    ContentEntry,
    ContentInteraction,
    ContentItem,
    Source,
    Topic,
    UserInvite,
    UserPreferences,
    WhatsHotPost,
)
from radar.core.settings import get_settings
from radar.core.timeutil import now_iso

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user search text matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS accounts (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  slug TEXT NOT NULL UNIQUE,
  plan TEXT NOT NULL DEFAULT 'free',
  status TEXT NOT NULL DEFAULT 'active',
  created_by TEXT,
  created_by_type TEXT NOT NULL DEFAULT 'user',
  owner_email TEXT,
  created_at TEXT NOT NULL
);

-- one auto-provisioned account per user
CREATE UNIQUE INDEX IF NOT EXISTS idx_accounts_created_by
  ON accounts(created_by) WHERE created_by_type = 'user';

CREATE TABLE IF NOT EXISTS user_accounts (
  id TEXT PRIMARY KEY,
  user_id TEXT NOT NULL,
  account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
  role TEXT NOT NULL DEFAULT 'member',
  is_primary INTEGER NOT NULL DEFAULT 0,
  status TEXT NOT NULL DEFAULT 'active',
  created_at TEXT NOT NULL,
  UNIQUE(user_id, account_id)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_user_accounts_primary
  ON user_accounts(user_id) WHERE is_primary = 1 AND status = 'active';

CREATE TABLE IF NOT EXISTS user_profiles (
  id TEXT PRIMARY KEY,
  email TEXT,
  name TEXT,
  is_super_admin INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS topics (
  id TEXT PRIMARY KEY,
  account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
  name TEXT NOT NULL,
  slug TEXT NOT NULL,
  color TEXT,
  icon TEXT,
  is_default INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  UNIQUE(account_id, slug)
);

CREATE TABLE IF NOT EXISTS sources (
  id TEXT PRIMARY KEY,
  account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
  type TEXT NOT NULL CHECK (type IN ('rss', 'youtube', 'twitter', 'polymarket')),
  name TEXT NOT NULL,
  url TEXT NOT NULL,
  channel_id TEXT,
  username TEXT,
  topic_id TEXT REFERENCES topics(id) ON DELETE SET NULL,
  metadata TEXT,
  is_active INTEGER NOT NULL DEFAULT 1,
  last_fetched_at TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sources_account ON sources(account_id, created_at);

CREATE TABLE IF NOT EXISTS content_items (
  id TEXT PRIMARY KEY,
  account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
  source_id TEXT REFERENCES sources(id) ON DELETE SET NULL,
  topic_id TEXT REFERENCES topics(id) ON DELETE SET NULL,
  type TEXT NOT NULL CHECK (type IN ('article', 'video', 'tweet', 'prediction')),
  title TEXT NOT NULL,
  summary TEXT,
  content TEXT,
  url TEXT,
  thumbnail_url TEXT,
  author TEXT,
  published_at TEXT,
  external_id TEXT,
  metadata TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  UNIQUE(account_id, external_id)
);

CREATE INDEX IF NOT EXISTS idx_content_account_published ON content_items(account_id, published_at);
CREATE INDEX IF NOT EXISTS idx_content_source ON content_items(source_id);

CREATE TABLE IF NOT EXISTS content_interactions (
  id TEXT PRIMARY KEY,
  account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
  content_item_id TEXT NOT NULL REFERENCES content_items(id) ON DELETE CASCADE,
  is_liked INTEGER NOT NULL DEFAULT 0,
  is_saved INTEGER NOT NULL DEFAULT 0,
  is_dismissed INTEGER NOT NULL DEFAULT 0,
  notes TEXT,
  read_at TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  UNIQUE(account_id, content_item_id)
);

CREATE TABLE IF NOT EXISTS user_preferences (
  account_id TEXT PRIMARY KEY REFERENCES accounts(id) ON DELETE CASCADE,
  digest_enabled INTEGER NOT NULL DEFAULT 1,
  digest_frequency TEXT NOT NULL DEFAULT 'daily'
    CHECK (digest_frequency IN ('daily', 'weekly', 'both', 'none')),
  digest_time TEXT NOT NULL DEFAULT '06:00:00',
  digest_timezone TEXT,
  digest_topics TEXT,
  email_address TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS digest_history (
  id TEXT PRIMARY KEY,
  account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
  digest_type TEXT NOT NULL,
  email_id TEXT,
  item_count INTEGER NOT NULL DEFAULT 0,
  sent_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_invites (
  id TEXT PRIMARY KEY,
  account_id TEXT REFERENCES accounts(id) ON DELETE SET NULL,
  email TEXT NOT NULL,
  name TEXT,
  token TEXT NOT NULL UNIQUE,
  token_expires_at TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'pending'
    CHECK (status IN ('pending', 'accepted', 'cancelled', 'expired')),
  reminder_count INTEGER NOT NULL DEFAULT 0,
  last_reminder_at TEXT,
  invited_by_user_id TEXT,
  accepted_at TEXT,
  accepted_by_user_id TEXT,
  created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_invites_status_expiry ON user_invites(status, token_expires_at);

CREATE TABLE IF NOT EXISTS whats_hot_posts (
  id TEXT PRIMARY KEY,
  account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
  content_item_id TEXT REFERENCES content_items(id) ON DELETE SET NULL,
  title TEXT NOT NULL,
  summary TEXT NOT NULL,
  url TEXT NOT NULL,
  thumbnail_url TEXT,
  topic_id TEXT REFERENCES topics(id) ON DELETE SET NULL,
  author TEXT,
  status TEXT NOT NULL DEFAULT 'published',
  published_at TEXT NOT NULL,
  hashtags TEXT,
  x_post_enabled INTEGER NOT NULL DEFAULT 0,
  x_post_id TEXT,
  x_posted_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_whats_hot_account ON whats_hot_posts(account_id, published_at);

-- Batch job log (cron runs)
CREATE TABLE IF NOT EXISTS job_runs (
  id TEXT PRIMARY KEY,
  kind TEXT NOT NULL,
  status TEXT NOT NULL,
  input_json TEXT,
  output_json TEXT,
  created_at TEXT NOT NULL,
  finished_at TEXT
);

-- Key-value runtime settings
CREATE TABLE IF NOT EXISTS app_settings (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""


def _subrow(row: sqlite3.Row, prefix: str) -> dict[str, Any] | None:
    """Columns aliased as `<prefix>__<name>` from a joined row, or None if the join missed."""
    marker = f"{prefix}__"
    data = {k[len(marker):]: row[k] for k in row.keys() if k.startswith(marker)}
    if data.get("id") is None:
        return None
    return data


_ENTRY_SELECT = """
    SELECT c.*,
           t.id AS topic__id, t.account_id AS topic__account_id, t.name AS topic__name,
           t.slug AS topic__slug, t.color AS topic__color, t.icon AS topic__icon,
           t.is_default AS topic__is_default, t.created_at AS topic__created_at,
           s.id AS source__id, s.account_id AS source__account_id, s.type AS source__type,
           s.name AS source__name, s.url AS source__url, s.channel_id AS source__channel_id,
           s.username AS source__username, s.topic_id AS source__topic_id,
           s.metadata AS source__metadata, s.is_active AS source__is_active,
           s.last_fetched_at AS source__last_fetched_at, s.created_at AS source__created_at,
           i.id AS interaction__id, i.account_id AS interaction__account_id,
           i.content_item_id AS interaction__content_item_id, i.is_liked AS interaction__is_liked,
           i.is_saved AS interaction__is_saved, i.is_dismissed AS interaction__is_dismissed,
           i.notes AS interaction__notes, i.read_at AS interaction__read_at,
           i.created_at AS interaction__created_at, i.updated_at AS interaction__updated_at
    FROM content_items c
    LEFT JOIN topics t ON t.id = c.topic_id AND t.account_id = c.account_id
    LEFT JOIN sources s ON s.id = c.source_id AND s.account_id = c.account_id
    LEFT JOIN content_interactions i ON i.content_item_id = c.id AND i.account_id = c.account_id
"""


def _entry_from_row(row: sqlite3.Row) -> ContentEntry:
    topic = _subrow(row, "topic")
    source = _subrow(row, "source")
    interaction = _subrow(row, "interaction")
    return ContentEntry(
        item=ContentItem.from_row(row),
        topic=Topic.from_row(topic) if topic else None,
        source=Source.from_row(source) if source else None,
        interaction=ContentInteraction.from_row(interaction) if interaction else None,
    )


# Per-action upsert: (column, value on insert, SET clause on conflict).
# Toggles flip the stored value inside the statement, so concurrent
# toggles on the same row serialize in the database.
_INTERACTION_UPSERTS: dict[str, tuple[str, str, str]] = {
    "like": ("is_liked", "1", "is_liked = NOT content_interactions.is_liked"),
    "save": ("is_saved", "1", "is_saved = NOT content_interactions.is_saved"),
    "dismiss": ("is_dismissed", "1", "is_dismissed = 1"),
    "note": ("notes", "?", "notes = excluded.notes"),
    "read": ("read_at", "?", "read_at = COALESCE(content_interactions.read_at, excluded.read_at)"),
}

SOURCE_MUTABLE_FIELDS = ("name", "url", "channel_id", "username", "topic_id", "metadata")


@dataclass
class DB:
    conn: sqlite3.Connection
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def init(self) -> None:
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialize a multi-statement write and commit it atomically."""
        with self._lock:
            try:
                yield self.conn
            except Exception:
                self.conn.rollback()
                raise
            self.conn.commit()

    # ----------------------------------------------------------------- accounts

    def list_active_memberships(self, user_id: str) -> list[dict[str, Any]]:
        cur = self.conn.execute(
            """
            SELECT ua.account_id, ua.is_primary, ua.role
            FROM user_accounts ua
            JOIN accounts a ON a.id = ua.account_id
            WHERE ua.user_id = ? AND ua.status = 'active' AND a.status = 'active'
            ORDER BY ua.is_primary DESC, ua.created_at ASC, ua.id ASC
            LIMIT 10
            """,
            (user_id,),
        )
        return [
            {"account_id": r["account_id"], "is_primary": bool(r["is_primary"]), "role": r["role"]}
            for r in cur.fetchall()
        ]

    def provision_account(
        self,
        *,
        user_id: str,
        name: str,
        slug_candidates: list[str],
        owner_email: str | None,
    ) -> str:
        """Create (or find) the user's auto-provisioned account and owner membership.

        Safe to call concurrently for the same user: the unique index on
        `accounts.created_by` makes the losing insert a no-op and both callers
        read back the same row.
        """
        now = now_iso()
        with self.transaction() as conn:
            account_id = None
            for slug in slug_candidates:
                conn.execute(
                    """
                    INSERT INTO accounts (id, name, slug, plan, status, created_by,
                                          created_by_type, owner_email, created_at)
                    VALUES (?, ?, ?, 'free', 'active', ?, 'user', ?, ?)
                    ON CONFLICT DO NOTHING
                    """,
                    (new_id(), name, slug, user_id, owner_email, now),
                )
                row = conn.execute(
                    "SELECT id FROM accounts WHERE created_by = ? AND created_by_type = 'user'",
                    (user_id,),
                ).fetchone()
                if row:
                    account_id = row["id"]
                    break
            if account_id is None:
                raise RuntimeError(f"Could not provision account for user {user_id}")

            has_primary = conn.execute(
                """SELECT 1 FROM user_accounts
                   WHERE user_id = ? AND is_primary = 1 AND status = 'active'""",
                (user_id,),
            ).fetchone()
            conn.execute(
                """
                INSERT INTO user_accounts (id, user_id, account_id, role, is_primary, status, created_at)
                VALUES (?, ?, ?, 'owner', ?, 'active', ?)
                ON CONFLICT(user_id, account_id) DO UPDATE SET status = 'active'
                """,
                (new_id(), user_id, account_id, 0 if has_primary else 1, now),
            )
        return account_id

    def get_account(self, account_id: str) -> Account | None:
        row = self.conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        return Account.from_row(row) if row else None

    def upsert_profile(self, user_id: str, email: str | None, name: str | None) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO user_profiles (id, email, name, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email = COALESCE(excluded.email, email),
                    name = COALESCE(excluded.name, name)
                """,
                (user_id, email, name, now_iso()),
            )

    def get_profile(self, user_id: str) -> dict[str, Any] | None:
        row = self.conn.execute(
            "SELECT id, email, name, is_super_admin FROM user_profiles WHERE id = ?",
            (user_id,),
        ).fetchone()
        if not row:
            return None
        return {
            "id": row["id"],
            "email": row["email"],
            "name": row["name"],
            "is_super_admin": bool(row["is_super_admin"]),
        }

    def set_super_admin(self, user_id: str, value: bool = True) -> None:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE user_profiles SET is_super_admin = ? WHERE id = ?",
                (1 if value else 0, user_id),
            )

    # ------------------------------------------------------------------ sources

    def list_sources(self, account_id: str) -> list[Source]:
        cur = self.conn.execute(
            "SELECT * FROM sources WHERE account_id = ? ORDER BY created_at DESC, id DESC",
            (account_id,),
        )
        return [Source.from_row(r) for r in cur.fetchall()]

    def count_sources(self, account_id: str) -> int:
        cur = self.conn.execute("SELECT COUNT(*) FROM sources WHERE account_id = ?", (account_id,))
        return cur.fetchone()[0]

    def get_source(self, account_id: str, source_id: str) -> Source | None:
        row = self.conn.execute(
            "SELECT * FROM sources WHERE id = ? AND account_id = ?",
            (source_id, account_id),
        ).fetchone()
        return Source.from_row(row) if row else None

    def insert_source_within_quota(
        self,
        *,
        account_id: str,
        type: str,
        name: str,
        url: str,
        channel_id: str | None,
        username: str | None,
        topic_id: str | None,
        metadata: dict[str, Any] | None,
        limit: int,
    ) -> str | None:
        """Insert a source unless the account already holds `limit` sources.

        Count and insert run as one statement. Returns the new id, or None at cap.
        """
        source_id = new_id()
        now = now_iso()
        with self.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO sources (id, account_id, type, name, url, channel_id, username,
                                     topic_id, metadata, is_active, created_at, updated_at)
                SELECT ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?
                WHERE (SELECT COUNT(*) FROM sources WHERE account_id = ?) < ?
                """,
                (
                    source_id, account_id, type, name, url, channel_id, username, topic_id,
                    json.dumps(metadata) if metadata is not None else None,
                    now, now, account_id, limit,
                ),
            )
            inserted = cur.rowcount > 0
        return source_id if inserted else None

    def update_source(self, account_id: str, source_id: str, fields: Mapping[str, Any]) -> bool:
        """Update whitelisted columns. Changing topic_id re-tags the source's content."""
        updates = {k: v for k, v in fields.items() if k in SOURCE_MUTABLE_FIELDS}
        if "metadata" in updates and updates["metadata"] is not None:
            updates["metadata"] = json.dumps(updates["metadata"])
        now = now_iso()
        with self.transaction() as conn:
            if updates:
                assignments = ", ".join(f"{col} = ?" for col in updates)
                cur = conn.execute(
                    f"UPDATE sources SET {assignments}, updated_at = ? WHERE id = ? AND account_id = ?",
                    (*updates.values(), now, source_id, account_id),
                )
            else:
                cur = conn.execute(
                    "SELECT 1 FROM sources WHERE id = ? AND account_id = ?",
                    (source_id, account_id),
                )
                return cur.fetchone() is not None
            if cur.rowcount == 0:
                return False
            if "topic_id" in updates:
                conn.execute(
                    """UPDATE content_items SET topic_id = ?, updated_at = ?
                       WHERE source_id = ? AND account_id = ?""",
                    (updates["topic_id"], now, source_id, account_id),
                )
        return True

    def delete_source(self, account_id: str, source_id: str) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM sources WHERE id = ? AND account_id = ?",
                (source_id, account_id),
            )
            return cur.rowcount > 0

    # ------------------------------------------------------------------- topics

    def list_topics(self, account_id: str) -> list[Topic]:
        cur = self.conn.execute(
            "SELECT * FROM topics WHERE account_id = ? ORDER BY name COLLATE NOCASE, id",
            (account_id,),
        )
        return [Topic.from_row(r) for r in cur.fetchall()]

    def count_topics(self, account_id: str) -> int:
        cur = self.conn.execute("SELECT COUNT(*) FROM topics WHERE account_id = ?", (account_id,))
        return cur.fetchone()[0]

    def get_topic(self, account_id: str, topic_id: str) -> Topic | None:
        row = self.conn.execute(
            "SELECT * FROM topics WHERE id = ? AND account_id = ?",
            (topic_id, account_id),
        ).fetchone()
        return Topic.from_row(row) if row else None

    def get_topic_by_slug(self, account_id: str, slug: str) -> Topic | None:
        row = self.conn.execute(
            "SELECT * FROM topics WHERE slug = ? AND account_id = ?",
            (slug, account_id),
        ).fetchone()
        return Topic.from_row(row) if row else None

    def insert_topic(
        self,
        *,
        account_id: str,
        name: str,
        slug: str,
        color: str | None,
        icon: str | None,
        is_default: bool = False,
    ) -> str | None:
        """Insert a topic; None if the slug is already taken in this account."""
        topic_id = new_id()
        now = now_iso()
        with self.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO topics (id, account_id, name, slug, color, icon, is_default,
                                    created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id, slug) DO NOTHING
                """,
                (topic_id, account_id, name, slug, color, icon, 1 if is_default else 0, now, now),
            )
            inserted = cur.rowcount > 0
        return topic_id if inserted else None

    def seed_topics(self, account_id: str, topics: list[dict[str, str]]) -> int:
        """Insert default topics if the account has none. Returns rows inserted."""
        now = now_iso()
        with self.transaction() as conn:
            existing = conn.execute(
                "SELECT COUNT(*) FROM topics WHERE account_id = ?", (account_id,)
            ).fetchone()[0]
            if existing:
                return 0
            conn.executemany(
                """
                INSERT INTO topics (id, account_id, name, slug, color, icon, is_default,
                                    created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)
                """,
                [
                    (new_id(), account_id, t["name"], t["slug"], t["color"], t["icon"], now, now)
                    for t in topics
                ],
            )
        return len(topics)

    def update_topic(self, account_id: str, topic_id: str, fields: Mapping[str, Any]) -> bool | None:
        """Update name/slug/color/icon. False if the topic is gone, None if the slug is taken."""
        allowed = {k: v for k, v in fields.items() if k in ("name", "slug", "color", "icon")}
        if not allowed:
            return self.get_topic(account_id, topic_id) is not None
        assignments = ", ".join(f"{col} = ?" for col in allowed)
        try:
            with self.transaction() as conn:
                cur = conn.execute(
                    f"UPDATE topics SET {assignments}, updated_at = ? WHERE id = ? AND account_id = ?",
                    (*allowed.values(), now_iso(), topic_id, account_id),
                )
                return cur.rowcount > 0
        except sqlite3.IntegrityError:
            return None

    def delete_topic(self, account_id: str, topic_id: str) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM topics WHERE id = ? AND account_id = ?",
                (topic_id, account_id),
            )
            return cur.rowcount > 0

    # ------------------------------------------------------------------ content

    def query_content(
        self,
        account_id: str,
        *,
        topic_id: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ContentEntry]:
        query = _ENTRY_SELECT + " WHERE c.account_id = ?"
        params: list[Any] = [account_id]

        if topic_id is not None:
            query += " AND c.topic_id = ?"
            params.append(topic_id)

        if search:
            pattern = f"%{escape_like(search.lower())}%"
            query += """
              AND (lower(c.title) LIKE ? ESCAPE '\\'
                   OR lower(COALESCE(c.summary, '')) LIKE ? ESCAPE '\\'
                   OR lower(COALESCE(c.content, '')) LIKE ? ESCAPE '\\')
            """
            params.extend([pattern, pattern, pattern])

        query += " ORDER BY c.published_at IS NULL, c.published_at DESC, c.id LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        cur = self.conn.execute(query, params)
        return [_entry_from_row(r) for r in cur.fetchall()]

    def get_content_entry(self, account_id: str, item_id: str) -> ContentEntry | None:
        row = self.conn.execute(
            _ENTRY_SELECT + " WHERE c.id = ? AND c.account_id = ?",
            (item_id, account_id),
        ).fetchone()
        return _entry_from_row(row) if row else None

    def content_exists(self, account_id: str, item_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM content_items WHERE id = ? AND account_id = ?",
            (item_id, account_id),
        ).fetchone()
        return row is not None

    def delete_content(self, account_id: str, item_id: str) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM content_items WHERE id = ? AND account_id = ?",
                (item_id, account_id),
            )
            return cur.rowcount > 0

    def insert_content(
        self,
        *,
        account_id: str,
        type: str,
        title: str,
        url: str | None = None,
        source_id: str | None = None,
        topic_id: str | None = None,
        summary: str | None = None,
        content: str | None = None,
        thumbnail_url: str | None = None,
        author: str | None = None,
        published_at: str | None = None,
        external_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        """Insert a content item. Returns None when (account_id, external_id) already exists."""
        item_id = new_id()
        now = now_iso()
        with self.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO content_items (
                    id, account_id, source_id, topic_id, type, title, summary, content, url,
                    thumbnail_url, author, published_at, external_id, metadata,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id, external_id) DO NOTHING
                """,
                (
                    item_id, account_id, source_id, topic_id, type, title, summary, content, url,
                    thumbnail_url, author, published_at, external_id,
                    json.dumps(metadata) if metadata is not None else None,
                    now, now,
                ),
            )
            inserted = cur.rowcount > 0
        return item_id if inserted else None

    def save_content_body(self, account_id: str, item_id: str, content: str) -> None:
        """Persist backfilled full-article content."""
        with self.transaction() as conn:
            conn.execute(
                """UPDATE content_items SET content = ?, updated_at = ?
                   WHERE id = ? AND account_id = ?""",
                (content, now_iso(), item_id, account_id),
            )

    def save_content_metadata(self, account_id: str, item_id: str, metadata: dict[str, Any]) -> None:
        with self.transaction() as conn:
            conn.execute(
                """UPDATE content_items SET metadata = ?, updated_at = ?
                   WHERE id = ? AND account_id = ?""",
                (json.dumps(metadata), now_iso(), item_id, account_id),
            )

    def content_in_window(
        self,
        account_id: str,
        *,
        date_from: str,
        date_to: str,
        topic_slugs: tuple[str, ...] = (),
        limit: int | None = None,
    ) -> list[ContentEntry]:
        """Non-dismissed items published in [date_from, date_to], newest first."""
        query = _ENTRY_SELECT + """
            WHERE c.account_id = ?
              AND c.published_at >= ? AND c.published_at <= ?
              AND COALESCE(i.is_dismissed, 0) = 0
        """
        params: list[Any] = [account_id, date_from, date_to]
        if topic_slugs:
            placeholders = ", ".join("?" for _ in topic_slugs)
            query += f" AND t.slug IN ({placeholders})"
            params.extend(topic_slugs)
        query += " ORDER BY c.published_at DESC, c.id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        cur = self.conn.execute(query, params)
        return [_entry_from_row(r) for r in cur.fetchall()]

    def count_saved_since(self, account_id: str, since: str) -> int:
        cur = self.conn.execute(
            """SELECT COUNT(*) FROM content_interactions
               WHERE account_id = ? AND is_saved = 1 AND created_at >= ?""",
            (account_id, since),
        )
        return cur.fetchone()[0]

    # ------------------------------------------------------------- interactions

    def upsert_interaction(
        self,
        account_id: str,
        item_id: str,
        action: str,
        value: Any = None,
    ) -> ContentInteraction:
        """Apply one interaction action as a single atomic upsert and return the row."""
        column, insert_value, on_conflict = _INTERACTION_UPSERTS[action]
        params: list[Any] = [new_id(), account_id, item_id]
        if insert_value == "?":
            params.append(value)
        now = now_iso()
        params.extend([now, now])
        with self.transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO content_interactions
                    (id, account_id, content_item_id, {column}, created_at, updated_at)
                VALUES (?, ?, ?, {insert_value}, ?, ?)
                ON CONFLICT(account_id, content_item_id) DO UPDATE SET
                    {on_conflict},
                    updated_at = excluded.updated_at
                """,
                params,
            )
            row = conn.execute(
                """SELECT * FROM content_interactions
                   WHERE account_id = ? AND content_item_id = ?""",
                (account_id, item_id),
            ).fetchone()
        return ContentInteraction.from_row(row)

    def get_interaction(self, account_id: str, item_id: str) -> ContentInteraction | None:
        row = self.conn.execute(
            "SELECT * FROM content_interactions WHERE account_id = ? AND content_item_id = ?",
            (account_id, item_id),
        ).fetchone()
        return ContentInteraction.from_row(row) if row else None

    # -------------------------------------------------------------- preferences

    def get_preferences(self, account_id: str) -> UserPreferences | None:
        row = self.conn.execute(
            "SELECT * FROM user_preferences WHERE account_id = ?", (account_id,)
        ).fetchone()
        return UserPreferences.from_row(row) if row else None

    def save_preferences(self, prefs: UserPreferences) -> UserPreferences:
        now = now_iso()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO user_preferences (
                    account_id, digest_enabled, digest_frequency, digest_time,
                    digest_timezone, digest_topics, email_address, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                    digest_enabled = excluded.digest_enabled,
                    digest_frequency = excluded.digest_frequency,
                    digest_time = excluded.digest_time,
                    digest_timezone = excluded.digest_timezone,
                    digest_topics = excluded.digest_topics,
                    email_address = excluded.email_address,
                    updated_at = excluded.updated_at
                """,
                (
                    prefs.account_id,
                    1 if prefs.digest_enabled else 0,
                    prefs.digest_frequency.value,
                    prefs.digest_time,
                    prefs.digest_timezone,
                    json.dumps(list(prefs.digest_topics)),
                    prefs.email_address,
                    now,
                    now,
                ),
            )
        saved = self.get_preferences(prefs.account_id)
        assert saved is not None
        return saved

    def list_digest_recipients(self, frequencies: tuple[str, ...]) -> list[dict[str, Any]]:
        """Enabled preferences for the given frequencies, with the account owner's email."""
        placeholders = ", ".join("?" for _ in frequencies)
        cur = self.conn.execute(
            f"""
            SELECT p.*, a.owner_email
            FROM user_preferences p
            JOIN accounts a ON a.id = p.account_id
            WHERE p.digest_enabled = 1
              AND p.digest_frequency IN ({placeholders})
              AND a.status = 'active'
            ORDER BY p.created_at, p.account_id
            """,
            frequencies,
        )
        return [
            {"preferences": UserPreferences.from_row(r), "owner_email": r["owner_email"]}
            for r in cur.fetchall()
        ]

    def log_digest(self, account_id: str, digest_type: str, email_id: str | None, item_count: int) -> str:
        history_id = new_id()
        with self.transaction() as conn:
            conn.execute(
                """INSERT INTO digest_history (id, account_id, digest_type, email_id, item_count, sent_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (history_id, account_id, digest_type, email_id, item_count, now_iso()),
            )
        return history_id

    def list_digest_history(self, account_id: str, limit: int = 20) -> list[dict[str, Any]]:
        cur = self.conn.execute(
            """SELECT id, digest_type, email_id, item_count, sent_at FROM digest_history
               WHERE account_id = ? ORDER BY sent_at DESC LIMIT ?""",
            (account_id, limit),
        )
        return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------ invites

    def insert_invite(
        self,
        *,
        account_id: str | None,
        email: str,
        name: str | None,
        token: str,
        token_expires_at: str,
        invited_by_user_id: str | None,
    ) -> UserInvite:
        invite_id = new_id()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO user_invites (id, account_id, email, name, token, token_expires_at,
                                          status, reminder_count, invited_by_user_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, 'pending', 0, ?, ?)
                """,
                (invite_id, account_id, email, name, token, token_expires_at,
                 invited_by_user_id, now_iso()),
            )
        invite = self.get_invite(invite_id)
        assert invite is not None
        return invite

    def get_invite(self, invite_id: str) -> UserInvite | None:
        row = self.conn.execute("SELECT * FROM user_invites WHERE id = ?", (invite_id,)).fetchone()
        return UserInvite.from_row(row) if row else None

    def get_invite_by_token(self, token: str) -> UserInvite | None:
        row = self.conn.execute("SELECT * FROM user_invites WHERE token = ?", (token,)).fetchone()
        return UserInvite.from_row(row) if row else None

    def find_open_invite(self, email: str) -> UserInvite | None:
        """A pending or accepted invite for this email, if any."""
        row = self.conn.execute(
            """SELECT * FROM user_invites
               WHERE email = ? AND status IN ('pending', 'accepted')
               ORDER BY created_at DESC LIMIT 1""",
            (email,),
        ).fetchone()
        return UserInvite.from_row(row) if row else None

    def list_invites(self) -> list[UserInvite]:
        cur = self.conn.execute("SELECT * FROM user_invites ORDER BY created_at DESC, id")
        return [UserInvite.from_row(r) for r in cur.fetchall()]

    def transition_invite(
        self,
        invite_id: str,
        *,
        from_status: str,
        to_status: str,
        accepted_by_user_id: str | None = None,
    ) -> bool:
        """Compare-and-set the invite status. False if it was no longer `from_status`."""
        with self.transaction() as conn:
            if to_status == "accepted":
                cur = conn.execute(
                    """UPDATE user_invites
                       SET status = 'accepted', accepted_at = ?, accepted_by_user_id = ?
                       WHERE id = ? AND status = ?""",
                    (now_iso(), accepted_by_user_id, invite_id, from_status),
                )
            else:
                cur = conn.execute(
                    "UPDATE user_invites SET status = ? WHERE id = ? AND status = ?",
                    (to_status, invite_id, from_status),
                )
            return cur.rowcount > 0

    def expire_overdue_invites(self, now: str) -> list[str]:
        """Flip pending invites past their expiry to expired. Returns their ids."""
        with self.transaction() as conn:
            ids = [
                r["id"]
                for r in conn.execute(
                    "SELECT id FROM user_invites WHERE status = 'pending' AND token_expires_at < ?",
                    (now,),
                ).fetchall()
            ]
            if ids:
                placeholders = ", ".join("?" for _ in ids)
                conn.execute(
                    f"""UPDATE user_invites SET status = 'expired'
                        WHERE status = 'pending' AND id IN ({placeholders})""",
                    ids,
                )
            return ids

    def pending_invites_for_reminder(self, max_reminders: int, now: str) -> list[UserInvite]:
        cur = self.conn.execute(
            """SELECT * FROM user_invites
               WHERE status = 'pending' AND reminder_count < ? AND token_expires_at > ?
               ORDER BY created_at, id""",
            (max_reminders, now),
        )
        return [UserInvite.from_row(r) for r in cur.fetchall()]

    def record_invite_reminder(self, invite_id: str, reminder_count: int, at: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE user_invites SET reminder_count = ?, last_reminder_at = ? WHERE id = ?",
                (reminder_count, at, invite_id),
            )

    # --------------------------------------------------------------- whats hot

    def insert_post(
        self,
        *,
        account_id: str,
        content_item_id: str | None,
        title: str,
        summary: str,
        url: str,
        thumbnail_url: str | None,
        topic_id: str | None,
        author: str | None,
        hashtags: list[str],
        x_post_enabled: bool,
    ) -> WhatsHotPost:
        post_id = new_id()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO whats_hot_posts (id, account_id, content_item_id, title, summary, url,
                                             thumbnail_url, topic_id, author, status, published_at,
                                             hashtags, x_post_enabled)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'published', ?, ?, ?)
                """,
                (post_id, account_id, content_item_id, title, summary, url, thumbnail_url,
                 topic_id, author, now_iso(), json.dumps(hashtags), 1 if x_post_enabled else 0),
            )
        post = self.get_post(account_id, post_id)
        assert post is not None
        return post

    def get_post(self, account_id: str, post_id: str) -> WhatsHotPost | None:
        row = self.conn.execute(
            "SELECT * FROM whats_hot_posts WHERE id = ? AND account_id = ?",
            (post_id, account_id),
        ).fetchone()
        return WhatsHotPost.from_row(row) if row else None

    def record_x_post(self, account_id: str, post_id: str, x_post_id: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                """UPDATE whats_hot_posts SET x_post_id = ?, x_posted_at = ?
                   WHERE id = ? AND account_id = ?""",
                (x_post_id, now_iso(), post_id, account_id),
            )

    def list_posts(
        self,
        account_id: str,
        *,
        topic_id: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[WhatsHotPost], int]:
        where = "WHERE account_id = ? AND status = 'published'"
        params: list[Any] = [account_id]
        if topic_id:
            where += " AND topic_id = ?"
            params.append(topic_id)
        total = self.conn.execute(f"SELECT COUNT(*) FROM whats_hot_posts {where}", params).fetchone()[0]
        cur = self.conn.execute(
            f"SELECT * FROM whats_hot_posts {where} ORDER BY published_at DESC, id LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )
        return [WhatsHotPost.from_row(r) for r in cur.fetchall()], total

    # ----------------------------------------------------------------- job runs

    def start_job_run(self, kind: str, input_data: dict[str, Any] | None = None) -> str:
        run_id = new_id()
        with self.transaction() as conn:
            conn.execute(
                """INSERT INTO job_runs (id, kind, status, input_json, created_at)
                   VALUES (?, ?, 'running', ?, ?)""",
                (run_id, kind, json.dumps(input_data or {}), now_iso()),
            )
        return run_id

    def finish_job_run(self, run_id: str, status: str, output: dict[str, Any]) -> None:
        with self.transaction() as conn:
            conn.execute(
                """UPDATE job_runs SET status = ?, output_json = ?, finished_at = ?
                   WHERE id = ?""",
                (status, json.dumps(output), now_iso(), run_id),
            )

    def get_job_run(self, run_id: str) -> dict[str, Any] | None:
        row = self.conn.execute("SELECT * FROM job_runs WHERE id = ?", (run_id,)).fetchone()
        if not row:
            return None
        data = dict(row)
        data["input"] = json.loads(data.pop("input_json") or "{}")
        data["output"] = json.loads(data.pop("output_json") or "null")
        return data

    # ------------------------------------------------------------- app settings

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        row = self.conn.execute("SELECT value FROM app_settings WHERE key = ?", (key,)).fetchone()
        return row[0] if row else default

    def set_setting(self, key: str, value: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO app_settings (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, now_iso()),
            )

    def get_int_setting(self, key: str, default: int) -> int:
        raw = self.get_setting(key)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Ignoring non-integer app setting {key}={raw!r}")
            return default


def connect(db_path: str) -> DB:
    """Open a connection and make sure the schema exists."""
    if db_path != ":memory:":
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    db = DB(conn=conn)
    db.init()
    return db


_db: DB | None = None


def init_db() -> None:
    global _db
    s = get_settings()
    _db = connect(s.db_path)
    logger.info(f"Database ready at {s.db_path}")


def get_db() -> DB:
    assert _db is not None, "DB not initialized"
    return _db
