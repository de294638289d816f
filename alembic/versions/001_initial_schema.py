"""Initial schema.

Creates the Chatter Observatory tables in FK-dependency order:

1. users             gateway accounts
2. web_sessions      browser logins holding the Twitch tokens (FK → users)
3. sessions          analysis sessions (FK → users)
4. captures          one chatter-list snapshot (FK → sessions)
5. capture_chatters  chatter IDs of a capture (FK → captures)
6. twitch_users      latest known identity per Twitch account
7. twitch_user_names append-only rename history
8. jobs              work queue polled by the worker

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_NOW = sa.text("NOW()")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("twitch_user_id", sa.String(32), nullable=False),
        sa.Column("login", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(64), nullable=False, server_default=sa.text("''")),
        sa.Column("profile_image_url", sa.Text, nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_NOW),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_NOW),
        sa.UniqueConstraint("twitch_user_id", name="uq_users_twitch_user_id"),
    )

    op.create_table(
        "web_sessions",
        sa.Column("session_id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("access_token", sa.Text, nullable=False),
        sa.Column("refresh_token", sa.Text, nullable=True),
        sa.Column("scopes", JSONB, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_NOW),
        sa.Column("last_activity_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_NOW),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_web_sessions_user_id", "web_sessions", ["user_id"])

    op.create_table(
        "sessions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("session_uuid", sa.String(64), nullable=False),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_NOW),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_NOW),
        sa.UniqueConstraint("session_uuid", name="uq_sessions_session_uuid"),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("idx_sessions_user_status", "sessions", ["user_id", "status"])

    op.create_table(
        "captures",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.BigInteger, sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("broadcaster_id", sa.String(32), nullable=False),
        sa.Column("broadcaster_login", sa.String(64), nullable=True),
        sa.Column("captured_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("chatters_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("new_users_count", sa.Integer, nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_captures_session_id", "captures", ["session_id"])

    op.create_table(
        "capture_chatters",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("capture_id", sa.BigInteger, sa.ForeignKey("captures.id", ondelete="CASCADE"), nullable=False),
        sa.Column("twitch_user_id", sa.String(32), nullable=False),
    )
    op.create_index("ix_capture_chatters_capture_id", "capture_chatters", ["capture_id"])
    op.create_index("ix_capture_chatters_twitch_user_id", "capture_chatters", ["twitch_user_id"])

    op.create_table(
        "twitch_users",
        sa.Column("twitch_user_id", sa.String(32), primary_key=True),
        sa.Column("login", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(64), nullable=False, server_default=sa.text("''")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("broadcaster_type", sa.String(32), nullable=False, server_default=sa.text("''")),
        sa.Column("type", sa.String(32), nullable=False, server_default=sa.text("''")),
        sa.Column("view_count", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("last_fetched_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_twitch_users_login", "twitch_users", ["login"])

    op.create_table(
        "twitch_user_names",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("twitch_user_id", sa.String(32), nullable=False),
        sa.Column("previous_login", sa.String(64), nullable=False),
        sa.Column("previous_display_name", sa.String(64), nullable=False, server_default=sa.text("''")),
        sa.Column("login", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(64), nullable=False, server_default=sa.text("''")),
        sa.Column("detected_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_twitch_user_names_twitch_user_id", "twitch_user_names", ["twitch_user_id"])

    op.create_table(
        "jobs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("payload", JSONB, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=_NOW),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("finished_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
    )
    op.create_index("idx_jobs_status_created", "jobs", ["status", "created_at"])


def downgrade() -> None:
    op.drop_table("jobs")
    op.drop_table("twitch_user_names")
    op.drop_table("twitch_users")
    op.drop_table("capture_chatters")
    op.drop_table("captures")
    op.drop_table("sessions")
    op.drop_table("web_sessions")
    op.drop_table("users")
