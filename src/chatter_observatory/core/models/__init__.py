"""SQLAlchemy ORM models for Chatter Observatory.

All models are imported here so that:
1. Alembic autogenerate can discover them via Base.metadata.
2. Application code can do ``from chatter_observatory.core.models import Job``
   without knowing which sub-module a model lives in.
3. ``Base.metadata.create_all`` in the test suite sees every table.
"""

from __future__ import annotations

from chatter_observatory.core.models.base import Base, TimestampMixin, utcnow
from chatter_observatory.core.models.captures import Capture, CaptureChatter
from chatter_observatory.core.models.jobs import Job, JobStatus, JobType
from chatter_observatory.core.models.sessions import AnalysisSession, SessionStatus
from chatter_observatory.core.models.twitch_users import TwitchUser, TwitchUserName
from chatter_observatory.core.models.users import User, WebSession

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "utcnow",
    # Gateway accounts
    "User",
    "WebSession",
    # Analysis sessions and captures
    "AnalysisSession",
    "SessionStatus",
    "Capture",
    "CaptureChatter",
    # Twitch identities
    "TwitchUser",
    "TwitchUserName",
    # Job queue
    "Job",
    "JobStatus",
    "JobType",
]
