"""SQLAlchemy ORM model for the durable job queue.

The ``jobs`` table is the only coordination channel between the gateway
(producer) and any number of worker processes (consumers).  Workers claim
rows with ``SELECT ... FOR UPDATE SKIP LOCKED``; see
:mod:`chatter_observatory.worker.queue`.

Rows are never deleted so the table doubles as an audit trail.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from chatter_observatory.core.models.base import Base, BigIntPK, JSONType, TZDateTime, utcnow


class JobType:
    """Known values of ``Job.type``."""

    FETCH_CHATTERS = "FETCH_CHATTERS"
    FETCH_USERS_INFO = "FETCH_USERS_INFO"


class JobStatus:
    """Allowed values of ``Job.status``.

    Transitions are monotonic: ``pending`` → ``running`` → ``done`` | ``failed``.
    """

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class Job(Base):
    """One unit of asynchronous work.

    Attributes:
        id: Auto-increment primary key.
        type: One of :class:`JobType`.
        payload: Type-specific JSON document validated by the handler.
        status: One of :class:`JobStatus`.
        created_at: Enqueue time; claim order is oldest first.
        started_at: Set when a worker claims the row.
        finished_at: Set when the row reaches ``done`` or ``failed``.
        error_message: Failure description for ``failed`` rows.
    """

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        sa.String(16), nullable=False, default=JobStatus.PENDING
    )
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, nullable=False, default=utcnow, server_default=sa.func.now()
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(TZDateTime, nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(TZDateTime, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    __table_args__ = (
        sa.Index("idx_jobs_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Job id={self.id} type={self.type} status={self.status}>"
