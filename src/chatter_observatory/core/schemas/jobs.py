"""Pydantic schemas for job payloads.

Payloads are stored as JSON in ``jobs.payload``.  The producer builds them
with ``model_dump()`` and the worker validates them with
``model_validate()`` before running the handler, so a malformed row fails
the job instead of crashing the worker.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FetchChattersPayload(BaseModel):
    """Payload of a ``FETCH_CHATTERS`` job.

    Attributes:
        session_id: Primary key of the analysis session the capture belongs to.
        twitch_user_id: Twitch ID of the moderator on whose behalf the chatter
            list is read (Helix ``moderator_id``).
        broadcaster_id: Twitch ID of the channel to capture.
        broadcaster_login: Channel login, stored on the capture for display.
    """

    model_config = ConfigDict(extra="ignore")

    session_id: int
    twitch_user_id: str = Field(..., min_length=1)
    broadcaster_id: str = Field(..., min_length=1)
    broadcaster_login: Optional[str] = None


class FetchUsersInfoPayload(BaseModel):
    """Payload of a ``FETCH_USERS_INFO`` job, chained after a capture."""

    model_config = ConfigDict(extra="ignore")

    session_id: int
    user_ids: list[str] = Field(default_factory=list)
