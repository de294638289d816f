"""Pydantic response schemas of the analysis service.

The gateway parses the same models from the analysis service's JSON, so
both ends of the HTTP hop share one definition.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TopDay(BaseModel):
    """An account-creation date shared by many chatters of the session."""

    date: str
    count: int
    logins: list[str] = Field(default_factory=list)


class BroadcasterStats(BaseModel):
    broadcaster_id: str
    broadcaster_login: str = ""
    capture_count: int


class SuspiciousAccount(BaseModel):
    twitch_user_id: str
    login: str
    display_name: str = ""
    rename_count: int


class SessionSummary(BaseModel):
    """Aggregate statistics of one analysis session.

    Attributes:
        session_uuid: Public identifier of the session.
        total_accounts: Distinct chatter IDs captured (after the optional
            broadcaster filter).
        top_days: Up to ten most common account-creation dates.
        broadcasters: Capture count per broadcaster (never filtered).
        suspicious_renames_count: Length of ``suspicious_accounts``.
        suspicious_accounts: Chatters with at least three recorded renames.
        generated_at: When the summary was computed.
    """

    session_uuid: str
    total_accounts: int
    top_days: list[TopDay] = Field(default_factory=list)
    broadcasters: list[BroadcasterStats] = Field(default_factory=list)
    suspicious_renames_count: int = 0
    suspicious_accounts: list[SuspiciousAccount] = Field(default_factory=list)
    generated_at: datetime
