"""Pydantic models for the subset of Helix objects the services consume.

Unknown fields are ignored so Helix can add attributes without breaking
validation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class HelixUser(BaseModel):
    """An entry of ``GET /helix/users``.

    ``created_at`` arrives as an RFC 3339 string and is parsed to an aware
    datetime.  ``view_count`` is deprecated by Twitch and usually ``0``.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    login: str
    display_name: str = ""
    type: str = ""
    broadcaster_type: str = ""
    profile_image_url: str = ""
    view_count: int = 0
    created_at: Optional[datetime] = None


class ModeratedChannel(BaseModel):
    """An entry of ``GET /helix/moderation/channels``."""

    model_config = ConfigDict(extra="ignore")

    broadcaster_id: str
    broadcaster_login: str
    broadcaster_name: str = ""
