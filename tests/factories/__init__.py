"""Factory Boy factories for test data generation.

Available factories
-------------------
FetchChattersPayloadFactory   : FETCH_CHATTERS job payload dict
FetchUsersInfoPayloadFactory  : FETCH_USERS_INFO job payload dict
ChatterFactory                : Helix chat/chatters entry dict
HelixUserFactory              : Helix users entry dict
create_logged_in_user         : committed users + web_sessions rows
"""

from __future__ import annotations

from tests.factories.jobs import FetchChattersPayloadFactory, FetchUsersInfoPayloadFactory
from tests.factories.twitch import ChatterFactory, HelixUserFactory
from tests.factories.users import SeededUser, create_logged_in_user

__all__ = [
    "ChatterFactory",
    "FetchChattersPayloadFactory",
    "FetchUsersInfoPayloadFactory",
    "HelixUserFactory",
    "SeededUser",
    "create_logged_in_user",
]
