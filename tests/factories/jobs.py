"""Factory Boy factories for job payloads.

Usage::

    from tests.factories.jobs import FetchChattersPayloadFactory

    payload = FetchChattersPayloadFactory.build(session_id=3)
"""

from __future__ import annotations

import factory


class FetchChattersPayloadFactory(factory.Factory):
    """``FETCH_CHATTERS`` payload dict, as the gateway enqueues it."""

    class Meta:
        model = dict

    session_id = 1
    twitch_user_id = "99"
    broadcaster_id = "42"
    broadcaster_login = "some_channel"


class FetchUsersInfoPayloadFactory(factory.Factory):
    """``FETCH_USERS_INFO`` payload dict, as a capture chains it."""

    class Meta:
        model = dict

    session_id = 1
    user_ids = factory.LazyFunction(lambda: ["1", "2", "3"])
