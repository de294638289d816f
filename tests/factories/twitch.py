"""Factory Boy factories for Helix response entries.

Usage::

    from tests.factories.twitch import ChatterFactory, HelixUserFactory

    page = {"data": ChatterFactory.build_batch(3), "pagination": {}}
    user = HelixUserFactory.build(id="1", login="renamed_login")
"""

from __future__ import annotations

import factory


class ChatterFactory(factory.Factory):
    """An entry of ``GET /helix/chat/chatters``."""

    class Meta:
        model = dict

    user_id = factory.Sequence(lambda n: str(1000 + n))
    user_login = factory.LazyAttribute(lambda o: f"chatter_{o.user_id}")
    user_name = factory.LazyAttribute(lambda o: f"Chatter_{o.user_id}")


class HelixUserFactory(factory.Factory):
    """An entry of ``GET /helix/users``."""

    class Meta:
        model = dict

    id = factory.Sequence(lambda n: str(1000 + n))
    login = factory.LazyAttribute(lambda o: f"user_{o.id}")
    display_name = factory.LazyAttribute(lambda o: f"User_{o.id}")
    type = ""
    broadcaster_type = ""
    profile_image_url = ""
    view_count = 0
    created_at = "2020-05-17T12:00:00Z"
