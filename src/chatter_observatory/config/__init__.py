"""Configuration package for Chatter Observatory.

Re-exports the settings symbols so that callers can write::

    from chatter_observatory.config import get_settings
"""

from __future__ import annotations

from chatter_observatory.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
