"""Chatter Observatory: Twitch chatter capture, rename tracking and analytics."""

__version__ = "0.1.0"
