"""Rate-limited, cached pass-through to the Twitch Helix API.

Run with ``uvicorn chatter_observatory.twitch_proxy.main:app --port 8081``.
"""
