"""Background job worker.

Polls the ``jobs`` table, claims one pending job per tick and runs the
matching handler.  Start it with ``python -m chatter_observatory.worker`` or
the ``chatter-worker`` console script.
"""
