"""Read-only analysis service over captured chatter data.

Run with ``uvicorn chatter_observatory.analysis.main:app --port 8083``.
"""
