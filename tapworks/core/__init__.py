"""Economy rules: reconciliation, tapping, purchases, boosters, progression, objectives.

Kept free of FastAPI and Redis concerns so the same rules serve the API, the
engine's retry loop, and tests. Every function here mutates a `PlayerState`
in place and either returns a result model or a `Rejection`.
"""
