"""Secondary result sources.

Contents
- ``semantic``: HTTP client for the optional semantic search service
- ``circuit_breaker``: failure isolation for that client
"""
