"""Common utilities shared across the search service.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from relay_search.common.config import SearchConfig
- from relay_search.common.logging import configure_logging
"""
