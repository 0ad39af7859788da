"""Index store factory.

Centralizes creation of concrete ``IndexStore`` backends so callers don't
depend on implementation details.
"""

from enum import Enum

import structlog

from ..common.config import BaseConfig
from .base import IndexStore
from .memory import MemoryIndexStore
from .postgres import PostgresIndexStore

logger = structlog.get_logger("index_store.factory")


class IndexStoreType(Enum):
    """Supported index store backends."""
    MEMORY = "memory"
    POSTGRES = "postgres"


def create_index_store(store_type: str, **config) -> IndexStore:
    """Create an index store by backend name.

    Parameters
    - store_type: ``memory`` or ``postgres``
    - config: Backend-specific parameters (``dsn`` for postgres)
    """
    try:
        store_type_enum = IndexStoreType(store_type)
    except ValueError:
        raise ValueError(f"Unsupported index store type: {store_type}")

    if store_type_enum is IndexStoreType.MEMORY:
        return MemoryIndexStore()

    dsn = config.get("dsn")
    if not dsn:
        raise ValueError("Postgres index store requires 'dsn'")
    return PostgresIndexStore(
        dsn=dsn,
        pool_size=config.get("pool_size", 10),
        command_timeout=config.get("command_timeout", 30),
    )


def create_index_store_from_config(config: BaseConfig) -> IndexStore:
    """Create the index store selected by ``RELAY_INDEX_BACKEND``."""
    store = create_index_store(
        config.relay_index_backend,
        dsn=config.relay_index_db_dsn,
        pool_size=config.relay_index_pool_size,
        command_timeout=config.relay_index_command_timeout,
    )
    logger.info("Index store created", backend=config.relay_index_backend)
    return store
