"""Lexical index store adapters.

Primary components:
- ``base``: abstract ``IndexStore`` interface and common exceptions.
- ``memory``: in-process implementation used for development and tests.
- ``postgres``: PostgreSQL full-text implementation over asyncpg.
- ``factory``: helpers to construct a store from config.

Guidance:
- Prefer constructing via ``factory.create_index_store_from_config`` so the
  service stays decoupled from specific backends.
"""
