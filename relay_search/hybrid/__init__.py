"""Search orchestration.

Includes the ``SearchManager`` which chooses between single-type and unified
search, merges per-type results under quotas and fuses lexical with semantic
rankings.
"""
