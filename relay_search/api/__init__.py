"""HTTP endpoints for search and query inspection."""
