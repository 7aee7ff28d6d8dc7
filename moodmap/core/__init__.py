"""Core infrastructure: logging, config, paths, asyncio helpers and the HTTP API."""
