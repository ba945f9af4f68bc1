"""Shared helpers: logging setup, SSE parsing and provider clients."""
