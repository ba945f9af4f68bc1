"""Exceptions raised by the context assembly pipeline."""

from __future__ import annotations


class ContextAssemblyError(Exception):
    """Base class for errors raised by this package."""


class SummarizationError(ContextAssemblyError):
    """Raised when the summarization call fails or returns nothing usable."""


class CompletionError(ContextAssemblyError):
    """Raised when the chat completion stream for a turn fails."""
