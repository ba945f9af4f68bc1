"""Context assembly and conversational memory for LLM chat turns."""

from __future__ import annotations

__version__ = "0.1.0"
