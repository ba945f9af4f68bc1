"""Output parsing data models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ParsedOutput(BaseModel):
    """Title, summary and response extracted from one raw model output."""

    title: str | None = None
    summary: str | None = None
    response: str | None = None
    has_title: bool = False
    has_summary: bool = False
    errors: list[str] = Field(default_factory=list)
    used_fallback: bool = False


class ValidationResult(BaseModel):
    """Completeness check of a parsed output."""

    is_valid: bool = True
    missing_fields: list[str] = Field(default_factory=list)
    critical_errors: list[str] = Field(default_factory=list)
