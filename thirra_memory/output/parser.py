"""Extract title/summary/response blocks from model output, with a lenient fallback."""

from __future__ import annotations

import logging
import re

from thirra_memory import constants
from thirra_memory.output.models import ParsedOutput, ValidationResult

LOGGER = logging.getLogger(__name__)

INVALID_INPUT = "Invalid input: expected non-empty string"
NO_RESPONSE = "No response content found"
PARSING_ERROR = "Parsing error"
FALLBACK_NOTE = "Used fallback parsing"

_FALLBACK_TITLE_MAX_CHARS = 50
_FALLBACK_SUMMARY_MAX_CHARS = 200
_MIN_FRAGMENT_CHARS = 10
_SENTENCE_END_RE = re.compile(r"[.!?]+")


def block_pattern(name: str) -> re.Pattern[str]:
    """Return the case-insensitive pattern for a ``{{{{name}}}}...{{{{/name}}}}`` block."""
    return re.compile(
        r"\{\{\{\{" + re.escape(name) + r"\}\}\}\}([\s\S]*?)\{\{\{\{/" + re.escape(name) + r"\}\}\}\}",
        re.IGNORECASE,
    )


TITLE_BLOCK = block_pattern("title")
SUMMARY_BLOCK = block_pattern("summary")
RESPONSE_BLOCK = block_pattern("response")


def _decode(raw: str | bytes | None) -> tuple[str | None, str | None]:
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8"), None
        except UnicodeDecodeError as exc:
            return None, f"{PARSING_ERROR}: {exc}"
    return raw, None


def parse_output(raw: str | bytes | None) -> ParsedOutput:
    """Parse the first title, summary and response block of a model output.

    Without a response block, everything outside the title and summary blocks is
    the response. Empty blocks and truncations are reported in ``errors``.
    """
    result = ParsedOutput()
    text, decode_error = _decode(raw)
    if decode_error is not None:
        result.errors.append(decode_error)
        return result
    if not text or not isinstance(text, str):
        result.errors.append(INVALID_INPUT)
        return result

    title_match = TITLE_BLOCK.search(text)
    if title_match:
        result.title = title_match.group(1).strip()
        result.has_title = True
        if not result.title:
            result.errors.append("Title block found but empty")

    summary_match = SUMMARY_BLOCK.search(text)
    if summary_match:
        result.summary = summary_match.group(1).strip()
        result.has_summary = True
        if not result.summary:
            result.errors.append("Summary block found but empty")

    response_match = RESPONSE_BLOCK.search(text)
    if response_match:
        result.response = response_match.group(1).strip()
        if not result.response:
            result.errors.append("Response block found but empty")
    else:
        remainder = text
        if title_match:
            remainder = TITLE_BLOCK.sub("", remainder, count=1)
        if summary_match:
            remainder = SUMMARY_BLOCK.sub("", remainder, count=1)
        result.response = remainder.strip()
        if not result.response:
            result.errors.append(NO_RESPONSE)

    if result.title and len(result.title) > constants.TITLE_MAX_CHARS:
        result.title = result.title[: constants.TITLE_MAX_CHARS].strip()
        result.errors.append(f"Title truncated to {constants.TITLE_MAX_CHARS} characters")
    if result.summary and len(result.summary) > constants.OUTPUT_SUMMARY_MAX_CHARS:
        result.summary = result.summary[: constants.OUTPUT_SUMMARY_MAX_CHARS].strip()
        result.errors.append(
            f"Summary truncated to {constants.OUTPUT_SUMMARY_MAX_CHARS} characters",
        )
    return result


def validate_parsed_output(parsed: ParsedOutput, *, expect_title: bool = False) -> ValidationResult:
    """Check that the required blocks are present and nothing critical went wrong."""
    validation = ValidationResult(
        critical_errors=[
            err for err in parsed.errors if PARSING_ERROR in err or NO_RESPONSE in err
        ],
    )
    if expect_title and not parsed.has_title:
        validation.missing_fields.append("title")
    if not parsed.has_summary:
        validation.missing_fields.append("summary")
    if not parsed.response:
        validation.missing_fields.append("response")
    validation.is_valid = not validation.missing_fields and not validation.critical_errors
    return validation


def fallback_parse(raw: str | bytes | None, *, expect_title: bool = False) -> ParsedOutput:
    """Best-effort parse of output that ignores the block format.

    The first line becomes the title when a title is expected and the line looks
    like one. The last sentence-like fragment becomes a pseudo-summary.
    """
    text, _ = _decode(raw)
    text = text if isinstance(text, str) else ""
    result = ParsedOutput(response=text.strip(), errors=[FALLBACK_NOTE], used_fallback=True)
    if not text:
        return result

    if expect_title:
        lines = text.split("\n")
        first_line = lines[0].strip()
        if (
            first_line
            and len(first_line) <= _FALLBACK_TITLE_MAX_CHARS
            and "." not in first_line
            and "?" not in first_line
        ):
            result.title = first_line
            result.has_title = True
            result.response = "\n".join(lines[1:]).strip()

    fragments = [
        fragment
        for fragment in _SENTENCE_END_RE.split(result.response or "")
        if len(fragment.strip()) > _MIN_FRAGMENT_CHARS
    ]
    if len(fragments) > 1:
        last = fragments[-1].strip()
        if last and len(last) < _FALLBACK_SUMMARY_MAX_CHARS:
            result.summary = f"{last}."
            result.has_summary = True
    return result


def parse_model_output(raw: str | bytes | None, *, expect_title: bool = False) -> ParsedOutput:
    """Parse block output, falling back to the lenient parser when it is incomplete."""
    parsed = parse_output(raw)
    validation = validate_parsed_output(parsed, expect_title=expect_title)
    if validation.is_valid:
        return parsed
    LOGGER.warning(
        "Primary parsing failed, using fallback (missing=%s, critical=%s)",
        validation.missing_fields,
        validation.critical_errors,
    )
    return fallback_parse(raw, expect_title=expect_title)
