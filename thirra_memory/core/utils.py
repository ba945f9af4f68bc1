"""Logging and timing helpers shared by the pipeline."""

from __future__ import annotations

import logging
from time import perf_counter

from rich.console import Console
from rich.logging import RichHandler

console = Console()

_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def setup_rich_logging(log_level: str = "info", *, console: Console | None = None) -> None:
    """Configure logging to use Rich for consistent, pretty output.

    Args:
        log_level: Logging level (debug, info, warning, error).
        console: Optional Rich console to use (creates new one if not provided).

    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    rich_console = console or Console(stderr=True)

    handler = RichHandler(
        console=rich_console,
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # HTTP client request lines drown out the pipeline logs at INFO.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def elapsed_ms(start: float) -> float:
    """Return elapsed milliseconds since start."""
    return (perf_counter() - start) * 1000
