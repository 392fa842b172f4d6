from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_NOISY_LIBRARIES = ("httpx", "httpcore", "openai", "anthropic")


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Send simple_insight logs to stderr through rich; DEBUG when verbose."""
    logger = logging.getLogger("simple_insight")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=verbose,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
    logger.propagate = False

    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)


__all__ = ["configure_logging"]
