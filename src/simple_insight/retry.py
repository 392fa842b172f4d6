from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from .errors import RemoteCallError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# One initial attempt plus exactly one retry.
MAX_ATTEMPTS = 2


async def call_with_retry(operation: Callable[[], Awaitable[T]], *, what: str) -> T:
    """Await `operation()`, retrying once if it raises RemoteCallError.

    The final failure is re-raised unchanged. Other exceptions are not
    retried.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except RemoteCallError as e:
            logger.warning("%s failed (attempt %d/%d): %s", what, attempt, MAX_ATTEMPTS, e)
            if attempt >= MAX_ATTEMPTS:
                raise
        attempt += 1


__all__ = ["MAX_ATTEMPTS", "call_with_retry"]
