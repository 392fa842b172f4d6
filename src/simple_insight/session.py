from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .ingest import NoteMap

logger = logging.getLogger(__name__)


class IndexPhase(str, Enum):
    UNINDEXED = "unindexed"
    VERIFYING = "verifying"
    REBUILDING = "rebuilding"
    READY = "ready"
    FAILED = "failed"


class InvalidTransitionError(RuntimeError):
    pass


_ALLOWED = {
    IndexPhase.UNINDEXED: {IndexPhase.VERIFYING, IndexPhase.REBUILDING},
    IndexPhase.VERIFYING: {IndexPhase.READY, IndexPhase.REBUILDING, IndexPhase.FAILED},
    IndexPhase.REBUILDING: {IndexPhase.READY, IndexPhase.FAILED},
    # A new upload always forces a rebuild.
    IndexPhase.READY: {IndexPhase.REBUILDING, IndexPhase.VERIFYING},
    # Restarting re-verifies; uploading rebuilds.
    IndexPhase.FAILED: {IndexPhase.REBUILDING, IndexPhase.VERIFYING},
}


@dataclass(frozen=True)
class IndexState:
    ready: bool


class IndexReadiness:
    """Tracks whether the remote index can be trusted for the current notes.

    Failed is left only by a new upload (rebuild) or an app restart
    (verify); nothing retries in the background.
    """

    def __init__(self) -> None:
        self.phase = IndexPhase.UNINDEXED

    def _move(self, target: IndexPhase) -> None:
        if target not in _ALLOWED[self.phase]:
            raise InvalidTransitionError(f"Cannot go from {self.phase.value} to {target.value}")
        logger.debug("Index phase %s -> %s", self.phase.value, target.value)
        self.phase = target

    def begin_verify(self) -> None:
        self._move(IndexPhase.VERIFYING)

    def verified(self, has_data: bool) -> None:
        self._move(IndexPhase.READY if has_data else IndexPhase.REBUILDING)

    def verify_failed(self) -> None:
        self._move(IndexPhase.FAILED)

    def begin_rebuild(self) -> None:
        self._move(IndexPhase.REBUILDING)

    def rebuild_finished(self, ok: bool) -> None:
        self._move(IndexPhase.READY if ok else IndexPhase.FAILED)

    def reset(self) -> None:
        self.phase = IndexPhase.UNINDEXED

    @property
    def ready(self) -> bool:
        return self.phase is IndexPhase.READY

    @property
    def state(self) -> IndexState:
        return IndexState(ready=self.ready)


@dataclass
class Session:
    """The notes loaded for this process and the readiness of their index."""

    note_map: NoteMap = field(default_factory=dict)
    readiness: IndexReadiness = field(default_factory=IndexReadiness)

    @property
    def index_state(self) -> IndexState:
        return self.readiness.state


__all__ = [
    "IndexPhase",
    "IndexState",
    "IndexReadiness",
    "InvalidTransitionError",
    "Session",
]
