"""State machine tracking background import jobs."""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Dict, List, Optional, Tuple

from csvimporter.common.errors import CSVImportError, ErrorCode

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    """Supported lifecycle states for import jobs."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATES = {JobState.DONE, JobState.FAILED, JobState.CANCELLED}
_STATE_ORDER: Dict[JobState, int] = {
    JobState.PENDING: 0,
    JobState.RUNNING: 1,
    JobState.DONE: 2,
}


class JobStateMachine:
    """Thread-safe holder of a job's state; every transition is logged and kept in ``history``."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._state = JobState.PENDING
        self._lock = threading.Lock()
        self.history: List[Tuple[JobState, Optional[str]]] = []
        self._record(JobState.PENDING, detail="job registered")

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state in TERMINAL_STATES

    def transition(self, target: JobState, *, detail: str | None = None) -> None:
        with self._lock:
            if target == self._state:
                return
            if not self._can_transition(target):
                raise CSVImportError(
                    ErrorCode.STATE_ERROR,
                    f"Invalid transition {self._state.value} -> {target.value}",
                    context={"job_id": self.job_id},
                )
            self._state = target
            self._record(target, detail=detail)

    def mark_failed(self, detail: str | None = None) -> None:
        self.transition(JobState.FAILED, detail=detail)

    def mark_cancelled(self, detail: str | None = None) -> None:
        self.transition(JobState.CANCELLED, detail=detail)

    def _can_transition(self, target: JobState) -> bool:
        if self._state in TERMINAL_STATES:
            return False
        if target in {JobState.FAILED, JobState.CANCELLED}:
            return True
        current_rank = _STATE_ORDER.get(self._state, -1)
        target_rank = _STATE_ORDER.get(target, -1)
        return target_rank >= current_rank

    def _record(self, state: JobState, detail: str | None) -> None:
        self.history.append((state, detail))
        level = logging.WARNING if state == JobState.FAILED else logging.DEBUG
        logger.log(level, "job %s -> %s%s", self.job_id, state.value, f" ({detail})" if detail else "")
