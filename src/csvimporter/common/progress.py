"""Progress throttling and structured progress logging."""
from __future__ import annotations

import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Callable, Optional

from .models import ImportProgress

DEFAULT_PROGRESS_INTERVAL = 0.1


class ProgressThrottle:
    """Lets a progress event through at most once per ``interval`` seconds.

    The first call always passes; later calls pass only when at least
    ``interval`` seconds have elapsed since the last accepted one.
    """

    def __init__(
        self,
        interval: float = DEFAULT_PROGRESS_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = max(0.0, interval)
        self._clock = clock
        self._last_emit: Optional[float] = None

    def ready(self) -> bool:
        now = self._clock()
        if self._last_emit is not None and now - self._last_emit < self.interval:
            return False
        self._last_emit = now
        return True


class ProgressLogger:
    """Writes progress events to JSONL for later inspection."""

    def __init__(self, path: Optional[Path]) -> None:
        self.path = path
        if path:
            path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, progress: ImportProgress, *, source: Optional[str] = None) -> None:
        if not self.path:
            return
        payload = asdict(progress)
        payload["source"] = source
        payload["timestamp"] = time.time()
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload))
            handle.write("\n")
