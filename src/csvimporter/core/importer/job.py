"""Background execution of imports with dispatched notifications."""
from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional
from uuid import uuid4

from csvimporter.common.errors import CSVImportError, ErrorCode
from csvimporter.common.models import ImportProgress, ImportResult, ImportStatus
from csvimporter.core.jobs import JobState, JobStateMachine
from .importer import CSVImporter, RecordMapper, StructuredMapper
from .options import CancellationToken, ImportCallbacks

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], None]


def call_inline(callback: Callable[[], None]) -> None:
    callback()


class ImportJob:
    """Runs one import off the caller's thread and reports through ``callbacks``.

    Every notification is handed to ``dispatch`` so the caller decides where it
    runs (for example ``loop.call_soon_threadsafe`` or a queue's ``put``).
    Progress reaches ``dispatch`` at most once per ``progress_interval``;
    exactly one of ``on_finish``/``on_fail`` follows, except that an inline
    ``on_finish`` which raises turns the run into a ``STATE_ERROR`` failure
    reported through ``on_fail``.
    """

    def __init__(
        self,
        importer: CSVImporter,
        callbacks: Optional[ImportCallbacks] = None,
        *,
        executor: Optional[Executor] = None,
        dispatch: Dispatch = call_inline,
        job_id: Optional[str] = None,
    ) -> None:
        self.importer = importer
        self.callbacks = callbacks or ImportCallbacks()
        self.dispatch = dispatch
        self.job_id = job_id or uuid4().hex
        self.state_machine = JobStateMachine(self.job_id)
        self.cancel_token = CancellationToken()
        self._executor = executor
        self._future: Optional[Future] = None

    @property
    def state(self) -> JobState:
        return self.state_machine.state

    @property
    def future(self) -> Optional[Future]:
        return self._future

    def start_records(self, mapper: RecordMapper) -> Future:
        return self._submit(
            lambda progress: self.importer.import_records(
                mapper,
                progress_callback=progress,
                cancel_token=self.cancel_token,
            )
        )

    def start_structured(self, mapper: StructuredMapper) -> Future:
        on_header = self.callbacks.on_header
        header_callback = None
        if on_header is not None:

            def header_callback(header: List[str]) -> None:
                self.dispatch(lambda: on_header(header))

        return self._submit(
            lambda progress: self.importer.import_structured(
                mapper,
                header_callback=header_callback,
                progress_callback=progress,
                cancel_token=self.cancel_token,
            )
        )

    def cancel(self) -> None:
        """Request cancellation; the run stops at the next line boundary."""

        self.cancel_token.cancel()

    def _submit(self, run: Callable[[Optional[Callable[[ImportProgress], None]]], ImportResult]) -> Future:
        if self._future is not None:
            raise CSVImportError(
                ErrorCode.STATE_ERROR,
                f"job {self.job_id} was already started",
                context={"job_id": self.job_id},
            )
        if self._executor is not None:
            self._future = self._executor.submit(self._execute, run)
            return self._future
        # private single-use worker
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"csv-import-{self.job_id[:8]}")
        try:
            self._future = pool.submit(self._execute, run)
        finally:
            pool.shutdown(wait=False)
        return self._future

    def _execute(self, run: Callable[[Optional[Callable[[ImportProgress], None]]], ImportResult]) -> ImportResult:
        self.state_machine.transition(JobState.RUNNING)
        on_progress = self.callbacks.on_progress
        progress = None
        if on_progress is not None:

            def progress(snapshot: ImportProgress) -> None:
                self.dispatch(lambda: on_progress(snapshot))

        try:
            result = run(progress)
            if result.ok:
                self._deliver_finish(result.records)
        except Exception as exc:
            # a notification callback blew up inside the worker
            error = CSVImportError(ErrorCode.STATE_ERROR, f"import job crashed: {exc}", context={"job_id": self.job_id})
            error.__cause__ = exc
            logger.exception("Import job %s crashed", self.job_id)
            result = ImportResult(status=ImportStatus.FAILED, error=error)
        self._finish(result)
        return result

    def _deliver_finish(self, records: List[Any]) -> None:
        on_finish = self.callbacks.on_finish
        if on_finish is not None:
            self.dispatch(lambda: on_finish(records))

    def _finish(self, result: ImportResult) -> None:
        if result.ok:
            self.state_machine.transition(JobState.DONE, detail=f"{len(result.records)} record(s)")
            return
        detail = str(result.error) if result.error else None
        if result.status == ImportStatus.CANCELLED:
            self.state_machine.mark_cancelled(detail)
        else:
            self.state_machine.mark_failed(detail)
        on_fail = self.callbacks.on_fail
        if on_fail is not None and result.error is not None:
            error = result.error
            try:
                self.dispatch(lambda: on_fail(error))
            except Exception:
                # the job already failed; the result future still carries the original error
                logger.exception("Failure handler of import job %s raised", self.job_id)
