"""
Sequential batch scheduler with cooperative pause / resume / stop.

``BatchImporter`` walks the batches of one run in ascending order, checks its
control flags before each dispatch, sends the batch to the remote processor,
and folds the outcome into its ``ProgressTracker``. A failed batch is recorded
and skipped over; it never aborts the run. Only pre-flight problems (no data,
missing target, bad batch size) and a start request during an active run are
raised to the caller.
"""
import asyncio
import logging
from typing import Callable, Optional

from app.core.config import settings
from app.domain.imports.control import ControlChannel
from app.domain.imports.errors import (
    BatchTransportError,
    EmptyInputError,
    ImportAlreadyRunningError,
    MissingRunParameterError,
)
from app.domain.imports.normalizer import HeaderDetector, RawRecordSet, normalize_input
from app.domain.imports.planner import BatchPlan, build_batch_payload, plan_batches
from app.domain.imports.progress import (
    ImportStatus,
    ImportSummary,
    ProgressCallback,
    ProgressSnapshot,
    ProgressTracker,
)
from app.integrations.batch_processor import BatchProcessor

logger = logging.getLogger(__name__)


class BatchImporter:
    """
    Drives one import run at a time through a remote batch processor.

    Usage:
        importer = BatchImporter(processor)
        summary = await importer.start(csv_text, target_id="tenant-1")

    ``pause()``, ``resume()`` and ``stop()`` may be called from any other task on
    the same event loop while ``start`` is running.
    """

    def __init__(
        self,
        processor: BatchProcessor,
        *,
        batch_size: Optional[int] = None,
        header_detector: Optional[HeaderDetector] = None,
        pause_poll_interval: Optional[float] = None,
        inter_batch_delay: Optional[float] = None,
        error_tail_size: Optional[int] = None,
        on_complete: Optional[Callable[[ImportSummary], None]] = None,
        name: str = "import",
    ):
        self.processor = processor
        self.batch_size = settings.default_batch_size if batch_size is None else batch_size
        self.header_detector = header_detector
        self.pause_poll_interval = (
            settings.pause_poll_interval_seconds if pause_poll_interval is None else pause_poll_interval
        )
        self.inter_batch_delay = (
            settings.inter_batch_delay_seconds if inter_batch_delay is None else inter_batch_delay
        )
        self.on_complete = on_complete
        self.name = name

        self.control = ControlChannel()
        self.progress = ProgressTracker(
            error_tail_size=settings.error_tail_size if error_tail_size is None else error_tail_size
        )

        self._records: Optional[RawRecordSet] = None
        self._plan: Optional[BatchPlan] = None
        self._target_id: Optional[str] = None

    # ------------------------------------------------------------ observation

    @property
    def status(self) -> ImportStatus:
        return self.progress.status

    @property
    def is_active(self) -> bool:
        return self.progress.status in (ImportStatus.RUNNING, ImportStatus.PAUSED)

    def snapshot(self) -> ProgressSnapshot:
        return self.progress.snapshot()

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        return self.progress.subscribe(callback)

    # ---------------------------------------------------------------- control

    def pause(self) -> None:
        self.control.pause()
        logger.info(f"[{self.name}] Pause requested")

    def resume(self) -> None:
        self.control.resume()
        logger.info(f"[{self.name}] Resume requested")

    def stop(self) -> None:
        self.control.stop()
        logger.info(f"[{self.name}] Stop requested")

    # -------------------------------------------------------------------- run

    async def start(
        self,
        raw_text: str,
        target_id: str,
        batch_size: Optional[int] = None,
        header_detector: Optional[HeaderDetector] = None,
    ) -> Optional[ImportSummary]:
        """
        Import ``raw_text`` for ``target_id`` and wait for the run to finish.

        Args:
            raw_text: Delimited text, one record per line, optional header line.
            target_id: Identity the remote processor imports into (tenant).
            batch_size: Overrides the importer's batch size for this run.
            header_detector: Overrides the importer's header detector for this run.

        Returns:
            The final summary, or None when the run was stopped early.

        Raises:
            ImportPreflightError: Input or run parameters are unusable.
            ImportAlreadyRunningError: Another run is still running or paused.
        """
        self._prepare(raw_text, target_id, batch_size, header_detector)
        return await self._run()

    def launch(
        self,
        raw_text: str,
        target_id: str,
        batch_size: Optional[int] = None,
        header_detector: Optional[HeaderDetector] = None,
    ) -> "asyncio.Task[Optional[ImportSummary]]":
        """
        Validate and start a run in the background.

        Pre-flight errors are raised here, before the task is created, so that
        callers such as HTTP handlers can report them synchronously.
        """
        loop = asyncio.get_running_loop()
        self._prepare(raw_text, target_id, batch_size, header_detector)
        task = loop.create_task(self._run(), name=f"batch-import:{self.name}")
        task.add_done_callback(self._handle_task_done)
        return task

    def _handle_task_done(self, task: asyncio.Task) -> None:
        # A task cancelled before its first step never reaches the cleanup in _run.
        if task.cancelled() and self.is_active:
            logger.warning(f"[{self.name}] Import task cancelled before it started; marking run as stopped")
            self.control.stop()
            self.progress.set_status(ImportStatus.STOPPED)

    def _prepare(
        self,
        raw_text: str,
        target_id: str,
        batch_size: Optional[int],
        header_detector: Optional[HeaderDetector] = None,
    ) -> None:
        if self.is_active:
            raise ImportAlreadyRunningError(
                f"Import '{self.name}' is already {self.progress.status.value}; stop it before starting another run"
            )
        if not target_id or not str(target_id).strip():
            raise MissingRunParameterError("target_id is required")

        size = self.batch_size if batch_size is None else batch_size
        if size is None:
            raise MissingRunParameterError("batch_size is required")

        records = normalize_input(raw_text, header_detector or self.header_detector)
        if records.record_count == 0:
            raise EmptyInputError("No data lines found in the input")
        plan = plan_batches(records.record_count, size)

        self.control.reset()
        self._records = records
        self._plan = plan
        self._target_id = str(target_id)
        self.progress.begin(
            target_id=self._target_id,
            total_records=plan.total_records,
            total_batches=plan.total_batches,
            has_header=records.has_header,
        )
        logger.info(
            f"[{self.name}] Starting import for '{self._target_id}': "
            f"{plan.total_records} records in {plan.total_batches} batches of {plan.batch_size}"
            f"{' (header detected)' if records.has_header else ''}"
        )

    async def _run(self) -> Optional[ImportSummary]:
        records, plan, target_id = self._records, self._plan, self._target_id
        stopped = False

        try:
            for batch_index in range(plan.total_batches):
                if self.control.stopped:
                    stopped = True
                    break

                while self.control.paused and not self.control.stopped:
                    self.progress.set_status(ImportStatus.PAUSED)
                    await asyncio.sleep(self.pause_poll_interval)

                if self.control.stopped:
                    stopped = True
                    break

                self.progress.set_status(ImportStatus.RUNNING)
                await self._dispatch(records, plan, target_id, batch_index)

                if not plan.is_last(batch_index):
                    await asyncio.sleep(self.inter_batch_delay)
        except asyncio.CancelledError:
            logger.warning(f"[{self.name}] Import task cancelled; marking run as stopped")
            self.control.stop()
            if self.progress.status != ImportStatus.COMPLETED:
                self.progress.set_status(ImportStatus.STOPPED)
            raise

        if stopped:
            self.progress.set_status(ImportStatus.STOPPED)
            snap = self.progress.snapshot()
            logger.info(
                f"[{self.name}] Import stopped after {snap.current_batch}/{snap.total_batches} batches "
                f"({snap.processed_records}/{snap.total_records} records)"
            )
            return None

        self.progress.set_status(ImportStatus.COMPLETED)
        summary = self.progress.summary()
        logger.info(f"[{self.name}] Import completed for '{target_id}': {summary.describe()}")
        if self.on_complete:
            try:
                self.on_complete(summary)
            except Exception:
                logger.exception(f"[{self.name}] on_complete callback failed")
        return summary

    async def _dispatch(self, records: RawRecordSet, plan: BatchPlan, target_id: str, batch_index: int) -> None:
        start, end = plan.bounds(batch_index)
        payload = build_batch_payload(records, plan, batch_index)
        batch_number = batch_index + 1

        try:
            result = await self.processor(target_id, payload)
        except BatchTransportError as e:
            logger.warning(f"[{self.name}] Batch {batch_number}/{plan.total_batches} failed: {e.message}")
            errors = [f"Batch {batch_number}: {e.message}"]
            result = None
        except Exception as e:
            logger.warning(
                f"[{self.name}] Batch {batch_number}/{plan.total_batches} raised {type(e).__name__}: {e}"
            )
            errors = [f"Batch {batch_number}: {str(e) or type(e).__name__}"]
            result = None
        else:
            errors = list(result.errors)
            logger.debug(
                f"[{self.name}] Batch {batch_number}/{plan.total_batches} rows {start}-{end}: "
                f"inserted={result.inserted} skipped={result.skipped} errors={len(errors)}"
            )

        self.progress.record_batch(
            batch_index=batch_index,
            processed_records=end,
            result=result,
            errors=errors,
            last=plan.is_last(batch_index),
        )
