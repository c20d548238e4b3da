"""
Shared dependencies and state for the API.

Importers are kept in process memory, one per (profile, tenant) pair, so that
two tenants can import the same kind of file at the same time without sharing
control signals. Nothing here survives a restart.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

import httpx

from app.core.config import settings
from app.domain.imports.normalizer import header_detector_for
from app.domain.imports.profiles import ImporterProfile
from app.domain.imports.progress import ImportStatus
from app.domain.imports.scheduler import BatchImporter
from app.integrations.batch_processor import BatchProcessor, HttpBatchProcessor, create_http_client

logger = logging.getLogger(__name__)

ImporterKey = Tuple[str, str]


class ImporterRegistry:
    """Owns every ``BatchImporter`` created through the API and their run tasks."""

    def __init__(
        self,
        processor_factory: Optional[Callable[[ImporterProfile], BatchProcessor]] = None,
        importer_options: Optional[Dict] = None,
        retention_seconds: Optional[float] = None,
    ):
        self._processor_factory = processor_factory
        self._importer_options = importer_options or {}
        self.retention_seconds = (
            settings.finished_run_retention_seconds if retention_seconds is None else retention_seconds
        )
        self._client: Optional[httpx.AsyncClient] = None
        self._importers: Dict[ImporterKey, BatchImporter] = {}
        self._tasks: Dict[ImporterKey, asyncio.Task] = {}

    def _processor_for(self, profile: ImporterProfile) -> BatchProcessor:
        if self._processor_factory is not None:
            return self._processor_factory(profile)
        if self._client is None:
            self._client = create_http_client()
        return HttpBatchProcessor(self._client, profile.name)

    def get(self, profile_name: str, tenant_id: str) -> Optional[BatchImporter]:
        return self._importers.get((profile_name, tenant_id))

    def evict_finished(self, now: Optional[datetime] = None) -> List[ImporterKey]:
        """
        Forget importers whose run finished more than ``retention_seconds`` ago,
        and importers whose run never got past pre-flight checks.
        """
        cutoff = (now or datetime.now()) - timedelta(seconds=self.retention_seconds)
        expired = []
        for key, importer in self._importers.items():
            if importer.is_active or key in self._tasks:
                continue
            if importer.status == ImportStatus.IDLE:
                expired.append(key)
                continue
            finished_at = importer.snapshot().finished_at
            if finished_at is not None and finished_at <= cutoff:
                expired.append(key)

        for key in expired:
            del self._importers[key]
        if expired:
            logger.info(f"Evicted {len(expired)} finished importer(s)")
        return expired

    def get_or_create(self, profile: ImporterProfile, tenant_id: str) -> BatchImporter:
        self.evict_finished()
        key = (profile.name, tenant_id)
        importer = self._importers.get(key)
        if importer is None:
            importer = BatchImporter(
                self._processor_for(profile),
                header_detector=header_detector_for(profile.header_mode),
                name=f"{profile.name}:{tenant_id}",
                **self._importer_options,
            )
            self._importers[key] = importer
        return importer

    def launch(
        self,
        profile: ImporterProfile,
        tenant_id: str,
        csv_data: str,
        batch_size: Optional[int] = None,
        header_mode: Optional[str] = None,
    ) -> BatchImporter:
        """
        Start a background run for ``tenant_id``.

        Raises whatever ``BatchImporter.launch`` raises (pre-flight errors,
        ImportAlreadyRunningError) and ValueError for an unknown header mode.
        """
        detector = header_detector_for(header_mode) if header_mode else None
        importer = self.get_or_create(profile, tenant_id)
        task = importer.launch(csv_data, tenant_id, batch_size=batch_size, header_detector=detector)

        key = (profile.name, tenant_id)
        self._tasks[key] = task
        task.add_done_callback(lambda finished, key=key: self._handle_task_done(key, finished))
        return importer

    def _handle_task_done(self, key: ImporterKey, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if task.cancelled():
            logger.info(f"Import task for {key[0]} / {key[1]} was cancelled")
            return
        exception = task.exception()
        if exception:
            logger.error(
                f"Import task for {key[0]} / {key[1]} failed: {type(exception).__name__}: {exception}",
                exc_info=exception,
            )

    def active_runs(self) -> List[ImporterKey]:
        return [key for key, importer in self._importers.items() if importer.is_active]

    async def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Soft-stop every run, cancel whatever is still in flight, close the client."""
        for importer in self._importers.values():
            if importer.is_active:
                importer.stop()

        pending = [task for task in self._tasks.values() if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=grace_seconds)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)

        if self._client is not None:
            await self._client.aclose()
            self._client = None


importer_registry = ImporterRegistry()


def get_importer_registry() -> ImporterRegistry:
    return importer_registry
