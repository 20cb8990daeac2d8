"""
Ingestion Orchestrator - runs every metric processor over one uploaded export.

Metrics are processed strictly one after another, each with its own full pass
over the document. The orchestrator owns the run status, reports progress to
the job tracker and always produces an HTTP-style response.
"""

import logging
import time
from typing import Any, List, Optional

from ..core import MemoryMonitor
from ..exceptions import ConfigurationError, error_message
from ..jobs import JobTracker
from ..models import InvocationEvent, InvocationResponse, ProcessingPhase, ProcessingStatus
from ..storage import SnapshotStore, StorageInterface
from .extractor import RecordBoundaryExtractor
from .metrics import METRIC_CONFIGS, MetricConfig
from .processor import MetricRecordProcessor

logger = logging.getLogger(__name__)


class IngestionOrchestrator:
    """Drives one ingestion run for one user and one source document."""

    def __init__(
        self,
        storage: StorageInterface,
        job_tracker: JobTracker,
        config: Any,
        metrics: Optional[List[MetricConfig]] = None,
        snapshot_store: Optional[SnapshotStore] = None,
    ):
        """
        Args:
            storage: Object store holding the uploaded export
            job_tracker: External job status sink
            config: Settings object (extractor sizes, batch size, memory options)
            metrics: Metrics to process, in order; defaults to all supported metrics
            snapshot_store: Snapshot persistence; defaults to one over the same storage
        """
        self.storage = storage
        self.job_tracker = job_tracker
        self.config = config
        self.metrics = metrics if metrics is not None else list(METRIC_CONFIGS)
        self.snapshot_store = snapshot_store or SnapshotStore(
            storage,
            prefix=config.data_prefix,
            max_attempts=config.snapshot_write_attempts,
            retry_wait=config.snapshot_retry_wait_seconds,
        )
        self.memory_monitor = MemoryMonitor(
            threshold_mb=config.memory_threshold_mb,
            force_gc=config.memory_force_gc,
        )

    def _make_extractor(self) -> RecordBoundaryExtractor:
        return RecordBoundaryExtractor(
            chunk_size=self.config.extractor_chunk_size,
            max_buffer_size=self.config.extractor_max_buffer_size,
            fail_on_overflow=self.config.extractor_fail_on_overflow,
            memory_monitor=self.memory_monitor,
        )

    @staticmethod
    def _validate(event: InvocationEvent) -> None:
        missing = [
            name for name, value in (
                ("jobId", event.job_id),
                ("userId", event.user_id),
                ("fileKey", event.file_key),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ConfigurationError(f"Missing required fields: {', '.join(missing)}")

    async def _process_metric(self, metric: MetricConfig, event: InvocationEvent, status: ProcessingStatus) -> None:
        processor = MetricRecordProcessor(
            metric,
            self.snapshot_store,
            event.user_id,
            batch_size=self.config.batch_size,
            extractor_factory=self._make_extractor,
        )
        stream = self.storage.stream(event.file_key, chunk_size=self.config.stream_read_size)
        try:
            summary = await processor.run(stream)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        status.records_processed += summary.valid_records
        status.batches_saved += summary.batches_saved
        status.record_types.append(metric.metric.value)
        status.metric_summaries[metric.metric.value] = summary.as_dict()

    async def run(self, event: InvocationEvent) -> InvocationResponse:
        """
        Ingest the event's document for every configured metric.

        Returns:
            InvocationResponse: 200 with totals on success, 500 with an error message on failure
        """
        started = time.monotonic()
        status = ProcessingStatus(user_id=event.user_id)
        logger.info("Starting ingestion job %s for user %s (%s)", event.job_id, event.user_id, event.file_key)

        try:
            self._validate(event)

            total = len(self.metrics)
            for index, metric in enumerate(self.metrics):
                status.status = ProcessingPhase.for_metric(metric.metric.value)
                await self.job_tracker.update_job_progress(
                    event.job_id, index, total, f"Processing {metric.label} data..."
                )
                logger.info("=== Starting %s processing (%d/%d) ===", metric.label, index + 1, total)
                await self._process_metric(metric, event, status)

            status.status = ProcessingPhase.COMPLETED
            execution_time = time.monotonic() - started
            await self.job_tracker.update_job_status(
                event.job_id,
                "completed",
                result={
                    "recordsProcessed": status.records_processed,
                    "batchesSaved": status.batches_saved,
                    "recordTypes": status.record_types,
                    "metrics": status.metric_summaries,
                },
            )

            logger.info(
                "Ingestion job %s completed: %d records, %d batches, %.2fs, peak memory %.1fMB",
                event.job_id, status.records_processed, status.batches_saved,
                execution_time, self.memory_monitor.peak_mb,
            )
            return InvocationResponse(
                status_code=200,
                body={
                    "success": True,
                    "recordsProcessed": status.records_processed,
                    "batchesSaved": status.batches_saved,
                    "recordTypes": status.record_types,
                    "executionTime": f"{execution_time:.2f}",
                },
            )

        except Exception as e:
            status.status = ProcessingPhase.FAILED
            status.error = error_message(e)
            logger.error("Ingestion job %s failed: %s", event.job_id, status.error, exc_info=True)

            try:
                await self.job_tracker.update_job_status(event.job_id, "failed", error=status.error)
            except Exception as report_error:
                logger.error("Could not report failure of job %s: %s", event.job_id, report_error)

            return InvocationResponse(
                status_code=500,
                body={"success": False, "error": status.error},
            )

        finally:
            try:
                await self.job_tracker.cleanup()
            except Exception as cleanup_error:
                logger.error("Job tracker cleanup failed: %s", cleanup_error)
