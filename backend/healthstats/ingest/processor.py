"""
Metric Record Processor - filters, validates, deduplicates and batches one metric.

One processor runs per metric type over a full pass of the export. The engine
is shared; everything metric-specific comes from its MetricConfig.
"""

import logging
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import AsyncIterable, Callable, Dict, List, Optional, Set, Union

from ..core import IngestLoggerAdapter
from ..exceptions import ConfigurationError
from ..models import HealthRecord, RawRecord
from ..storage import SnapshotStore
from .extractor import RecordBoundaryExtractor, ScanControl
from .metrics import MetricConfig
from .parsing import canonical_date, parse_date, parse_fragment, parse_value, round_value

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


@dataclass
class MetricSummary:
    """Outcome of one processor run."""
    metric: str
    existing_records: int = 0
    fragments_processed: int = 0
    valid_records: int = 0
    skipped_precheck: int = 0
    parse_failures: int = 0
    invalid_type: int = 0
    invalid_value: int = 0
    out_of_range: int = 0
    invalid_date: int = 0
    duplicates: int = 0
    batches_saved: int = 0
    callback_errors: int = 0
    stopped_early: bool = False
    elapsed_seconds: float = 0.0
    sources: Dict[str, int] = field(default_factory=dict)
    contexts: Dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProcessorState:
    """Mutable state of a single run, built fresh each time."""
    known_dates: Set[str]
    summary: MetricSummary
    pending: List[HealthRecord] = field(default_factory=list)
    sources: Counter = field(default_factory=Counter)
    contexts: Counter = field(default_factory=Counter)
    type_seen: bool = False
    # Fragment position of the last accepted record (or of the first type match)
    last_new_at: int = 0
    stop_requested: bool = False
    started_at: float = field(default_factory=time.monotonic)
    last_checkpoint_at: float = field(default_factory=time.monotonic)


class MetricRecordProcessor:
    """Turns record fragments of one metric type into persisted snapshot batches."""

    def __init__(
        self,
        config: MetricConfig,
        snapshot_store: SnapshotStore,
        user_id: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        extractor_factory: Optional[Callable[[], RecordBoundaryExtractor]] = None,
    ):
        if not user_id or not user_id.strip():
            raise ConfigurationError("User ID is required")
        self.config = config
        self.snapshot_store = snapshot_store
        self.user_id = user_id
        self.batch_size = max(1, batch_size)
        self.extractor_factory = extractor_factory or RecordBoundaryExtractor
        self.log = IngestLoggerAdapter(logger, {"user_id": user_id, "metric": config.metric.value})

    async def run(self, chunks: AsyncIterable[Union[bytes, str]]) -> MetricSummary:
        """
        Scan a document stream and persist every new valid record of this metric.

        Args:
            chunks: The export document as an async iterable of chunks

        Returns:
            MetricSummary with counts for the pass
        """
        self.log.info("Fetching existing %s records...", self.config.label)
        existing = await self.snapshot_store.fetch_all(self.config.metric, self.user_id)
        state = ProcessorState(
            known_dates={self._date_key(record.date) for record in existing},
            summary=MetricSummary(metric=self.config.metric.value, existing_records=len(existing)),
        )
        self.log.info("Found %d existing %s records", len(existing), self.config.label)

        async def on_fragment(fragment: str) -> ScanControl:
            return await self.handle_fragment(state, fragment)

        extractor = self.extractor_factory()
        stats = await extractor.extract(chunks, on_fragment)

        if state.pending:
            self.log.info("Saving final batch of %d %s records...", len(state.pending), self.config.label)
        await self._flush(state)

        summary = state.summary
        summary.callback_errors = stats.callback_errors
        summary.stopped_early = stats.stopped_early
        summary.sources = dict(state.sources)
        summary.contexts = dict(state.contexts)
        summary.elapsed_seconds = round(time.monotonic() - state.started_at, 2)

        if summary.valid_records == 0:
            self.log.warning("No new %s records were found", self.config.label)
        self.log.info(
            "%s processing complete: fragments=%d valid=%d duplicates=%d invalid_value=%d "
            "out_of_range=%d invalid_date=%d batches=%d stopped_early=%s time=%.2fs",
            self.config.label, summary.fragments_processed, summary.valid_records,
            summary.duplicates, summary.invalid_value, summary.out_of_range,
            summary.invalid_date, summary.batches_saved, summary.stopped_early,
            summary.elapsed_seconds,
        )
        return summary

    @staticmethod
    def _date_key(date: str) -> str:
        """Canonical key for a stored date; unparseable dates are kept as-is."""
        moment = parse_date(date)
        return canonical_date(moment) if moment is not None else date

    async def handle_fragment(self, state: ProcessorState, fragment: str) -> ScanControl:
        """Process one wrapped fragment; may flush a batch or ask the extractor to stop."""
        if state.stop_requested:
            return ScanControl.STOP

        summary = state.summary
        summary.fragments_processed += 1
        try:
            await self._accept(state, fragment)
        finally:
            # Runs even when the fragment raised, so no checkpoint is ever skipped
            control = await self._check_convergence(state)
        return control

    async def _accept(self, state: ProcessorState, fragment: str) -> None:
        summary = state.summary

        # Cheap substring check before paying for a parse
        if self.config.type_identifier not in fragment:
            summary.skipped_precheck += 1
            return

        if not state.type_seen:
            state.type_seen = True
            state.last_new_at = summary.fragments_processed
        raw_records = parse_fragment(fragment)
        if not raw_records:
            summary.parse_failures += 1
        for raw in raw_records:
            record = self._build_record(state, raw)
            if record is None:
                continue
            state.pending.append(record)
            state.known_dates.add(record.date)
            summary.valid_records += 1
            state.last_new_at = summary.fragments_processed
            if len(state.pending) >= self.batch_size:
                await self._flush(state)

    def _build_record(self, state: ProcessorState, raw: RawRecord) -> Optional[HealthRecord]:
        summary = state.summary
        config = self.config

        if raw.type != config.type_identifier:
            summary.invalid_type += 1
            return None

        value = parse_value(raw.value)
        if value is None:
            summary.invalid_value += 1
            return None
        if not config.in_range(value):
            summary.out_of_range += 1
            return None

        moment = parse_date(raw.date_text)
        if moment is None:
            summary.invalid_date += 1
            return None

        date = canonical_date(moment)
        if date in state.known_dates:
            summary.duplicates += 1
            return None

        state.sources[config.classify_source(raw.source_name)] += 1

        context = None
        if config.context_key and config.context_key in raw.metadata:
            context = config.normalize_context(raw.metadata[config.context_key])
            state.contexts[context] += 1

        return HealthRecord(
            date=date,
            value=round_value(value, config.precision, config.scale),
            source=raw.source_name,
            unit=raw.unit or config.default_unit,
            metadata=dict(raw.metadata) or None,
            context=context,
        )

    async def _flush(self, state: ProcessorState) -> None:
        if not state.pending:
            return
        batch = state.pending
        state.pending = []
        await self.snapshot_store.flush(self.config.metric, self.user_id, batch)
        state.summary.batches_saved += 1

    def _log_progress(self, state: ProcessorState) -> None:
        summary = state.summary
        now = time.monotonic()
        elapsed = max(now - state.last_checkpoint_at, 1e-6)
        self.log.info(
            "Progress: fragments=%d valid=%d duplicates=%d pending=%d rate=%d/s",
            summary.fragments_processed, summary.valid_records, summary.duplicates,
            len(state.pending), int(self.config.log_interval / elapsed),
        )
        state.last_checkpoint_at = now

    async def _check_convergence(self, state: ProcessorState) -> ScanControl:
        """
        Apply the early-stop rule after every fragment.

        Once the metric's type has been seen, the scan stops as soon as
        window_fragments fragments have passed without a new valid record.
        Before that, it gives up after no_match_limit fragments.
        """
        summary = state.summary
        if summary.fragments_processed % self.config.log_interval == 0:
            self._log_progress(state)

        if not state.type_seen:
            if summary.fragments_processed >= self.config.no_match_limit:
                self.log.info(
                    "No %s records after %d fragments, stopping",
                    self.config.label, summary.fragments_processed,
                )
                state.stop_requested = True
                return ScanControl.STOP
            return ScanControl.CONTINUE

        if summary.fragments_processed - state.last_new_at >= self.config.window_fragments:
            self.log.info(
                "No new %s records in the last %d fragments, stopping",
                self.config.label, self.config.window_fragments,
            )
            state.stop_requested = True
            await self._flush(state)
            return ScanControl.STOP

        return ScanControl.CONTINUE
