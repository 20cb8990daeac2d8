"""Ingest module - streaming extraction, per-metric processing and run orchestration."""

from .extractor import RecordBoundaryExtractor, ExtractionStats, ScanControl
from .metrics import MetricConfig, METRIC_CONFIGS, get_metric_config
from .processor import MetricRecordProcessor, MetricSummary, ProcessorState
from .orchestrator import IngestionOrchestrator

__all__ = [
    'RecordBoundaryExtractor', 'ExtractionStats', 'ScanControl',
    'MetricConfig', 'METRIC_CONFIGS', 'get_metric_config',
    'MetricRecordProcessor', 'MetricSummary', 'ProcessorState',
    'IngestionOrchestrator',
]
