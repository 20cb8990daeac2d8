"""
Tests for logging helpers, memory sampling, errors and invocation models.
"""

import json
import logging
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from healthstats.core import IngestLoggerAdapter, MemoryMonitor, truncate_large_data
from healthstats.core.logging_config import JSONFormatter, setup_logging
from healthstats.exceptions import PersistenceError, StreamError, error_message
from healthstats.models import InvocationEvent, MetricType, ProcessingPhase


class TestLogging:

    def test_truncate_large_data(self):
        assert truncate_large_data("short") == "short"
        truncated = truncate_large_data("x" * 600, max_length=100)
        assert truncated.startswith("x" * 100)
        assert "total length: 600" in truncated

    def test_adapter_prefixes_context_and_sets_extra_fields(self):
        adapter = IngestLoggerAdapter(logging.getLogger("test"), {"user_id": "user-1", "metric": "hrv"})

        msg, kwargs = adapter.process("Batch saved", {})

        assert msg == "[user-1] [hrv] Batch saved"
        assert kwargs["extra"]["extra_fields"] == {"user_id": "user-1", "metric": "hrv"}

    def test_json_formatter_includes_extra_fields(self):
        record = logging.LogRecord("healthstats.test", logging.INFO, __file__, 10, "saved %d", (3,), None)
        record.extra_fields = {"metric": "weight"}

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "saved 3"
        assert payload["metric"] == "weight"
        assert payload["level"] == "INFO"

    def test_setup_logging_writes_json_file(self, tmp_path):
        config = SimpleNamespace(
            log_level="debug",
            log_console_enabled=False,
            log_file_enabled=True,
            log_file_path=str(tmp_path / "logs" / "ingest.log"),
            log_json_format=True,
        )
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(config)
            assert root.level == logging.DEBUG
            assert logging.getLogger("botocore").level == logging.WARNING
            for handler in root.handlers:
                handler.flush()
            assert (tmp_path / "logs" / "ingest.log").exists()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestMemoryMonitor:

    def test_tracks_peak(self):
        monitor = MemoryMonitor()
        with patch.object(monitor, "rss_mb", side_effect=[120.0, 80.0]):
            monitor.sample()
            sample = monitor.sample()

        assert monitor.peak_mb == 120.0
        assert sample.rss_mb == 80.0
        assert sample.collected is False

    def test_collects_above_threshold(self):
        monitor = MemoryMonitor(threshold_mb=100, force_gc=True)
        with patch.object(monitor, "rss_mb", return_value=150.0), \
                patch("healthstats.core.memory.gc.collect") as collect:
            sample = monitor.sample("5000 fragments")

        assert sample.collected is True
        assert monitor.gc_runs == 1
        collect.assert_called_once()

    def test_no_collection_without_force_gc(self):
        monitor = MemoryMonitor(threshold_mb=100, force_gc=False)
        with patch.object(monitor, "rss_mb", return_value=150.0), \
                patch("healthstats.core.memory.gc.collect") as collect:
            monitor.sample()

        collect.assert_not_called()

    def test_reads_real_process_memory(self):
        assert MemoryMonitor().rss_mb() > 0


class TestErrors:

    def test_error_message_uses_first_line(self):
        assert error_message(StreamError("connection reset\nTraceback ...")) == "connection reset"

    def test_error_message_falls_back_to_class_name(self):
        assert error_message(PersistenceError()) == "PersistenceError"


class TestModels:

    def test_event_accepts_camel_case(self):
        event = InvocationEvent.from_payload({"jobId": "j", "userId": "u", "fileKey": "k", "other": 1})
        assert (event.job_id, event.user_id, event.file_key) == ("j", "u", "k")

    def test_event_xml_key_alias(self):
        assert InvocationEvent.from_payload({"xmlKey": "uploads/x.xml"}).file_key == "uploads/x.xml"

    def test_event_none_becomes_blank(self):
        assert InvocationEvent.from_payload({"userId": None}).user_id == ""

    @pytest.mark.parametrize("metric, phase", [
        ("weight", ProcessingPhase.PROCESSING_WEIGHT),
        ("bodyFat", ProcessingPhase.PROCESSING_BODY_FAT),
        ("vo2max", ProcessingPhase.PROCESSING_VO2_MAX),
    ])
    def test_phase_for_metric(self, metric, phase):
        assert ProcessingPhase.for_metric(metric) is phase

    def test_storage_name(self):
        assert MetricType.BODY_FAT.storage_name == "bodyfat"
