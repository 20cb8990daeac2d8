"""
Tests for the ingestion orchestrator: metric sequencing, job reporting and failure handling.
"""

import json
from unittest.mock import AsyncMock

import pytest

from healthstats.config import settings
from healthstats.ingest import IngestionOrchestrator
from healthstats.ingest.metrics import HRV, WEIGHT
from healthstats.models import InvocationEvent

from conftest import export_document, record_xml

FILE_KEY = "uploads/user-1/export.xml"


@pytest.fixture
def test_settings():
    return settings.model_copy(update={
        "snapshot_retry_wait_seconds": 0,
        "extractor_chunk_size": 256,
        "extractor_max_buffer_size": 16 * 1024,
        "stream_read_size": 100,
    })


@pytest.fixture
def tracker():
    return AsyncMock()


@pytest.fixture
def export(memory_storage):
    document = export_document([
        record_xml("HKQuantityTypeIdentifierBodyMass", "70.2", start="2024-01-01 07:00:00 +0000"),
        record_xml("HKQuantityTypeIdentifierBodyMass", "70.1", start="2024-01-02 07:00:00 +0000"),
        record_xml("HKQuantityTypeIdentifierBodyFatPercentage", "0.21", start="2024-01-01 07:00:00 +0000"),
        record_xml("HKQuantityTypeIdentifierStepCount", "4211"),
        record_xml("HKQuantityTypeIdentifierHeartRateVariabilitySDNN", "52.4", source="Apple Watch"),
        record_xml("HKQuantityTypeIdentifierVO2Max", "41.77", source="Apple Watch"),
    ])
    memory_storage.objects[FILE_KEY] = document.encode("utf-8")
    return FILE_KEY


def event(**overrides):
    payload = {"jobId": "job-1", "userId": "user-1", "fileKey": FILE_KEY}
    payload.update(overrides)
    return InvocationEvent.from_payload(payload)


class TestSuccessfulRun:

    @pytest.mark.asyncio
    async def test_processes_every_metric_in_order(self, memory_storage, tracker, test_settings, export):
        orchestrator = IngestionOrchestrator(memory_storage, tracker, test_settings)

        response = await orchestrator.run(event())

        assert response.status_code == 200
        assert response.success
        assert response.body["recordsProcessed"] == 5
        assert response.body["batchesSaved"] == 4
        assert response.body["recordTypes"] == ["weight", "bodyFat", "hrv", "vo2max"]
        float(response.body["executionTime"])

        progress = [call.args for call in tracker.update_job_progress.await_args_list]
        assert progress == [
            ("job-1", 0, 4, "Processing weight data..."),
            ("job-1", 1, 4, "Processing body fat data..."),
            ("job-1", 2, 4, "Processing HRV data..."),
            ("job-1", 3, 4, "Processing VO2 max data..."),
        ]
        tracker.update_job_status.assert_awaited_once()
        args, kwargs = tracker.update_job_status.await_args
        assert args == ("job-1", "completed")
        assert kwargs["result"]["recordsProcessed"] == 5
        assert kwargs["result"]["metrics"]["weight"]["valid_records"] == 2
        tracker.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_snapshots_are_written_per_metric(self, memory_storage, tracker, test_settings, export):
        await IngestionOrchestrator(memory_storage, tracker, test_settings).run(event())

        for name in ("weight", "bodyfat", "hrv", "vo2max"):
            assert f"data/user-1/{name}.json" in memory_storage.objects
        body_fat = json.loads(memory_storage.objects["data/user-1/bodyfat.json"])
        assert body_fat == [{"date": "2024-01-01T07:00:00.000Z", "value": 21.0, "source": "Health", "unit": "%"}]

    @pytest.mark.asyncio
    async def test_metric_subset(self, memory_storage, tracker, test_settings, export):
        orchestrator = IngestionOrchestrator(memory_storage, tracker, test_settings, metrics=[HRV, WEIGHT])

        response = await orchestrator.run(event())

        assert response.body["recordTypes"] == ["hrv", "weight"]
        assert response.body["recordsProcessed"] == 3

    @pytest.mark.asyncio
    async def test_xml_key_alias(self, memory_storage, tracker, test_settings, export):
        payload = InvocationEvent.from_payload({"jobId": "job-1", "userId": "user-1", "xmlKey": FILE_KEY})

        response = await IngestionOrchestrator(memory_storage, tracker, test_settings).run(payload)

        assert response.status_code == 200


class TestFailedRun:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["jobId", "userId", "fileKey"])
    async def test_missing_field_fails_validation(self, memory_storage, tracker, test_settings, export, field):
        response = await IngestionOrchestrator(memory_storage, tracker, test_settings).run(event(**{field: None}))

        assert response.status_code == 500
        assert response.body["success"] is False
        assert field in response.body["error"]
        tracker.update_job_progress.assert_not_awaited()
        tracker.update_job_status.assert_awaited_once()
        assert tracker.update_job_status.await_args.args[1] == "failed"
        tracker.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_document(self, memory_storage, tracker, test_settings):
        response = await IngestionOrchestrator(memory_storage, tracker, test_settings).run(event())

        assert response.status_code == 500
        assert "Object not found" in response.body["error"]
        assert tracker.update_job_status.await_args.kwargs["error"] == response.body["error"]

    @pytest.mark.asyncio
    async def test_persistence_failure_stops_remaining_metrics(self, memory_storage, tracker, test_settings, export):
        memory_storage.fail_saves = 100

        response = await IngestionOrchestrator(memory_storage, tracker, test_settings).run(event())

        assert response.status_code == 500
        assert "Error saving" in response.body["error"]
        assert tracker.update_job_progress.await_count == 1

    @pytest.mark.asyncio
    async def test_reporting_failure_does_not_mask_error(self, memory_storage, tracker, test_settings):
        tracker.update_job_status.side_effect = RuntimeError("tracker unavailable")
        tracker.cleanup.side_effect = RuntimeError("cleanup failed")

        response = await IngestionOrchestrator(memory_storage, tracker, test_settings).run(event())

        assert response.status_code == 500
        assert "Object not found" in response.body["error"]
        tracker.cleanup.assert_awaited_once()
