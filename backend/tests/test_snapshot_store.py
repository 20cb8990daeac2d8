"""
Tests for snapshot persistence: keys, merge semantics and retries.
"""

import json

import pytest

from healthstats.exceptions import ConfigurationError, PersistenceError
from healthstats.models import HealthRecord, MetricType
from healthstats.storage import SnapshotStore, merge_records


def rec(date: str, value: float, source: str = "Health") -> HealthRecord:
    return HealthRecord(date=date, value=value, source=source, unit="kg")


@pytest.fixture
def store(memory_storage):
    return SnapshotStore(memory_storage, retry_wait=0)


class TestMergeRecords:

    def test_sorted_and_unique_by_date(self):
        existing = [rec("2024-01-03T00:00:00.000Z", 70), rec("2024-01-01T00:00:00.000Z", 71)]
        new = [rec("2024-01-02T00:00:00.000Z", 72), rec("2024-01-01T00:00:00.000Z", 99)]

        merged = merge_records(existing, new)

        assert [r.date[:10] for r in merged] == ["2024-01-01", "2024-01-02", "2024-01-03"]
        # Existing record wins a date collision
        assert merged[0].value == 71

    def test_empty_inputs(self):
        assert merge_records([], []) == []


class TestSnapshotKeys:

    def test_metric_name_is_lowercased(self, store):
        assert store.snapshot_key(MetricType.BODY_FAT, "user-1") == "data/user-1/bodyfat.json"
        assert store.snapshot_key(MetricType.VO2_MAX, "user-1") == "data/user-1/vo2max.json"

    def test_custom_prefix(self, memory_storage):
        store = SnapshotStore(memory_storage, prefix="/exports/")
        assert store.snapshot_key(MetricType.WEIGHT, "u") == "exports/u/weight.json"

    @pytest.mark.parametrize("user_id", ["", "   "])
    def test_blank_user_is_rejected(self, store, user_id):
        with pytest.raises(ConfigurationError):
            store.snapshot_key(MetricType.WEIGHT, user_id)


class TestFetchAll:

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_empty(self, store):
        assert await store.fetch_all(MetricType.WEIGHT, "user-1") == []

    @pytest.mark.asyncio
    async def test_reads_stored_records(self, store, memory_storage):
        memory_storage.objects["data/user-1/hrv.json"] = json.dumps([
            {"date": "2024-01-01T00:00:00.000Z", "value": 45.2, "source": "Watch", "context": "sedentary"},
        ]).encode("utf-8")

        records = await store.fetch_all(MetricType.HRV, "user-1")

        assert len(records) == 1
        assert records[0].context == "sedentary"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [b"{not json", b'{"date": "x"}', b'[{"value": "abc"}]'])
    async def test_corrupt_snapshot_raises(self, store, memory_storage, content):
        memory_storage.objects["data/user-1/weight.json"] = content
        with pytest.raises(PersistenceError):
            await store.fetch_all(MetricType.WEIGHT, "user-1")

    @pytest.mark.asyncio
    async def test_storage_failure_becomes_persistence_error(self, store, memory_storage):
        memory_storage.fail_loads = 1
        with pytest.raises(PersistenceError, match="Error fetching"):
            await store.fetch_all(MetricType.WEIGHT, "user-1")


class TestFlush:

    @pytest.mark.asyncio
    async def test_empty_batch_writes_nothing(self, store, memory_storage):
        assert await store.flush(MetricType.WEIGHT, "user-1", []) == 0
        assert memory_storage.saves == []

    @pytest.mark.asyncio
    async def test_merges_with_stored_snapshot(self, store, memory_storage):
        await store.flush(MetricType.WEIGHT, "user-1", [rec("2024-01-02T00:00:00.000Z", 70.5)])
        size = await store.flush(MetricType.WEIGHT, "user-1", [
            rec("2024-01-01T00:00:00.000Z", 71.0),
            rec("2024-01-02T00:00:00.000Z", 99.0),
        ])

        assert size == 2
        stored = json.loads(memory_storage.objects["data/user-1/weight.json"])
        assert [item["value"] for item in stored] == [71.0, 70.5]
        assert "metadata" not in stored[0]

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, store, memory_storage):
        memory_storage.fail_saves = 2

        size = await store.flush(MetricType.WEIGHT, "user-1", [rec("2024-01-01T00:00:00.000Z", 70.0)])

        assert size == 1
        assert memory_storage.saves == ["data/user-1/weight.json"]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self, store, memory_storage):
        memory_storage.fail_saves = 4

        with pytest.raises(PersistenceError, match="Error saving"):
            await store.flush(MetricType.WEIGHT, "user-1", [rec("2024-01-01T00:00:00.000Z", 70.0)])
        assert memory_storage.saves == []

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_is_not_retried(self, store, memory_storage):
        memory_storage.objects["data/user-1/weight.json"] = b"garbage"
        with pytest.raises(PersistenceError):
            await store.flush(MetricType.WEIGHT, "user-1", [rec("2024-01-01T00:00:00.000Z", 70.0)])
        assert memory_storage.objects["data/user-1/weight.json"] == b"garbage"
