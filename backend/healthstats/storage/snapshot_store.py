"""
Snapshot Store - Read-merge-write persistence of per-user metric collections.

Each (user, metric) pair is one JSON array at data/<userId>/<metric>.json,
sorted ascending by date with no two records sharing a date. A flush always
rewrites the whole array: fetch, concatenate the new batch, sort, dedup, put.
"""

import json
import logging
from typing import Iterable, List

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..exceptions import ConfigurationError, PersistenceError, StorageError
from ..models import HealthRecord, MetricType
from .interface import StorageInterface

logger = logging.getLogger(__name__)


def merge_records(existing: Iterable[HealthRecord], new: Iterable[HealthRecord]) -> List[HealthRecord]:
    """
    Union two record lists, sorted by date and unique by date.

    The sort is stable, so on an exact date collision the record that came
    first in existing-then-new order is kept.
    """
    merged = sorted([*existing, *new], key=lambda record: record.date)
    unique: List[HealthRecord] = []
    last_date = None
    for record in merged:
        if record.date == last_date:
            continue
        unique.append(record)
        last_date = record.date
    return unique


class SnapshotStore:
    """Fetches and rewrites full metric snapshots in object storage."""

    def __init__(
        self,
        storage: StorageInterface,
        prefix: str = "data",
        max_attempts: int = 4,
        retry_wait: float = 1.0,
    ):
        self.storage = storage
        self.prefix = prefix.strip("/")
        self.max_attempts = max(1, max_attempts)
        self.retry_wait = retry_wait

    def snapshot_key(self, metric: MetricType, user_id: str) -> str:
        if not user_id or not user_id.strip():
            raise ConfigurationError("User ID is required")
        return f"{self.prefix}/{user_id}/{MetricType(metric).storage_name}.json"

    async def _read(self, key: str) -> List[HealthRecord]:
        content = await self.storage.load(key)
        if content is None:
            return []
        try:
            payload = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Snapshot {key} is not valid JSON: {e}") from e
        if not isinstance(payload, list):
            raise PersistenceError(f"Snapshot {key} is not a JSON array")
        try:
            return [HealthRecord.model_validate(item) for item in payload]
        except ValueError as e:
            raise PersistenceError(f"Snapshot {key} holds an invalid record: {e}") from e

    async def fetch_all(self, metric: MetricType, user_id: str) -> List[HealthRecord]:
        """
        Return the full snapshot for a user and metric.

        Returns:
            List[HealthRecord]: Stored records, or an empty list if none exist yet

        Raises:
            PersistenceError: If the snapshot exists but cannot be read
        """
        key = self.snapshot_key(metric, user_id)
        try:
            records = await self._read(key)
        except StorageError as e:
            raise PersistenceError(f"Error fetching {MetricType(metric).value} data: {e}") from e
        logger.debug("Fetched %d records from %s", len(records), key)
        return records

    async def flush(self, metric: MetricType, user_id: str, batch: List[HealthRecord]) -> int:
        """
        Merge a batch into the stored snapshot and write it back whole.

        Storage failures are retried; corrupt snapshots are not.

        Returns:
            int: Number of records in the written snapshot (0 for an empty batch)

        Raises:
            PersistenceError: If the snapshot cannot be read or written
        """
        if not batch:
            return 0
        key = self.snapshot_key(metric, user_id)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_fixed(self.retry_wait),
                retry=retry_if_exception_type(StorageError),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "Retrying save of %s (attempt %d/%d)",
                            key, attempt.retry_state.attempt_number, self.max_attempts,
                        )
                    existing = await self._read(key)
                    merged = merge_records(existing, batch)
                    body = json.dumps([record.to_snapshot() for record in merged], ensure_ascii=False)
                    await self.storage.save(key, body, content_type="application/json")
        except StorageError as e:
            raise PersistenceError(f"Error saving {MetricType(metric).value} data: {e}") from e

        logger.info(
            "Saved %d new %s records for user %s (snapshot size %d)",
            len(batch), MetricType(metric).value, user_id, len(merged),
        )
        return len(merged)
