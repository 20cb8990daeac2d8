"""
Job Tracker - Reports ingestion progress and outcome to an external job record.

The orchestrator only depends on the JobTracker protocol; StorageJobTracker keeps
one JSON document per job next to the snapshots it produces.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from ..storage import StorageInterface

logger = logging.getLogger(__name__)


@dataclass
class JobRecord:
    """Persisted state of one ingestion job."""
    job_id: str
    status: str  # pending, processing, completed, failed
    created_at_iso: str
    updated_at_iso: str
    progress: Optional[Dict[str, Any]] = None
    completed_at_iso: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


class JobTracker(Protocol):
    """Sink for job progress and terminal status."""

    async def update_job_progress(self, job_id: str, step_index: int, step_total: int, message: str) -> None:
        """Record that step step_index of step_total has started."""

    async def update_job_status(
        self,
        job_id: str,
        status: str,
        *,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """Record a terminal status ("completed" with a result, or "failed" with an error)."""

    async def cleanup(self) -> None:
        """Release anything held for the run."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StorageJobTracker:
    """JobTracker keeping one JSON document per job in object storage."""

    def __init__(self, storage: StorageInterface, *, prefix: str = "jobs"):
        self._storage = storage
        self._prefix = prefix.strip("/")
        self._cache: Dict[str, JobRecord] = {}

    def _key(self, job_id: str) -> str:
        return f"{self._prefix}/{job_id}.json"

    async def get(self, job_id: str) -> Optional[JobRecord]:
        if job_id in self._cache:
            return self._cache[job_id]
        raw = await self._storage.load(self._key(job_id))
        if raw is None:
            return None
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Job record %s is unreadable, starting a new one", job_id)
            return None
        return JobRecord(
            job_id=payload.get("job_id", job_id),
            status=payload.get("status", "unknown"),
            created_at_iso=payload.get("created_at_iso", ""),
            updated_at_iso=payload.get("updated_at_iso", ""),
            progress=payload.get("progress"),
            completed_at_iso=payload.get("completed_at_iso"),
            result=payload.get("result"),
            error=payload.get("error"),
            meta=payload.get("meta") or {},
        )

    async def create(self, job_id: str, *, meta: Optional[Dict[str, Any]] = None) -> JobRecord:
        now = _now_iso()
        record = JobRecord(
            job_id=job_id,
            status="pending",
            created_at_iso=now,
            updated_at_iso=now,
            meta=meta or {},
        )
        await self._save(record)
        return record

    async def _load_or_new(self, job_id: str) -> JobRecord:
        record = await self.get(job_id)
        if record is None:
            now = _now_iso()
            record = JobRecord(job_id=job_id, status="pending", created_at_iso=now, updated_at_iso=now)
        return record

    async def _save(self, record: JobRecord) -> None:
        self._cache[record.job_id] = record
        await self._storage.save(
            self._key(record.job_id),
            json.dumps(asdict(record), ensure_ascii=False),
            content_type="application/json",
        )

    async def update_job_progress(
        self, job_id: str, step_index: int, step_total: int, message: str
    ) -> None:
        record = await self._load_or_new(job_id)
        record.status = "processing"
        record.progress = {"current": step_index, "total": step_total, "message": message}
        record.updated_at_iso = _now_iso()
        await self._save(record)

    async def update_job_status(
        self,
        job_id: str,
        status: str,
        *,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        if status not in ("completed", "failed"):
            raise ValueError(f"Unsupported terminal status: {status}")
        record = await self._load_or_new(job_id)
        now = _now_iso()
        record.status = status
        record.updated_at_iso = now
        if status == "completed":
            record.completed_at_iso = now
            if result is not None:
                record.result = result
        else:
            record.error = error or "Unknown error"
        await self._save(record)

    async def cleanup(self) -> None:
        """Drop cached job records; storage holds no connections to release."""
        self._cache.clear()
