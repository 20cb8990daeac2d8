"""
Processing Models - Run status, invocation payloads and responses.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProcessingPhase(str, Enum):
    """Lifecycle of one ingestion run."""
    PENDING = "pending"
    PROCESSING_WEIGHT = "processing-weight"
    PROCESSING_BODY_FAT = "processing-bodyFat"
    PROCESSING_HRV = "processing-hrv"
    PROCESSING_VO2_MAX = "processing-vo2max"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def for_metric(cls, metric: str) -> "ProcessingPhase":
        return cls(f"processing-{metric}")


class ProcessingStatus(BaseModel):
    """In-memory status of a run; only the terminal summary leaves the process."""
    user_id: str
    status: ProcessingPhase = ProcessingPhase.PENDING
    records_processed: int = 0
    batches_saved: int = 0
    record_types: List[str] = Field(default_factory=list)
    metric_summaries: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    error: Optional[str] = None


class InvocationEvent(BaseModel):
    """Payload sent by the job host: which uploaded document to ingest for whom."""
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(default="", alias="jobId")
    user_id: str = Field(default="", alias="userId")
    file_key: str = Field(default="", alias="fileKey")

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "InvocationEvent":
        """Build an event, accepting the older xmlKey name for fileKey."""
        data = dict(payload)
        if not data.get("fileKey") and data.get("xmlKey"):
            data["fileKey"] = data["xmlKey"]
        return cls.model_validate({
            key: ("" if value is None else str(value))
            for key, value in data.items()
            if key in ("jobId", "userId", "fileKey", "job_id", "user_id", "file_key")
        })


class InvocationResponse(BaseModel):
    """HTTP-style result of a run."""
    status_code: int
    body: Dict[str, Any]

    @property
    def success(self) -> bool:
        return bool(self.body.get("success"))
