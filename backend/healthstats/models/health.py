"""
Health Data Models - Stored measurement records and the metric types they belong to.
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class MetricType(str, Enum):
    """Metric collections kept per user. The value is the snapshot name."""
    WEIGHT = "weight"
    BODY_FAT = "bodyFat"
    HRV = "hrv"
    VO2_MAX = "vo2max"

    @property
    def storage_name(self) -> str:
        return self.value.lower()


class HealthRecord(BaseModel):
    """One measurement in a (user, metric) snapshot, keyed by its canonical date."""
    model_config = ConfigDict(extra="ignore")

    date: str  # ISO-8601 UTC, e.g. 2024-01-01T00:00:00.000Z
    value: float
    source: Optional[str] = None
    unit: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    context: Optional[str] = None  # normalized HRV motion context

    def to_snapshot(self) -> dict:
        """Serialize for a snapshot document, leaving out empty optional fields."""
        return self.model_dump(exclude_none=True)


class RawRecord(BaseModel):
    """Attributes of a single Record element before validation."""
    type: Optional[str] = None
    value: Optional[str] = None
    unit: Optional[str] = None
    source_name: Optional[str] = None
    start_date: Optional[str] = None
    creation_date: Optional[str] = None
    end_date: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def date_text(self) -> Optional[str]:
        """Preferred timestamp: start, then creation, then end."""
        return self.start_date or self.creation_date or self.end_date
