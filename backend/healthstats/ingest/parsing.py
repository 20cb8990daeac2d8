"""
Parsing and validation helpers shared by every metric processor.
"""

import math
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from ..models import RawRecord

# Apple Health exports write "2024-01-01 08:30:00 -0500"
_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S",
)


def parse_fragment(fragment: str, record_tag: str = "Record") -> List[RawRecord]:
    """
    Parse a wrapped fragment into its Record elements.

    A fragment can hold several records when self-closing records precede a
    closing one. Malformed XML yields an empty list.
    """
    try:
        root = ET.fromstring(fragment)
    except ET.ParseError:
        return []

    records = []
    for element in root.iter(record_tag):
        metadata = {}
        for entry in element.findall("MetadataEntry"):
            key = entry.get("key")
            if key:
                metadata[key] = entry.get("value", "")
        records.append(RawRecord(
            type=element.get("type"),
            value=element.get("value"),
            unit=element.get("unit"),
            source_name=element.get("sourceName"),
            start_date=element.get("startDate"),
            creation_date=element.get("creationDate"),
            end_date=element.get("endDate"),
            metadata=metadata,
        ))
    return records


def parse_value(raw: Optional[str]) -> Optional[float]:
    """Parse a numeric attribute; None for missing, malformed or non-finite values."""
    if raw is None:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_date(raw: Optional[str]) -> Optional[datetime]:
    """
    Parse an export timestamp into an aware UTC datetime.

    Accepts the Apple export format and ISO-8601 (with "Z" or an offset).
    Naive timestamps are taken as UTC.
    """
    if not raw:
        return None
    text = raw.strip()

    parsed = None
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
            break
        except ValueError:
            continue

    if parsed is None:
        iso_text = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
        try:
            parsed = datetime.fromisoformat(iso_text)
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def canonical_date(moment: datetime) -> str:
    """Format an instant as the canonical key, e.g. 2024-01-01T00:00:00.000Z."""
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def round_value(value: float, precision: int, scale: float = 1.0) -> float:
    """Scale a raw value and round it to the metric's precision, halves away from zero."""
    scaled = Decimal(str(value * scale))
    return float(scaled.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP))
