"""
Shared test fixtures and configuration.
"""

import os
from typing import AsyncIterator, Dict, Iterable, List, Optional

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("LOCAL_STORAGE_PATH", "/tmp/healthstats_test_data")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("STORAGE_TYPE", "local")

from healthstats.exceptions import StorageError  # noqa: E402
from healthstats.storage.interface import StorageInterface  # noqa: E402


class MemoryStorage(StorageInterface):
    """In-memory object store with optional failure injection."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.saves: List[str] = []
        self.fail_saves = 0
        self.fail_loads = 0

    async def save(self, path, content, content_type=None):
        if self.fail_saves:
            self.fail_saves -= 1
            raise StorageError(f"injected save failure for {path}", key=path)
        self.objects[path] = content.encode("utf-8") if isinstance(content, str) else content
        self.saves.append(path)

    async def load(self, path):
        if self.fail_loads:
            self.fail_loads -= 1
            raise StorageError(f"injected load failure for {path}", key=path)
        return self.objects.get(path)

    async def exists(self, path):
        return path in self.objects

    async def delete(self, path):
        return self.objects.pop(path, None) is not None

    async def stream(self, path, chunk_size=64 * 1024):
        if path not in self.objects:
            raise StorageError(f"Object not found: {path}", key=path)
        data = self.objects[path]
        for offset in range(0, len(data), chunk_size):
            yield data[offset:offset + chunk_size]


def record_xml(
    type_: str,
    value: str,
    start: Optional[str] = "2024-01-01 08:00:00 +0000",
    source: Optional[str] = "Health",
    unit: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
    self_closing: bool = False,
) -> str:
    """Build one Record element the way Apple Health exports it."""
    attrs = [f'type="{type_}"']
    if source is not None:
        attrs.append(f'sourceName="{source}"')
    if unit is not None:
        attrs.append(f'unit="{unit}"')
    if start is not None:
        attrs.append(f'startDate="{start}"')
    attrs.append(f'value="{value}"')
    head = "<Record " + " ".join(attrs)
    if self_closing:
        return head + "/>"
    entries = "".join(
        f'<MetadataEntry key="{key}" value="{val}"/>' for key, val in (metadata or {}).items()
    )
    return f"{head}>{entries}</Record>"


def export_document(records: Iterable[str]) -> str:
    """Wrap record elements in an export document with a header and trailing noise."""
    body = "\n ".join(records)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<!DOCTYPE HealthData [\n<!ATTLIST Record type CDATA #REQUIRED>\n]>\n'
        '<HealthData locale="en_GB">\n'
        ' <ExportDate value="2024-03-01 10:00:00 +0000"/>\n'
        f" {body}\n"
        ' <ActivitySummary dateComponents="2024-01-01" activeEnergyBurned="512"/>\n'
        "</HealthData>\n"
    )


async def iter_chunks(data, size: int) -> AsyncIterator:
    """Yield data in fixed-size pieces as an async stream."""
    for offset in range(0, len(data), size):
        yield data[offset:offset + size]


@pytest.fixture
def memory_storage():
    return MemoryStorage()
