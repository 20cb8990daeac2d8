"""Core module - logging setup and runtime resource sampling."""

from .logging_config import setup_logging, IngestLoggerAdapter, truncate_large_data
from .memory import MemoryMonitor, MemorySample

__all__ = ['setup_logging', 'IngestLoggerAdapter', 'truncate_large_data', 'MemoryMonitor', 'MemorySample']
