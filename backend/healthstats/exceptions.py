class HealthStatsError(Exception):
    """Base exception for the ingestion service."""


class ConfigurationError(HealthStatsError):
    """Raised when required identifiers or settings are missing or invalid."""


class StorageError(HealthStatsError):
    """Raised by a storage backend when an object cannot be read or written."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class IngestError(HealthStatsError):
    """Raised when the ingestion pipeline fails."""


class StreamError(IngestError):
    """Raised when the source document stream cannot be read."""


class PersistenceError(IngestError):
    """Raised when a snapshot cannot be fetched or written."""


class BufferOverflowError(IngestError):
    """Raised when the extractor buffer overflows and overflow is configured as fatal."""


def error_message(error: BaseException) -> str:
    """Return a short human-readable message for an error, never a traceback."""
    message = str(error).strip()
    if not message:
        return type(error).__name__
    return message.splitlines()[0]
