"""
Storage Interface - Abstract base class for the object stores the pipeline reads and writes.
Lets the same ingestion code run against the local filesystem or S3.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional


class StorageInterface(ABC):
    """
    Contract shared by every object store backend.

    Keys are slash-separated relative paths such as "data/<user>/weight.json".
    Backends raise StorageError on any failure other than a missing key.
    """

    @abstractmethod
    async def save(
        self,
        path: str,
        content: bytes | str,
        content_type: Optional[str] = None
    ) -> None:
        """
        Write content to the given key, replacing any previous object.

        Args:
            path: Object key
            content: Bytes, or text which is encoded as UTF-8
            content_type: Optional MIME type recorded by backends that support it

        Raises:
            StorageError: If the object cannot be written
        """

    @abstractmethod
    async def load(self, path: str) -> Optional[bytes]:
        """
        Read a whole object.

        Args:
            path: Object key

        Returns:
            Optional[bytes]: Object content, or None if the key does not exist

        Raises:
            StorageError: If the object exists but cannot be read
        """

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check whether an object exists at the key."""

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """
        Delete the object at the key.

        Returns:
            bool: True if an object was removed, False if there was none
        """

    @abstractmethod
    def stream(self, path: str, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        """
        Read an object as a sequence of byte chunks without loading it whole.

        Args:
            path: Object key
            chunk_size: Preferred chunk size in bytes; backends may deliver other sizes

        Returns:
            AsyncIterator[bytes]: Chunks in object order

        Raises:
            StorageError: If the key is missing or the transport fails mid-read
        """
