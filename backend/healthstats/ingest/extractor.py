"""
Record boundary extraction over a streamed export document.

The export is one huge XML document. Instead of parsing it as a whole, the
extractor keeps a bounded text buffer, cuts out each complete
``<Record ...>...</Record>`` span as soon as both markers are present, wraps it
in a tiny standalone document and hands it to a callback. Only the unconsumed
tail of the buffer survives between chunks.
"""

import codecs
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable, Awaitable, Callable, Optional, Tuple, Union

from ..core import MemoryMonitor, truncate_large_data
from ..exceptions import BufferOverflowError, PersistenceError, StreamError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 32 * 1024
DEFAULT_MAX_BUFFER_SIZE = 1024 * 1024

# Characters allowed right after the start marker, so "<Record" never matches "<RecordSet"
_TAG_BOUNDARY = frozenset(" \t\r\n>/")


class ScanControl(Enum):
    """What a fragment callback asks the extractor to do next."""
    CONTINUE = "continue"
    STOP = "stop"


FragmentCallback = Callable[[str], Awaitable[Optional[ScanControl]]]


@dataclass
class ExtractionStats:
    """Counters for one pass over a document."""
    bytes_read: int = 0
    chunks_read: int = 0
    fragments_emitted: int = 0
    callback_errors: int = 0
    discarded_chars: int = 0
    overflow_events: int = 0
    stopped_early: bool = False


class RecordBoundaryExtractor:
    """
    Splits a chunked character stream into self-contained record fragments.

    Scans are strictly sequential: the next chunk is only pulled from the
    stream after the previous scan, including every awaited callback, has
    finished. That is what gives the callback back-pressure over the stream.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
        start_marker: str = "<Record",
        end_marker: str = "</Record>",
        root_element: str = "HealthData",
        fail_on_overflow: bool = False,
        memory_monitor: Optional[MemoryMonitor] = None,
        memory_sample_every: int = 1000,
    ):
        if max_buffer_size < chunk_size:
            raise ValueError("max_buffer_size must be at least chunk_size")
        self.chunk_size = chunk_size
        self.max_buffer_size = max_buffer_size
        self.start_marker = start_marker
        self.end_marker = end_marker
        self.root_element = root_element
        self.fail_on_overflow = fail_on_overflow
        self.memory_monitor = memory_monitor
        self.memory_sample_every = memory_sample_every

    def wrap(self, fragment: str) -> str:
        """Wrap a raw record span as a standalone XML document."""
        return (
            f'<?xml version="1.0" encoding="UTF-8"?>'
            f'<{self.root_element}>{fragment}</{self.root_element}>'
        )

    def _find_start(self, buffer: str, pos: int) -> int:
        marker_len = len(self.start_marker)
        while True:
            index = buffer.find(self.start_marker, pos)
            if index == -1:
                return -1
            follower = index + marker_len
            # A marker at the very end of the buffer may still turn out to be a match
            if follower >= len(buffer) or buffer[follower] in _TAG_BOUNDARY:
                return index
            pos = index + 1

    async def _scan(
        self,
        buffer: str,
        callback: FragmentCallback,
        stats: ExtractionStats,
    ) -> Tuple[str, bool]:
        """
        Emit every complete fragment in the buffer.

        Returns:
            Tuple of the residual buffer and whether the callback asked to stop
        """
        pos = 0
        while True:
            start = self._find_start(buffer, pos)
            if start == -1:
                # Keep only what could be the beginning of a split start marker
                keep_from = max(pos, len(buffer) - (len(self.start_marker) - 1))
                return buffer[keep_from:], False

            end = buffer.find(self.end_marker, start + len(self.start_marker))
            if end == -1:
                residual = buffer[start:]
                if len(residual) > self.max_buffer_size:
                    stats.overflow_events += 1
                    stats.discarded_chars += len(residual)
                    logger.warning(
                        "Buffer exceeded %d chars with no complete record, discarding %d chars",
                        self.max_buffer_size, len(residual),
                    )
                    if self.fail_on_overflow:
                        raise BufferOverflowError(
                            f"No record end found within {self.max_buffer_size} chars"
                        )
                    return "", False
                return residual, False

            fragment_end = end + len(self.end_marker)
            fragment = buffer[start:fragment_end]
            pos = fragment_end
            stats.fragments_emitted += 1

            result = None
            try:
                result = await callback(self.wrap(fragment))
            except PersistenceError:
                raise
            except Exception as e:
                stats.callback_errors += 1
                logger.error(
                    "Error processing record fragment: %s | %s",
                    e, truncate_large_data(fragment, 200),
                )

            if self.memory_monitor and stats.fragments_emitted % self.memory_sample_every == 0:
                self.memory_monitor.sample(f"{stats.fragments_emitted} fragments")

            if result is ScanControl.STOP:
                return buffer[pos:], True

    async def extract(
        self,
        chunks: AsyncIterable[Union[bytes, str]],
        callback: FragmentCallback,
    ) -> ExtractionStats:
        """
        Run the callback once per complete fragment, in stream order.

        Args:
            chunks: Async iterable of byte (UTF-8) or text chunks
            callback: Awaited per fragment; returning ScanControl.STOP ends the pass

        Returns:
            ExtractionStats for the pass

        Raises:
            StreamError: If reading the stream fails
            PersistenceError: If the callback fails to persist a batch
            BufferOverflowError: On overflow when fail_on_overflow is set
        """
        stats = ExtractionStats()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        iterator = chunks.__aiter__()

        try:
            while True:
                try:
                    chunk = await iterator.__anext__()
                except StopAsyncIteration:
                    break
                except Exception as e:
                    raise StreamError(f"Error reading source stream: {e}") from e

                stats.chunks_read += 1
                if isinstance(chunk, str):
                    stats.bytes_read += len(chunk.encode("utf-8"))
                    buffer += chunk
                else:
                    stats.bytes_read += len(chunk)
                    buffer += decoder.decode(chunk)

                if len(buffer) > self.chunk_size:
                    buffer, stop = await self._scan(buffer, callback, stats)
                    if stop:
                        stats.stopped_early = True
                        return stats

            # Final drain over whatever is left once the stream has ended
            buffer += decoder.decode(b"", final=True)
            buffer, stop = await self._scan(buffer, callback, stats)
            stats.stopped_early = stop
            return stats
        finally:
            aclose = getattr(iterator, "aclose", None)
            if stats.stopped_early and aclose is not None:
                await aclose()
            logger.info(
                "Extraction finished: %d fragments, %.2f MB read, %d callback errors, %d chars discarded%s",
                stats.fragments_emitted,
                stats.bytes_read / (1024 * 1024),
                stats.callback_errors,
                stats.discarded_chars,
                " (stopped early)" if stats.stopped_early else "",
            )
