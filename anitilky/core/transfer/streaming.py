"""Chunk stream helpers for download to upload piping."""

import asyncio
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from anitilky.exceptions import TransferStalledError

__all__ = ["StreamProgress", "guard_stalls"]


@dataclass(slots=True)
class StreamProgress:
    """Byte counters of a single in-flight transfer."""

    bytes_transferred: int = 0
    chunks: int = 0
    stalled: bool = False
    started_at: float = field(default_factory=time.monotonic)

    def add(self, size: int) -> None:
        """Account for one forwarded chunk."""
        self.bytes_transferred += size
        self.chunks += 1

    @property
    def elapsed(self) -> float:
        """Seconds since the transfer started."""
        return time.monotonic() - self.started_at


async def guard_stalls(
    chunks: AsyncIterator[bytes],
    stall_timeout: float,
    progress: StreamProgress,
) -> AsyncIterator[bytes]:
    """Forward chunks, failing when the source stops delivering.

    Every single chunk read must complete within ``stall_timeout`` seconds. The
    underlying iterator is closed however the consumer stops.

    Args:
        chunks (AsyncIterator[bytes]): The source chunk stream.
        stall_timeout (float): Maximum seconds to wait for the next chunk.
        progress (StreamProgress): Counters updated as chunks pass through.

    Yields:
        bytes: The source chunks, unchanged.

    Raises:
        TransferStalledError: If a chunk read exceeds the timeout.
    """
    try:
        while True:
            try:
                async with asyncio.timeout(stall_timeout):
                    chunk = await anext(chunks)
            except StopAsyncIteration:
                return
            except TimeoutError as e:
                progress.stalled = True
                raise TransferStalledError(
                    f"No data received for {stall_timeout:g} seconds after "
                    f"{progress.bytes_transferred} bytes"
                ) from e
            progress.add(len(chunk))
            yield chunk
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
