"""
Stream Adapter

Feeds a converted audio file to a StreamingResponse chunk by chunk.

The file is read with aiofiles, one chunk per iteration, so memory use is
bounded by the chunk size and Starlette's send() provides backpressure.
Whatever ends the stream (end of file, read error, client disconnect),
aclose() runs the close hook exactly once.
"""

from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import aiofiles
import structlog

from services.temp_files import TempAudioFile

logger = structlog.get_logger()


class StreamOutcome(Enum):
    """Terminal state of a file stream"""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


CloseHook = Callable[["FileStream"], Awaitable[None]]


class FileStream:
    """
    Async iterable over the bytes of a temp audio file.

    Example:
        >>> stream = FileStream(temp_file, chunk_size=65536, on_close=cleanup)
        >>> await stream.open()
        >>> return StreamingResponse(stream, background=BackgroundTask(stream.aclose))
    """

    def __init__(
        self,
        temp_file: TempAudioFile,
        chunk_size: int = 64 * 1024,
        on_close: Optional[CloseHook] = None,
    ):
        self.temp_file = temp_file
        self.chunk_size = chunk_size
        self.on_close = on_close
        self.outcome = StreamOutcome.PENDING
        self.bytes_sent = 0
        self._file: Optional[Any] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Open the underlying file for reading."""
        if self._file is None:
            self._file = await aiofiles.open(self.temp_file.path, "rb")

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            await self.open()
            while True:
                chunk = await self._file.read(self.chunk_size)
                if not chunk:
                    break
                self.bytes_sent += len(chunk)
                yield chunk
            self.outcome = StreamOutcome.COMPLETED
        except Exception as e:
            self.outcome = StreamOutcome.FAILED
            logger.error(
                "file_stream_error",
                path=str(self.temp_file.path),
                bytes_sent=self.bytes_sent,
                error=str(e),
            )
            raise
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """
        Close the file and fire the close hook. Safe to call more than once.

        Called when iteration ends and again as the response background
        task; the second call is what catches client disconnects, where
        the iterator is abandoned mid-stream.
        """
        if self._closed:
            return
        self._closed = True

        if self.outcome is StreamOutcome.PENDING:
            self.outcome = StreamOutcome.CANCELLED

        if self._file is not None:
            try:
                await self._file.close()
            except OSError as e:
                logger.warning("file_stream_close_failed", path=str(self.temp_file.path), error=str(e))
            self._file = None

        logger.info(
            "file_stream_closed",
            outcome=self.outcome.value,
            bytes_sent=self.bytes_sent,
            size_bytes=self.temp_file.size_bytes,
        )

        if self.on_close is not None:
            try:
                await self.on_close(self)
            except Exception as e:
                logger.error("file_stream_close_hook_failed", error=str(e), exc_info=True)
