# ========================
# src/streaming/storage.py
# ========================

"""
Data Storage Module

Byte sinks for the pipeline. ``write`` returns the number of bytes accepted
and only returns once the chunk has been handed off, which is the
acknowledgement the orchestrator waits for before pulling the next chunk.
"""

import logging
import queue
import threading
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union

from .errors import PipelineError, WriteError

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


class ByteSink:
    """
    Base class for chunk consumers.
    """

    def __init__(self, name: str):
        self.name = name
        self.chunks_written = 0
        self.bytes_written = 0

    def open(self) -> None:
        """Prepare the destination. Called once when the run starts."""

    def write(self, chunk: bytes) -> int:
        """
        Accept a chunk and block until it has been handed off.

        Args:
            chunk (bytes): Chunk to persist or forward

        Returns:
            int: Number of bytes accepted (the acknowledgement)

        Raises:
            WriteError: On I/O failure
        """
        accepted = self._write(chunk)
        self.chunks_written += 1
        self.bytes_written += accepted
        return accepted

    def _write(self, chunk: bytes) -> int:
        raise NotImplementedError

    def close(self, error: Optional[BaseException] = None) -> None:
        """
        Release the destination.

        Args:
            error (Exception): The run's failure, if it failed
        """


class FileSink(ByteSink):
    """
    Writes chunks to a file, created or truncated when the run starts.
    """

    def __init__(self, file_path: Union[str, Path]):
        """
        Initialize the file sink.

        Args:
            file_path (str): Destination file path
        """
        super().__init__(str(file_path))
        self.file_path = Path(file_path)
        self._handle: Optional[BinaryIO] = None

    def open(self) -> None:
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.file_path, 'wb')
        except OSError as e:
            logger.error(f"Cannot open output file '{self.file_path}': {e}")
            raise WriteError(f"Cannot open output file: {e.strerror or e}", path=self.name,
                             original_exception=e) from e
        logger.info(f"Opened output file: {self.file_path}")

    def _write(self, chunk: bytes) -> int:
        if self._handle is None:
            raise WriteError("Output file is not open", path=self.name)
        try:
            return self._handle.write(chunk)
        except OSError as e:
            logger.error(f"Error writing to '{self.file_path}': {e}")
            raise WriteError(f"Error writing output file: {e.strerror or e}", path=self.name,
                             original_exception=e) from e

    def close(self, error: Optional[BaseException] = None) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            handle.close()
        except OSError as e:
            raise WriteError(f"Error closing output file: {e.strerror or e}", path=self.name,
                             original_exception=e) from e
        if error is not None:
            logger.warning(f"Output file left partially written after failure: {self.file_path}")
        else:
            logger.info(f"Saved {self.bytes_written} bytes to {self.file_path}")


class StreamSink(ByteSink):
    """
    Writes chunks to an already-open binary stream.
    """

    def __init__(self, stream: BinaryIO, name: str = "<stream>", close_stream: bool = False):
        super().__init__(name)
        self.stream = stream
        self.close_stream = close_stream

    def _write(self, chunk: bytes) -> int:
        try:
            written = self.stream.write(chunk)
            self.stream.flush()
        except (OSError, ValueError) as e:
            logger.error(f"Error writing to stream '{self.name}': {e}")
            raise WriteError(f"Error writing stream: {e}", path=self.name, original_exception=e) from e
        # raw streams may return None when they accept everything
        return len(chunk) if written is None else written

    def close(self, error: Optional[BaseException] = None) -> None:
        if self.close_stream and not self.stream.closed:
            self.stream.close()


class MemorySink(ByteSink):
    """
    Collects chunks in memory.
    """

    def __init__(self, name: str = "<memory>"):
        super().__init__(name)
        self.chunks: List[bytes] = []

    def _write(self, chunk: bytes) -> int:
        self.chunks.append(bytes(chunk))
        return len(chunk)

    def getvalue(self) -> bytes:
        return b"".join(self.chunks)


class ResponseSink(ByteSink):
    """
    Hands chunks to an HTTP response consumer running in another thread.

    The hand-off slot holds a single chunk, so ``write`` blocks until the
    consumer has taken the previous chunk. ``iter_chunks`` is the consumer
    side: it yields chunks until the pipeline closes the sink and re-raises
    the pipeline's failure, if any.

    The end of the run is recorded apart from the slot, so a consumer that
    falls behind still sees the end of the stream once it has drained the
    last chunk.
    """

    def __init__(self, timeout: float = 30.0, name: str = "<response>", poll_interval: float = 0.1):
        """
        Initialize the response sink.

        Args:
            timeout (float): Seconds to wait for the consumer to take a chunk
            name (str): Label used in logs and errors
            poll_interval (float): Seconds the consumer waits on an empty slot
                before checking whether the run has ended
        """
        super().__init__(name)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._slot: "queue.Queue" = queue.Queue(maxsize=1)
        self._consumer_gone = threading.Event()
        self._done = threading.Event()
        self._error: Optional[BaseException] = None

    def _write(self, chunk: bytes) -> int:
        if self._consumer_gone.is_set():
            raise WriteError("Response consumer disconnected", path=self.name)
        try:
            self._slot.put(chunk, timeout=self.timeout)
        except queue.Full as e:
            raise WriteError(f"Response consumer did not accept data within {self.timeout}s",
                             path=self.name, original_exception=e) from e
        return len(chunk)

    def close(self, error: Optional[BaseException] = None) -> None:
        if self._done.is_set():
            return
        self._error = error
        self._done.set()
        if self._consumer_gone.is_set():
            return
        try:
            # wakes a waiting consumer; a full slot is drained before _done is checked
            self._slot.put_nowait(_END_OF_STREAM)
        except queue.Full:
            logger.debug(f"Response consumer for '{self.name}' still has a chunk pending at close")

    def iter_chunks(self) -> Iterator[bytes]:
        """
        Yield chunks as the pipeline produces them.

        Raises:
            PipelineError: When the pipeline failed mid-stream
        """
        try:
            while True:
                try:
                    item = self._slot.get(timeout=self.poll_interval)
                except queue.Empty:
                    if self._done.is_set():
                        break
                    continue
                if item is _END_OF_STREAM:
                    break
                yield item
            self._raise_failure()
        finally:
            self._consumer_gone.set()
            self._drain()

    def _raise_failure(self) -> None:
        error = self._error
        if error is None:
            return
        if isinstance(error, PipelineError):
            raise error
        raise PipelineError(f"Pipeline failed: {error}", path=self.name,
                            original_exception=error) from error

    def _drain(self) -> None:
        # unblock a producer waiting on the slot after the consumer stopped
        try:
            while True:
                self._slot.get_nowait()
        except queue.Empty:
            pass
