# ========================
# src/streaming/ingestion.py
# ========================

"""
Data Ingestion Module

Byte sources for the pipeline. Each source yields bounded chunks lazily so a
file of any size is read without loading it into memory.
"""

import logging
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Optional, Union

from .errors import ReadError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


def _validate_chunk_size(chunk_size: int) -> int:
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ValueError(f"chunk_size must be a positive integer, got {chunk_size!r}")
    return chunk_size


class ByteSource:
    """
    Base class for chunk producers.

    A source is finite and non-restartable: ``read_in_chunks`` may be called
    once, and the generator it returns ends when the origin is exhausted.
    """

    def __init__(self, name: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.name = name
        self.chunk_size = _validate_chunk_size(chunk_size)
        self.chunks_read = 0
        self.bytes_read = 0
        self._started = False

    def read_in_chunks(self) -> Iterator[bytes]:
        """
        A generator that yields chunks of at most ``chunk_size`` bytes.

        Yields:
            bytes: The next chunk read from the origin.

        Raises:
            ReadError: On I/O failure or when the source was already consumed.
        """
        if self._started:
            raise ReadError("Source has already been consumed", path=self.name)
        self._started = True
        return self._generate()

    def _generate(self) -> Iterator[bytes]:
        produced = self._produce()
        try:
            for chunk in produced:
                self.chunks_read += 1
                self.bytes_read += len(chunk)
                yield chunk
        finally:
            produced.close()
        logger.info(f"Source '{self.name}' exhausted: {self.chunks_read} chunks, {self.bytes_read} bytes")

    def _produce(self) -> Iterator[bytes]:
        raise NotImplementedError

    def close(self) -> None:
        """Release any handle held by the source."""


class FileSource(ByteSource):
    """
    Reads a file from disk in fixed-size binary chunks.
    """

    def __init__(self, file_path: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize the file source.

        Args:
            file_path (str): Path of the file to read
            chunk_size (int): Maximum number of bytes per chunk
        """
        super().__init__(str(file_path), chunk_size)
        self.file_path = Path(file_path)
        self._handle: Optional[BinaryIO] = None
        logger.info(f"Initialized FileSource for file: {self.file_path}")

    def _produce(self) -> Iterator[bytes]:
        try:
            self._handle = open(self.file_path, 'rb')
        except FileNotFoundError as e:
            logger.error(f"File '{self.file_path}' was not found")
            raise ReadError("Input file not found", path=self.name, original_exception=e) from e
        except OSError as e:
            logger.error(f"Cannot open input file '{self.file_path}': {e}")
            raise ReadError(f"Cannot open input file: {e.strerror or e}", path=self.name,
                            original_exception=e) from e

        try:
            while True:
                try:
                    chunk = self._handle.read(self.chunk_size)
                except OSError as e:
                    logger.error(f"Error reading '{self.file_path}': {e}")
                    raise ReadError(f"Error reading input file: {e.strerror or e}", path=self.name,
                                    original_exception=e) from e
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            logger.debug(f"Closed input file {self.file_path}")


class StreamSource(ByteSource):
    """
    Reads an already-open binary stream, such as an uploaded request body.
    """

    def __init__(self,
                 stream: BinaryIO,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 name: str = "<stream>",
                 close_stream: bool = False):
        """
        Initialize the stream source.

        Args:
            stream: Readable binary file object
            chunk_size (int): Maximum number of bytes per chunk
            name (str): Label used in logs and errors
            close_stream (bool): Whether ``close`` should close the stream too
        """
        super().__init__(name, chunk_size)
        self.stream = stream
        self.close_stream = close_stream

    def _produce(self) -> Iterator[bytes]:
        while True:
            try:
                chunk = self.stream.read(self.chunk_size)
            except (OSError, ValueError) as e:
                logger.error(f"Error reading stream '{self.name}': {e}")
                raise ReadError(f"Error reading stream: {e}", path=self.name, original_exception=e) from e
            if not chunk:
                break
            if isinstance(chunk, str):
                raise ReadError("Stream must be opened in binary mode", path=self.name)
            yield chunk

    def close(self) -> None:
        if self.close_stream and not self.stream.closed:
            self.stream.close()


class IterableSource(ByteSource):
    """
    Re-chunks an in-memory iterable of ``bytes`` (or ``str``) pieces so that
    no emitted chunk exceeds the high-water mark.
    """

    def __init__(self,
                 chunks: Iterable[Union[bytes, str]],
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 name: str = "<memory>",
                 encoding: str = 'utf-8'):
        super().__init__(name, chunk_size)
        self._chunks = chunks
        self.encoding = encoding

    def _produce(self) -> Iterator[bytes]:
        for piece in self._chunks:
            if isinstance(piece, str):
                piece = piece.encode(self.encoding)
            data = bytes(piece)
            for start in range(0, len(data), self.chunk_size):
                yield data[start:start + self.chunk_size]
