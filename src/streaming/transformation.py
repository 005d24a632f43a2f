# ========================
# src/streaming/transformation.py
# ========================

"""
Data Transformation Module

Transform stages applied to each chunk as it moves through the pipeline.
"""

import logging
import zlib
from typing import Callable, Dict, Optional

from .errors import CompressionError

logger = logging.getLogger(__name__)

# wbits=31 selects the gzip container (16) on top of a 32K window (15)
GZIP_WBITS = 16 + zlib.MAX_WBITS


class TransformStage:
    """
    Base class for pipeline stages.

    A stage accepts one chunk and returns zero or one chunk (``b""`` means
    nothing to emit). Stages holding state across chunks emit whatever is
    left in ``finalize``.
    """

    name = "stage"

    def __init__(self):
        self.chunks_processed = 0
        self.bytes_in = 0
        self.bytes_out = 0

    def process_chunk(self, chunk: bytes) -> bytes:
        """
        Transform a single chunk.

        Args:
            chunk (bytes): Chunk received from upstream

        Returns:
            bytes: Transformed chunk, possibly empty
        """
        self.chunks_processed += 1
        self.bytes_in += len(chunk)
        output = self._transform(chunk)
        self.bytes_out += len(output)
        return output

    def _transform(self, chunk: bytes) -> bytes:
        raise NotImplementedError

    def finalize(self) -> bytes:
        """Flush remaining output once upstream is exhausted."""
        return b""

    def close(self) -> None:
        """Release stage resources. Safe to call more than once."""

    def get_statistics(self) -> Dict[str, int]:
        return {
            'chunks_processed': self.chunks_processed,
            'bytes_in': self.bytes_in,
            'bytes_out': self.bytes_out,
        }


class UppercaseTransform(TransformStage):
    """
    Maps ASCII letters to uppercase. Every other byte, including the bytes
    of multi-byte UTF-8 sequences, passes through untouched, so output length
    always equals input length.
    """

    name = "uppercase"

    def _transform(self, chunk: bytes) -> bytes:
        return bytes(chunk).upper()


class GzipCompressor(TransformStage):
    """
    Gzip compression stage with explicit owned state.

    The underlying compressor keeps state across chunks; ``finalize`` writes
    the gzip trailer and puts the stage into its finished state, after which
    any further call raises ``CompressionError``.
    """

    name = "gzip"

    def __init__(self, compression_level: int = zlib.Z_DEFAULT_COMPRESSION):
        """
        Initialize the compressor.

        Args:
            compression_level (int): zlib level, -1 (default) or 0-9
        """
        super().__init__()
        if not -1 <= compression_level <= 9:
            raise ValueError(f"compression_level must be between -1 and 9, got {compression_level}")
        self.compression_level = compression_level
        self._compressor = zlib.compressobj(compression_level, zlib.DEFLATED, GZIP_WBITS)
        self.finished = False
        logger.debug(f"GzipCompressor initialized with level={compression_level}")

    def _transform(self, chunk: bytes) -> bytes:
        if self.finished:
            raise CompressionError("Compressor already finalized; no more input accepted")
        try:
            return self._compressor.compress(chunk)
        except zlib.error as e:
            raise CompressionError(f"Compression failed: {e}", original_exception=e) from e

    def finalize(self) -> bytes:
        if self.finished:
            raise CompressionError("Compressor already finalized; trailer was emitted")
        try:
            trailer = self._compressor.flush(zlib.Z_FINISH)
        except zlib.error as e:
            raise CompressionError(f"Compression flush failed: {e}", original_exception=e) from e
        finally:
            self.finished = True
        self.bytes_out += len(trailer)
        logger.debug(f"Gzip stream finalized: {self.bytes_in} bytes in, {self.bytes_out} bytes out")
        return trailer

    def close(self) -> None:
        # dropping the compressor frees its zlib buffers
        self._compressor = None
        self.finished = True

    @property
    def compression_ratio(self) -> Optional[float]:
        if not self.bytes_in:
            return None
        return self.bytes_out / self.bytes_in


STAGE_REGISTRY: Dict[str, Callable[..., TransformStage]] = {
    UppercaseTransform.name: lambda config=None: UppercaseTransform(),
    GzipCompressor.name: lambda config=None: GzipCompressor(
        compression_level=config.GZIP_COMPRESSION_LEVEL if config else zlib.Z_DEFAULT_COMPRESSION
    ),
}


def build_stage(name: str, config=None) -> TransformStage:
    """
    Create a fresh stage instance by name.

    Args:
        name (str): Registered stage name ("uppercase" or "gzip")
        config (Config): Optional configuration supplying stage settings

    Returns:
        TransformStage: New stage instance

    Raises:
        ValueError: If the name is not registered
    """
    key = name.strip().lower()
    if key not in STAGE_REGISTRY:
        raise ValueError(f"Unknown stage '{name}'. Available stages: {sorted(STAGE_REGISTRY)}")
    return STAGE_REGISTRY[key](config)
