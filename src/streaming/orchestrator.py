# ========================
# src/streaming/orchestrator.py
# ========================

"""
Pipeline Orchestrator Module

Wires a source, zero or more transform stages and a sink together and drives
chunks through them one at a time.
"""

import logging
import threading
import zlib
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .errors import (
    PipelineCancelledError,
    PipelineError,
    PipelineStateError,
    ReadError,
    WriteError,
)
from .ingestion import DEFAULT_CHUNK_SIZE, ByteSource, FileSource
from .storage import ByteSink, FileSink
from .transformation import GzipCompressor, TransformStage, UppercaseTransform
from ..utils.performance_monitor import monitor_performance

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Optional[PipelineError], Dict[str, Any]], None]


class PipelineState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StreamPipeline:
    """
    Orchestrates a single byte transfer: Source -> [Stage]* -> Sink.

    One chunk is pulled from the source, pushed through every stage in order
    and handed to the sink; the next chunk is not pulled until the sink has
    acknowledged the current one. The first error stops the run. Every
    source, stage and sink is released on every exit path.

    A pipeline runs once. After ``run`` it is in a terminal state and cannot
    be restarted.
    """

    def __init__(self,
                 source: ByteSource,
                 stages: Optional[Sequence[TransformStage]] = None,
                 sink: Optional[ByteSink] = None,
                 on_complete: Optional[CompletionCallback] = None,
                 name: str = "StreamPipeline"):
        """
        Initialize the pipeline.

        Args:
            source (ByteSource): Where chunks come from
            stages (list[TransformStage]): Transforms applied in order
            sink (ByteSink): Where chunks end up
            on_complete (callable): Called once as ``on_complete(error, results)``
            name (str): Label used in logs and performance summaries
        """
        if sink is None:
            raise ValueError("A pipeline requires a sink")
        self.source = source
        self.stages: List[TransformStage] = list(stages or [])
        self.sink = sink
        self.on_complete = on_complete
        self.name = name

        self._state = PipelineState.IDLE
        self._state_lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._awaiting_ack = False
        self.error: Optional[PipelineError] = None
        self.results: Dict[str, Any] = {}

        logger.info(f"{self.name} initialized:")
        logger.info(f"  Source: {self.source.name}")
        logger.info(f"  Stages: {[stage.name for stage in self.stages] or 'none'}")
        logger.info(f"  Sink: {self.sink.name}")

    @property
    def state(self) -> PipelineState:
        return self._state

    def cancel(self) -> None:
        """
        Ask a running pipeline to stop. The run ends in ``FAILED`` with a
        ``PipelineCancelledError`` at the next pull or sink hand-off.
        """
        self._cancel_event.set()
        logger.info(f"{self.name} - cancellation requested")

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(self) -> Dict[str, Any]:
        """
        Execute the transfer from start to finish.

        Returns:
            dict: Summary of the run

        Raises:
            PipelineError: The first failure, when no ``on_complete`` callback
                was supplied
            PipelineStateError: If the pipeline was already run
        """
        with self._state_lock:
            if self._state is not PipelineState.IDLE:
                raise PipelineStateError(f"Pipeline cannot be run from state '{self._state.value}'")
            self._state = PipelineState.RUNNING

        logger.info(f"Starting {self.name}: {self.source.name} -> {self.sink.name}")
        error: Optional[PipelineError] = None

        with monitor_performance(self.name) as monitor:
            try:
                self.sink.open()
                self._pump(monitor)
            except PipelineError as e:
                error = e
            except Exception as e:
                logger.error(f"{self.name} - unexpected failure: {e}", exc_info=True)
                error = PipelineError(f"Unexpected pipeline failure: {e}", original_exception=e)
            finally:
                release_error = self._release(error)
                if error is None and release_error is not None:
                    error = release_error
            performance = monitor.get_current_stats()

        self.error = error
        self._state = PipelineState.FAILED if error else PipelineState.COMPLETED
        self.results = self._build_results(error, performance)

        if error:
            logger.error(f"{self.name} failed: {error}")
        else:
            logger.info(f"{self.name} finished successfully.")
            self._log_final_summary(self.results)

        if self.on_complete is not None:
            self.on_complete(error, self.results)
        elif error is not None:
            raise error
        return self.results

    def _pump(self, monitor) -> None:
        """Pull, transform and deliver chunks until the source is exhausted."""
        chunks = self.source.read_in_chunks()
        try:
            while True:
                self._check_cancelled()
                try:
                    chunk = next(chunks)
                except StopIteration:
                    break
                except PipelineError:
                    raise
                except Exception as e:
                    raise ReadError(f"Source failed: {e}", path=self.source.name,
                                    original_exception=e) from e
                monitor.update_progress(len(chunk))
                self._push(chunk, 0)

            logger.debug(f"{self.name} - source exhausted, finalizing {len(self.stages)} stage(s)")
            for index, stage in enumerate(self.stages):
                self._check_cancelled()
                tail = stage.finalize()
                if tail:
                    self._push(tail, index + 1)
        finally:
            chunks.close()

    def _push(self, chunk: bytes, start_index: int) -> None:
        """Run a chunk through the stages from ``start_index`` on, then deliver it."""
        for stage in self.stages[start_index:]:
            chunk = stage.process_chunk(chunk)
            if not chunk:
                return
        self._deliver(chunk)

    def _deliver(self, chunk: bytes) -> None:
        """Offer a chunk to the sink and wait for its acknowledgement."""
        self._check_cancelled()
        if self._awaiting_ack:
            raise PipelineStateError("Chunk offered before the sink acknowledged the previous one",
                                     path=self.sink.name)
        self._awaiting_ack = True
        accepted = self.sink.write(chunk)
        if accepted != len(chunk):
            raise WriteError(f"Short write: sink accepted {accepted} of {len(chunk)} bytes",
                             path=self.sink.name)
        self._awaiting_ack = False

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise PipelineCancelledError("Pipeline cancelled", path=self.source.name)

    def _release(self, error: Optional[PipelineError]) -> Optional[PipelineError]:
        """
        Close the source, every stage and the sink, whatever happened.

        Returns:
            PipelineError: The first release failure, if any
        """
        release_error: Optional[PipelineError] = None
        closers = [(self.source.name, self.source.close)]
        closers += [(stage.name, stage.close) for stage in self.stages]
        closers.append((self.sink.name, lambda: self.sink.close(error)))

        for resource_name, close in closers:
            try:
                close()
            except Exception as e:
                logger.error(f"{self.name} - failed to release '{resource_name}': {e}")
                if release_error is None:
                    if isinstance(e, PipelineError):
                        release_error = e
                    else:
                        release_error = PipelineError(f"Failed to release '{resource_name}': {e}",
                                                      original_exception=e)
        return release_error

    def _build_results(self, error: Optional[PipelineError], performance: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'pipeline_status': self._state.value,
            'source': self.source.name,
            'destination': self.sink.name,
            'stages': [stage.name for stage in self.stages],
            'chunks_read': self.source.chunks_read,
            'bytes_read': self.source.bytes_read,
            'chunks_written': self.sink.chunks_written,
            'bytes_written': self.sink.bytes_written,
            'stage_stats': {stage.name: stage.get_statistics() for stage in self.stages},
            'error': str(error) if error else None,
            'error_type': type(error).__name__ if error else None,
            'cancelled': isinstance(error, PipelineCancelledError),
            'performance': performance,
        }

    def _log_final_summary(self, results: dict) -> None:
        """Log final pipeline summary."""
        logger.info("="*60)
        logger.info("PIPELINE EXECUTION SUMMARY")
        logger.info("="*60)
        logger.info(f"Source: {results['source']}")
        logger.info(f"Stages: {', '.join(results['stages']) or 'none'}")
        logger.info(f"Chunks read: {results['chunks_read']:,} ({results['bytes_read']:,} bytes)")
        logger.info(f"Chunks written: {results['chunks_written']:,} ({results['bytes_written']:,} bytes)")
        logger.info(f"Destination: {results['destination']}")
        logger.info("="*60)

    def validate_input(self) -> bool:
        """
        Validate that a file source exists and is readable.

        Returns:
            bool: True if input is valid (always True for non-file sources)
        """
        if not isinstance(self.source, FileSource):
            return True

        input_path = self.source.file_path
        if not input_path.exists():
            logger.error(f"Input file does not exist: {input_path}")
            return False

        if not input_path.is_file():
            logger.error(f"Input path is not a file: {input_path}")
            return False

        try:
            with open(input_path, 'rb') as f:
                f.read(1)
        except OSError as e:
            logger.error(f"Cannot read input file: {e}")
            return False

        logger.info(f"Input validation passed: {input_path}")
        return True

    def estimate_chunks(self) -> dict:
        """
        Estimate how many chunks a file source will produce.

        Returns:
            dict: File size and chunk estimate, empty for non-file sources
        """
        if not isinstance(self.source, FileSource):
            return {}
        try:
            file_size = self.source.file_path.stat().st_size
        except OSError as e:
            logger.warning(f"Could not estimate chunk count: {e}")
            return {}
        chunk_size = self.source.chunk_size
        return {
            'file_size_bytes': file_size,
            'file_size_mb': file_size / (1024 * 1024),
            'chunk_size': chunk_size,
            'chunk_count_estimate': -(-file_size // chunk_size),
        }


def uppercase_file(input_file: Union[str, Path],
                   output_file: Union[str, Path],
                   chunk_size: int = DEFAULT_CHUNK_SIZE,
                   on_complete: Optional[CompletionCallback] = None) -> Dict[str, Any]:
    """
    Read a file, uppercase it chunk by chunk and write it to another file.

    Args:
        input_file (str): File to read
        output_file (str): File to create or truncate
        chunk_size (int): Bytes per chunk
        on_complete (callable): Optional completion callback

    Returns:
        dict: Summary of the run
    """
    pipeline = StreamPipeline(
        source=FileSource(input_file, chunk_size),
        stages=[UppercaseTransform()],
        sink=FileSink(output_file),
        on_complete=on_complete,
        name="UppercasePipeline",
    )
    return pipeline.run()


def compress_file(input_file: Union[str, Path],
                  output_file: Union[str, Path],
                  chunk_size: int = DEFAULT_CHUNK_SIZE,
                  compression_level: int = zlib.Z_DEFAULT_COMPRESSION,
                  on_complete: Optional[CompletionCallback] = None) -> Dict[str, Any]:
    """
    Gzip-compress a file into an archive.

    Args:
        input_file (str): File to read
        output_file (str): Archive to create or truncate
        chunk_size (int): Bytes per chunk read from the input
        compression_level (int): zlib level, -1 or 0-9
        on_complete (callable): Optional completion callback

    Returns:
        dict: Summary of the run
    """
    pipeline = StreamPipeline(
        source=FileSource(input_file, chunk_size),
        stages=[GzipCompressor(compression_level)],
        sink=FileSink(output_file),
        on_complete=on_complete,
        name="GzipPipeline",
    )
    return pipeline.run()


def read_file(file_path: Union[str, Path]) -> bytes:
    """
    Read a whole file into memory in one call.

    Raises:
        ReadError: If the file cannot be read
    """
    try:
        with open(file_path, 'rb') as f:
            return f.read()
    except OSError as e:
        logger.error(f"Cannot read file '{file_path}': {e}")
        raise ReadError(f"Cannot read file: {e.strerror or e}", path=str(file_path),
                        original_exception=e) from e
