# ========================
# src/streaming/__init__.py
# ========================

"""
Stream Pipeline Package

This package contains all core components of the chunked transform pipeline:
- ingestion: Bounded-chunk byte sources (files, streams, memory)
- transformation: Uppercase and gzip transform stages
- storage: Acknowledging byte sinks (files, streams, HTTP responses)
- orchestrator: Backpressure-aware pipeline coordination
- errors: Pipeline exception taxonomy
"""

from .errors import (
    PipelineError,
    ReadError,
    WriteError,
    CompressionError,
    PipelineCancelledError,
    PipelineStateError
)
from .ingestion import ByteSource, FileSource, StreamSource, IterableSource, DEFAULT_CHUNK_SIZE
from .transformation import TransformStage, UppercaseTransform, GzipCompressor, build_stage
from .storage import ByteSink, FileSink, StreamSink, MemorySink, ResponseSink
from .orchestrator import StreamPipeline, PipelineState, uppercase_file, compress_file, read_file

__all__ = [
    'PipelineError',
    'ReadError',
    'WriteError',
    'CompressionError',
    'PipelineCancelledError',
    'PipelineStateError',
    'ByteSource',
    'FileSource',
    'StreamSource',
    'IterableSource',
    'DEFAULT_CHUNK_SIZE',
    'TransformStage',
    'UppercaseTransform',
    'GzipCompressor',
    'build_stage',
    'ByteSink',
    'FileSink',
    'StreamSink',
    'MemorySink',
    'ResponseSink',
    'StreamPipeline',
    'PipelineState',
    'uppercase_file',
    'compress_file',
    'read_file'
]

__version__ = "1.0.0"
