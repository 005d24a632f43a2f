# ========================
# src/streaming/errors.py
# ========================

"""
Pipeline Errors

Exception taxonomy for the chunked transform pipeline.
"""

from typing import Optional


class PipelineError(Exception):
    """
    Base class for every failure surfaced by a pipeline run.
    """

    def __init__(self,
                 message: str,
                 path: Optional[str] = None,
                 original_exception: Optional[BaseException] = None):
        """
        Initialize the error.

        Args:
            message (str): Human readable description
            path (str): File or stream the failure relates to, if any
            original_exception (Exception): Lower-level exception that caused it
        """
        super().__init__(message)
        self.message = message
        self.path = path
        self.original_exception = original_exception

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} [{self.path}]"
        return self.message


class ReadError(PipelineError):
    """Raised when a source cannot produce its next chunk."""


class WriteError(PipelineError):
    """Raised when a sink cannot accept or persist a chunk."""


class CompressionError(PipelineError):
    """Raised on codec failures or when a finished compressor is reused."""


class PipelineCancelledError(PipelineError):
    """Raised when a run is stopped by an external cancel signal."""


class PipelineStateError(PipelineError):
    """Raised when a pipeline is driven outside its state machine."""
