# ========================
# src/utils/performance_monitor.py
# ========================

"""
Performance Monitoring Utilities

Provides throughput and memory monitoring for pipeline runs and the
process/system snapshot served by the status endpoint.
"""

import time
import os
import logging
from contextlib import contextmanager
from typing import Dict, Any, Optional

import psutil

logger = logging.getLogger(__name__)

class PerformanceMonitor:
    """
    Performance monitoring utility for pipeline runs.
    Tracks memory usage, processing time, and byte throughput.
    """

    def __init__(self, name: str = "Pipeline", log_interval: int = 10000):
        """
        Initialize performance monitor.

        Args:
            name (str): Name for this monitoring session
            log_interval (int): Log progress every N chunks
        """
        self.name = name
        self.log_interval = log_interval
        self.start_time = None
        self.end_time = None
        self.peak_memory_mb = 0
        self.bytes_processed = 0
        self.chunks_processed = 0
        self.checkpoints = []

        logger.debug(f"PerformanceMonitor initialized: {name}")

    def start_monitoring(self) -> None:
        """Start performance monitoring."""
        self.start_time = time.time()
        self.peak_memory_mb = self._get_memory_usage_mb()

        logger.debug(f"{self.name} - Performance monitoring started, memory usage: {self.peak_memory_mb:.2f} MB")

    def update_progress(self, bytes_in_chunk: int) -> None:
        """
        Update progress tracking.

        Args:
            bytes_in_chunk (int): Number of bytes pulled from the source
        """
        self.bytes_processed += bytes_in_chunk
        self.chunks_processed += 1

        # Sampling RSS on every chunk is too costly for tiny chunk sizes
        if self.chunks_processed % self.log_interval == 0:
            current_memory = self._get_memory_usage_mb()
            self.peak_memory_mb = max(self.peak_memory_mb, current_memory)
            self._log_progress(current_memory)

    def add_checkpoint(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Add a performance checkpoint.

        Args:
            name (str): Checkpoint name
            metadata (dict): Optional metadata to store
        """
        checkpoint = {
            'name': name,
            'timestamp': time.time(),
            'memory_mb': self._get_memory_usage_mb(),
            'bytes_processed': self.bytes_processed,
            'chunks_processed': self.chunks_processed,
            'metadata': metadata or {}
        }
        self.checkpoints.append(checkpoint)
        logger.debug(f"Checkpoint '{name}': {checkpoint}")

    def _log_progress(self, current_memory: float) -> None:
        """Log current progress."""
        if self.start_time:
            elapsed = time.time() - self.start_time
            throughput = self.bytes_processed / elapsed if elapsed > 0 else 0

            logger.info(
                f"{self.name} - Progress: {self.chunks_processed:,} chunks, "
                f"{self.bytes_processed:,} bytes, "
                f"{throughput / (1024 * 1024):.2f} MB/sec, "
                f"Memory: {current_memory:.2f} MB"
            )

    def stop_monitoring(self, verbose: bool = False) -> Dict[str, Any]:
        """
        Stop monitoring and return performance summary.

        Args:
            verbose (bool): Print a formatted summary to stdout

        Returns:
            dict: Performance statistics
        """
        self.end_time = time.time()
        total_time = self.end_time - self.start_time if self.start_time else 0
        throughput = self.bytes_processed / total_time if total_time > 0 else 0
        self.peak_memory_mb = max(self.peak_memory_mb, self._get_memory_usage_mb())

        summary = {
            'name': self.name,
            'total_processing_time_seconds': total_time,
            'bytes_processed': self.bytes_processed,
            'chunks_processed': self.chunks_processed,
            'average_throughput_bytes_per_second': throughput,
            'peak_memory_usage_mb': self.peak_memory_mb,
            'checkpoints': self.checkpoints
        }

        if verbose:
            self._print_summary(summary)
        return summary

    def _print_summary(self, summary: Dict[str, Any]) -> None:
        """Print formatted performance summary."""
        print("\n" + "="*60)
        print(f"PERFORMANCE SUMMARY - {summary['name']}")
        print("="*60)
        print(f"Total processing time: {summary['total_processing_time_seconds']:.2f} seconds")
        print(f"Bytes processed: {summary['bytes_processed']:,}")
        print(f"Chunks processed: {summary['chunks_processed']:,}")
        print(f"Average throughput: {summary['average_throughput_bytes_per_second'] / (1024 * 1024):.2f} MB/second")
        print(f"Peak memory usage: {summary['peak_memory_usage_mb']:.2f} MB")

        if summary['checkpoints']:
            print(f"Checkpoints recorded: {len(summary['checkpoints'])}")

        print("="*60)

    def _get_memory_usage_mb(self) -> float:
        """Get current memory usage in MB."""
        try:
            process = psutil.Process(os.getpid())
            return process.memory_info().rss / (1024 * 1024)
        except psutil.Error as e:
            logger.debug(f"Could not get memory usage: {e}")
            return 0.0

    def get_current_stats(self) -> Dict[str, Any]:
        """Get current performance statistics."""
        current_time = time.time()
        elapsed = current_time - self.start_time if self.start_time else 0

        return {
            'elapsed_seconds': elapsed,
            'bytes_processed': self.bytes_processed,
            'chunks_processed': self.chunks_processed,
            'peak_memory_mb': self.peak_memory_mb,
            'current_throughput_bytes_per_second': self.bytes_processed / elapsed if elapsed > 0 else 0
        }

@contextmanager
def monitor_performance(name: str = "Pipeline", verbose: bool = False):
    """
    Context manager for easy performance monitoring.

    Args:
        name (str): Name for this monitoring session
        verbose (bool): Print a summary when the block exits

    Yields:
        PerformanceMonitor: Monitor instance
    """
    monitor = PerformanceMonitor(name)
    monitor.start_monitoring()
    try:
        yield monitor
    finally:
        monitor.stop_monitoring(verbose=verbose)

class SystemResourceMonitor:
    """Monitor process and system-wide resource usage."""

    @staticmethod
    def get_process_stats() -> Dict[str, Any]:
        """Get resource usage of the current process."""
        stats = {}
        try:
            process = psutil.Process(os.getpid())
            with process.oneshot():
                stats['pid'] = process.pid
                stats['memory_rss_mb'] = process.memory_info().rss / (1024 * 1024)
                stats['cpu_percent'] = process.cpu_percent(interval=None)
                stats['num_threads'] = process.num_threads()
                stats['uptime_seconds'] = time.time() - process.create_time()
        except psutil.Error as e:
            logger.warning(f"Could not get process stats: {e}")
        return stats

    @staticmethod
    def get_system_stats() -> Dict[str, Any]:
        """Get current system resource statistics."""
        stats = {}

        try:
            # CPU usage; interval=None compares against the previous call instead of blocking
            stats['cpu_percent'] = psutil.cpu_percent(interval=None)
            stats['cpu_count'] = psutil.cpu_count()

            # Memory usage
            memory = psutil.virtual_memory()
            stats['memory_total_gb'] = memory.total / (1024**3)
            stats['memory_available_gb'] = memory.available / (1024**3)
            stats['memory_used_percent'] = memory.percent

            # Disk usage
            disk = psutil.disk_usage('/')
            stats['disk_total_gb'] = disk.total / (1024**3)
            stats['disk_free_gb'] = disk.free / (1024**3)
            stats['disk_used_percent'] = (disk.used / disk.total) * 100

        except (psutil.Error, OSError) as e:
            logger.warning(f"Could not get system stats: {e}")

        return stats
