# ========================
# tests/test_pipeline.py
# ========================

import gzip
import io
import threading
import time
import unittest
import tempfile
import sys
import os

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.streaming.errors import (
    PipelineCancelledError,
    PipelineError,
    PipelineStateError,
    ReadError,
    WriteError,
)
from src.streaming.ingestion import ByteSource, FileSource, IterableSource, StreamSource
from src.streaming.orchestrator import (
    PipelineState,
    StreamPipeline,
    compress_file,
    read_file,
    uppercase_file,
)
from src.streaming.storage import ByteSink, FileSink, MemorySink
from src.streaming.transformation import GzipCompressor, TransformStage, UppercaseTransform
from src.utils.data_generator import DataGenerator

class RecordingSource(ByteSource):
    """Source that records each pull in a shared event log."""

    def __init__(self, chunks, events, fail_at=None):
        super().__init__("recording", chunk_size=1024)
        self._chunks = chunks
        self.events = events
        self.fail_at = fail_at
        self.closed = False

    def _produce(self):
        for index, chunk in enumerate(self._chunks):
            if index == self.fail_at:
                raise ReadError("simulated read failure", path=self.name)
            self.events.append(('pull', index))
            yield chunk

    def close(self):
        self.closed = True

class SlowRecordingSink(ByteSink):
    """Sink that delays each acknowledgement and records call ordering."""

    def __init__(self, events, delay=0.005):
        super().__init__("slow")
        self.events = events
        self.delay = delay
        self.received = []
        self.opened = False
        self.closed_with = "not closed"

    def open(self):
        self.opened = True

    def _write(self, chunk):
        index = len(self.received)
        self.events.append(('write', index))
        time.sleep(self.delay)
        self.received.append(chunk)
        self.events.append(('ack', index))
        return len(chunk)

    def close(self, error=None):
        self.closed_with = error

class ShortWriteSink(ByteSink):
    def __init__(self):
        super().__init__("short")

    def _write(self, chunk):
        return len(chunk) - 1

class ReentrantSink(ByteSink):
    """Sink that offers itself a second chunk before acknowledging the first."""

    def __init__(self):
        super().__init__("reentrant")
        self.pipeline = None

    def _write(self, chunk):
        self.pipeline._deliver(b"second")
        return len(chunk)

class TrackingStage(TransformStage):
    name = "tracking"

    def __init__(self, fail_on=None):
        super().__init__()
        self.fail_on = fail_on
        self.closed = False

    def _transform(self, chunk):
        if chunk == self.fail_on:
            raise RuntimeError("stage blew up")
        return chunk

    def close(self):
        self.closed = True

class TestStreamPipeline(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)

    def _path(self, name):
        return os.path.join(self.temp_dir.name, name)

    def test_uppercase_memory_pipeline(self):
        """
        Tests the basic scenario end to end: "abc123" becomes "ABC123".
        """
        sink = MemorySink()
        pipeline = StreamPipeline(IterableSource([b"abc123"], chunk_size=4), [UppercaseTransform()], sink)

        results = pipeline.run()

        self.assertEqual(sink.getvalue(), b"ABC123")
        self.assertEqual(sink.chunks, [b"ABC1", b"23"])
        self.assertEqual(pipeline.state, PipelineState.COMPLETED)
        self.assertEqual(results['pipeline_status'], 'completed')
        self.assertEqual(results['chunks_read'], 2)
        self.assertEqual(results['bytes_written'], 6)
        self.assertIsNone(results['error'])

    def test_empty_input_completes_with_zero_chunks(self):
        events = []
        sink = SlowRecordingSink(events)
        pipeline = StreamPipeline(RecordingSource([], events), [UppercaseTransform()], sink)

        pipeline.run()

        self.assertEqual(sink.received, [])
        self.assertEqual(pipeline.state, PipelineState.COMPLETED)
        self.assertTrue(sink.opened)

    def test_sink_never_receives_second_chunk_before_acknowledging_first(self):
        events = []
        chunks = [bytes([97 + i]) * 3 for i in range(5)]
        sink = SlowRecordingSink(events)
        pipeline = StreamPipeline(RecordingSource(chunks, events), [UppercaseTransform()], sink)

        pipeline.run()

        expected = []
        for index in range(5):
            expected += [('pull', index), ('write', index), ('ack', index)]
        self.assertEqual(events, expected)
        self.assertEqual(sink.received, [chunk.upper() for chunk in chunks])

    def test_source_failure_mid_stream(self):
        events = []
        source = RecordingSource([b"a", b"b", b"c", b"d"], events, fail_at=2)
        sink = SlowRecordingSink(events, delay=0)
        stage = TrackingStage()
        pipeline = StreamPipeline(source, [stage], sink)

        with self.assertRaises(ReadError):
            pipeline.run()

        self.assertEqual(sink.received, [b"a", b"b"])
        self.assertEqual(pipeline.state, PipelineState.FAILED)
        self.assertIsInstance(pipeline.error, ReadError)
        self.assertTrue(source.closed)
        self.assertTrue(stage.closed)
        self.assertIsInstance(sink.closed_with, ReadError)

    def test_completion_callback_receives_first_error_once(self):
        calls = []
        source = StreamSource(io.BytesIO(b"hello"), chunk_size=2)
        pipeline = StreamPipeline(source, [TrackingStage(fail_on=b"ll")], MemorySink(),
                                  on_complete=lambda error, results: calls.append((error, results)))

        results = pipeline.run()  # with a callback the error is not raised

        self.assertEqual(len(calls), 1)
        error, reported = calls[0]
        self.assertIsInstance(error, PipelineError)
        self.assertIsInstance(error.original_exception, RuntimeError)
        self.assertIs(reported, results)
        self.assertEqual(results['pipeline_status'], 'failed')
        self.assertEqual(results['error_type'], 'PipelineError')

    def test_completion_callback_on_success(self):
        calls = []
        pipeline = StreamPipeline(IterableSource([b"x"]), [], MemorySink(),
                                  on_complete=lambda error, results: calls.append(error))

        pipeline.run()

        self.assertEqual(calls, [None])

    def test_pipeline_is_not_reusable(self):
        pipeline = StreamPipeline(IterableSource([b"x"]), [], MemorySink())
        pipeline.run()

        with self.assertRaises(PipelineStateError):
            pipeline.run()
        self.assertEqual(pipeline.state, PipelineState.COMPLETED)

    def test_pipeline_requires_sink(self):
        with self.assertRaises(ValueError):
            StreamPipeline(IterableSource([b"x"]), [])

    def test_short_acknowledgement_is_write_error(self):
        pipeline = StreamPipeline(IterableSource([b"abc"]), [], ShortWriteSink())

        with self.assertRaises(WriteError):
            pipeline.run()
        self.assertEqual(pipeline.state, PipelineState.FAILED)

    def test_second_offer_before_acknowledgement_is_rejected(self):
        sink = ReentrantSink()
        pipeline = StreamPipeline(IterableSource([b"first"]), [], sink)
        sink.pipeline = pipeline

        with self.assertRaises(PipelineStateError):
            pipeline.run()
        self.assertEqual(pipeline.state, PipelineState.FAILED)
        self.assertEqual(sink.chunks_written, 0)

    def test_cancel_before_run(self):
        events = []
        source = RecordingSource([b"a", b"b"], events)
        sink = SlowRecordingSink(events)
        pipeline = StreamPipeline(source, [], sink)
        pipeline.cancel()

        with self.assertRaises(PipelineCancelledError):
            pipeline.run()

        self.assertEqual(sink.received, [])
        self.assertTrue(pipeline.results['cancelled'])
        self.assertTrue(source.closed)

    def test_cancel_while_running(self):
        events = []
        source = RecordingSource([b"x"] * 1000, events)
        sink = SlowRecordingSink(events, delay=0.002)
        calls = []
        pipeline = StreamPipeline(source, [], sink, on_complete=lambda error, results: calls.append(error))

        worker = threading.Thread(target=pipeline.run)
        worker.start()
        time.sleep(0.05)
        pipeline.cancel()
        worker.join(timeout=10)

        self.assertFalse(worker.is_alive())
        self.assertEqual(pipeline.state, PipelineState.FAILED)
        self.assertIsInstance(calls[0], PipelineCancelledError)
        self.assertLess(len(sink.received), 1000)

    def test_uppercase_file_to_file(self):
        src = self._path("input.txt")
        dst = self._path("new_input.txt")
        with open(src, 'wb') as f:
            f.write("hello world ü 42\n".encode('utf-8'))

        results = uppercase_file(src, dst, chunk_size=4)

        with open(dst, 'rb') as f:
            self.assertEqual(f.read(), "HELLO WORLD ü 42\n".encode('utf-8'))
        self.assertEqual(results['pipeline_status'], 'completed')

    def test_missing_input_leaves_no_open_handles(self):
        dst = self._path("out.txt")
        sink = FileSink(dst)
        pipeline = StreamPipeline(FileSource(self._path("missing.txt")), [UppercaseTransform()], sink)

        self.assertFalse(pipeline.validate_input())
        with self.assertRaises(ReadError):
            pipeline.run()

        self.assertIsNone(sink._handle)
        self.assertTrue(os.path.exists(dst))  # truncated destination stays on disk

    def test_chained_uppercase_then_gzip(self):
        sink = MemorySink()
        pipeline = StreamPipeline(IterableSource([b"mixed Case text " * 50], chunk_size=16),
                                  [UppercaseTransform(), GzipCompressor()], sink)

        pipeline.run()

        self.assertEqual(gzip.decompress(sink.getvalue()), b"MIXED CASE TEXT " * 50)

    def test_compress_10mb_file_in_4_byte_chunks(self):
        """
        Compressing a 10 MB file in 4-byte chunks yields an archive whose
        decompressed content is identical to the source.
        """
        src = self._path("large.txt")
        archive = self._path("large.txt.gz")
        DataGenerator(seed=7).generate_file_of_size(src, 10 * 1024 * 1024)

        results = compress_file(src, archive, chunk_size=4)

        self.assertEqual(results['chunks_read'], 10 * 1024 * 1024 // 4)
        with open(src, 'rb') as original, gzip.open(archive, 'rb') as restored:
            self.assertEqual(restored.read(), original.read())

    def test_estimate_chunks(self):
        src = self._path("sized.txt")
        with open(src, 'wb') as f:
            f.write(b"x" * 10)
        pipeline = StreamPipeline(FileSource(src, chunk_size=4), [], MemorySink())

        estimate = pipeline.estimate_chunks()

        self.assertEqual(estimate['file_size_bytes'], 10)
        self.assertEqual(estimate['chunk_count_estimate'], 3)
        self.assertTrue(pipeline.validate_input())

class TestReadFile(unittest.TestCase):

    def test_read_file_whole(self):
        with tempfile.NamedTemporaryFile(delete=False) as f:
            f.write(b"whole file")
            path = f.name
        self.addCleanup(os.unlink, path)

        self.assertEqual(read_file(path), b"whole file")

    def test_read_file_missing(self):
        with self.assertRaises(ReadError):
            read_file("definitely_not_here.txt")

if __name__ == '__main__':
    unittest.main()
