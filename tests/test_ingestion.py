# ========================
# tests/test_ingestion.py
# ========================

import io
import unittest
import tempfile
import os
import sys

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.streaming.errors import ReadError
from src.streaming.ingestion import FileSource, StreamSource, IterableSource

class FlakyStream(io.RawIOBase):
    """Readable that fails after a number of successful reads."""

    def __init__(self, payload: bytes, fail_after: int):
        self._buffer = io.BytesIO(payload)
        self._reads = 0
        self.fail_after = fail_after

    def readable(self):
        return True

    def read(self, size=-1):
        self._reads += 1
        if self._reads > self.fail_after:
            raise OSError(5, "Input/output error")
        return self._buffer.read(size)

class TestFileSource(unittest.TestCase):
    """Test the chunked file source."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)

    def _write(self, name, content: bytes) -> str:
        path = os.path.join(self.temp_dir.name, name)
        with open(path, 'wb') as f:
            f.write(content)
        return path

    def test_file_source_chunked_reading(self):
        """Test that FileSource splits a file at the high-water mark."""
        path = self._write('input.txt', b"abcdefghij")
        source = FileSource(path, chunk_size=4)

        chunks = list(source.read_in_chunks())

        self.assertEqual(chunks, [b"abcd", b"efgh", b"ij"])
        self.assertEqual(source.chunks_read, 3)
        self.assertEqual(source.bytes_read, 10)

    def test_file_source_file_not_found(self):
        """Test FileSource behavior with non-existent file."""
        source = FileSource(os.path.join(self.temp_dir.name, "missing.txt"), chunk_size=10)

        with self.assertRaises(ReadError) as ctx:
            list(source.read_in_chunks())

        self.assertIsInstance(ctx.exception.original_exception, FileNotFoundError)
        self.assertIsInstance(ctx.exception.__cause__, FileNotFoundError)
        self.assertIn("missing.txt", str(ctx.exception))

    def test_file_source_directory_is_read_error(self):
        """Opening a directory as input surfaces as ReadError, not a bare OSError."""
        source = FileSource(self.temp_dir.name)

        with self.assertRaises(ReadError):
            list(source.read_in_chunks())

    def test_file_source_empty_file(self):
        """Test FileSource behavior with empty file."""
        path = self._write('empty.txt', b"")
        source = FileSource(path, chunk_size=10)

        chunks = list(source.read_in_chunks())

        self.assertEqual(len(chunks), 0)  # No chunks for empty file

    def test_file_source_large_chunk_size(self):
        """Test FileSource with chunk size larger than data."""
        path = self._write('small.txt', b"hello")
        chunks = list(FileSource(path, chunk_size=1024).read_in_chunks())

        self.assertEqual(chunks, [b"hello"])

    def test_file_source_is_not_restartable(self):
        path = self._write('once.txt', b"data")
        source = FileSource(path, chunk_size=2)
        list(source.read_in_chunks())

        with self.assertRaises(ReadError):
            source.read_in_chunks()

    def test_file_source_closes_handle_when_abandoned(self):
        path = self._write('abandon.txt', b"0123456789")
        source = FileSource(path, chunk_size=2)
        chunks = source.read_in_chunks()

        self.assertEqual(next(chunks), b"01")
        self.assertIsNotNone(source._handle)
        chunks.close()
        self.assertIsNone(source._handle)

    def test_invalid_chunk_size(self):
        for bad in (0, -1, 1.5, True):
            with self.assertRaises(ValueError, msg=f"chunk_size={bad!r}"):
                FileSource("whatever.txt", chunk_size=bad)

class TestStreamSource(unittest.TestCase):
    """Test sources reading already-open streams."""

    def test_stream_source_reads_request_body(self):
        body = io.BytesIO(b"request body bytes")
        chunks = list(StreamSource(body, chunk_size=8).read_in_chunks())

        self.assertEqual(b"".join(chunks), b"request body bytes")
        self.assertTrue(all(len(chunk) <= 8 for chunk in chunks))

    def test_stream_source_failure_mid_stream(self):
        source = StreamSource(FlakyStream(b"x" * 100, fail_after=2), chunk_size=10, name="flaky")
        chunks = source.read_in_chunks()

        self.assertEqual(next(chunks), b"x" * 10)
        self.assertEqual(next(chunks), b"x" * 10)
        with self.assertRaises(ReadError) as ctx:
            next(chunks)
        self.assertEqual(ctx.exception.path, "flaky")

    def test_stream_source_rejects_text_streams(self):
        source = StreamSource(io.StringIO("text"), chunk_size=4)

        with self.assertRaises(ReadError):
            list(source.read_in_chunks())

    def test_stream_source_close_ownership(self):
        owned = io.BytesIO(b"a")
        borrowed = io.BytesIO(b"b")

        StreamSource(owned, close_stream=True).close()
        StreamSource(borrowed).close()

        self.assertTrue(owned.closed)
        self.assertFalse(borrowed.closed)

class TestIterableSource(unittest.TestCase):
    """Test in-memory sources."""

    def test_rechunks_to_high_water_mark(self):
        source = IterableSource([b"abcdef", "gh", b""], chunk_size=4)

        self.assertEqual(list(source.read_in_chunks()), [b"abcd", b"ef", b"gh"])

    def test_empty_iterable(self):
        self.assertEqual(list(IterableSource([]).read_in_chunks()), [])

if __name__ == '__main__':
    unittest.main()
