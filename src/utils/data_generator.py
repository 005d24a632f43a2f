# ========================
# src/utils/data_generator.py
# ========================

"""
Data Generation Utilities

Generates sample text input for the stream pipeline: mixed-case prose with
digits, punctuation and a share of non-ASCII lines.
"""

import random
import logging
from typing import Dict, Any, Optional
from pathlib import Path

logger = logging.getLogger(__name__)

class DataGenerator:
    """
    Sample text generator for pipeline inputs.
    """

    WORDS = [
        "stream", "chunk", "Pipeline", "buffer", "backpressure", "gzip", "Source",
        "sink", "transform", "upper", "lower", "Byte", "archive", "file", "read",
        "write", "flow", "Data", "node", "queue", "signal", "handle", "request",
    ]

    NON_ASCII_WORDS = ["über", "café", "naïve", "straße", "Ærø", "日本語", "emoji🙂"]

    PUNCTUATION = [".", ",", ";", ":", "!", "?", " -", ""]

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize data generator.

        Args:
            seed (int): Random seed for reproducible data generation
        """
        self._random = random.Random(seed)
        logger.info(f"DataGenerator initialized with seed: {seed}")

    def generate_text_file(self,
                           file_path: str,
                           num_lines: int,
                           non_ascii_rate: float = 0.1,
                           words_per_line: int = 12) -> Dict[str, Any]:
        """
        Generate a text file of random mixed-case lines.

        Args:
            file_path (str): Output file path
            num_lines (int): Number of lines to generate
            non_ascii_rate (float): Fraction of lines containing non-ASCII words
            words_per_line (int): Average number of words per line

        Returns:
            dict: Generation statistics
        """
        logger.info(f"Generating {num_lines:,} lines with {non_ascii_rate:.1%} non-ASCII lines...")

        stats = {
            'total_lines': num_lines,
            'non_ascii_rate': non_ascii_rate,
            'non_ascii_lines': 0,
            'bytes_written': 0
        }

        Path(file_path).parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, 'w', encoding='utf-8', newline='\n') as f:
            for i in range(num_lines):
                with_non_ascii = self._random.random() < non_ascii_rate
                line = self._generate_line(i, words_per_line, with_non_ascii)
                if with_non_ascii:
                    stats['non_ascii_lines'] += 1
                f.write(line)
                stats['bytes_written'] += len(line.encode('utf-8'))

                if (i + 1) % 10000 == 0:
                    logger.debug(f"Generated {i + 1:,} lines")

        logger.info(f"Text file generated: {file_path} ({stats['bytes_written']:,} bytes)")
        return stats

    def _generate_line(self, index: int, words_per_line: int, with_non_ascii: bool) -> str:
        count = max(1, words_per_line + self._random.randint(-3, 3))
        words = [self._random.choice(self.WORDS) for _ in range(count)]
        if with_non_ascii:
            words.insert(self._random.randrange(len(words) + 1), self._random.choice(self.NON_ASCII_WORDS))
        if self._random.random() < 0.5:
            words.append(str(self._random.randint(0, 99999)))
        return f"{index + 1}: {' '.join(words)}{self._random.choice(self.PUNCTUATION)}\n"

    def generate_file_of_size(self,
                              file_path: str,
                              size_bytes: int,
                              block_size: int = 1024 * 1024) -> Dict[str, Any]:
        """
        Generate a file of exactly ``size_bytes`` bytes, written block by block
        to keep memory usage flat.

        Args:
            file_path (str): Output file path
            size_bytes (int): Exact size of the file to write
            block_size (int): Bytes generated per write

        Returns:
            dict: Generation statistics
        """
        logger.info(f"Generating {size_bytes:,} byte file in blocks of {block_size:,}")

        Path(file_path).parent.mkdir(parents=True, exist_ok=True)

        blocks_written = 0
        bytes_written = 0
        with open(file_path, 'wb') as f:
            line_index = 0
            while bytes_written < size_bytes:
                block = bytearray()
                while len(block) < block_size:
                    block += self._generate_line(line_index, 12, line_index % 10 == 0).encode('utf-8')
                    line_index += 1
                block = bytes(block[:min(block_size, size_bytes - bytes_written)])
                f.write(block)
                bytes_written += len(block)
                blocks_written += 1

                logger.debug(f"Block {blocks_written} complete: {bytes_written:,}/{size_bytes:,} bytes")

        logger.info(f"File generation complete: {file_path}")
        return {
            'total_bytes': bytes_written,
            'block_size': block_size,
            'blocks_written': blocks_written
        }
