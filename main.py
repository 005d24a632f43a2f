#!/usr/bin/env python3
# ========================
# main.py
# ========================

"""
Main Entry Point for the Stream Pipeline

Demonstrates the pipeline end to end: generates a sample input file, writes
an uppercased copy of it, gzip-compresses it to an archive, and reads it back
in one piece.
"""

import sys
from pathlib import Path

# Add the project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from src.streaming import PipelineError, compress_file, read_file, uppercase_file
from src.utils import Config, DataGenerator, get_logger, setup_logging

def main():
    """Main execution function."""
    # Initialize configuration
    config = Config()

    # Setup logging
    setup_logging(
        log_level=config.LOG_LEVEL,
        log_file="pipeline.log",
        log_dir=config.LOG_DIR
    )

    logger = get_logger(__name__)
    logger.info("="*60)
    logger.info("STREAM PIPELINE - MAIN EXECUTION")
    logger.info("="*60)

    try:
        # Ensure directories exist
        config.ensure_directories()
        output_dir = Path(config.DEFAULT_OUTPUT_DIR)

        # Step 1: Generate sample data
        input_file = config.DEFAULT_INPUT_FILE
        logger.info("Step 1: Generating sample data...")

        generator = DataGenerator(seed=42)  # Reproducible data
        generation_stats = generator.generate_text_file(
            file_path=input_file,
            num_lines=config.DEFAULT_SAMPLE_LINES
        )

        # Step 2: Uppercase the input into a new file
        logger.info("Step 2: Running uppercase pipeline...")
        uppercase_results = uppercase_file(
            input_file,
            output_dir / f"upper_{Path(input_file).name}",
            chunk_size=config.DEFAULT_CHUNK_SIZE
        )

        # Step 3: Compress the input into a gzip archive
        logger.info("Step 3: Running gzip pipeline...")
        gzip_results = compress_file(
            input_file,
            output_dir / f"{Path(input_file).name}.gz",
            chunk_size=config.DEFAULT_CHUNK_SIZE,
            compression_level=config.GZIP_COMPRESSION_LEVEL
        )

        # Step 4: Read the whole input in one call
        logger.info("Step 4: Reading input file in one piece...")
        content = read_file(input_file)

        _print_execution_summary(generation_stats, uppercase_results, gzip_results, len(content))

        logger.info("Pipeline execution completed successfully!")
        return 0

    except (PipelineError, OSError) as e:
        logger.error(f"Pipeline execution failed: {e}", exc_info=True)
        return 1

def _print_execution_summary(generation_stats: dict,
                             uppercase_results: dict,
                             gzip_results: dict,
                             bytes_read_whole: int) -> None:
    """Print final execution summary."""
    print("\n" + "="*70)
    print("PIPELINE EXECUTION SUMMARY")
    print("="*70)

    print("📄 Sample Input:")
    print(f"   • Lines generated: {generation_stats['total_lines']:,}")
    print(f"   • Non-ASCII lines: {generation_stats['non_ascii_lines']:,}")
    print(f"   • Size: {generation_stats['bytes_written']:,} bytes")

    print("\n🔠 Uppercase:")
    print(f"   • Chunks read: {uppercase_results['chunks_read']:,}")
    print(f"   • Bytes written: {uppercase_results['bytes_written']:,}")
    print(f"   • Output: {uppercase_results['destination']}")

    print("\n🗜️  Gzip:")
    ratio = gzip_results['bytes_written'] / gzip_results['bytes_read'] if gzip_results['bytes_read'] else 0
    print(f"   • Bytes in: {gzip_results['bytes_read']:,}")
    print(f"   • Bytes out: {gzip_results['bytes_written']:,} ({ratio:.1%})")
    print(f"   • Archive: {gzip_results['destination']}")

    print("\n📖 Whole-file read:")
    print(f"   • Bytes read: {bytes_read_whole:,}")

    print("\n🚀 Next Steps:")
    print("   1. Start API server: python api_server.py")
    print("   2. Stream uppercase: curl http://localhost:5000/stream/uppercase")
    print("   3. Run large scale test: python scripts/run_large_scale_test.py")
    print(f"   4. Check logs: {Path('logs') / 'pipeline.log'}")

    print("="*70)

if __name__ == '__main__':
    exit_code = main()
    sys.exit(exit_code)
