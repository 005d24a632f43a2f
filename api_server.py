# ========================
# api_server.py
# ========================

"""
FastAPI Server for the Stream Pipeline

Provides REST API endpoints that trigger file transforms in the background,
stream transformed files back to the client, and expose job and process
status for monitoring.
"""

import asyncio
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List

from fastapi import FastAPI, File, UploadFile, HTTPException, Query
from fastapi.responses import FileResponse, Response, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from src.streaming import (
    FileSink,
    FileSource,
    PipelineError,
    ReadError,
    ResponseSink,
    StreamPipeline,
    StreamSource,
    build_stage,
    read_file,
)
from src.utils.config import Config
from src.utils.logging_setup import setup_logging
from src.utils.performance_monitor import SystemResourceMonitor

# Configuration
config = Config()

# Setup logging
setup_logging(log_level=config.LOG_LEVEL, log_file="api_server.log", log_dir=config.LOG_DIR,
              access_log=config.ACCESS_LOG)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Stream Pipeline API",
    description="Read, uppercase and gzip files through a backpressure-aware chunked pipeline",
    version="1.0.0"
)

# Add CORS middleware to allow frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global state for tracking jobs
job_status: Dict[str, Dict[str, Any]] = {}
active_pipelines: Dict[str, StreamPipeline] = {}
job_lock = threading.Lock()
executor = ThreadPoolExecutor(max_workers=config.MAX_CONCURRENT_JOBS)  # Limit concurrent pipeline jobs
# Streaming responses wait on slow clients, so they get their own workers
stream_executor = ThreadPoolExecutor(max_workers=config.MAX_STREAMING_RESPONSES)

OUTPUT_DIR = Path(config.DEFAULT_OUTPUT_DIR)
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

# Constants
JOB_NOT_FOUND_MSG = "Job not found"
JOB_NOT_COMPLETED_MSG = "Job not completed yet"
STAGE_MEDIA_TYPES = {
    'uppercase': 'text/plain; charset=utf-8',
    'gzip': 'application/gzip',
}


def _output_path(job_id: str, stage_names: List[str], filename: Optional[str] = None) -> Path:
    """Per-job destination, so concurrent jobs never share an output file."""
    base = Path(filename).name if filename else Path(config.DEFAULT_INPUT_FILE).name
    suffix = ".gz" if stage_names and stage_names[-1] == 'gzip' else ""
    return OUTPUT_DIR / f"{job_id}_{'_'.join(stage_names) or 'copy'}_{base}{suffix}"


def _parse_stages(stages: str) -> List[str]:
    stage_names = [name.strip().lower() for name in stages.split(',') if name.strip()]
    for name in stage_names:
        try:
            build_stage(name, config)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return stage_names


class PipelineJobManager:
    """Manages background pipeline jobs."""

    @staticmethod
    def create_job(job_id: str, job_type: str, input_name: str, output_file: Path,
                   stage_names: List[str], chunk_size: int) -> Dict[str, Any]:
        """Register a new queued job."""
        job = {
            'job_id': job_id,
            'type': job_type,
            'status': 'queued',
            'created_at': datetime.now().isoformat(),
            'input': input_name,
            'output_file': str(output_file),
            'stages': stage_names,
            'chunk_size': chunk_size
        }
        with job_lock:
            job_status[job_id] = job
        return job

    @staticmethod
    def build_pipeline(job_id: str, source, stage_names: List[str], output_file: Path) -> StreamPipeline:
        """Wire a pipeline whose completion callback updates the job record."""

        def on_complete(error: Optional[PipelineError], results: Dict[str, Any]) -> None:
            with job_lock:
                active_pipelines.pop(job_id, None)
                job = job_status.get(job_id)
                if job is None:
                    return
                job['results'] = results
                if error is None:
                    job['status'] = 'completed'
                    job['completed_at'] = datetime.now().isoformat()
                else:
                    job['status'] = 'failed'
                    job['error'] = str(error)
                    job['error_type'] = type(error).__name__
                    job['cancelled'] = results['cancelled']
                    job['failed_at'] = datetime.now().isoformat()
            if error is None:
                logger.info(f"Pipeline job {job_id} completed successfully")
            else:
                logger.error(f"Pipeline job {job_id} failed: {error}")

        pipeline = StreamPipeline(
            source=source,
            stages=[build_stage(name, config) for name in stage_names],
            sink=FileSink(output_file),
            on_complete=on_complete,
            name=f"Job-{job_id[:8]}",
        )
        with job_lock:
            active_pipelines[job_id] = pipeline
        return pipeline

    @staticmethod
    def run_pipeline(job_id: str, pipeline: StreamPipeline) -> Dict[str, Any]:
        """Run a pipeline in a worker thread."""
        logger.info(f"Starting pipeline job {job_id}")
        with job_lock:
            job_status[job_id]['status'] = 'processing'
            job_status[job_id]['started_at'] = datetime.now().isoformat()
        return pipeline.run()

    @staticmethod
    def submit_file_job(job_type: str, input_file: str, stage_names: List[str],
                        chunk_size: int) -> Dict[str, Any]:
        """Queue a file -> stages -> file job on the executor without waiting for it."""
        job_id = str(uuid.uuid4())
        output_file = _output_path(job_id, stage_names)
        job = PipelineJobManager.create_job(job_id, job_type, input_file, output_file, stage_names, chunk_size)
        pipeline = PipelineJobManager.build_pipeline(
            job_id, FileSource(input_file, chunk_size), stage_names, output_file
        )
        executor.submit(PipelineJobManager.run_pipeline, job_id, pipeline)
        logger.info(f"Queued {job_type} job {job_id} for {input_file}")
        return job


@app.get("/")
async def root():
    """Compress the configured input file in the background and describe the API."""
    job = PipelineJobManager.submit_file_job(
        'compress', config.DEFAULT_INPUT_FILE, ['gzip'], config.DEFAULT_CHUNK_SIZE
    )
    return {
        "message": "Stream Pipeline API",
        "version": "1.0.0",
        "job_id": job['job_id'],
        "status": job['status'],
        "endpoints": {
            "file": "/file - Read the configured input file in one piece",
            "stream": "/stream/{stage} - Stream the configured input through a stage",
            "uppercase_job": "/jobs/uppercase - Uppercase the configured input to a file",
            "compress_job": "/jobs/compress - Gzip the configured input to an archive",
            "upload": "/upload - Transform an uploaded file",
            "status": "/status - Process and job monitoring",
            "job_status": "/status/{job_id} - Check job status",
            "jobs": "/jobs - List all jobs",
            "download": "/download/{job_id} - Download a job's output",
            "health": "/health - Health check",
            "api_docs": "/docs - API documentation"
        }
    }

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "active_jobs": len(active_pipelines)
    }

@app.get("/status")
async def status_monitor():
    """Process, system and job statistics for monitoring."""
    with job_lock:
        counts: Dict[str, int] = {}
        for job in job_status.values():
            counts[job['status']] = counts.get(job['status'], 0) + 1
        bytes_written = sum(job.get('results', {}).get('bytes_written', 0) for job in job_status.values())
    return {
        "timestamp": datetime.now().isoformat(),
        "jobs": {
            "total": len(job_status),
            "active": len(active_pipelines),
            "by_status": counts,
            "bytes_written": bytes_written
        },
        "process": SystemResourceMonitor.get_process_stats(),
        "system": SystemResourceMonitor.get_system_stats()
    }

@app.get("/file")
async def get_file():
    """Read the configured input file in one call and return it."""
    loop = asyncio.get_event_loop()
    try:
        data = await loop.run_in_executor(None, read_file, config.DEFAULT_INPUT_FILE)
    except ReadError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(content=data, media_type='text/plain; charset=utf-8')

@app.get("/stream/{stage}")
async def stream_file(
    stage: str,
    chunk_size: Optional[int] = Query(None, description="Bytes per chunk read from the input", ge=1, le=16 * 1024 * 1024)
):
    """
    Stream the configured input file through a stage to the response.

    Args:
        stage: Stage name, "uppercase" or "gzip"
        chunk_size: Bytes per chunk (defaults to the configured chunk size)

    Returns:
        StreamingResponse: Transformed bytes, delivered chunk by chunk
    """
    stage_names = _parse_stages(stage)
    if not stage_names:
        raise HTTPException(status_code=400, detail="At least one stage is required")
    chunk_size = chunk_size or config.DEFAULT_CHUNK_SIZE
    sink = ResponseSink(timeout=config.RESPONSE_WRITE_TIMEOUT, name=f"response:{stage}")

    def on_complete(error: Optional[PipelineError], results: Dict[str, Any]) -> None:
        if error is not None:
            logger.error(f"Streaming {stage} response failed: {error}")

    pipeline = StreamPipeline(
        source=FileSource(config.DEFAULT_INPUT_FILE, chunk_size),
        stages=[build_stage(name, config) for name in stage_names],
        sink=sink,
        on_complete=on_complete,
        name=f"Stream-{stage}",
    )
    if not pipeline.validate_input():
        raise HTTPException(status_code=404, detail=f"Input file not found: {config.DEFAULT_INPUT_FILE}")

    stream_executor.submit(pipeline.run)
    return StreamingResponse(sink.iter_chunks(), media_type=STAGE_MEDIA_TYPES.get(stage_names[-1]))

@app.post("/jobs/uppercase")
async def run_uppercase_job(
    chunk_size: Optional[int] = Query(None, description="Bytes per chunk read from the input", ge=1, le=16 * 1024 * 1024)
):
    """Uppercase the configured input file into a per-job output file."""
    job = PipelineJobManager.submit_file_job(
        'uppercase', config.DEFAULT_INPUT_FILE, ['uppercase'], chunk_size or config.DEFAULT_CHUNK_SIZE
    )
    return {
        "job_id": job['job_id'],
        "type": job['type'],
        "status": job['status'],
        "message": "Uppercase job started successfully.",
        "estimated_processing_info": "Use /status/{job_id} to check progress"
    }

@app.post("/jobs/compress")
async def run_compress_job(
    chunk_size: Optional[int] = Query(None, description="Bytes per chunk read from the input", ge=1, le=16 * 1024 * 1024)
):
    """Gzip the configured input file into a per-job archive."""
    job = PipelineJobManager.submit_file_job(
        'compress', config.DEFAULT_INPUT_FILE, ['gzip'], chunk_size or config.DEFAULT_CHUNK_SIZE
    )
    return {
        "job_id": job['job_id'],
        "type": job['type'],
        "status": job['status'],
        "message": "Compression job started successfully.",
        "estimated_processing_info": "Use /status/{job_id} to check progress"
    }

@app.post("/upload")
async def upload_file(
    file: UploadFile = File(...),
    stages: str = Query("uppercase", description="Comma-separated stages to apply: uppercase, gzip"),
    chunk_size: Optional[int] = Query(None, description="Bytes per chunk read from the upload", ge=1, le=16 * 1024 * 1024)
):
    """
    Stream an uploaded file through the requested stages into a per-job output file.

    Args:
        file: File to transform
        stages: Stages applied in order
        chunk_size: Bytes per chunk

    Returns:
        dict: Job record with the run's results
    """
    stage_names = _parse_stages(stages)
    chunk_size = chunk_size or config.DEFAULT_CHUNK_SIZE
    job_id = str(uuid.uuid4())
    output_file = _output_path(job_id, stage_names, file.filename)

    PipelineJobManager.create_job(job_id, 'upload', file.filename or 'upload', output_file, stage_names, chunk_size)
    pipeline = PipelineJobManager.build_pipeline(
        job_id,
        StreamSource(file.file, chunk_size, name=f"upload:{file.filename}"),
        stage_names,
        output_file,
    )

    # the upload handle is only valid during this request, so wait for the run
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(executor, PipelineJobManager.run_pipeline, job_id, pipeline)

    job = job_status[job_id]
    if job['status'] == 'failed':
        raise HTTPException(status_code=500, detail=f"Upload processing failed: {job.get('error')}")

    logger.info(f"Processed upload {file.filename} as job {job_id}")
    return job

@app.get("/status/{job_id}")
async def get_job_status(job_id: str):
    """
    Get the status of a pipeline job.

    Args:
        job_id: Unique job identifier

    Returns:
        dict: Job status and results
    """
    if job_id not in job_status:
        raise HTTPException(status_code=404, detail=JOB_NOT_FOUND_MSG)

    job = job_status[job_id].copy()

    # Add additional info for completed jobs
    if job['status'] == 'completed' and 'results' in job:
        results = job['results']
        job['summary'] = {
            'bytes_read': results.get('bytes_read', 0),
            'bytes_written': results.get('bytes_written', 0),
            'chunks_written': results.get('chunks_written', 0)
        }

    return job

@app.get("/jobs")
async def list_jobs(
    status: Optional[str] = Query(None, description="Filter by status: queued, processing, completed, failed"),
    limit: int = Query(50, description="Maximum number of jobs to return", ge=1, le=100)
):
    """
    List all pipeline jobs with optional filtering.

    Args:
        status: Filter jobs by status
        limit: Maximum number of jobs to return

    Returns:
        dict: List of jobs
    """
    jobs = list(job_status.values())

    # Filter by status if specified
    if status:
        jobs = [job for job in jobs if job['status'] == status]

    # Sort by creation time (newest first)
    jobs.sort(key=lambda x: x['created_at'], reverse=True)

    # Limit results
    jobs = jobs[:limit]

    return {
        "jobs": jobs,
        "total_count": len(job_status),
        "filtered_count": len(jobs)
    }

@app.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str):
    """Signal a running job to stop pulling chunks and release its resources."""
    if job_id not in job_status:
        raise HTTPException(status_code=404, detail=JOB_NOT_FOUND_MSG)

    pipeline = active_pipelines.get(job_id)
    if pipeline is None:
        raise HTTPException(status_code=409, detail=f"Job is not running (status: {job_status[job_id]['status']})")

    pipeline.cancel()
    return {"job_id": job_id, "message": "Cancellation requested"}

@app.get("/download/{job_id}")
async def download_results(job_id: str):
    """
    Download the output file of a completed job.

    Args:
        job_id: Unique job identifier

    Returns:
        FileResponse: The job's output file
    """
    if job_id not in job_status:
        raise HTTPException(status_code=404, detail=JOB_NOT_FOUND_MSG)

    job = job_status[job_id]
    if job['status'] != 'completed':
        raise HTTPException(status_code=400, detail=JOB_NOT_COMPLETED_MSG)

    file_path = Path(job['output_file'])
    if not file_path.exists():
        raise HTTPException(status_code=404, detail="File not found on disk")

    media_type = 'application/gzip' if file_path.suffix == '.gz' else 'application/octet-stream'
    return FileResponse(path=file_path, filename=file_path.name, media_type=media_type)

@app.delete("/jobs/{job_id}")
async def delete_job(job_id: str):
    """
    Delete a finished job and its output file.

    Args:
        job_id: Unique job identifier

    Returns:
        dict: Deletion status
    """
    if job_id not in job_status:
        raise HTTPException(status_code=404, detail=JOB_NOT_FOUND_MSG)

    if job_id in active_pipelines:
        raise HTTPException(status_code=409, detail="Job is still running; cancel it first")

    job = job_status[job_id]
    try:
        output_file = Path(job['output_file'])
        if output_file.exists():
            output_file.unlink()
    except OSError as e:
        logger.error(f"Failed to delete job {job_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to delete job: {str(e)}")

    with job_lock:
        del job_status[job_id]

    logger.info(f"Deleted job {job_id} and associated files")
    return {
        "message": f"Job {job_id} and associated files deleted successfully"
    }

def start_server(host: str = config.SERVER_HOST, port: int = config.SERVER_PORT, reload: bool = False):
    """Start the FastAPI server."""
    logger.info(f"Starting Stream Pipeline API server on {host}:{port}")
    uvicorn.run(
        "api_server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )

if __name__ == "__main__":
    start_server(reload=True)
