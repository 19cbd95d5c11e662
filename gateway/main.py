from __future__ import annotations

import logging
import uuid
from pathlib import Path

from fastapi import File, FastAPI, Form, HTTPException, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from chunk_pipeline.pipeline import AudioProcessor
from chunk_pipeline.scheduler import ProgressCallback
from common.config import GatewaySettings, PipelineSettings
from common.schemas import (
    ErrorMessage,
    JobList,
    JobState,
    JobStatus,
    ProcessOptions,
    ProcessResponse,
)
from gateway.jobs import TERMINAL_STATES, JobManager, utc_now_iso

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

settings = GatewaySettings()
pipeline_settings = PipelineSettings()
app = FastAPI(title="Chunked Transcription Gateway")


async def run_pipeline(file_path: str, options: ProcessOptions, progress: ProgressCallback):
    processor = AudioProcessor(pipeline_settings)
    return await processor.process_large_file(file_path, options, progress)


manager = JobManager(
    run_pipeline,
    attempts=settings.job_attempts,
    backoff_s=settings.job_backoff_s,
    max_retained=settings.max_retained_jobs,
)

UPLOAD_READ_SIZE = 1024 * 1024


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "timestamp": utc_now_iso(),
        "version": VERSION,
        "active_jobs": manager.active_count,
    }


async def store_upload(upload: UploadFile) -> Path:
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    dest = upload_dir / f"{uuid.uuid4()}-{Path(upload.filename).name}"
    written = 0
    try:
        with dest.open("wb") as f:
            while chunk := await upload.read(UPLOAD_READ_SIZE):
                written += len(chunk)
                if written > settings.max_upload_bytes:
                    raise HTTPException(status_code=413, detail="Audio file too large")
                f.write(chunk)
    except BaseException:
        dest.unlink(missing_ok=True)
        raise
    finally:
        await upload.close()
    logger.info("Received audio file: %s (%.1fMB)", upload.filename, written / 1024 / 1024)
    return dest


@app.post("/process-audio", response_model=ProcessResponse)
async def process_audio(audioFile: UploadFile = File(...), options: str | None = Form(None)):
    if not audioFile.filename:
        raise HTTPException(status_code=400, detail="No audio file provided")
    try:
        opts = ProcessOptions.model_validate_json(options) if options else ProcessOptions()
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid options: {exc}")

    file_path = await store_upload(audioFile)
    job = await manager.submit(str(file_path), opts)
    return ProcessResponse(
        job_id=job.job_id,
        message="Audio processing job started",
        websocket_url=f"{settings.public_ws_url.rstrip('/')}/{job.job_id}",
    )


@app.get("/job/{job_id}/status", response_model=JobStatus)
async def job_status(job_id: str):
    job = manager.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.status()


@app.get("/job/{job_id}/result")
async def job_result(job_id: str):
    job = manager.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    status = job.status()
    if job.state == JobState.completed:
        return {"success": True, "result": status.result}
    if job.state == JobState.failed:
        return JSONResponse(status_code=500, content={"success": False, "error": job.error})
    return {"success": False, "message": "Job is still processing", "state": job.state}


@app.delete("/job/{job_id}")
async def cancel_job(job_id: str):
    try:
        await manager.cancel(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"success": True, "message": "Job cancelled successfully"}


@app.get("/jobs", response_model=JobList)
async def list_jobs():
    return JobList(jobs=[job.status() for job in manager.list_jobs(settings.max_listed_jobs)])


@app.websocket("/progress/{job_id}")
async def progress_endpoint(ws: WebSocket, job_id: str):
    await ws.accept()
    job = manager.get(job_id)
    if job is None:
        await ws.send_text(ErrorMessage(job_id=job_id, detail="Job not found").model_dump_json())
        await ws.close()
        return

    queue = manager.subscribe(job_id)
    logger.info("WebSocket connected for job: %s", job_id)
    try:
        await ws.send_text(job.snapshot().model_dump_json())
        while job.state not in TERMINAL_STATES or not queue.empty():
            msg = await queue.get()
            await ws.send_text(msg.model_dump_json())
        await ws.close()
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected for job: %s", job_id)
    except Exception:
        logger.exception("Progress relay error for %s", job_id)
    finally:
        manager.unsubscribe(job_id, queue)


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=settings.host, port=settings.port)
