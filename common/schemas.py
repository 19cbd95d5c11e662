from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


# --- HTTP requests / responses: client ↔ gateway ---

class ProcessOptions(BaseModel):
    language: Optional[str] = None
    prompt: Optional[str] = None
    silence_threshold_s: Optional[float] = None


class ProcessResponse(BaseModel):
    success: bool = True
    job_id: str
    message: str
    websocket_url: str


class JobState(str, Enum):
    waiting = "waiting"
    active = "active"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class JobStatus(BaseModel):
    job_id: str
    state: JobState
    progress: int
    message: str
    attempts: int
    file_path: str
    options: ProcessOptions
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class JobList(BaseModel):
    jobs: list[JobStatus]


# --- WebSocket messages: gateway → client ---

class ServerMessageType(str, Enum):
    progress = "progress"
    error = "error"


class ProgressMessage(BaseModel):
    type: ServerMessageType = ServerMessageType.progress
    job_id: str
    progress: int  # 0-100, -1 on failure
    message: str
    timestamp: str


class ErrorMessage(BaseModel):
    type: ServerMessageType = ServerMessageType.error
    job_id: str
    detail: str
