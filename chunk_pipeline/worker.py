from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol

from chunk_pipeline.errors import (
    ChunkProcessingError,
    ExtractionError,
    TranscriptionError,
)
from chunk_pipeline.models import ChunkResult, ChunkTask
from chunk_pipeline.planner import estimate_offset
from common.config import PipelineSettings
from common.schemas import ProcessOptions

logger = logging.getLogger(__name__)


class Transcoder(Protocol):
    async def extract(
        self,
        source_path: str | Path,
        output_path: str | Path,
        offset_s: float,
        duration_s: float,
    ) -> Any: ...


class TranscriptionBackend(Protocol):
    async def transcribe(
        self,
        audio_path: str | Path,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
    ) -> dict[str, Any]: ...


def rebase(items: list[dict[str, Any]], offset: float) -> list[dict[str, Any]]:
    """Shift chunk-local start/end times onto the global timeline."""
    try:
        return [
            {**item, "start": item["start"] + offset, "end": item["end"] + offset}
            for item in items
        ]
    except (KeyError, TypeError) as exc:
        raise TranscriptionError(f"Malformed timestamps in backend response: {exc}") from exc


class ChunkWorker:
    """Extracts, transcribes and rebases one chunk, retrying with backoff.

    Extraction and transcription failures share a single attempt counter.
    Before attempt ``n + 1`` the worker sleeps ``backoff_base_s * 2**n``
    seconds. After ``max_retries`` failed attempts the chunk is given up
    with :class:`ChunkProcessingError`.
    """

    def __init__(
        self,
        transcoder: Transcoder,
        backend: TranscriptionBackend,
        settings: PipelineSettings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.transcoder = transcoder
        self.backend = backend
        self.settings = settings or PipelineSettings()
        self._sleep = sleep
        self.temp_dir = Path(self.settings.temp_dir)

    async def process(
        self,
        task: ChunkTask,
        source_path: str | Path,
        options: ProcessOptions | None = None,
    ) -> ChunkResult:
        options = options or ProcessOptions()
        max_retries = max(1, self.settings.max_retries)
        last_error: BaseException | None = None

        for attempt in range(1, max_retries + 1):
            logger.info(
                "Processing chunk %d (attempt %d/%d)", task.index + 1, attempt, max_retries
            )
            try:
                return await self._attempt(task, source_path, options)
            except (ExtractionError, TranscriptionError) as exc:
                last_error = exc
                logger.warning(
                    "Chunk %d attempt %d failed: %s", task.index + 1, attempt, exc
                )
                if attempt < max_retries:
                    await self._sleep(self.settings.backoff_base_s * 2 ** attempt)

        raise ChunkProcessingError(task.index, last_error)

    async def _attempt(
        self,
        task: ChunkTask,
        source_path: str | Path,
        options: ProcessOptions,
    ) -> ChunkResult:
        duration_s = self.settings.chunk_duration_s
        offset = estimate_offset(task, self.settings.chunk_size_bytes, duration_s)
        chunk_path = self._temp_path(task.index)

        try:
            await self.transcoder.extract(source_path, chunk_path, offset, duration_s)
            payload = await self.backend.transcribe(
                chunk_path, language=options.language, prompt=options.prompt
            )
        finally:
            self._cleanup(chunk_path)

        global_offset = task.index * duration_s
        return ChunkResult(
            chunk_index=task.index,
            words=rebase(payload.get("words") or [], global_offset),
            segments=rebase(payload.get("segments") or [], global_offset),
            text=payload.get("text") or "",
            language=payload.get("language") or "",
            duration=float(payload.get("duration") or 0.0),
        )

    def _temp_path(self, chunk_index: int) -> Path:
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExtractionError(f"Cannot create temp dir {self.temp_dir}: {exc}") from exc
        return self.temp_dir / f"chunk_{chunk_index}_{uuid.uuid4().hex}.wav"

    @staticmethod
    def _cleanup(chunk_path: Path) -> None:
        try:
            chunk_path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove temporary chunk %s", chunk_path, exc_info=True)
