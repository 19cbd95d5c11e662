"""Entry point for transcribing an oversized audio file chunk by chunk.

Planner -> BatchScheduler (ChunkWorker per chunk, in waves) -> merger ->
silence inference. Progress goes to an optional ``(percent, message)``
callback: 0 at start, once per wave, 100 on completion, -1 on failure.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from chunk_pipeline.errors import InvalidInput
from chunk_pipeline.extractor import FfmpegTranscoder
from chunk_pipeline.merger import merge_chunk_results
from chunk_pipeline.models import ProcessingResult
from chunk_pipeline.planner import plan_chunks
from chunk_pipeline.scheduler import BatchScheduler, ProgressCallback
from chunk_pipeline.worker import ChunkWorker, Transcoder, TranscriptionBackend
from common.config import PipelineSettings, WhisperSettings
from common.schemas import ProcessOptions

logger = logging.getLogger(__name__)


def get_backend(
    settings: PipelineSettings | None = None,
    whisper_settings: WhisperSettings | None = None,
) -> TranscriptionBackend:
    settings = settings or PipelineSettings()
    if settings.backend == "openai":
        from chunk_pipeline.whisper_client import OpenAIWhisperBackend
        return OpenAIWhisperBackend(whisper_settings)
    if settings.backend == "local":
        from chunk_pipeline.transcriber import FasterWhisperBackend
        return FasterWhisperBackend(whisper_settings)
    raise ValueError(f"Unknown transcription backend: {settings.backend!r}")


class AudioProcessor:
    def __init__(
        self,
        settings: PipelineSettings | None = None,
        backend: TranscriptionBackend | None = None,
        transcoder: Transcoder | None = None,
        worker: ChunkWorker | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or PipelineSettings()
        if worker is None:
            worker = ChunkWorker(
                transcoder or FfmpegTranscoder(self.settings.sample_rate, self.settings.channels),
                backend or get_backend(self.settings),
                self.settings,
                sleep=sleep,
            )
        self.worker = worker
        self._sleep = sleep

    async def process_large_file(
        self,
        file_path: str | Path,
        options: ProcessOptions | None = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ProcessingResult:
        options = options or ProcessOptions()
        try:
            result = await self._process(Path(file_path), options, progress_callback)
        except Exception as exc:
            logger.error("Audio processing failed for %s: %s", file_path, exc)
            if progress_callback:
                progress_callback(-1, f"Processing failed: {exc}")
            raise

        if progress_callback:
            progress_callback(100, "Processing completed successfully!")
        return result

    async def _process(
        self,
        file_path: Path,
        options: ProcessOptions,
        progress_callback: Optional[ProgressCallback],
    ) -> ProcessingResult:
        logger.info("Starting large file processing: %s", file_path)
        try:
            file_size = file_path.stat().st_size
        except OSError as exc:
            raise InvalidInput(f"Cannot read audio file {file_path}: {exc}") from exc

        tasks = plan_chunks(file_size, self.settings.chunk_size_bytes)
        logger.info("File size: %.1fMB, total chunks: %d", file_size / 1024 / 1024, len(tasks))
        if progress_callback:
            progress_callback(0, f"Starting processing of {len(tasks)} chunks...")

        scheduler = BatchScheduler(
            lambda task: self.worker.process(task, file_path, options),
            max_concurrent=self.settings.max_concurrent,
            inter_batch_delay_s=self.settings.inter_batch_delay_s,
            sleep=self._sleep,
        )
        results = await scheduler.run(tasks, progress_callback)

        threshold = options.silence_threshold_s
        if threshold is None:
            threshold = self.settings.silence_threshold_s
        merged = merge_chunk_results(
            results,
            chunk_duration_s=self.settings.chunk_duration_s,
            planned_chunks=len(tasks),
            silence_threshold_s=threshold,
        )
        if merged.chunks_succeeded < merged.planned_chunks:
            logger.warning(
                "Only %d of %d planned chunks succeeded", merged.chunks_succeeded, merged.planned_chunks
            )
        logger.info("Processing completed: %d chunks processed successfully", merged.chunks_succeeded)
        return merged


async def process_large_file(
    file_path: str | Path,
    options: ProcessOptions | None = None,
    progress_callback: Optional[ProgressCallback] = None,
    settings: PipelineSettings | None = None,
) -> ProcessingResult:
    return await AudioProcessor(settings).process_large_file(file_path, options, progress_callback)
