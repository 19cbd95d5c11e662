from __future__ import annotations


class PipelineError(Exception):
    """Base class for chunked transcription failures."""


class InvalidInput(PipelineError, ValueError):
    """Bad planning parameters or an unusable source file."""


class ExtractionError(PipelineError):
    """The transcoder could not extract a chunk."""


class TranscriptionError(PipelineError):
    """The transcription backend failed or returned an unusable response."""


class ChunkProcessingError(PipelineError):
    """A chunk exhausted its retry budget."""

    def __init__(self, chunk_index: int, last_error: BaseException | None) -> None:
        self.chunk_index = chunk_index
        self.last_error = last_error
        super().__init__(f"Chunk {chunk_index} failed permanently: {last_error}")


class NoChunksProcessed(PipelineError):
    """Every planned chunk failed."""
