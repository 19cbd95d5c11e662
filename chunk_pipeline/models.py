"""Internal models for chunked transcription processing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

# Backend-supplied word/segment payloads; only "start" and "end" are relied on.
Word = dict[str, Any]
Segment = dict[str, Any]


@dataclass(frozen=True)
class ChunkTask:
    index: int
    start_byte: int
    end_byte: int

    @property
    def size(self) -> int:
        return self.end_byte - self.start_byte


@dataclass
class ChunkResult:
    chunk_index: int
    words: list[Word] = field(default_factory=list)
    segments: list[Segment] = field(default_factory=list)
    text: str = ""
    language: str = ""
    duration: float = 0.0


@dataclass
class ChunkFailure:
    chunk_index: int
    error: BaseException


ChunkOutcome = Union[ChunkResult, ChunkFailure]


@dataclass
class SilenceInterval:
    start: float
    end: float
    duration: float
    type: str = "silence"


@dataclass
class ProcessingResult:
    words: list[Word]
    segments: list[Segment]
    silence_segments: list[SilenceInterval]
    total_duration: float
    total_chunks: int
    planned_chunks: int
    chunks_succeeded: int
    success_rate: float
