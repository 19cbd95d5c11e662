from __future__ import annotations

import logging
from typing import Optional, Sequence

from chunk_pipeline.models import ChunkResult, ProcessingResult, Segment, Word
from chunk_pipeline.silence import infer_silence

logger = logging.getLogger(__name__)


def merge_chunk_results(
    results: Sequence[ChunkResult],
    chunk_duration_s: float = 30.0,
    planned_chunks: Optional[int] = None,
    silence_threshold_s: float = 2.0,
) -> ProcessingResult:
    """Combine already-rebased chunk results into one time-sorted transcript.

    ``total_chunks`` is the number of surviving chunks. ``planned_chunks``
    defaults to that count when the caller does not know how many were
    planned, in which case ``success_rate`` is 100.
    """
    ordered = sorted(results, key=lambda r: r.chunk_index)

    words: list[Word] = []
    segments: list[Segment] = []
    total_duration = 0.0
    for result in ordered:
        words.extend(result.words)
        segments.extend(result.segments)
        total_duration = max(total_duration, result.duration + result.chunk_index * chunk_duration_s)

    # sorted() is stable: equal starts keep chunk order.
    words = sorted(words, key=lambda w: w["start"])
    segments = sorted(segments, key=lambda s: s["start"])

    survivors = len(ordered)
    planned = survivors if planned_chunks is None else planned_chunks
    success_rate = 100.0 * survivors / planned if planned else 0.0

    logger.info(
        "Merged %d chunks: %d words, %d segments, %.1fs", survivors, len(words), len(segments), total_duration
    )
    return ProcessingResult(
        words=words,
        segments=segments,
        silence_segments=infer_silence(words, total_duration, silence_threshold_s),
        total_duration=total_duration,
        total_chunks=survivors,
        planned_chunks=planned,
        chunks_succeeded=survivors,
        success_rate=success_rate,
    )
