from __future__ import annotations

import math

from chunk_pipeline.errors import InvalidInput
from chunk_pipeline.models import ChunkTask


def plan_chunks(file_size_bytes: int, chunk_size_bytes: int) -> list[ChunkTask]:
    """Split ``[0, file_size_bytes)`` into contiguous byte ranges.

    The last chunk may be shorter than ``chunk_size_bytes``.
    """
    if file_size_bytes <= 0:
        raise InvalidInput(f"file_size_bytes must be positive, got {file_size_bytes}")
    if chunk_size_bytes <= 0:
        raise InvalidInput(f"chunk_size_bytes must be positive, got {chunk_size_bytes}")

    total_chunks = math.ceil(file_size_bytes / chunk_size_bytes)
    return [
        ChunkTask(
            index=i,
            start_byte=i * chunk_size_bytes,
            end_byte=min((i + 1) * chunk_size_bytes, file_size_bytes),
        )
        for i in range(total_chunks)
    ]


def estimate_offset(task: ChunkTask, chunk_size_bytes: int, chunk_duration_s: float) -> float:
    """Approximate start time of a chunk, assuming a constant bitrate.

    One full chunk of bytes is taken to hold ``chunk_duration_s`` seconds of
    audio. Variable-bitrate sources will drift.
    """
    return task.start_byte / chunk_size_bytes * chunk_duration_s
