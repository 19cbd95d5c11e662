from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterator, Optional, Sequence

from chunk_pipeline.errors import InvalidInput, NoChunksProcessed
from chunk_pipeline.models import ChunkFailure, ChunkOutcome, ChunkResult, ChunkTask

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
ChunkRunner = Callable[[ChunkTask], Awaitable[ChunkResult]]


def iter_waves(tasks: Sequence[ChunkTask], size: int) -> Iterator[Sequence[ChunkTask]]:
    for start in range(0, len(tasks), size):
        yield tasks[start:start + size]


def percent(done: int, total: int) -> int:
    # Half-up rounding, not banker's rounding.
    return int(100 * done / total + 0.5)


class BatchScheduler:
    """Runs chunk tasks in fixed-size concurrent waves.

    Every task in a wave is started at once and the wave is awaited until all
    of them settle; a failed chunk is logged and dropped without affecting
    its wave-mates. Waves never overlap, and ``inter_batch_delay_s`` is slept
    between consecutive waves. Only this class counts successes, after each
    wave has settled.
    """

    def __init__(
        self,
        runner: ChunkRunner,
        max_concurrent: int = 5,
        inter_batch_delay_s: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise InvalidInput(f"max_concurrent must be at least 1, got {max_concurrent}")
        self.runner = runner
        self.max_concurrent = max_concurrent
        self.inter_batch_delay_s = inter_batch_delay_s
        self._sleep = sleep

    async def run(
        self,
        tasks: Sequence[ChunkTask],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> list[ChunkResult]:
        total = len(tasks)
        waves = list(iter_waves(tasks, self.max_concurrent))
        results: list[ChunkResult] = []
        failures: list[ChunkFailure] = []

        for wave_no, wave in enumerate(waves, start=1):
            logger.info("Processing batch %d/%d (%d chunks)", wave_no, len(waves), len(wave))
            for outcome in await self.run_wave(wave):
                if isinstance(outcome, ChunkFailure):
                    failures.append(outcome)
                    logger.warning(
                        "Chunk %d dropped: %s", outcome.chunk_index + 1, outcome.error
                    )
                else:
                    results.append(outcome)
                    logger.info("Chunk %d completed", outcome.chunk_index + 1)

            if progress_callback:
                progress_callback(
                    percent(len(results), total),
                    f"Processed batch {wave_no}/{len(waves)} "
                    f"({len(results)}/{total} chunks succeeded)",
                )

            if wave_no < len(waves):
                logger.info("Rate limiting: waiting %.1fs before next batch", self.inter_batch_delay_s)
                await self._sleep(self.inter_batch_delay_s)

        if not results:
            raise NoChunksProcessed(
                f"No chunks were successfully processed ({len(failures)} of {total} failed)"
            )
        return results

    async def run_wave(self, wave: Sequence[ChunkTask]) -> list[ChunkOutcome]:
        settled = await asyncio.gather(
            *(self.runner(task) for task in wave), return_exceptions=True
        )
        outcomes: list[ChunkOutcome] = []
        for task, value in zip(wave, settled):
            if isinstance(value, BaseException):
                if isinstance(value, asyncio.CancelledError):
                    raise value
                outcomes.append(ChunkFailure(chunk_index=task.index, error=value))
            else:
                outcomes.append(value)
        return outcomes
