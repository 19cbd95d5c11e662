from __future__ import annotations

from typing import Sequence

from chunk_pipeline.models import SilenceInterval, Word


def _interval(start: float, end: float) -> SilenceInterval:
    return SilenceInterval(start=start, end=end, duration=end - start)


def infer_silence(
    words: Sequence[Word],
    total_duration: float,
    threshold_s: float = 2.0,
) -> list[SilenceInterval]:
    """Derive silence from gaps longer than ``threshold_s`` between words.

    ``words`` must be sorted by start time. Leading and trailing gaps count;
    an empty word list yields no silence at all.
    """
    if not words:
        return []

    silences: list[SilenceInterval] = []

    first_start = words[0]["start"]
    if first_start > threshold_s:
        silences.append(_interval(0.0, first_start))

    for current, nxt in zip(words, words[1:]):
        if nxt["start"] - current["end"] > threshold_s:
            silences.append(_interval(current["end"], nxt["start"]))

    last_end = words[-1]["end"]
    if total_duration - last_end > threshold_s:
        silences.append(_interval(last_end, total_duration))

    return silences
