from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path

from chunk_pipeline.errors import ExtractionError

logger = logging.getLogger(__name__)


def build_extract_cmd(
    source_path: str | Path,
    output_path: str | Path,
    offset_s: float,
    duration_s: float,
    sample_rate: int = 16000,
    channels: int = 1,
) -> list[str]:
    return [
        "ffmpeg",
        "-hide_banner",
        "-loglevel", "error",
        "-y",
        "-ss", f"{offset_s:.3f}",
        "-t", f"{duration_s:.3f}",
        "-i", str(source_path),
        "-ac", str(channels),
        "-ar", str(sample_rate),
        "-f", "wav",
        str(output_path),
    ]


class FfmpegTranscoder:
    """Extracts a time-bounded mono WAV sub-file with ffmpeg."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1) -> None:
        self.sample_rate = sample_rate
        self.channels = channels

    async def extract(
        self,
        source_path: str | Path,
        output_path: str | Path,
        offset_s: float,
        duration_s: float,
    ) -> Path:
        cmd = build_extract_cmd(
            source_path,
            output_path,
            offset_s,
            duration_s,
            sample_rate=self.sample_rate,
            channels=self.channels,
        )
        try:
            result = await asyncio.to_thread(subprocess.run, cmd, capture_output=True)
        except OSError as exc:
            raise ExtractionError(f"Could not run ffmpeg: {exc}") from exc

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()
            raise ExtractionError(f"ffmpeg exited with {result.returncode}: {stderr}")

        logger.debug("Extracted %.1fs at offset %.1fs to %s", duration_s, offset_s, output_path)
        return Path(output_path)
