from __future__ import annotations

import re
from pathlib import Path

import pytest

from chunk_pipeline.errors import ExtractionError, TranscriptionError
from common.config import PipelineSettings

_CHUNK_NAME = re.compile(r"chunk_(\d+)_")


def chunk_index_of(path) -> int:
    return int(_CHUNK_NAME.search(Path(path).name).group(1))


class FakeTranscoder:
    """Writes a placeholder WAV; fails ``failures[index]`` times per chunk."""

    def __init__(self, failures: dict[int, int] | None = None):
        self.failures = dict(failures or {})
        self.calls: list[tuple[str, float, float]] = []
        self.outputs: list[Path] = []

    async def extract(self, source_path, output_path, offset_s, duration_s):
        self.calls.append((str(source_path), offset_s, duration_s))
        index = chunk_index_of(output_path)
        Path(output_path).write_bytes(b"RIFF")
        self.outputs.append(Path(output_path))
        if self.failures.get(index, 0) > 0:
            self.failures[index] -= 1
            raise ExtractionError(f"ffmpeg failed for chunk {index}")
        return Path(output_path)


class FakeBackend:
    """Returns one word per chunk at chunk-local ``[1.0, 2.0]``."""

    def __init__(self, failures: dict[int, int] | None = None, payloads: dict[int, dict] | None = None):
        self.failures = dict(failures or {})
        self.payloads = payloads or {}
        self.calls: list[tuple[Path, str | None, str | None]] = []

    async def transcribe(self, audio_path, language=None, prompt=None):
        self.calls.append((Path(audio_path), language, prompt))
        assert Path(audio_path).exists()
        index = chunk_index_of(audio_path)
        if self.failures.get(index, 0) > 0:
            self.failures[index] -= 1
            raise TranscriptionError(f"backend failed for chunk {index}")
        if index in self.payloads:
            return self.payloads[index]
        return {
            "text": f"word{index}",
            "language": "en",
            "duration": 30.0,
            "words": [{"word": f"word{index}", "start": 1.0, "end": 2.0}],
            "segments": [{"id": 0, "start": 0.5, "end": 2.5, "text": f"word{index}"}],
        }


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def settings(tmp_path):
    return PipelineSettings(
        chunk_size_bytes=100,
        chunk_duration_s=30.0,
        max_concurrent=5,
        inter_batch_delay_s=2.0,
        max_retries=3,
        temp_dir=str(tmp_path / "temp"),
    )


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def audio_file(tmp_path):
    def _make(size: int) -> Path:
        path = tmp_path / "input.mp3"
        path.write_bytes(b"\x00" * size)
        return path
    return _make
