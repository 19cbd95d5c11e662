from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any

from faster_whisper import WhisperModel

from chunk_pipeline.errors import TranscriptionError
from common.config import WhisperSettings

logger = logging.getLogger(__name__)

_model: WhisperModel | None = None
_model_lock = threading.Lock()


def get_model(settings: WhisperSettings | None = None) -> WhisperModel:
    global _model
    if _model is None:
        # Chunks of a wave call this from several threads at once.
        with _model_lock:
            if _model is None:
                settings = settings or WhisperSettings()
                logger.info("Loading faster-whisper model: %s", settings.local_model_size)
                _model = WhisperModel(
                    settings.local_model_size,
                    device=settings.device,
                    compute_type=settings.compute_type,
                )
                logger.info("Model loaded")
    return _model


def transcribe_file(
    audio_path: str | Path,
    language: str | None = None,
    prompt: str | None = None,
    settings: WhisperSettings | None = None,
) -> dict[str, Any]:
    """Transcribe a WAV file locally and return a verbose_json-shaped dict."""
    model = get_model(settings)
    segments, info = model.transcribe(
        str(audio_path),
        language=language,
        initial_prompt=prompt,
        word_timestamps=True,
        beam_size=5,
    )
    words: list[dict[str, Any]] = []
    out_segments: list[dict[str, Any]] = []
    texts: list[str] = []
    for seg in segments:
        out_segments.append({
            "id": seg.id,
            "start": round(seg.start, 3),
            "end": round(seg.end, 3),
            "text": seg.text.strip(),
            "avg_logprob": seg.avg_logprob,
            "no_speech_prob": seg.no_speech_prob,
        })
        texts.append(seg.text.strip())
        for w in seg.words or []:
            words.append({
                "word": w.word.strip(),
                "start": round(w.start, 3),
                "end": round(w.end, 3),
                "probability": w.probability,
            })
    return {
        "text": " ".join(texts),
        "language": info.language,
        "duration": info.duration,
        "words": words,
        "segments": out_segments,
    }


class FasterWhisperBackend:
    """Local faster-whisper transcription, run off the event loop."""

    def __init__(self, settings: WhisperSettings | None = None) -> None:
        self.settings = settings or WhisperSettings()

    async def transcribe(
        self,
        audio_path: str | Path,
        language: str | None = None,
        prompt: str | None = None,
    ) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(
                transcribe_file, audio_path, language, prompt, self.settings
            )
        except Exception as exc:
            raise TranscriptionError(f"Local transcription failed: {exc}") from exc
