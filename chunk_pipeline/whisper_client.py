from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx

from chunk_pipeline.errors import TranscriptionError
from common.config import WhisperSettings

logger = logging.getLogger(__name__)


def normalize_transcript(payload: Any) -> dict[str, Any]:
    """Validate a verbose_json response and fill in optional fields."""
    if not isinstance(payload, dict):
        raise TranscriptionError(f"Expected a JSON object, got {type(payload).__name__}")
    if "text" not in payload:
        raise TranscriptionError("Response has no 'text' field")

    words = payload.get("words") or []
    segments = payload.get("segments") or []
    for item in (*words, *segments):
        if not isinstance(item, dict) or "start" not in item or "end" not in item:
            raise TranscriptionError(f"Timestamped item without start/end: {item!r}")

    return {
        "text": payload["text"],
        "language": payload.get("language") or "",
        "duration": float(payload.get("duration") or 0.0),
        "words": list(words),
        "segments": list(segments),
    }


class OpenAIWhisperBackend:
    """Whisper transcription over the OpenAI-compatible HTTP API."""

    def __init__(
        self,
        settings: WhisperSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or WhisperSettings()
        if not self.settings.api_key:
            raise ValueError(
                "API key required. Set WHISPER_API_KEY or pass WhisperSettings(api_key=...)."
            )
        self.url = f"{self.settings.base_url.rstrip('/')}/audio/transcriptions"
        self._transport = transport

    async def transcribe(
        self,
        audio_path: str | Path,
        language: str | None = None,
        prompt: str | None = None,
    ) -> dict[str, Any]:
        audio_path = Path(audio_path)
        data: dict[str, Any] = {
            "model": self.settings.model,
            "response_format": "verbose_json",
            "timestamp_granularities[]": ["word", "segment"],
        }
        if language:
            data["language"] = language
        if prompt:
            data["prompt"] = prompt

        try:
            files = {"file": (audio_path.name, audio_path.read_bytes(), "audio/wav")}
        except OSError as exc:
            raise TranscriptionError(f"Cannot read chunk audio {audio_path}: {exc}") from exc

        headers = {"Authorization": f"Bearer {self.settings.api_key}"}
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout_s, transport=self._transport
            ) as client:
                resp = await client.post(self.url, headers=headers, data=data, files=files)
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPStatusError as exc:
            raise TranscriptionError(
                f"Whisper API returned {exc.response.status_code}: {exc.response.text[:500]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"Whisper API request failed: {exc}") from exc
        except ValueError as exc:
            raise TranscriptionError(f"Whisper API returned invalid JSON: {exc}") from exc

        return normalize_transcript(payload)
