import asyncio
import subprocess
import time
from types import SimpleNamespace

import httpx
import pytest

from chunk_pipeline.errors import ExtractionError, TranscriptionError
from chunk_pipeline.extractor import FfmpegTranscoder, build_extract_cmd
from chunk_pipeline.whisper_client import OpenAIWhisperBackend, normalize_transcript
from common.config import WhisperSettings

VERBOSE_JSON = {
    "task": "transcribe",
    "language": "english",
    "duration": 29.5,
    "text": "Hello there",
    "words": [
        {"word": "Hello", "start": 0.1, "end": 0.5},
        {"word": "there", "start": 0.6, "end": 1.0},
    ],
    "segments": [{"id": 0, "start": 0.0, "end": 1.2, "text": "Hello there"}],
}


@pytest.fixture
def chunk_wav(tmp_path):
    path = tmp_path / "chunk_0_abc.wav"
    path.write_bytes(b"RIFF....WAVE")
    return path


def make_backend(handler):
    return OpenAIWhisperBackend(
        WhisperSettings(api_key="sk-test", base_url="https://whisper.test/v1"),
        transport=httpx.MockTransport(handler),
    )


class TestFfmpegTranscoder:
    def test_command_extracts_mono_16k_wav(self):
        cmd = build_extract_cmd("in.mp3", "out.wav", 60.0, 30.0)
        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-ss") + 1] == "60.000"
        assert cmd[cmd.index("-t") + 1] == "30.000"
        assert cmd[cmd.index("-i") + 1] == "in.mp3"
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert cmd[cmd.index("-ar") + 1] == "16000"
        assert cmd[cmd.index("-f") + 1] == "wav"
        assert cmd[-1] == "out.wav"

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_extraction_error(self, monkeypatch, tmp_path):
        def fake_run(cmd, capture_output):
            return subprocess.CompletedProcess(cmd, 1, b"", b"Invalid data found")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(ExtractionError, match="Invalid data found"):
            await FfmpegTranscoder().extract("in.mp3", tmp_path / "out.wav", 0.0, 30.0)

    @pytest.mark.asyncio
    async def test_missing_ffmpeg_raises_extraction_error(self, monkeypatch, tmp_path):
        def fake_run(cmd, capture_output):
            raise FileNotFoundError("ffmpeg")

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(ExtractionError, match="Could not run ffmpeg"):
            await FfmpegTranscoder().extract("in.mp3", tmp_path / "out.wav", 0.0, 30.0)

    @pytest.mark.asyncio
    async def test_success_returns_output_path(self, monkeypatch, tmp_path):
        seen = {}

        def fake_run(cmd, capture_output):
            seen["cmd"] = cmd
            return subprocess.CompletedProcess(cmd, 0, b"", b"")

        monkeypatch.setattr(subprocess, "run", fake_run)
        out = await FfmpegTranscoder(sample_rate=8000).extract("in.mp3", tmp_path / "out.wav", 30.0, 30.0)
        assert out == tmp_path / "out.wav"
        assert "8000" in seen["cmd"]


class TestNormalizeTranscript:
    def test_fills_missing_lists(self):
        result = normalize_transcript({"text": "hi"})
        assert result == {"text": "hi", "language": "", "duration": 0.0, "words": [], "segments": []}

    def test_rejects_non_object(self):
        with pytest.raises(TranscriptionError):
            normalize_transcript(["not", "an", "object"])

    def test_rejects_word_without_timestamps(self):
        with pytest.raises(TranscriptionError):
            normalize_transcript({"text": "hi", "words": [{"word": "hi"}]})


class TestOpenAIWhisperBackend:
    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="API key required"):
            OpenAIWhisperBackend(WhisperSettings(api_key=""))

    @pytest.mark.asyncio
    async def test_requests_word_and_segment_timestamps(self, chunk_wav):
        captured = {}

        def handler(request: httpx.Request):
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["authorization"]
            captured["body"] = request.read()
            return httpx.Response(200, json=VERBOSE_JSON)

        result = await make_backend(handler).transcribe(chunk_wav, language="en")

        assert captured["url"] == "https://whisper.test/v1/audio/transcriptions"
        assert captured["auth"] == "Bearer sk-test"
        body = captured["body"]
        assert b"verbose_json" in body
        assert b"timestamp_granularities[]" in body
        assert b"\r\n\r\nword\r\n" in body
        assert b"\r\n\r\nsegment\r\n" in body
        assert b'filename="chunk_0_abc.wav"' in body
        assert result["words"] == VERBOSE_JSON["words"]
        assert result["duration"] == 29.5
        assert result["language"] == "english"

    @pytest.mark.asyncio
    async def test_http_error_becomes_transcription_error(self, chunk_wav):
        backend = make_backend(lambda request: httpx.Response(429, json={"error": {"message": "rate limited"}}))
        with pytest.raises(TranscriptionError, match="429"):
            await backend.transcribe(chunk_wav)

    @pytest.mark.asyncio
    async def test_network_error_becomes_transcription_error(self, chunk_wav):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(TranscriptionError, match="request failed"):
            await make_backend(handler).transcribe(chunk_wav)

    @pytest.mark.asyncio
    async def test_invalid_json_becomes_transcription_error(self, chunk_wav):
        backend = make_backend(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(TranscriptionError, match="invalid JSON"):
            await backend.transcribe(chunk_wav)

    @pytest.mark.asyncio
    async def test_missing_audio_file(self, tmp_path):
        backend = make_backend(lambda request: httpx.Response(200, json=VERBOSE_JSON))
        with pytest.raises(TranscriptionError, match="Cannot read"):
            await backend.transcribe(tmp_path / "gone.wav")


class TestFasterWhisperBackend:
    @pytest.mark.asyncio
    async def test_maps_segments_and_words(self, monkeypatch, chunk_wav):
        pytest.importorskip("faster_whisper")
        from chunk_pipeline import transcriber

        word = SimpleNamespace(word=" hi", start=0.2, end=0.6, probability=0.9)
        segment = SimpleNamespace(
            id=1, start=0.0, end=1.0, text=" hi", avg_logprob=-0.2, no_speech_prob=0.01, words=[word]
        )
        info = SimpleNamespace(language="en", duration=30.0)

        class FakeModel:
            def transcribe(self, path, **kwargs):
                assert kwargs["word_timestamps"] is True
                return iter([segment]), info

        monkeypatch.setattr(transcriber, "get_model", lambda settings=None: FakeModel())
        result = await transcriber.FasterWhisperBackend().transcribe(chunk_wav)

        assert result["text"] == "hi"
        assert result["words"] == [{"word": "hi", "start": 0.2, "end": 0.6, "probability": 0.9}]
        assert result["segments"][0]["start"] == 0.0
        assert result["duration"] == 30.0

    @pytest.mark.asyncio
    async def test_model_errors_become_transcription_error(self, monkeypatch, chunk_wav):
        pytest.importorskip("faster_whisper")
        from chunk_pipeline import transcriber

        def broken(settings=None):
            raise RuntimeError("CUDA unavailable")

        monkeypatch.setattr(transcriber, "get_model", broken)
        with pytest.raises(TranscriptionError, match="CUDA unavailable"):
            await transcriber.FasterWhisperBackend().transcribe(chunk_wav)

    @pytest.mark.asyncio
    async def test_concurrent_chunks_load_model_once(self, monkeypatch, chunk_wav):
        pytest.importorskip("faster_whisper")
        from chunk_pipeline import transcriber

        constructed = []
        info = SimpleNamespace(language="en", duration=30.0)

        class SlowModel:
            def __init__(self, *args, **kwargs):
                time.sleep(0.2)
                constructed.append(self)

            def transcribe(self, path, **kwargs):
                return iter([]), info

        monkeypatch.setattr(transcriber, "WhisperModel", SlowModel)
        monkeypatch.setattr(transcriber, "_model", None)
        backend = transcriber.FasterWhisperBackend()

        await asyncio.gather(*(backend.transcribe(chunk_wav) for _ in range(5)))

        assert len(constructed) == 1
