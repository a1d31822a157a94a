from __future__ import annotations

import io
import wave

from orchestrator import tts_client
from orchestrator.http_json import ExternalServiceError


def _enable(monkeypatch) -> None:
    monkeypatch.setenv("TTS_API_KEY", "key")
    monkeypatch.setenv("TTS_VOICE_ID", "narrator voice")
    monkeypatch.setenv("TTS_BATCH_DELAY_SEC", "0")
    monkeypatch.setenv("TTS_CONCURRENCY", "2")


def test_pcm_is_wrapped_as_mono_wav():
    data = tts_client.pcm_to_wav(b"\x00\x00" * 441)
    with wave.open(io.BytesIO(data), "rb") as wav:
        assert wav.getnchannels() == 1
        assert wav.getframerate() == 44100
        assert wav.getnframes() == 441


def test_disabled_without_voice(monkeypatch):
    monkeypatch.delenv("TTS_API_KEY", raising=False)
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    client = tts_client.NarrationTTSClient()
    assert client.enabled is False
    assert client.synthesize_segments([{"text": "hello"}]) == {}


def test_segments_skip_empty_text_and_collect_errors(monkeypatch):
    _enable(monkeypatch)
    requests = []

    def fake_request_bytes(url, payload=None, headers=None, method=None, timeout_sec=None):
        requests.append((url, payload, headers))
        if payload["text"] == "broken":
            raise ExternalServiceError("HTTP 400 invalid text", status=400)
        return b"\x01\x00" * 10

    monkeypatch.setattr(tts_client, "request_bytes", fake_request_bytes)
    client = tts_client.NarrationTTSClient()

    audio = client.synthesize_segments([{"text": "The sea at night."}, {"text": ""}, {"text": "broken"}])

    assert sorted(audio) == [0]
    assert audio[0].startswith(b"RIFF")
    assert "invalid text" in client.errors[2]
    assert len(requests) == 2
    url, payload, headers = requests[0]
    assert url.endswith("/text-to-speech/narrator%20voice?output_format=pcm_44100")
    assert headers == {"xi-api-key": "key"}
    assert payload["speed"] == 0.75
