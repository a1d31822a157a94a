"""Client for ElevenLabs-style narration TTS; raw PCM is wrapped into WAV."""
import io
import os
import time
import urllib.parse
import wave
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from .http_json import ExternalServiceError, request_bytes, with_backoff

DEFAULT_BASE_URL = "https://api.elevenlabs.io/v1"
PCM_SAMPLE_RATE = 44100


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def pcm_to_wav(pcm: bytes, sample_rate: int = PCM_SAMPLE_RATE, channels: int = 1) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()


class NarrationTTSClient:
    def __init__(self) -> None:
        self.api_key = (os.getenv("TTS_API_KEY") or os.getenv("ELEVENLABS_API_KEY") or "").strip()
        self.voice_id = (os.getenv("TTS_VOICE_ID") or os.getenv("ELEVENLABS_VOICE_ID") or "").strip()
        self.base_url = os.getenv("TTS_BASE_URL", DEFAULT_BASE_URL).rstrip("/")
        self.model_id = os.getenv("TTS_MODEL_ID", "eleven_multilingual_v2")
        self.concurrency = int(os.getenv("TTS_CONCURRENCY", "2"))
        self.batch_delay_sec = _env_float("TTS_BATCH_DELAY_SEC", 0.3)
        self.voice_settings = {
            "stability": _env_float("TTS_STABILITY", 0.6),
            "similarity_boost": _env_float("TTS_SIMILARITY_BOOST", 0.75),
            "style": _env_float("TTS_STYLE_EXAGGERATION", 0.25),
            "use_speaker_boost": os.getenv("TTS_SPEAKER_BOOST", "1").strip().lower() in {"1", "true", "yes", "on"},
        }
        self.speed = _env_float("TTS_SPEED", 0.75)
        self.errors: Dict[int, str] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.voice_id)

    def synthesize(self, text: str) -> bytes:
        voice = urllib.parse.quote(self.voice_id, safe="")
        url = f"{self.base_url}/text-to-speech/{voice}?output_format=pcm_{PCM_SAMPLE_RATE}"
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": self.voice_settings,
            "speed": self.speed,
        }
        pcm = with_backoff(lambda: request_bytes(url, payload, headers={"xi-api-key": self.api_key}))
        if not pcm:
            raise ExternalServiceError("TTS returned empty audio")
        return pcm_to_wav(pcm)

    def synthesize_segments(self, segments: List[Dict[str, Any]]) -> Dict[int, bytes]:
        """WAV bytes per segment index; empty-text and failed segments are left out."""
        self.errors = {}
        if not self.enabled:
            return {}
        indexed = [(i, seg) for i, seg in enumerate(segments) if (seg.get("text") or "").strip()]
        audio: Dict[int, bytes] = {}
        for start in range(0, len(indexed), max(1, self.concurrency)):
            batch = indexed[start : start + max(1, self.concurrency)]
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                futures = {i: pool.submit(self.synthesize, seg["text"]) for i, seg in batch}
            for i, fut in futures.items():
                exc: Optional[BaseException] = fut.exception()
                if exc is None:
                    audio[i] = fut.result()
                else:
                    self.errors[i] = str(exc)
            if start + len(batch) < len(indexed):
                time.sleep(self.batch_delay_sec)
        return audio
