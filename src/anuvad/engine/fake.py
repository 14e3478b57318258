"""Fake engines for CPU-based testing.

Return deterministic output based on input characteristics, allowing
reliable unit tests of the worker protocol without model weights.
"""

import hashlib
import threading
import time
from collections.abc import Callable

import numpy as np

from anuvad.audio import StreamingBuffer
from anuvad.constants import SAMPLE_RATE
from anuvad.engine.protocol import Transcript


class _CallTracker:
    """Counts calls and records the highest number of overlapping calls."""

    def __init__(self, latency_ms: float = 0.0):
        self._latency_ms = latency_ms
        self._lock = threading.Lock()
        self._in_flight = 0
        self.call_count = 0
        self.max_in_flight = 0

    def __enter__(self):
        with self._lock:
            self._in_flight += 1
            self.call_count += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        if self._latency_ms > 0:
            time.sleep(self._latency_ms / 1000.0)
        return self

    def __exit__(self, *exc):
        with self._lock:
            self._in_flight -= 1
        return False


class FakeTranslationEngine:
    """Deterministic translator.

    Splits the input into whitespace-separated words and emits one token per
    word, tagged with the target language. ``script`` overrides the token
    sequence for every call.
    """

    def __init__(
        self,
        latency_ms: float = 0.0,
        script: list[str] | None = None,
        fail_on: str | None = None,
    ):
        """Initialize the fake translator.

        Args:
            latency_ms: Simulated per-call latency in milliseconds.
            script: Fixed tokens to emit instead of deriving them from the input.
            fail_on: Raise RuntimeError when asked to translate exactly this text.
        """
        self._tracker = _CallTracker(latency_ms)
        self._script = script
        self._fail_on = fail_on
        self.model_id: str | None = None

    def load_model(
        self,
        model_bytes: bytes,
        tokenizer_json: str,
        config_json: str | None = None,
    ) -> None:
        if not model_bytes:
            raise ValueError("Model error: empty weights")
        if not tokenizer_json.strip().startswith("{"):
            raise ValueError("Tokenizer error: expected JSON object")
        self.model_id = _digest(model_bytes)

    def translate(
        self,
        text: str,
        target_language: str,
        on_token: Callable[[str], None],
    ) -> str:
        if self.model_id is None:
            raise RuntimeError("Model not loaded")
        with self._tracker:
            if text == self._fail_on:
                raise RuntimeError(f"Decode error: cannot translate {text!r}")
            if self._script is not None:
                tokens = list(self._script)
            else:
                tokens = [f"{word}@{target_language}" for word in text.split()]
                tokens = [t if i == 0 else f" {t}" for i, t in enumerate(tokens)]
            for token in tokens:
                on_token(token)
            return "".join(tokens)

    @property
    def call_count(self) -> int:
        return self._tracker.call_count

    @property
    def max_in_flight(self) -> int:
        return self._tracker.max_in_flight


class FakeTranscriptionEngine:
    """Deterministic transcriber backed by a real StreamingBuffer.

    Short buffers produce no transcript. Longer ones produce text derived
    from the audio duration and content hash; pure silence decodes to an
    empty transcript, which callers treat the same as no result.
    """

    def __init__(
        self,
        latency_ms: float = 0.0,
        fail_transcribe: bool = False,
        buffer: StreamingBuffer | None = None,
    ):
        self._tracker = _CallTracker(latency_ms)
        self._fail_transcribe = fail_transcribe
        self._buffer = buffer or StreamingBuffer()
        self.model_id: str | None = None

    def load_model(
        self,
        model_bytes: bytes,
        tokenizer_json: str,
        config_json: str | None = None,
        mel_bytes: bytes | None = None,
    ) -> None:
        if not model_bytes:
            raise ValueError("Model load error: empty weights")
        if mel_bytes is not None and len(mel_bytes) % 4 != 0:
            raise ValueError("Mel filter bytes must hold float32 values")
        self.model_id = _digest(model_bytes)

    def push_audio(self, pcm: np.ndarray) -> None:
        self._buffer.push(pcm)

    def transcribe(self) -> Transcript | None:
        if self.model_id is None:
            raise RuntimeError("Model not loaded")
        with self._tracker:
            if self._fail_transcribe:
                raise RuntimeError("Encoder error: simulated failure")
            audio = self._buffer.get_chunk()
            if len(audio) == 0:
                return None
            if not np.any(audio):
                return Transcript(text="", language=None)
            duration_s = len(audio) / SAMPLE_RATE
            text = f"[fake:{_digest(audio.tobytes())[:8]}|{duration_s:.2f}s|{self.model_id[:6]}]"
            return Transcript(text=text, language="en")

    @property
    def buffered_samples(self) -> int:
        return len(self._buffer)

    @property
    def call_count(self) -> int:
        return self._tracker.call_count

    @property
    def max_in_flight(self) -> int:
        return self._tracker.max_in_flight


def _digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
