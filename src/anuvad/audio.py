"""Audio conversion and buffering utilities.

All functions work with 16kHz mono audio as PCM16 bytes or float32 numpy arrays.
"""

from collections.abc import Iterator, Sequence

import numpy as np

from anuvad.constants import (
    BYTES_PER_SAMPLE,
    CHUNK_SECONDS,
    INFERENCE_INTERVAL_SECONDS,
    SAMPLE_RATE,
)


def pcm16_to_float32(data: bytes) -> np.ndarray:
    """Convert PCM16 bytes to float32 array normalized to [-1, 1].

    Args:
        data: Raw PCM16 little-endian audio bytes.

    Returns:
        Float32 numpy array with values in [-1, 1].
    """
    audio = np.frombuffer(data, dtype=np.int16).astype(np.float32)
    audio /= 32768.0
    return audio


def float32_to_pcm16(audio: np.ndarray) -> bytes:
    """Convert float32 array [-1, 1] to PCM16 bytes."""
    clipped = np.clip(audio, -1.0, 1.0)
    pcm = (clipped * 32767.0).astype(np.int16)
    return pcm.tobytes()


def as_float32_samples(samples: Sequence[float] | np.ndarray) -> np.ndarray:
    """Copy arbitrary samples into a fresh, contiguous float32 array.

    The returned array never aliases the caller's memory, so it can be handed
    to another thread without sharing state.

    Raises:
        ValueError: If the samples are not one-dimensional.
        TypeError: If the samples are not numeric.
    """
    try:
        audio = np.array(samples, dtype=np.float32, copy=True)
    except (TypeError, ValueError) as e:
        raise TypeError(f"Audio samples must be numeric: {e}") from e
    if audio.ndim != 1:
        raise ValueError(f"Audio samples must be 1-D, got shape {audio.shape}")
    return audio


def chunk_samples(audio: np.ndarray, chunk_size: int) -> Iterator[np.ndarray]:
    """Split audio into fixed-size chunks. The last chunk may be smaller."""
    for i in range(0, len(audio), chunk_size):
        yield audio[i : i + chunk_size]


def validate_audio_format(data: bytes) -> bool:
    """Check if audio data has valid PCM16 format (even byte length)."""
    return len(data) % BYTES_PER_SAMPLE == 0


def duration_samples(duration_ms: int) -> int:
    """Calculate number of samples for a given duration in milliseconds."""
    return SAMPLE_RATE * duration_ms // 1000


class StreamingBuffer:
    """Rolling window of recent audio for incremental transcription.

    Samples are appended as they arrive; anything older than
    ``chunk_seconds`` is dropped from the front. A chunk is handed out for
    inference only once enough audio has accumulated.
    """

    def __init__(
        self,
        chunk_seconds: int = CHUNK_SECONDS,
        inference_interval_seconds: int = INFERENCE_INTERVAL_SECONDS,
        sample_rate: int = SAMPLE_RATE,
    ):
        self.sample_rate = sample_rate
        self.max_samples = sample_rate * chunk_seconds
        self.inference_threshold = sample_rate * inference_interval_seconds
        self._buffer = np.zeros(0, dtype=np.float32)
        self._last_inference_pos = 0

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def last_inference_pos(self) -> int:
        return self._last_inference_pos

    @property
    def duration_seconds(self) -> float:
        return len(self._buffer) / self.sample_rate

    def push(self, pcm: np.ndarray) -> None:
        """Append samples, keeping at most ``max_samples`` of the newest audio."""
        self._buffer = np.concatenate([self._buffer, pcm.astype(np.float32, copy=False)])

        if len(self._buffer) > self.max_samples:
            excess = len(self._buffer) - self.max_samples
            self._buffer = self._buffer[excess:]
            self._last_inference_pos = max(0, self._last_inference_pos - excess)

    def should_transcribe(self) -> bool:
        return len(self._buffer) - self._last_inference_pos >= self.inference_threshold

    def get_chunk(self) -> np.ndarray:
        """Return the whole window for inference, or an empty array if too little audio."""
        if not self.should_transcribe() and len(self._buffer) < self.inference_threshold:
            return np.zeros(0, dtype=np.float32)
        self._last_inference_pos = len(self._buffer)
        return self._buffer.copy()

    def clear(self) -> None:
        self._buffer = np.zeros(0, dtype=np.float32)
        self._last_inference_pos = 0
