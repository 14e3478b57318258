"""Unit tests for audio conversion and the streaming buffer."""

import numpy as np
import pytest

from anuvad.audio import (
    StreamingBuffer,
    as_float32_samples,
    chunk_samples,
    duration_samples,
    float32_to_pcm16,
    pcm16_to_float32,
    validate_audio_format,
)
from anuvad.constants import (
    CHUNK_SECONDS,
    INFERENCE_INTERVAL_SECONDS,
    INFERENCE_THRESHOLD,
    MAX_SAMPLES,
    SAMPLE_RATE,
)


class TestPCM16Conversion:
    """Tests for PCM16 <-> float32 conversion."""

    def test_pcm16_to_float32_zeros(self):
        """Zero bytes should produce zero array."""
        result = pcm16_to_float32(bytes(100))
        assert result.dtype == np.float32
        assert len(result) == 50
        np.testing.assert_array_equal(result, np.zeros(50, dtype=np.float32))

    def test_pcm16_extremes(self):
        """Max int16 values should map to roughly +/-1.0."""
        data = np.array([32767, -32768], dtype=np.int16).tobytes()
        result = pcm16_to_float32(data)
        np.testing.assert_allclose(result, [1.0, -1.0], atol=0.0001)

    def test_float32_to_pcm16_clipping(self):
        """Values outside [-1, 1] should be clipped."""
        pcm_bytes = float32_to_pcm16(np.array([2.0, -2.0], dtype=np.float32))
        np.testing.assert_allclose(pcm16_to_float32(pcm_bytes), [1.0, -1.0], atol=0.0001)


class TestSampleCopy:
    """Tests for copying samples across the thread boundary."""

    def test_list_becomes_float32(self):
        result = as_float32_samples([0.0, 0.5, -0.5])
        assert result.dtype == np.float32
        np.testing.assert_array_equal(result, [0.0, 0.5, -0.5])

    def test_copy_does_not_alias(self):
        """Mutating the caller's array must not change the copy."""
        original = np.ones(4, dtype=np.float32)
        copied = as_float32_samples(original)
        original[:] = 0.0
        np.testing.assert_array_equal(copied, np.ones(4))

    def test_rejects_multidimensional(self):
        with pytest.raises(ValueError):
            as_float32_samples(np.zeros((2, 2)))

    def test_rejects_non_numeric(self):
        with pytest.raises(TypeError):
            as_float32_samples(["a", "b"])


class TestChunking:
    def test_chunk_with_remainder(self):
        chunks = list(chunk_samples(np.zeros(100, dtype=np.float32), 30))
        assert [len(c) for c in chunks] == [30, 30, 30, 10]

    def test_chunk_empty(self):
        assert list(chunk_samples(np.zeros(0, dtype=np.float32), 10)) == []

    def test_duration_samples(self):
        assert duration_samples(1000) == SAMPLE_RATE
        assert duration_samples(500) == SAMPLE_RATE // 2

    def test_validate_audio_format(self):
        assert validate_audio_format(bytes(100)) is True
        assert validate_audio_format(bytes(101)) is False


class TestConstants:
    """Tests for audio constants consistency."""

    def test_max_samples(self):
        assert MAX_SAMPLES == SAMPLE_RATE * CHUNK_SECONDS

    def test_inference_threshold(self):
        assert INFERENCE_THRESHOLD == SAMPLE_RATE * INFERENCE_INTERVAL_SECONDS


class TestStreamingBuffer:
    """Tests for the rolling transcription window."""

    def test_initial_state(self):
        buffer = StreamingBuffer()
        assert len(buffer) == 0
        assert buffer.duration_seconds == 0.0
        assert not buffer.should_transcribe()

    def test_short_audio_yields_empty_chunk(self):
        """Below the inference threshold nothing is handed out."""
        buffer = StreamingBuffer()
        buffer.push(np.zeros(INFERENCE_THRESHOLD - 1, dtype=np.float32))
        assert len(buffer.get_chunk()) == 0
        assert buffer.last_inference_pos == 0

    def test_threshold_yields_whole_window(self):
        buffer = StreamingBuffer()
        audio = np.arange(INFERENCE_THRESHOLD, dtype=np.float32)
        buffer.push(audio)

        chunk = buffer.get_chunk()
        np.testing.assert_array_equal(chunk, audio)
        assert buffer.last_inference_pos == INFERENCE_THRESHOLD

    def test_window_resent_once_past_threshold(self):
        """Once the buffer holds enough audio, every request gets the window."""
        buffer = StreamingBuffer()
        buffer.push(np.ones(INFERENCE_THRESHOLD, dtype=np.float32))
        assert len(buffer.get_chunk()) == INFERENCE_THRESHOLD

        buffer.push(np.ones(10, dtype=np.float32))
        assert len(buffer.get_chunk()) == INFERENCE_THRESHOLD + 10

    def test_rolling_window_drops_oldest(self):
        """Only the newest chunk_seconds of audio are kept."""
        buffer = StreamingBuffer(chunk_seconds=1, inference_interval_seconds=1, sample_rate=10)
        buffer.push(np.arange(8, dtype=np.float32))
        assert len(buffer.get_chunk()) == 0
        buffer.push(np.arange(8, 15, dtype=np.float32))

        assert len(buffer) == 10
        np.testing.assert_array_equal(buffer.get_chunk(), np.arange(5, 15, dtype=np.float32))

    def test_rolling_window_shifts_inference_position(self):
        buffer = StreamingBuffer(chunk_seconds=1, inference_interval_seconds=1, sample_rate=10)
        buffer.push(np.zeros(10, dtype=np.float32))
        buffer.get_chunk()
        assert buffer.last_inference_pos == 10

        buffer.push(np.zeros(4, dtype=np.float32))
        assert buffer.last_inference_pos == 6
        assert len(buffer) == 10

    def test_clear(self):
        buffer = StreamingBuffer()
        buffer.push(np.ones(INFERENCE_THRESHOLD, dtype=np.float32))
        buffer.get_chunk()
        buffer.clear()
        assert len(buffer) == 0
        assert buffer.last_inference_pos == 0

    def test_duration_seconds(self):
        buffer = StreamingBuffer()
        buffer.push(np.zeros(SAMPLE_RATE * 2, dtype=np.float32))
        assert buffer.duration_seconds == 2.0
