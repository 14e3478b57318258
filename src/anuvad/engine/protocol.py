"""Engine protocols defining the interface for inference backends.

This is the "sealed boundary" that isolates model-dependent code from
the worker runtimes, proxies and tests. An engine instance is owned by
exactly one worker thread and is never called concurrently.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import numpy as np


@dataclass(frozen=True)
class Transcript:
    """Text decoded from a window of audio."""

    text: str
    language: str | None = None


class TranslationEngine(Protocol):
    """Protocol for streaming text translation engines."""

    def load_model(
        self,
        model_bytes: bytes,
        tokenizer_json: str,
        config_json: str | None = None,
    ) -> None:
        """Load (or replace) the model weights and tokenizer.

        Raises on malformed payloads. A failed load must leave any
        previously loaded model in place.
        """
        ...

    def translate(
        self,
        text: str,
        target_language: str,
        on_token: Callable[[str], None],
    ) -> str:
        """Translate ``text``, calling ``on_token`` for each decoded token.

        Returns:
            The full translation. Tokens are delivered in generation order
            before this method returns.
        """
        ...


class TranscriptionEngine(Protocol):
    """Protocol for buffered speech-to-text engines."""

    def load_model(
        self,
        model_bytes: bytes,
        tokenizer_json: str,
        config_json: str | None = None,
        mel_bytes: bytes | None = None,
    ) -> None:
        """Load (or replace) the model weights, tokenizer and mel filters."""
        ...

    def push_audio(self, pcm: np.ndarray) -> None:
        """Append 16kHz mono float32 samples to the internal buffer."""
        ...

    def transcribe(self) -> Transcript | None:
        """Decode the buffered audio.

        Returns:
            A transcript, or None when the buffer does not yet hold enough
            audio to decode.
        """
        ...
