"""Background-thread coordinators for streaming translation and transcription."""

from anuvad.constants import MAX_SAMPLES, SAMPLE_RATE
from anuvad.coordinator import Coordinators
from anuvad.engine.protocol import Transcript
from anuvad.errors import (
    InferenceError,
    InitializationError,
    ModelLoadError,
    ProtocolError,
    WorkerClosed,
    WorkerError,
)
from anuvad.proxy import TranscriptionProxy, TranslationProxy, TranslationStream
from anuvad.worker import LifecycleState

__all__ = [
    "SAMPLE_RATE",
    "MAX_SAMPLES",
    "Coordinators",
    "Transcript",
    "TranslationProxy",
    "TranscriptionProxy",
    "TranslationStream",
    "LifecycleState",
    "WorkerError",
    "InitializationError",
    "ModelLoadError",
    "InferenceError",
    "ProtocolError",
    "WorkerClosed",
]
