"""Worker runtimes: one thread, one engine, one FIFO command queue.

A runtime constructs its engine on its own thread, then drains commands
strictly in arrival order. Each command runs to completion before the next
is dequeued, so the engine is never re-entered and needs no lock. Results
leave the thread only as events handed to ``emit``.
"""

from __future__ import annotations

import abc
import contextlib
import enum
import logging
import queue
import threading
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from anuvad.engine.protocol import TranscriptionEngine, TranslationEngine
from anuvad.errors import (
    InferenceError,
    InitializationError,
    ModelLoadError,
    ProtocolError,
    WorkerError,
)
from anuvad.protocol import (
    Completed,
    Error,
    Initialized,
    LoadModel,
    Message,
    ModelLoaded,
    PartialResult,
    PushAudio,
    RunInference,
    Transcribe,
    TranscriptionResult,
    TurnEnded,
    UnknownCommand,
    parse_command,
)

logger = logging.getLogger(__name__)

_STOP = object()


class LifecycleState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    MODEL_LOADED = "model_loaded"
    BUSY = "busy"
    FAILED = "failed"


class WorkerRuntime(threading.Thread, abc.ABC):
    """Base runtime. Subclasses load the engine and register a handler per command type."""

    workload = "worker"

    def __init__(
        self,
        engine_factory: Callable[[], Any],
        emit: Callable[[Message], None],
        name: str | None = None,
    ):
        """Create the runtime thread (not yet started).

        Args:
            engine_factory: Builds the engine; called once, on the worker thread.
            emit: Receives every outgoing event. Called from the worker thread.
            name: Thread name, defaults to the workload name.
        """
        super().__init__(name=name or f"{self.workload}-worker", daemon=True)
        self._engine_factory = engine_factory
        self._emit_event = emit
        self._commands: queue.Queue[Any] = queue.Queue()
        self._engine: Any = None
        self._state = LifecycleState.UNINITIALIZED
        self._init_error: str | None = None
        self._handlers: dict[type, Callable[[Any], None]] = {LoadModel: self._load_model}

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def pending_commands(self) -> int:
        return self._commands.qsize()

    def submit(self, command: Message | Mapping[str, Any]) -> None:
        """Enqueue a command. Safe to call from any thread."""
        self._commands.put(command)

    def stop(self) -> None:
        """Ask the thread to exit after the commands already queued."""
        self._commands.put(_STOP)

    def run(self) -> None:
        self._initialize()
        while True:
            command = self._commands.get()
            if command is _STOP:
                break
            self._dispatch(command)
        self._engine = None
        logger.info("%s runtime stopped", self.workload)

    # Lifecycle

    def _set_state(self, state: LifecycleState) -> None:
        logger.debug("%s runtime: %s -> %s", self.workload, self._state.value, state.value)
        self._state = state

    def _initialize(self) -> None:
        self._set_state(LifecycleState.INITIALIZING)
        try:
            self._engine = self._engine_factory()
        except Exception as e:
            logger.exception("%s engine construction failed", self.workload)
            self._init_error = f"Init failed: {e}"
            self._set_state(LifecycleState.FAILED)
            self._emit(Error(message=self._init_error, kind=InitializationError.kind))
            return
        self._set_state(LifecycleState.READY)
        logger.info("%s runtime initialized", self.workload)
        self._emit(Initialized())

    def _emit(self, event: Message) -> None:
        try:
            self._emit_event(event)
        except RuntimeError:
            # Controller loop already closed.
            logger.warning("%s runtime dropped %s: controller unavailable", self.workload, event.type)

    # Dispatch

    def _dispatch(self, command: Any) -> None:
        if isinstance(command, Mapping):
            request_id = command.get("request_id")
        else:
            request_id = getattr(command, "request_id", None)
        try:
            if isinstance(command, Mapping):
                command = parse_command(command)
            handler = self._handlers.get(type(command))
            if handler is None:
                tag = command.tag if isinstance(command, UnknownCommand) else type(command).__name__
                logger.warning("%s runtime ignoring unknown command type: %r", self.workload, tag)
                return

            if self._state is LifecycleState.FAILED:
                raise InitializationError(self._init_error or "Worker not initialized")
            handler(command)
        except WorkerError as e:
            self._emit(Error(message=str(e), kind=e.kind, request_id=request_id))
        except Exception as e:
            logger.exception("%s runtime: unhandled error processing command", self.workload)
            self._emit(Error(message=str(e), kind=InferenceError.kind, request_id=request_id))

        if request_id is not None:
            self._emit(TurnEnded(request_id=request_id))

    def _require_engine(self) -> None:
        if self._state not in (LifecycleState.READY, LifecycleState.MODEL_LOADED):
            raise ProtocolError("Worker not initialized")

    @contextlib.contextmanager
    def _busy(self) -> Iterator[None]:
        """Hold the BUSY state for one inference call."""
        if self._state is not LifecycleState.MODEL_LOADED:
            raise ProtocolError("Model not loaded")
        self._set_state(LifecycleState.BUSY)
        try:
            yield
        finally:
            self._set_state(LifecycleState.MODEL_LOADED)

    def _load_model(self, command: LoadModel) -> None:
        self._require_engine()
        try:
            self._call_load(command)
        except Exception as e:
            logger.error("%s model load failed: %s", self.workload, e)
            raise ModelLoadError(str(e)) from e
        self._set_state(LifecycleState.MODEL_LOADED)
        logger.info("%s model loaded (%d bytes)", self.workload, len(command.model_bytes))
        self._emit(ModelLoaded(request_id=command.request_id))

    @abc.abstractmethod
    def _call_load(self, command: LoadModel) -> None:
        """Pass a LoadModel payload to the engine."""


class TranslationWorker(WorkerRuntime):
    """Owns a TranslationEngine and streams tokens back as PartialResult events."""

    workload = "translator"

    def __init__(self, engine_factory: Callable[[], TranslationEngine], emit, name=None):
        super().__init__(engine_factory, emit, name)
        self._handlers[RunInference] = self._translate

    def _call_load(self, command: LoadModel) -> None:
        self._engine.load_model(command.model_bytes, command.tokenizer_json, command.config_json)

    def _translate(self, command: RunInference) -> None:
        request_id = command.request_id

        def on_token(token: str) -> None:
            self._emit(PartialResult(token=token, request_id=request_id))

        with self._busy():
            try:
                text = self._engine.translate(command.text, command.target_language, on_token)
            except Exception as e:
                logger.exception("translation failed")
                raise InferenceError(str(e)) from e
        self._emit(Completed(text=text, request_id=request_id))


class TranscriptionWorker(WorkerRuntime):
    """Owns a TranscriptionEngine and its audio buffer.

    PushAudio only accumulates. Transcribe emits a TranscriptionResult when
    the engine decodes something and nothing at all when it does not.
    """

    workload = "whisper"

    def __init__(self, engine_factory: Callable[[], TranscriptionEngine], emit, name=None):
        super().__init__(engine_factory, emit, name)
        self._handlers[PushAudio] = self._push_audio
        self._handlers[Transcribe] = self._transcribe

    def _call_load(self, command: LoadModel) -> None:
        self._engine.load_model(
            command.model_bytes,
            command.tokenizer_json,
            command.config_json,
            command.mel_bytes,
        )

    def _push_audio(self, command: PushAudio) -> None:
        self._require_engine()
        self._engine.push_audio(command.samples)

    def _transcribe(self, command: Transcribe) -> None:
        with self._busy():
            try:
                if command.audio is not None:
                    self._engine.push_audio(command.audio)
                result = self._engine.transcribe()
            except Exception as e:
                logger.exception("transcription failed")
                raise InferenceError(str(e)) from e

        if result is None or not result.text.strip():
            return
        self._emit(
            TranscriptionResult(
                text=result.text,
                language=result.language,
                request_id=command.request_id,
            )
        )
