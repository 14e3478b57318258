"""Controller proxies: the asyncio-facing half of each coordinator.

A proxy lazily starts its worker runtime, sends commands tagged with a
request id and turns the events that come back into resolved or failed
awaitables. Events cross from the worker thread via
``loop.call_soon_threadsafe``, which keeps them in emission order.

There is no cancellation: cancelling an awaiting task only drops interest
in the result. The worker still runs the engine call to completion.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
import threading
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from anuvad.engine.protocol import Transcript
from anuvad.errors import InitializationError, ProtocolError, WorkerClosed, error_for_kind
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
)
from anuvad.worker import LifecycleState, TranscriptionWorker, TranslationWorker, WorkerRuntime

logger = logging.getLogger(__name__)

EventListener = Callable[[Message], None]


@dataclass
class _PendingRequest:
    future: asyncio.Future
    on_partial: Callable[[str], None] | None = None
    allow_empty: bool = False


class ControllerProxy:
    """Async request/response facade over one worker runtime."""

    runtime_class: type[WorkerRuntime]

    def __init__(self, engine_factory: Callable[[], Any], name: str | None = None):
        """Create a proxy; the worker thread is not started until first use.

        Args:
            engine_factory: Builds the engine on the worker thread.
            name: Optional worker thread name.
        """
        self._engine_factory = engine_factory
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._runtime: WorkerRuntime | None = None
        self._init_future: asyncio.Future | None = None
        self._pending: dict[int, _PendingRequest] = {}
        self._ids = itertools.count(1)
        self._listeners: list[EventListener] = []
        self._model_loaded = False
        self._closed = False
        self._start_lock = threading.Lock()
        self._backlog: list[Message] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # Introspection

    @property
    def state(self) -> LifecycleState:
        if self._runtime is None:
            return LifecycleState.UNINITIALIZED
        return self._runtime.state

    @property
    def model_loaded(self) -> bool:
        return self._model_loaded

    @property
    def runtime(self) -> WorkerRuntime | None:
        return self._runtime

    @property
    def pending_requests(self) -> int:
        return len(self._pending)

    def add_listener(self, listener: EventListener) -> None:
        """Observe every protocol event, including unsolicited ones."""
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    # Lifecycle

    def _start(self) -> None:
        if self._closed:
            raise WorkerClosed("Worker has been closed")
        with self._start_lock:
            if self._runtime is not None:
                return
            self._loop = asyncio.get_running_loop()
            self._init_future = self._loop.create_future()
            self._init_future.add_done_callback(self._log_init_outcome)
            runtime = self.runtime_class(self._engine_factory, self._post, name=self._name)
            for command in self._backlog:
                runtime.submit(command)
            self._backlog.clear()
            self._runtime = runtime
            runtime.start()

    def _log_init_outcome(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("%s worker unavailable: %s", self.runtime_class.workload, error)

    async def ensure_initialized(self) -> None:
        """Start the worker if needed and wait for its engine to be ready.

        Idempotent. Concurrent callers all wait on the same initialization.

        Raises:
            InitializationError: If the engine could not be constructed.
            WorkerClosed: If the proxy has been closed.
        """
        self._start()
        await asyncio.shield(self._init_future)

    async def close(self) -> None:
        """Stop the worker thread and fail anything still waiting on it."""
        if self._closed:
            return
        self._closed = True

        for request in self._pending.values():
            if not request.future.done():
                request.future.set_exception(WorkerClosed("Worker closed before responding"))
        self._pending.clear()
        if self._init_future is not None and not self._init_future.done():
            self._init_future.set_exception(WorkerClosed("Worker closed during initialization"))

        with self._start_lock:
            if self._backlog:
                logger.warning(
                    "Dropping %d queued commands: worker never started", len(self._backlog)
                )
            self._backlog.clear()

        runtime = self._runtime
        if runtime is not None:
            runtime.stop()
            await self._loop.run_in_executor(None, runtime.join)

    # Event intake (loop thread)

    def _post(self, event: Message) -> None:
        # Called on the worker thread.
        self._loop.call_soon_threadsafe(self._on_event, event)

    def _on_event(self, event: Message) -> None:
        if not isinstance(event, TurnEnded):
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Listener failed on %s", event.type)

        request_id = getattr(event, "request_id", None)
        if request_id is None:
            self._on_unsolicited(event)
            return

        request = self._pending.get(request_id)
        if request is None:
            logger.debug("Dropping %s for unknown request %s", event.type, request_id)
            return

        if isinstance(event, TurnEnded):
            del self._pending[request_id]
            if not request.future.done():
                if request.allow_empty:
                    request.future.set_result(None)
                else:
                    request.future.set_exception(
                        ProtocolError("Worker finished the request without a result")
                    )
            return

        if request.future.done():
            logger.debug("Dropping late %s for request %s", event.type, request_id)
            return
        self._resolve(request, event)

    def _on_unsolicited(self, event: Message) -> None:
        init = self._init_future
        if isinstance(event, Initialized):
            if init is not None and not init.done():
                init.set_result(None)
        elif isinstance(event, Error):
            if event.kind == InitializationError.kind and init is not None and not init.done():
                init.set_exception(InitializationError(event.message))
            elif not self._listeners:
                logger.warning("%s worker error: %s", self.runtime_class.workload, event.message)

    def _resolve(self, request: _PendingRequest, event: Message) -> None:
        future = request.future
        if isinstance(event, PartialResult):
            if request.on_partial is not None:
                try:
                    request.on_partial(event.token)
                except Exception as e:
                    future.set_exception(e)
        elif isinstance(event, Completed):
            future.set_result(event.text)
        elif isinstance(event, TranscriptionResult):
            future.set_result(Transcript(text=event.text, language=event.language))
        elif isinstance(event, ModelLoaded):
            self._model_loaded = True
            future.set_result(None)
        elif isinstance(event, Error):
            future.set_exception(error_for_kind(event.kind, event.message))

    # Requests

    async def _request(
        self,
        command: Message,
        on_partial: Callable[[str], None] | None = None,
        allow_empty: bool = False,
    ) -> Any:
        await self.ensure_initialized()
        request_id = next(self._ids)
        future = self._loop.create_future()
        self._pending[request_id] = _PendingRequest(future, on_partial, allow_empty)
        self._runtime.submit(dataclasses.replace(command, request_id=request_id))
        return await future

    def _require_model(self) -> None:
        if not self._model_loaded:
            raise ProtocolError("Model not loaded")


class TranslationProxy(ControllerProxy):
    """Controller for the translation worker."""

    runtime_class = TranslationWorker

    async def load_model(
        self,
        model_bytes: bytes,
        tokenizer_json: str,
        config_json: str | None = None,
    ) -> None:
        """Send weights to the worker and wait for ``ModelLoaded``.

        Raises:
            ModelLoadError: If the engine rejected the payload. Any previously
                loaded model stays in use.
        """
        await self._request(LoadModel(bytes(model_bytes), tokenizer_json, config_json))

    async def translate(
        self,
        text: str,
        target_language: str,
        on_token: Callable[[str], None] | None = None,
    ) -> str:
        """Translate ``text``, calling ``on_token`` for each streamed token.

        ``on_token`` runs on the event loop thread, in generation order, and
        every call happens before this coroutine returns.

        Returns:
            The final translation exactly as the engine produced it.

        Raises:
            ProtocolError: If no model has been loaded. Nothing is sent.
            InferenceError: If the engine failed.
        """
        self._require_model()
        return await self._request(RunInference(text, target_language), on_partial=on_token)

    def stream(self, text: str, target_language: str) -> TranslationStream:
        """Start a translation and return it as an async iterator of tokens."""
        self._require_model()
        return TranslationStream(self, text, target_language)


class TranscriptionProxy(ControllerProxy):
    """Controller for the transcription worker."""

    runtime_class = TranscriptionWorker

    async def load_model(
        self,
        model_bytes: bytes,
        tokenizer_json: str,
        config_json: str | None = None,
        mel_bytes: bytes | None = None,
    ) -> None:
        await self._request(
            LoadModel(
                bytes(model_bytes),
                tokenizer_json,
                config_json,
                bytes(mel_bytes) if mel_bytes is not None else None,
            )
        )

    def push_audio(self, samples: Sequence[float] | np.ndarray) -> None:
        """Queue samples for the worker's buffer. Fire-and-forget.

        The samples are copied before this returns. Buffering failures are
        reported to listeners, never to the caller.

        Safe to call from any thread. Before the worker has started, calls
        made off the event loop are held back and submitted, in order, when
        the proxy next starts on its loop.
        """
        command = PushAudio(samples)
        if self._closed:
            logger.warning("Dropping %d samples: worker closed", len(command.samples))
            return
        with self._start_lock:
            runtime = self._runtime
            if runtime is None and not _on_running_loop():
                self._backlog.append(command)
                return
        if runtime is None:
            self._start()
            runtime = self._runtime
        runtime.submit(command)

    async def transcribe(
        self,
        audio: Sequence[float] | np.ndarray | None = None,
    ) -> Transcript | None:
        """Transcribe the buffered audio.

        Args:
            audio: Optional samples to push immediately before transcribing.

        Returns:
            The transcript, or None when the worker had nothing to decode yet.

        Raises:
            ProtocolError: If no model has been loaded.
            InferenceError: If the engine failed.
        """
        self._require_model()
        return await self._request(Transcribe(audio), allow_empty=True)


def _on_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


_DONE = object()


class TranslationStream:
    """One in-flight translation exposed as a finite async iterator of tokens.

    Iterate once to receive tokens as they stream; ``await result()`` for the
    final text. Iteration re-raises the translation's error, if any.
    """

    def __init__(self, proxy: TranslationProxy, text: str, target_language: str):
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._iterated = False
        self._task = asyncio.ensure_future(
            proxy.translate(text, target_language, on_token=self._queue.put_nowait)
        )
        self._task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Future) -> None:
        if not task.cancelled():
            # Marks the error retrieved; iteration and result() still re-raise it.
            task.exception()
        self._queue.put_nowait(_DONE)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._iterated:
            raise RuntimeError("TranslationStream can only be iterated once")
        self._iterated = True
        return self._tokens()

    async def _tokens(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _DONE:
                break
            yield item
        await self._task

    async def result(self) -> str:
        return await self._task

    def cancel(self) -> None:
        """Stop waiting for the translation. The worker still finishes it."""
        self._task.cancel()
