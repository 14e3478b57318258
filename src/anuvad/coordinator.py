"""Host-owned handle for the translation and transcription coordinators."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from anuvad.engine.protocol import TranscriptionEngine, TranslationEngine
from anuvad.proxy import TranscriptionProxy, TranslationProxy


class Coordinators:
    """Creates each proxy on first access and tears both down on close.

    One instance replaces any process-wide worker singleton: whoever owns it
    owns the worker threads.
    """

    def __init__(
        self,
        translation_engine: Callable[[], TranslationEngine],
        transcription_engine: Callable[[], TranscriptionEngine],
    ):
        self._translation_engine = translation_engine
        self._transcription_engine = transcription_engine
        self._translation: TranslationProxy | None = None
        self._transcription: TranscriptionProxy | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    @property
    def translation(self) -> TranslationProxy:
        if self._translation is None:
            self._translation = TranslationProxy(self._translation_engine, name="translator-worker")
        return self._translation

    @property
    def transcription(self) -> TranscriptionProxy:
        if self._transcription is None:
            self._transcription = TranscriptionProxy(self._transcription_engine, name="whisper-worker")
        return self._transcription

    async def aclose(self) -> None:
        proxies = [p for p in (self._translation, self._transcription) if p is not None]
        await asyncio.gather(*(p.close() for p in proxies))
