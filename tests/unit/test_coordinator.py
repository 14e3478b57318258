"""Unit tests for the host-owned coordinator handle."""

import pytest

from anuvad import Coordinators
from anuvad.engine.fake import FakeTranscriptionEngine, FakeTranslationEngine
from anuvad.worker import LifecycleState


class TestCoordinators:
    @pytest.mark.asyncio
    async def test_proxies_created_lazily_and_reused(self):
        async with Coordinators(FakeTranslationEngine, FakeTranscriptionEngine) as coordinators:
            translation = coordinators.translation
            assert coordinators.translation is translation
            assert coordinators.transcription is coordinators.transcription
            assert translation.runtime is None

    @pytest.mark.asyncio
    async def test_workers_are_independent(self):
        async with Coordinators(FakeTranslationEngine, FakeTranscriptionEngine) as coordinators:
            await coordinators.translation.load_model(b"weights", "{}")
            await coordinators.transcription.ensure_initialized()

            assert coordinators.translation.runtime is not coordinators.transcription.runtime
            assert coordinators.translation.runtime.name == "translator-worker"
            assert coordinators.transcription.runtime.name == "whisper-worker"
            assert coordinators.transcription.state is LifecycleState.READY
            assert await coordinators.translation.translate("hola", "de") == "hola@de"

    @pytest.mark.asyncio
    async def test_close_stops_both_threads(self):
        coordinators = Coordinators(FakeTranslationEngine, FakeTranscriptionEngine)
        await coordinators.translation.ensure_initialized()
        await coordinators.transcription.ensure_initialized()
        runtimes = [coordinators.translation.runtime, coordinators.transcription.runtime]

        await coordinators.aclose()
        assert not any(r.is_alive() for r in runtimes)

    @pytest.mark.asyncio
    async def test_close_without_use(self):
        await Coordinators(FakeTranslationEngine, FakeTranscriptionEngine).aclose()
