"""Integration tests for the real transformers engines.

These tests need torch, transformers and model files on disk. Point
ANUVAD_TEST_WHISPER_DIR and ANUVAD_TEST_TRANSLATOR_DIR at directories holding
model.safetensors, tokenizer.json and config.json.

Run with: pytest -m gpu tests/integration_gpu
"""

import os
from pathlib import Path

import numpy as np
import pytest

from anuvad.cli import read_model_dir
from anuvad.constants import INFERENCE_THRESHOLD
from anuvad.proxy import TranscriptionProxy, TranslationProxy

pytestmark = pytest.mark.gpu

torch = pytest.importorskip("torch")
pytest.importorskip("transformers")

DEVICE = "cuda" if torch.cuda.is_available() else "cpu"


def model_dir(env_var: str) -> Path:
    value = os.environ.get(env_var)
    if not value:
        pytest.skip(f"{env_var} not set")
    return Path(value)


@pytest.fixture(scope="module")
def whisper_payload():
    return read_model_dir(model_dir("ANUVAD_TEST_WHISPER_DIR"))


@pytest.fixture(scope="module")
def translator_payload():
    payload = read_model_dir(model_dir("ANUVAD_TEST_TRANSLATOR_DIR"))
    payload.pop("mel_bytes", None)
    return payload


class TestWhisperEngine:
    """Integration tests for WhisperEngine."""

    def test_engine_loads(self, whisper_payload):
        from anuvad.engine.whisper import WhisperEngine

        engine = WhisperEngine(device=DEVICE)
        engine.load_model(**whisper_payload)
        assert engine.is_loaded

    def test_short_audio_returns_none(self, whisper_payload):
        from anuvad.engine.whisper import WhisperEngine

        engine = WhisperEngine(device=DEVICE)
        engine.load_model(**whisper_payload)
        engine.push_audio(np.zeros(1600, dtype=np.float32))
        assert engine.transcribe() is None

    def test_noise_produces_transcript(self, whisper_payload):
        from anuvad.engine.whisper import WhisperEngine

        engine = WhisperEngine(device=DEVICE)
        engine.load_model(**whisper_payload)
        engine.push_audio(np.random.randn(INFERENCE_THRESHOLD).astype(np.float32) * 0.1)

        result = engine.transcribe()
        assert result is not None
        assert isinstance(result.text, str)

    @pytest.mark.asyncio
    async def test_through_proxy(self, whisper_payload):
        from anuvad.engine.whisper import WhisperEngine

        async with TranscriptionProxy(lambda: WhisperEngine(device=DEVICE)) as proxy:
            await proxy.load_model(**whisper_payload)
            proxy.push_audio(np.zeros(1600, dtype=np.float32))
            assert await proxy.transcribe() is None


class TestCausalTranslationEngine:
    """Integration tests for CausalTranslationEngine."""

    def test_tokens_join_to_result(self, translator_payload):
        from anuvad.engine.translator import CausalTranslationEngine

        engine = CausalTranslationEngine(device=DEVICE, max_new_tokens=16)
        engine.load_model(**translator_payload)

        tokens = []
        result = engine.translate("Hola, ¿cómo estás?", "en", tokens.append)
        assert "".join(tokens) == result

    @pytest.mark.asyncio
    async def test_streaming_through_proxy(self, translator_payload):
        from anuvad.engine.translator import CausalTranslationEngine

        def factory():
            return CausalTranslationEngine(device=DEVICE, max_new_tokens=16)

        async with TranslationProxy(factory) as proxy:
            await proxy.load_model(**translator_payload)
            tokens = []
            result = await proxy.translate("Bonjour le monde", "en", tokens.append)

        assert "".join(tokens) == result
