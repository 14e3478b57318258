"""Whisper transcription engine using transformers.

Audio accumulates in a rolling StreamingBuffer. Each transcription encodes
the whole window, detects the spoken language from the first decoder step
and greedy-decodes with the standard transcribe prefix.
"""

import json

import numpy as np
import torch

from anuvad.audio import StreamingBuffer
from anuvad.constants import MAX_TRANSCRIBE_TOKENS, SAMPLE_RATE
from anuvad.engine.protocol import Transcript

N_FFT = 400


class WhisperEngine:
    """Buffered Whisper transcriber.

    One instance belongs to one worker thread; it is not thread-safe.
    """

    def __init__(
        self,
        device: str = "cpu",
        dtype: torch.dtype = torch.float32,
        max_new_tokens: int = MAX_TRANSCRIBE_TOKENS,
        buffer: StreamingBuffer | None = None,
    ):
        self._device = device
        self._dtype = dtype
        self._max_new_tokens = max_new_tokens
        self._buffer = buffer or StreamingBuffer()

        self._model = None
        self._extractor = None
        self._tokenizer = None
        self._special: dict[str, int] = {}
        self._language_ids: dict[int, str] = {}

    def load_model(
        self,
        model_bytes: bytes,
        tokenizer_json: str,
        config_json: str | None = None,
        mel_bytes: bytes | None = None,
    ) -> None:
        from safetensors.torch import load as load_safetensors
        from tokenizers import Tokenizer
        from transformers import (
            WhisperConfig,
            WhisperFeatureExtractor,
            WhisperForConditionalGeneration,
        )
        from transformers.models.whisper.tokenization_whisper import LANGUAGES

        if config_json is None:
            raise ValueError("Config error: a Whisper config JSON is required")
        try:
            config = WhisperConfig(**json.loads(config_json))
        except ValueError as e:
            raise ValueError(f"Config parse error: {e}") from e

        tokenizer = Tokenizer.from_str(tokenizer_json)
        special = {
            name: tokenizer.token_to_id(token)
            for name, token in (
                ("sot", "<|startoftranscript|>"),
                ("eot", "<|endoftext|>"),
                ("transcribe", "<|transcribe|>"),
                ("notimestamps", "<|notimestamps|>"),
            )
        }
        missing_special = [name for name, tid in special.items() if tid is None]
        if missing_special:
            raise ValueError(f"Tokenizer error: missing special tokens {missing_special}")
        language_ids = {
            tid: code
            for code in LANGUAGES
            if (tid := tokenizer.token_to_id(f"<|{code}|>")) is not None
        }

        extractor = WhisperFeatureExtractor(
            feature_size=config.num_mel_bins,
            sampling_rate=SAMPLE_RATE,
            n_fft=N_FFT,
        )
        if mel_bytes:
            if len(mel_bytes) % 4 != 0:
                raise ValueError("Mel filter bytes must hold little-endian float32 values")
            filters = np.frombuffer(mel_bytes, dtype="<f4").reshape(config.num_mel_bins, -1)
            if filters.shape[1] != N_FFT // 2 + 1:
                raise ValueError(f"Mel filter shape {filters.shape} does not match n_fft={N_FFT}")
            # Feature extractor expects (n_freqs, n_mels)
            extractor.mel_filters = filters.T.astype(np.float64)

        model = WhisperForConditionalGeneration(config)
        missing, unexpected = model.load_state_dict(
            load_safetensors(bytes(model_bytes)), strict=False
        )
        missing = [k for k in missing if not k.startswith("proj_out")]
        if missing or unexpected:
            raise ValueError(
                f"Model load error: {len(missing)} missing and {len(unexpected)} unexpected tensors"
            )
        model.tie_weights()
        model = model.to(device=self._device, dtype=self._dtype).eval()

        self._model = model
        self._extractor = extractor
        self._tokenizer = tokenizer
        self._special = special
        self._language_ids = language_ids

    def push_audio(self, pcm: np.ndarray) -> None:
        self._buffer.push(pcm)

    def transcribe(self) -> Transcript | None:
        if self._model is None:
            raise RuntimeError("Model not loaded")

        audio = self._buffer.get_chunk()
        if len(audio) == 0:
            return None

        features = self._extractor(
            audio, sampling_rate=SAMPLE_RATE, return_tensors="pt"
        ).input_features.to(device=self._device, dtype=self._dtype)

        with torch.no_grad():
            encoder_hidden = self._model.get_encoder()(features).last_hidden_state
            language = self._detect_language(encoder_hidden)
            text = self._greedy_decode(encoder_hidden, language)

        return Transcript(text=text, language=language)

    def _detect_language(self, encoder_hidden: torch.Tensor) -> str | None:
        if not self._language_ids:
            return None
        decoder_input = torch.tensor([[self._special["sot"]]], device=self._device)
        logits = self._model(
            encoder_outputs=(encoder_hidden,), decoder_input_ids=decoder_input
        ).logits[0, -1]
        ids = list(self._language_ids)
        best = int(logits[ids].argmax())
        return self._language_ids[ids[best]]

    def _greedy_decode(self, encoder_hidden: torch.Tensor, language: str | None) -> str:
        prefix = [self._special["sot"]]
        if language is not None:
            prefix.append(self._tokenizer.token_to_id(f"<|{language}|>"))
        prefix += [self._special["transcribe"], self._special["notimestamps"]]

        next_input = torch.tensor([prefix], device=self._device)
        result: list[int] = []
        past = None
        for _ in range(self._max_new_tokens):
            out = self._model(
                encoder_outputs=(encoder_hidden,),
                decoder_input_ids=next_input,
                past_key_values=past,
                use_cache=True,
            )
            past = out.past_key_values
            next_token = int(out.logits[0, -1].argmax())
            if next_token == self._special["eot"]:
                break
            result.append(next_token)
            next_input = torch.tensor([[next_token]], device=self._device)

        return self._tokenizer.decode(result, skip_special_tokens=True).strip()

    @property
    def device(self) -> str:
        return self._device

    @property
    def is_loaded(self) -> bool:
        return self._model is not None
