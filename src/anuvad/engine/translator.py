"""Causal-LM translation engine using transformers.

Weights arrive as safetensors bytes, the architecture as a transformers
config JSON, the tokenizer as a tokenizers JSON document. Decoding is
greedy, one token at a time, so each token can be streamed as it is chosen.
"""

import json

import torch

from anuvad.constants import MAX_NEW_TOKENS
from anuvad.prompt import build_translation_prompt

EOS_CANDIDATES = ("<|endoftext|>", "</s>", "<|end|>")


class CausalTranslationEngine:
    """Translator built on any transformers causal LM.

    One instance belongs to one worker thread; it is not thread-safe.
    """

    def __init__(
        self,
        device: str = "cpu",
        dtype: torch.dtype = torch.float32,
        max_new_tokens: int = MAX_NEW_TOKENS,
    ):
        """Initialize the engine without any model.

        Args:
            device: Device to run inference on ("cuda" or "cpu").
            dtype: Model dtype.
            max_new_tokens: Upper bound on generated tokens per translation.
        """
        self._device = device
        self._dtype = dtype
        self._max_new_tokens = max_new_tokens

        self._model = None
        self._tokenizer = None
        self._stop_ids: set[int] = set()
        self._end_of_turn = "<|end|>"

    def load_model(
        self,
        model_bytes: bytes,
        tokenizer_json: str,
        config_json: str | None = None,
    ) -> None:
        """Build the model from bytes and swap it in only once fully loaded."""
        from safetensors.torch import load as load_safetensors
        from tokenizers import Tokenizer
        from transformers import AutoConfig, AutoModelForCausalLM

        if config_json is None:
            raise ValueError("Config error: a model config JSON is required")

        try:
            config = AutoConfig.for_model(**json.loads(config_json))
        except (KeyError, ValueError) as e:
            raise ValueError(f"Config parse error: {e}") from e
        tokenizer = Tokenizer.from_str(tokenizer_json)

        model = AutoModelForCausalLM.from_config(config, torch_dtype=self._dtype)
        state_dict = load_safetensors(bytes(model_bytes))
        missing, unexpected = model.load_state_dict(state_dict, strict=False)
        missing = [k for k in missing if not k.endswith("lm_head.weight")]
        if missing or unexpected:
            raise ValueError(
                f"Model load error: {len(missing)} missing and {len(unexpected)} unexpected tensors"
            )
        model.tie_weights()
        model = model.to(self._device).eval()

        stop_ids = {tid for tid in map(tokenizer.token_to_id, EOS_CANDIDATES) if tid is not None}
        end_of_turn = "<|end|>" if tokenizer.token_to_id("<|end|>") is not None else "</s>"

        self._model = model
        self._tokenizer = tokenizer
        self._stop_ids = stop_ids or {2}
        self._end_of_turn = end_of_turn

    def translate(self, text: str, target_language: str, on_token) -> str:
        """Greedy-decode a translation, streaming each new text fragment."""
        if self._model is None:
            raise RuntimeError("Model not loaded")

        prompt = build_translation_prompt(text, target_language, self._end_of_turn)
        prompt_ids = self._tokenizer.encode(prompt).ids
        next_input = torch.tensor([prompt_ids], device=self._device)

        generated: list[int] = []
        pieces: list[str] = []
        decoded = ""
        past = None

        with torch.no_grad():
            for _ in range(self._max_new_tokens):
                out = self._model(input_ids=next_input, past_key_values=past, use_cache=True)
                past = out.past_key_values
                next_token = int(out.logits[0, -1].argmax())
                if next_token in self._stop_ids:
                    break

                generated.append(next_token)
                # Pieces are diffs of the full decode; single-token decodes lose leading spaces
                full = self._tokenizer.decode(generated, skip_special_tokens=False)
                piece = full[len(decoded):]
                decoded = full
                if piece:
                    pieces.append(piece)
                    on_token(piece)

                next_input = torch.tensor([[next_token]], device=self._device)

        return "".join(pieces)

    @property
    def device(self) -> str:
        return self._device

    @property
    def is_loaded(self) -> bool:
        return self._model is not None
