"""Command-line front end driving the coordinators with the real engines.

Examples:
    # Stream a translation token by token
    anuvad translate "Hola, ¿cómo estás?" --to en --model-dir models/translator

    # Transcribe a 16kHz mono PCM16 WAV file in 500ms pushes
    anuvad transcribe speech.wav --model-dir models/whisper --chunk-ms 500

Without --model-dir the files are downloaded into the model cache
(ANUVAD_CACHE_DIR) with a progress readout.
"""

import argparse
import asyncio
import sys
import wave
from pathlib import Path

from anuvad.audio import StreamingBuffer, chunk_samples, duration_samples, pcm16_to_float32
from anuvad.config import Settings, get_settings
from anuvad.constants import SAMPLE_RATE
from anuvad.logging import setup_logging
from anuvad.model_cache import load_translator_payload, load_whisper_payload
from anuvad.proxy import TranscriptionProxy, TranslationProxy


def read_model_dir(model_dir: Path) -> dict:
    """Read model.safetensors, tokenizer.json, config.json and optional melfilters.bytes."""
    payload = {
        "model_bytes": (model_dir / "model.safetensors").read_bytes(),
        "tokenizer_json": (model_dir / "tokenizer.json").read_text(encoding="utf-8"),
        "config_json": (model_dir / "config.json").read_text(encoding="utf-8"),
    }
    mel = model_dir / "melfilters.bytes"
    if mel.is_file():
        payload["mel_bytes"] = mel.read_bytes()
    return payload


def read_wav(path: Path):
    """Load a 16kHz mono PCM16 WAV file as float32 samples."""
    with wave.open(str(path), "rb") as wf:
        if wf.getframerate() != SAMPLE_RATE or wf.getnchannels() != 1 or wf.getsampwidth() != 2:
            raise ValueError(f"{path} must be {SAMPLE_RATE}Hz mono PCM16")
        return pcm16_to_float32(wf.readframes(wf.getnframes()))


def _print_progress(fraction: float) -> None:
    print(f"\rDownloading models: {fraction * 100:5.1f}%", end="", file=sys.stderr, flush=True)


async def translate(args: argparse.Namespace, settings: Settings) -> None:
    from anuvad.engine.translator import CausalTranslationEngine

    if args.model_dir:
        payload = read_model_dir(Path(args.model_dir))
    else:
        payload = await load_translator_payload(_print_progress)
        print(file=sys.stderr)

    def make_engine():
        return CausalTranslationEngine(device=settings.device, max_new_tokens=settings.max_new_tokens)

    async with TranslationProxy(make_engine) as proxy:
        await proxy.load_model(**{k: v for k, v in payload.items() if k != "mel_bytes"})
        await proxy.translate(args.text, args.to, on_token=lambda t: print(t, end="", flush=True))
        print()


async def transcribe(args: argparse.Namespace, settings: Settings) -> None:
    from anuvad.engine.whisper import WhisperEngine

    if args.model_dir:
        payload = read_model_dir(Path(args.model_dir))
    else:
        payload = await load_whisper_payload(_print_progress)
        print(file=sys.stderr)

    def make_engine():
        buffer = StreamingBuffer(settings.chunk_seconds, settings.inference_interval_seconds)
        return WhisperEngine(
            device=settings.device,
            max_new_tokens=settings.max_transcribe_tokens,
            buffer=buffer,
        )

    audio = read_wav(Path(args.wav))
    async with TranscriptionProxy(make_engine) as proxy:
        await proxy.load_model(**payload)
        for chunk in chunk_samples(audio, duration_samples(args.chunk_ms)):
            proxy.push_audio(chunk)
            result = await proxy.transcribe()
            if result is not None:
                lang = f"[{result.language}] " if result.language else ""
                print(f"{lang}{result.text}")


def run():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="anuvad",
        description="Translate text or transcribe speech on background worker threads",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_translate = sub.add_parser("translate", help="Translate text, streaming tokens")
    p_translate.add_argument("text", help="Text to translate")
    p_translate.add_argument("--to", default="en", help="Target language code (default: en)")
    p_translate.add_argument("--model-dir", default=None, help="Directory with translator files")

    p_transcribe = sub.add_parser("transcribe", help="Transcribe a WAV file")
    p_transcribe.add_argument("wav", help="16kHz mono PCM16 WAV file")
    p_transcribe.add_argument("--model-dir", default=None, help="Directory with Whisper files")
    p_transcribe.add_argument(
        "--chunk-ms",
        type=int,
        default=1000,
        help="Audio pushed per transcribe call, in milliseconds (default: 1000)",
    )

    args = parser.parse_args()
    settings = get_settings()
    setup_logging(settings.log_level)

    handler = translate if args.command == "translate" else transcribe
    asyncio.run(handler(args, settings))


if __name__ == "__main__":
    run()
