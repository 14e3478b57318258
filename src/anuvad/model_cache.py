"""On-disk cache for model files fetched over HTTP.

Files are streamed to a temporary path, then renamed into place, so a
partial download never looks cached. Progress is reported as a fraction
in [0, 1]; a cache hit reports 1.0 immediately.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Sequence
from pathlib import Path

import httpx

from anuvad.config import get_settings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

WHISPER_MODEL_URL = "https://huggingface.co/openai/whisper-small/resolve/main/model.safetensors"
WHISPER_TOKENIZER_URL = "https://huggingface.co/openai/whisper-small/resolve/main/tokenizer.json"
WHISPER_CONFIG_URL = "https://huggingface.co/openai/whisper-small/resolve/main/config.json"

TRANSLATOR_BASE_URL = "https://huggingface.co/TinyLlama/TinyLlama-1.1B-Chat-v1.0/resolve/main"
TRANSLATOR_MODEL_URL = f"{TRANSLATOR_BASE_URL}/model.safetensors"
TRANSLATOR_TOKENIZER_URL = f"{TRANSLATOR_BASE_URL}/tokenizer.json"
TRANSLATOR_CONFIG_URL = f"{TRANSLATOR_BASE_URL}/config.json"

WHISPER_URLS = (WHISPER_MODEL_URL, WHISPER_TOKENIZER_URL, WHISPER_CONFIG_URL)
TRANSLATOR_URLS = (TRANSLATOR_MODEL_URL, TRANSLATOR_TOKENIZER_URL, TRANSLATOR_CONFIG_URL)


class ModelCache:
    """Maps URLs to files under ``cache_dir``."""

    def __init__(
        self,
        cache_dir: str | Path | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self.cache_dir = Path(cache_dir) if cache_dir else settings.cache_dir
        self._client = client
        self._timeout = timeout if timeout is not None else settings.download_timeout

    def path_for(self, url: str) -> Path:
        """Cache path for a URL: a short URL hash plus the original file name."""
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
        name = url.rstrip("/").rsplit("/", 1)[-1] or "download"
        return self.cache_dir / f"{digest}-{name}"

    def is_cached(self, url: str) -> bool:
        return self.path_for(url).is_file()

    async def fetch(self, url: str, on_progress: ProgressCallback | None = None) -> bytes:
        """Return the bytes for ``url``, downloading them on a cache miss.

        Raises:
            httpx.HTTPStatusError: If the server answers with an error status.
        """
        on_progress = on_progress or (lambda _: None)
        path = self.path_for(url)
        if path.is_file():
            on_progress(1.0)
            return path.read_bytes()

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".part")
        received = bytearray()

        client = self._client or httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length") or 0)
                async for chunk in response.aiter_bytes():
                    received.extend(chunk)
                    if total > 0:
                        on_progress(min(len(received) / total, 1.0))
        finally:
            if self._client is None:
                await client.aclose()

        tmp.write_bytes(received)
        tmp.replace(path)
        logger.info("Cached %s (%d bytes)", url, len(received))
        on_progress(1.0)
        return bytes(received)

    async def download_all(
        self,
        urls: Sequence[str],
        on_progress: ProgressCallback | None = None,
    ) -> list[bytes]:
        """Fetch several files, spreading overall progress evenly across them."""
        on_progress = on_progress or (lambda _: None)
        total = len(urls)
        results = []
        for i, url in enumerate(urls):
            base = i / total
            results.append(await self.fetch(url, lambda p, base=base: on_progress(base + p / total)))
        return results


async def download_whisper_model(
    on_progress: ProgressCallback | None = None,
    cache: ModelCache | None = None,
) -> None:
    await (cache or ModelCache()).download_all(WHISPER_URLS, on_progress)


async def download_translator_model(
    on_progress: ProgressCallback | None = None,
    cache: ModelCache | None = None,
) -> None:
    await (cache or ModelCache()).download_all(TRANSLATOR_URLS, on_progress)


async def load_whisper_payload(
    on_progress: ProgressCallback | None = None,
    cache: ModelCache | None = None,
) -> dict:
    """Keyword arguments for ``TranscriptionProxy.load_model`` from cached files.

    No mel filter bank is shipped with the checkpoint; the feature extractor
    computes its own.
    """
    model, tokenizer, config = await (cache or ModelCache()).download_all(
        WHISPER_URLS, on_progress
    )
    return {
        "model_bytes": model,
        "tokenizer_json": tokenizer.decode("utf-8"),
        "config_json": config.decode("utf-8"),
    }


async def load_translator_payload(
    on_progress: ProgressCallback | None = None,
    cache: ModelCache | None = None,
) -> dict:
    """Keyword arguments for ``TranslationProxy.load_model`` from cached files."""
    model, tokenizer, config = await (cache or ModelCache()).download_all(
        TRANSLATOR_URLS, on_progress
    )
    return {
        "model_bytes": model,
        "tokenizer_json": tokenizer.decode("utf-8"),
        "config_json": config.decode("utf-8"),
    }
