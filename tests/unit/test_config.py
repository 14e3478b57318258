"""Unit tests for settings, error mapping and log formatting."""

import json
import logging

from anuvad.config import get_settings
from anuvad.constants import CHUNK_SECONDS, MAX_NEW_TOKENS
from anuvad.errors import (
    InferenceError,
    InitializationError,
    ModelLoadError,
    WorkerError,
    error_for_kind,
)
from anuvad.logging import _JSONFormatter


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ANUVAD_DEVICE", raising=False)
        settings = get_settings()
        assert settings.device == "cpu"
        assert settings.max_new_tokens == MAX_NEW_TOKENS
        assert settings.chunk_seconds == CHUNK_SECONDS

    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ANUVAD_DEVICE", "cuda")
        monkeypatch.setenv("ANUVAD_MAX_NEW_TOKENS", "32")
        monkeypatch.setenv("ANUVAD_CACHE_DIR", str(tmp_path))

        settings = get_settings()
        assert settings.device == "cuda"
        assert settings.max_new_tokens == 32
        assert settings.cache_dir == tmp_path


class TestErrorForKind:
    def test_known_kinds(self):
        assert type(error_for_kind("init", "x")) is InitializationError
        assert type(error_for_kind("load", "x")) is ModelLoadError
        assert type(error_for_kind("inference", "x")) is InferenceError

    def test_unknown_kind_falls_back_to_base(self):
        error = error_for_kind(None, "something odd")
        assert type(error) is WorkerError
        assert str(error) == "something odd"


class TestJSONFormatter:
    def test_fields(self):
        record = logging.LogRecord("anuvad.worker", logging.INFO, __file__, 1, "loaded %d", (3,), None)
        record.threadName = "translator-worker"

        payload = json.loads(_JSONFormatter().format(record))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "anuvad.worker"
        assert payload["thread"] == "translator-worker"
        assert payload["msg"] == "loaded 3"
        assert "exception" not in payload
