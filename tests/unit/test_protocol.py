"""Unit tests for the command/event message schema."""

import numpy as np
import pytest

from anuvad.errors import ProtocolError
from anuvad.protocol import (
    Completed,
    Error,
    LoadModel,
    PushAudio,
    RunInference,
    Transcribe,
    TranscriptionResult,
    UnknownCommand,
    parse_command,
    parse_event,
)


class TestCommands:
    def test_type_tags(self):
        assert LoadModel(b"w", "{}").type == "LoadModel"
        assert RunInference("hola", "en").type == "RunInference"
        assert PushAudio([0.0]).type == "PushAudio"
        assert Transcribe().type == "Transcribe"

    def test_push_audio_copies_samples(self):
        samples = np.ones(8, dtype=np.float64)
        command = PushAudio(samples)
        samples[:] = 0.0

        assert command.samples.dtype == np.float32
        np.testing.assert_array_equal(command.samples, np.ones(8))

    def test_transcribe_audio_optional(self):
        assert Transcribe().audio is None
        assert Transcribe([0.1, 0.2]).audio.dtype == np.float32

    def test_to_dict(self):
        data = RunInference("hola", "en", request_id=3).to_dict()
        assert data == {"type": "RunInference", "text": "hola", "target_language": "en", "request_id": 3}

    def test_push_audio_to_dict_lists_samples(self):
        data = PushAudio([0.5, -0.5]).to_dict()
        assert data["type"] == "PushAudio"
        assert data["samples"] == [0.5, -0.5]

    def test_load_model_repr_hides_payload(self):
        text = repr(LoadModel(b"x" * 1000, "{}"))
        assert "1000 bytes" in text
        assert "xxxx" not in text


class TestParseCommand:
    def test_parse_run_inference(self):
        command = parse_command({"type": "RunInference", "text": "hola", "target_language": "en"})
        assert command == RunInference("hola", "en")

    def test_parse_ignores_extra_fields(self):
        command = parse_command({"type": "Transcribe", "extra": 1, "request_id": 7})
        assert isinstance(command, Transcribe)
        assert command.request_id == 7

    def test_unknown_tag(self):
        command = parse_command({"type": "Explode", "force": 11, "request_id": 2})
        assert isinstance(command, UnknownCommand)
        assert command.tag == "Explode"
        assert command.payload == {"force": 11}
        assert command.request_id == 2

    def test_missing_tag(self):
        assert isinstance(parse_command({}), UnknownCommand)

    def test_missing_field_raises(self):
        with pytest.raises(ProtocolError, match="Malformed RunInference"):
            parse_command({"type": "RunInference", "text": "hola"})

    def test_bad_samples_raise(self):
        with pytest.raises(ProtocolError):
            parse_command({"type": "PushAudio", "samples": [[0.0, 1.0], [1.0, 0.0]]})


class TestParseEvent:
    def test_parse_completed(self):
        event = parse_event({"type": "Completed", "text": "abc", "request_id": 1})
        assert event == Completed("abc", request_id=1)

    def test_parse_transcription_result(self):
        event = parse_event({"type": "TranscriptionResult", "text": "hi", "language": None})
        assert event == TranscriptionResult("hi")

    def test_event_round_trip(self):
        event = Error("boom", kind="inference", request_id=5)
        assert parse_event(event.to_dict()) == event

    def test_unknown_event_raises(self):
        with pytest.raises(ProtocolError):
            parse_event({"type": "Nope"})
