"""Message schema exchanged between controller proxies and worker runtimes.

Commands flow controller -> worker, events flow worker -> controller. Every
message is an immutable record with a ``type`` discriminant; ``to_dict`` and
``parse_command`` / ``parse_event`` convert to and from tagged plain dicts.

A ``request_id`` ties the events produced while handling a command back to
the request that sent it. Payloads are copied on construction so the two
threads never share a buffer.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

import numpy as np

from anuvad.audio import as_float32_samples
from anuvad.errors import ProtocolError


class Message:
    type: ClassVar[str]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if isinstance(value, np.ndarray):
                value = value.tolist()
            data[f.name] = value
        return data


# Commands


@dataclass(frozen=True)
class LoadModel(Message):
    type: ClassVar[str] = "LoadModel"

    model_bytes: bytes
    tokenizer_json: str
    config_json: str | None = None
    mel_bytes: bytes | None = None
    request_id: int | None = None

    def __repr__(self) -> str:
        return (
            f"LoadModel(model_bytes=<{len(self.model_bytes)} bytes>, "
            f"mel_bytes={'<%d bytes>' % len(self.mel_bytes) if self.mel_bytes else None}, "
            f"request_id={self.request_id})"
        )


@dataclass(frozen=True)
class RunInference(Message):
    type: ClassVar[str] = "RunInference"

    text: str
    target_language: str
    request_id: int | None = None


@dataclass(frozen=True, eq=False)
class PushAudio(Message):
    type: ClassVar[str] = "PushAudio"

    samples: np.ndarray
    request_id: int | None = None

    def __post_init__(self):
        object.__setattr__(self, "samples", as_float32_samples(self.samples))

    def __repr__(self) -> str:
        return f"PushAudio(samples=<{len(self.samples)} samples>)"


@dataclass(frozen=True, eq=False)
class Transcribe(Message):
    """Transcribe the buffered audio, optionally pushing ``audio`` first."""

    type: ClassVar[str] = "Transcribe"

    audio: np.ndarray | None = None
    request_id: int | None = None

    def __post_init__(self):
        if self.audio is not None:
            object.__setattr__(self, "audio", as_float32_samples(self.audio))


@dataclass(frozen=True)
class UnknownCommand(Message):
    """A tagged dict whose ``type`` no runtime understands."""

    type: ClassVar[str] = "Unknown"

    tag: Any
    payload: Mapping[str, Any] = field(default_factory=dict)
    request_id: int | None = None


Command = LoadModel | RunInference | PushAudio | Transcribe | UnknownCommand


# Events


@dataclass(frozen=True)
class Initialized(Message):
    type: ClassVar[str] = "Initialized"

    request_id: int | None = None


@dataclass(frozen=True)
class ModelLoaded(Message):
    type: ClassVar[str] = "ModelLoaded"

    request_id: int | None = None


@dataclass(frozen=True)
class PartialResult(Message):
    type: ClassVar[str] = "PartialResult"

    token: str
    request_id: int | None = None


@dataclass(frozen=True)
class Completed(Message):
    type: ClassVar[str] = "Completed"

    text: str
    request_id: int | None = None


@dataclass(frozen=True)
class TranscriptionResult(Message):
    type: ClassVar[str] = "TranscriptionResult"

    text: str
    language: str | None = None
    request_id: int | None = None


@dataclass(frozen=True)
class Error(Message):
    type: ClassVar[str] = "Error"

    message: str
    kind: str | None = None
    request_id: int | None = None


Event = Initialized | ModelLoaded | PartialResult | Completed | TranscriptionResult | Error


@dataclass(frozen=True)
class TurnEnded(Message):
    """Channel marker posted once a command with a request_id is fully handled.

    Not a protocol event: proxies consume it and listeners never see it.
    """

    type: ClassVar[str] = "TurnEnded"

    request_id: int | None = None


COMMAND_TYPES: dict[str, type[Message]] = {
    cls.type: cls for cls in (LoadModel, RunInference, PushAudio, Transcribe)
}
EVENT_TYPES: dict[str, type[Message]] = {
    cls.type: cls
    for cls in (Initialized, ModelLoaded, PartialResult, Completed, TranscriptionResult, Error)
}


def _build(cls: type[Message], data: Mapping[str, Any]) -> Message:
    names = {f.name for f in dataclasses.fields(cls)}
    kwargs = {k: v for k, v in data.items() if k in names}
    try:
        return cls(**kwargs)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed {cls.type} message: {e}") from e


def parse_command(data: Mapping[str, Any]) -> Command:
    """Build a command from a tagged dict.

    Unknown tags produce an ``UnknownCommand`` instead of raising, so the
    runtime can log and drop them. Known tags with bad payloads raise
    ProtocolError.
    """
    tag = data.get("type")
    cls = COMMAND_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None:
        payload = {k: v for k, v in data.items() if k not in ("type", "request_id")}
        return UnknownCommand(tag=tag, payload=payload, request_id=data.get("request_id"))
    return _build(cls, data)


def parse_event(data: Mapping[str, Any]) -> Event:
    tag = data.get("type")
    cls = EVENT_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None:
        raise ProtocolError(f"Unknown event type: {tag!r}")
    return _build(cls, data)
