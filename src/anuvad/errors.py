"""Exception hierarchy raised by controller proxies."""
from __future__ import annotations


class WorkerError(Exception):
    """Base class for all worker coordination errors."""

    kind = "worker"


class InitializationError(WorkerError):
    """The inference engine could not be constructed."""

    kind = "init"


class ModelLoadError(WorkerError):
    kind = "load"


class InferenceError(WorkerError):
    kind = "inference"


class ProtocolError(WorkerError):  # command not valid in the current lifecycle state
    kind = "protocol"


class WorkerClosed(WorkerError):
    kind = "closed"


_BY_KIND = {
    cls.kind: cls
    for cls in (InitializationError, ModelLoadError, InferenceError, ProtocolError, WorkerClosed)
}


def error_for_kind(kind: str | None, message: str) -> WorkerError:
    """Build the exception matching an ``Error`` event's kind."""
    return _BY_KIND.get(kind or "", WorkerError)(message)
