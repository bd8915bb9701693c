"""Domain errors raised by services and the analysis pipeline.

``error_kind`` sorts any exception into a coarse bucket that the job
queue logs and uses to decide whether redelivery is worth trying.
"""

from __future__ import annotations

from enum import StrEnum


class CodeMentorError(Exception):
    """Base class for all domain errors."""


class ValidationFailure(CodeMentorError):
    """Request rejected before anything was persisted."""


class NotFound(CodeMentorError):
    """A session, snippet or feedback item does not exist (or is not
    visible to the caller)."""


class UpstreamFailure(CodeMentorError):
    """The reasoning service gave no usable answer."""


AnalysisFailure = UpstreamFailure


class PipelineFailure(CodeMentorError):
    """The analysis run could not finish.

    ``permanent`` marks failures that no redelivery can fix (a session
    without snippets, an unknown user).
    """

    def __init__(self, message: str, *, permanent: bool = False) -> None:
        super().__init__(message)
        self.permanent = permanent


class PersistenceFailure(CodeMentorError):
    """The ``failed`` status could not be written.

    The pipeline error that triggered the write is chained as
    ``__cause__``.
    """


class ErrorKind(StrEnum):
    PERMANENT = "permanent"
    UPSTREAM = "upstream"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


def error_kind(error: BaseException) -> ErrorKind:
    if isinstance(error, PersistenceFailure) and error.__cause__:
        return error_kind(error.__cause__)
    if isinstance(error, (NotFound, ValidationFailure)):
        return ErrorKind.PERMANENT
    if isinstance(error, PipelineFailure) and error.permanent:
        return ErrorKind.PERMANENT
    if isinstance(error, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(error, UpstreamFailure):
        return ErrorKind.UPSTREAM
    status = getattr(error, "status_code", None)
    if isinstance(status, int) and (status == 429 or status >= 500):
        return ErrorKind.UPSTREAM
    return ErrorKind.INTERNAL


def is_permanent(error: BaseException) -> bool:
    """True when redelivering the job cannot change the outcome."""
    return error_kind(error) is ErrorKind.PERMANENT
