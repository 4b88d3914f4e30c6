"""Error taxonomy shared by index orchestration and result processing.

Hard failures are raised as :class:`KboviewError` subclasses. An analysis that
completed but found nothing is *not* an error: it is returned as a
:class:`NoResults` value so callers can show an explanation instead of an
empty table.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ErrorCode(enum.IntEnum):
    """Stable classification codes; values are part of the CLI output."""

    NO_RESULTS = 0
    PARSE_FAILURE = 1
    EMPTY_INPUT = 2
    BUILD_FAILURE = 3


class KboviewError(RuntimeError):
    """Base class for classified failures."""

    code: ErrorCode = ErrorCode.BUILD_FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message}"


class EmptyInputError(KboviewError):
    """No reference or query data was supplied."""

    code = ErrorCode.EMPTY_INPUT


class BuildFailureError(KboviewError):
    """Index construction failed inside the backend."""

    code = ErrorCode.BUILD_FAILURE


class ParseFailureError(KboviewError):
    """A sequence file could not be parsed."""

    code = ErrorCode.PARSE_FAILURE

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path = path


@dataclass(frozen=True)
class NoResults:
    """A run that completed without producing any records."""

    message: str
    code: ErrorCode = ErrorCode.NO_RESULTS

    def __str__(self) -> str:
        return self.message
