"""Error taxonomy for pkgctx runs.

Resolution and total-extraction failures abort the run; per-declaration parse
failures are recovered locally and reported as warnings; schema errors signal
an internal invariant violation.
"""

from __future__ import annotations

from enum import Enum


class PkgctxError(Exception):
    """Base class for all pkgctx errors."""

    exit_code = 1


class ResolutionReason(Enum):
    INVALID_LOCATOR = "invalid_locator"
    NOT_FOUND = "not_found"
    UNREACHABLE = "unreachable"


class ResolutionError(PkgctxError):
    """A locator could not be turned into a local source tree."""

    exit_code = 3

    def __init__(self, reason: ResolutionReason, locator: str, detail: str = ""):
        self.reason = reason
        self.locator = locator
        self.detail = detail
        message = f"{reason.value.replace('_', ' ')}: {locator}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.reason == ResolutionReason.UNREACHABLE

    @classmethod
    def invalid(cls, locator: str, detail: str = "") -> ResolutionError:
        return cls(ResolutionReason.INVALID_LOCATOR, locator, detail)

    @classmethod
    def not_found(cls, locator: str, detail: str = "") -> ResolutionError:
        return cls(ResolutionReason.NOT_FOUND, locator, detail)

    @classmethod
    def unreachable(cls, locator: str, detail: str = "") -> ResolutionError:
        return cls(ResolutionReason.UNREACHABLE, locator, detail)


class ParseError(PkgctxError):
    """A single declaration or file could not be parsed."""

    def __init__(self, message: str, source_file: str = "", line: int = 0):
        self.source_file = source_file
        self.line = line
        location = source_file
        if source_file and line:
            location = f"{source_file}:{line}"
        super().__init__(f"{location}: {message}" if location else message)


class ExtractionError(PkgctxError):
    """A source tree yielded no declarations at all."""

    exit_code = 4


class SchemaError(PkgctxError):
    """An emitted record violates a schema invariant (implementation bug)."""

    exit_code = 5


class ConfigError(PkgctxError):
    """Raised when the configuration file cannot be parsed."""

    exit_code = 6
