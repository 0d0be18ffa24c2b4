"""Error taxonomy.

Failures fall into two families.  External-service, parse, and per-item
failures are caught where they happen, logged, and replaced by a default;
they carry an :class:`ErrorKind` so callers can tell them apart in logs and
step results.  Data-integrity, configuration, and auth failures propagate
and abort the current invocation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    EXTERNAL_SERVICE = "external_service"
    DATA_INTEGRITY = "data_integrity"
    PARSE = "parse"
    PER_ITEM = "per_item"
    CONFIGURATION = "configuration"
    AUTH = "auth"


class SEOReporterError(Exception):
    """Base error carrying its :class:`ErrorKind`."""

    kind: ErrorKind = ErrorKind.DATA_INTEGRITY

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class SiteNotFoundError(SEOReporterError):
    kind = ErrorKind.DATA_INTEGRITY


class ReportDataError(SEOReporterError):
    """Stored report data could not be decoded."""

    kind = ErrorKind.DATA_INTEGRITY


class ConfigurationError(SEOReporterError):
    kind = ErrorKind.CONFIGURATION


class AuthenticationError(SEOReporterError):
    kind = ErrorKind.AUTH


class ExternalServiceError(SEOReporterError):
    """An outbound call (Search Console, LLM, SMTP) failed."""

    kind = ErrorKind.EXTERNAL_SERVICE


def error_kind(exc: BaseException, default: ErrorKind = ErrorKind.EXTERNAL_SERVICE) -> ErrorKind:
    """Kind carried by ``exc``; foreign exceptions get ``default``."""
    if isinstance(exc, SEOReporterError):
        return exc.kind
    return default


@dataclass(frozen=True)
class StepFailure:
    """A failure that was logged and degraded instead of raised."""

    step: str
    kind: ErrorKind
    message: str
