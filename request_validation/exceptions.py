"""
Error taxonomy for the validation pipeline.

Two families live here:

- Exceptions raised by the body parser. They never leave the pipeline; the
  orchestrator catches them and folds them into the verdict.
- Issue records (frozen dataclasses) carried by ``ValidationResult``. Each
  variant keeps its structured fields and renders a stable ``message`` so
  callers can relay field-level feedback verbatim.
"""

import enum
from dataclasses import dataclass
from typing import Optional


class RequestValidationError(Exception):
    """Base class for errors raised while reading a request."""


class MalformedBodyError(RequestValidationError):
    """The body does not decode as its declared content type."""


class BodyTooLargeError(RequestValidationError):
    """The transport refused to buffer the body (hard size cap)."""


class RequestAbortedError(RequestValidationError):
    """The client went away while the body was being read."""


class ValidationTarget(enum.Enum):
    BODY = 'body'
    QUERY = 'query'
    PARAMS = 'params'
    HEADERS = 'headers'

    @property
    def label(self) -> str:
        return self.value.capitalize()


class ThreatCategory(enum.Enum):
    SQL_INJECTION = 'SQL injection'
    XSS = 'XSS'
    PATH_TRAVERSAL = 'path traversal'
    COMMAND_INJECTION = 'command injection'

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True)
class Finding:
    """A heuristic detection on one string leaf. Advisory only."""

    category: ThreatCategory
    path: str


@dataclass(frozen=True)
class MethodNotAllowed:
    method: str

    @property
    def message(self) -> str:
        return f'Method {self.method} not allowed'


@dataclass(frozen=True)
class BodyTooLarge:
    limit: Optional[int]
    # Raw Content-Length value when it could not be parsed
    invalid_header: Optional[str] = None

    @property
    def message(self) -> str:
        if self.invalid_header is not None:
            return 'Invalid Content-Length header'
        if self.limit is None:
            return 'Request body too large'
        return f'Request body too large. Maximum size: {self.limit} bytes'


@dataclass(frozen=True)
class MalformedBody:
    target: ValidationTarget
    reason: str

    @property
    def message(self) -> str:
        return f'{self.target.label} validation error: {self.reason}'


@dataclass(frozen=True)
class SecurityFinding:
    finding: Finding

    @property
    def category(self) -> ThreatCategory:
        return self.finding.category

    @property
    def message(self) -> str:
        return f'Potential {self.finding.category.label} detected in {self.finding.path or "input"}'


@dataclass(frozen=True)
class SchemaViolation:
    target: ValidationTarget
    path: str
    detail: str

    @property
    def message(self) -> str:
        return f'{self.target.label} validation: {self.path} - {self.detail}'


@dataclass(frozen=True)
class InternalValidationFault:
    detail: str

    @property
    def message(self) -> str:
        return f'Validation error: {self.detail}'
