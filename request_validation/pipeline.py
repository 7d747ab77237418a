"""
Request validation pipeline.

Runs every configured check against one request and folds the outcome into a
single ``ValidationResult``:

1. Method allow-list
2. Content-Length pre-check
3. Body: parse -> threat scan -> optional sanitization -> schema
4. Query: flatten -> threat scan -> schema
5. Route params: threat scan -> schema
6. Headers: lower-case keys -> schema (threat scan only when enabled)

All errors are collected in step order; nothing is raised to the caller.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from django.http import HttpRequest

from .conf import get_setting
from .exceptions import (
    BodyTooLarge,
    BodyTooLargeError,
    InternalValidationFault,
    MalformedBody,
    MalformedBodyError,
    MethodNotAllowed,
    SchemaViolation,
    SecurityFinding,
    ValidationTarget,
)
from .parsers import BodyParser, flatten_query_dict
from .sanitizers import sanitize_object
from .scanner import ThreatScanner, categories, default_scanner
from .schemas import Schema, as_schema

logger = logging.getLogger(__name__)

BODY_METHODS = frozenset({'POST', 'PUT', 'PATCH'})

Issue = Union[
    MethodNotAllowed,
    BodyTooLarge,
    MalformedBody,
    SecurityFinding,
    SchemaViolation,
    InternalValidationFault,
]


@dataclass(frozen=True)
class ValidationConfig:
    """
    Per-route validation settings.

    Built once when the route is registered and shared, read-only, by every
    request. Schemas may be DRF Serializer classes or objects with
    ``parse()``. ``allowed_methods=None`` accepts any method and
    ``max_body_size=None`` skips the Content-Length check.
    """

    body_schema: Optional[Any] = None
    query_schema: Optional[Any] = None
    params_schema: Optional[Any] = None
    headers_schema: Optional[Any] = None
    sanitize_body: bool = False
    max_body_size: Optional[int] = None
    allowed_methods: Optional[FrozenSet[str]] = None
    scan_headers: bool = False

    def __post_init__(self) -> None:
        for name in ('body_schema', 'query_schema', 'params_schema', 'headers_schema'):
            object.__setattr__(self, name, as_schema(getattr(self, name)))

        if self.allowed_methods is not None:
            methods = self.allowed_methods
            if isinstance(methods, str):
                methods = [methods]
            object.__setattr__(
                self, 'allowed_methods', frozenset(method.upper() for method in methods)
            )

        if self.max_body_size is not None and self.max_body_size < 0:
            raise ValueError('max_body_size must be a non-negative number of bytes')

    def derive(self, **changes: Any) -> 'ValidationConfig':
        """Return a copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class ValidationResult:
    """
    Verdict for one request.

    ``is_valid`` is True exactly when there are no issues. ``data`` holds the
    validated value of every configured target and is only set on success.
    """

    is_valid: bool
    data: Optional[Dict[str, Any]] = None
    issues: Tuple[Issue, ...] = ()

    def __post_init__(self) -> None:
        if self.is_valid == bool(self.issues):
            raise ValueError('is_valid must be True exactly when there are no issues')

    @property
    def errors(self) -> Optional[List[str]]:
        if not self.issues:
            return None
        return [issue.message for issue in self.issues]

    @classmethod
    def success(cls, data: Dict[str, Any]) -> 'ValidationResult':
        return cls(is_valid=True, data=data)

    @classmethod
    def failure(cls, issues: Iterable[Issue]) -> 'ValidationResult':
        return cls(is_valid=False, issues=tuple(issues))


class ValidationPipeline:
    """
    Validates requests against one ValidationConfig.

    Holds no per-request state, so one instance can serve concurrent
    requests.
    """

    def __init__(
        self,
        config: ValidationConfig,
        body_parser: Optional[BodyParser] = None,
        scanner: Optional[ThreatScanner] = None,
    ):
        self.config = config
        self.body_parser = body_parser or BodyParser()
        self.scanner = scanner or default_scanner

    def validate(
        self,
        request: HttpRequest,
        route_params: Optional[Mapping[str, Any]] = None,
    ) -> ValidationResult:
        """
        Validate a request.

        Args:
            request: Incoming Django request
            route_params: URL keyword arguments captured by the router

        Returns:
            ValidationResult; any unexpected exception becomes a single
            'Validation error: ...' entry
        """
        try:
            result = self._run(request, route_params)
            if not result.is_valid and get_setting('LOG_FAILURES', True):
                self._log_failure(request, result)
            return result
        except Exception as e:
            logger.error(
                f"Validation fault for {getattr(request, 'method', '?')} "
                f"{getattr(request, 'path', '?')}: {str(e)}",
                exc_info=True,
            )
            return ValidationResult.failure([
                InternalValidationFault(str(e) or type(e).__name__)
            ])

    def _run(
        self,
        request: HttpRequest,
        route_params: Optional[Mapping[str, Any]],
    ) -> ValidationResult:
        config = self.config
        issues: List[Issue] = []
        data: Dict[str, Any] = {}
        method = (request.method or '').upper()

        if config.allowed_methods is not None and method not in config.allowed_methods:
            issues.append(MethodNotAllowed(method))

        size_issue = self._check_size(request)
        if size_issue is not None:
            issues.append(size_issue)

        if config.body_schema is not None and method in BODY_METHODS:
            self._validate_body(request, issues, data)

        if config.query_schema is not None:
            # No implicit sanitization: query values are short identifiers
            self._validate_target(
                ValidationTarget.QUERY,
                flatten_query_dict(request.GET),
                config.query_schema,
                issues,
                data,
            )

        if config.params_schema is not None and route_params is not None:
            self._validate_target(
                ValidationTarget.PARAMS,
                dict(route_params),
                config.params_schema,
                issues,
                data,
            )

        if config.headers_schema is not None:
            headers = {key.lower(): value for key, value in request.headers.items()}
            self._validate_target(
                ValidationTarget.HEADERS,
                headers,
                config.headers_schema,
                issues,
                data,
                scan=config.scan_headers,
            )

        if issues:
            return ValidationResult.failure(issues)
        return ValidationResult.success(data)

    def _check_size(self, request: HttpRequest) -> Optional[BodyTooLarge]:
        # Header-only check; a missing or dishonest header is the transport's problem
        limit = self.config.max_body_size
        if limit is None:
            return None

        raw = request.META.get('CONTENT_LENGTH')
        if not raw:
            return None

        try:
            length = int(raw)
        except (TypeError, ValueError):
            return BodyTooLarge(limit=limit, invalid_header=str(raw))

        if length < 0:
            return BodyTooLarge(limit=limit, invalid_header=str(raw))

        if length > limit:
            return BodyTooLarge(limit=limit)

        return None

    def _validate_body(
        self,
        request: HttpRequest,
        issues: List[Issue],
        data: Dict[str, Any],
    ) -> None:
        try:
            body = self.body_parser.parse(request)
        except MalformedBodyError as e:
            issues.append(MalformedBody(ValidationTarget.BODY, str(e)))
            return
        except BodyTooLargeError:
            issues.append(BodyTooLarge(limit=self.config.max_body_size))
            return

        issues.extend(
            SecurityFinding(finding)
            for finding in self.scanner.scan(body, ValidationTarget.BODY.value)
        )

        if self.config.sanitize_body:
            body = sanitize_object(body, max_depth=get_setting('SANITIZE_MAX_DEPTH', 5))

        self._apply_schema(ValidationTarget.BODY, body, self.config.body_schema, issues, data)

    def _validate_target(
        self,
        target: ValidationTarget,
        value: Dict[str, Any],
        schema: Schema,
        issues: List[Issue],
        data: Dict[str, Any],
        scan: bool = True,
    ) -> None:
        if scan:
            issues.extend(
                SecurityFinding(finding)
                for finding in self.scanner.scan(value, target.value)
            )

        self._apply_schema(target, value, schema, issues, data)

    def _apply_schema(
        self,
        target: ValidationTarget,
        value: Any,
        schema: Schema,
        issues: List[Issue],
        data: Dict[str, Any],
    ) -> None:
        outcome = schema.parse(value)

        if outcome.errors:
            issues.extend(
                SchemaViolation(target=target, path=error.dotted_path, detail=error.message)
                for error in outcome.errors
            )
        else:
            data[target.value] = outcome.value

    def _log_failure(self, request: HttpRequest, result: ValidationResult) -> None:
        findings = [issue.finding for issue in result.issues if isinstance(issue, SecurityFinding)]
        detected = ', '.join(category.label for category in categories(findings)) or 'none'
        logger.warning(
            f"Request validation failed for {request.method} {request.path}: "
            f"{len(result.issues)} issue(s), threats: {detected}"
        )


def validate(
    request: HttpRequest,
    config: ValidationConfig,
    route_params: Optional[Mapping[str, Any]] = None,
) -> ValidationResult:
    """Validate ``request`` against ``config``."""
    return ValidationPipeline(config).validate(request, route_params)
