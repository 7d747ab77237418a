"""
Django System Checks for request validation settings.

Run with:
    python manage.py check --tag request_validation
"""

from django.conf import settings
from django.core.checks import Error, Warning, register

from .conf import DEFAULTS


@register("request_validation")
def check_request_validation_settings(app_configs, **kwargs):
    """Check the REQUEST_VALIDATION settings dict."""
    errors = []

    config = getattr(settings, "REQUEST_VALIDATION", {})

    if not isinstance(config, dict):
        errors.append(
            Error(
                "REQUEST_VALIDATION must be a dict",
                hint="Set REQUEST_VALIDATION = {...} or remove it to use defaults",
                id="request_validation.E001",
            )
        )
        return errors

    status_code = config.get("ERROR_STATUS_CODE")
    if status_code is not None and (
        not isinstance(status_code, int) or not 400 <= status_code <= 499
    ):
        errors.append(
            Error(
                f"ERROR_STATUS_CODE must be a 4xx integer, got {status_code!r}",
                hint="A failed validation verdict is a client error",
                id="request_validation.E002",
            )
        )

    max_depth = config.get("SANITIZE_MAX_DEPTH")
    if max_depth is not None and (not isinstance(max_depth, int) or max_depth < 1):
        errors.append(
            Error(
                f"SANITIZE_MAX_DEPTH must be a positive integer, got {max_depth!r}",
                id="request_validation.E003",
            )
        )

    unknown = sorted(set(config) - set(DEFAULTS))
    if unknown:
        errors.append(
            Warning(
                f"Unknown REQUEST_VALIDATION keys: {', '.join(unknown)}",
                hint=f"Known keys: {', '.join(sorted(DEFAULTS))}",
                id="request_validation.W001",
            )
        )

    return errors
