"""
View decorators for request validation.
"""

import functools
from typing import Callable, List, Optional

from django.http import JsonResponse
from django.utils import timezone

from .conf import get_setting
from .pipeline import ValidationConfig, ValidationPipeline


def create_error_response(errors: List[str], status: Optional[int] = None) -> JsonResponse:
    """
    Build the client error response for a failed verdict.

    Args:
        errors: ValidationResult.errors, relayed verbatim
        status: HTTP status; defaults to the ERROR_STATUS_CODE setting (400)
    """
    return JsonResponse(
        {
            "error": "Validation failed",
            "message": "Request validation failed",
            "details": list(errors),
            "timestamp": timezone.now().isoformat(),
        },
        status=status or get_setting("ERROR_STATUS_CODE", 400),
    )


def validate_request(config: ValidationConfig) -> Callable:
    """
    Decorator to validate a request before the view runs.

    URL keyword arguments are validated as route params. On success the
    validated targets are available as ``request.validated_data``.

    Args:
        config: Route validation config (see presets)

    Example:
        @validate_request(get_preset('delete'))
        def delete_course(request, id):
            course = Course.objects.get(pk=request.validated_data['params']['id'])
            ...
    """
    pipeline = ValidationPipeline(config)

    def decorator(view_func):
        @functools.wraps(view_func)
        def wrapped_view(request, *args, **kwargs):
            result = pipeline.validate(request, route_params=kwargs)

            if not result.is_valid:
                return create_error_response(result.errors or ["Unknown validation error"])

            request.validated_data = result.data
            return view_func(request, *args, **kwargs)

        return wrapped_view

    return decorator
