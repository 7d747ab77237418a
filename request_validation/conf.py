"""Configuration and settings for request_validation."""

from typing import Any, Dict

# Default settings, overridable through settings.REQUEST_VALIDATION
DEFAULTS: Dict[str, Any] = {
    # HTTP status used by create_error_response for a failed verdict
    'ERROR_STATUS_CODE': 400,
    # Depth bound for body sanitization (sanitize_object)
    'SANITIZE_MAX_DEPTH': 5,
    # Emit a WARNING log line for every rejected request
    'LOG_FAILURES': True,
}


def get_setting(key: str, default: Any = None) -> Any:
    """
    Get a request validation setting from Django settings or use the default.

    Args:
        key: Dotted path to the setting (e.g., 'SANITIZE_MAX_DEPTH')
        default: Default value if the setting is found nowhere

    Returns:
        The setting value or default
    """
    from django.conf import settings

    configured = getattr(settings, 'REQUEST_VALIDATION', {})

    value = _lookup(configured, key)
    if value is None:
        value = _lookup(DEFAULTS, key)

    return value if value is not None else default


def _lookup(source: Dict[str, Any], key: str) -> Any:
    value: Any = source
    for k in key.split('.'):
        if not isinstance(value, dict):
            return None
        value = value.get(k)
    return value
