"""
Validation Configuration Presets

Prebuilt ValidationConfig values for common route shapes. Attach schemas with
``derive``:

    CREATE_COURSE = get_preset('create').derive(body_schema=CourseSerializer)
"""

from typing import Dict, List

from .pipeline import ValidationConfig
from .schemas import IdSerializer, ListQuerySerializer

KB = 1024
MB = 1024 * KB


# Create - sanitized body, 1 MB
CREATE_PRESET = ValidationConfig(
    allowed_methods=frozenset({'POST'}),
    sanitize_body=True,
    max_body_size=1 * MB,
)


# Read - list endpoints with pagination, search and sorting
READ_PRESET = ValidationConfig(
    allowed_methods=frozenset({'GET'}),
    query_schema=ListQuerySerializer,
)


# Update - full or partial, sanitized body, 1 MB
UPDATE_PRESET = ValidationConfig(
    allowed_methods=frozenset({'PUT', 'PATCH'}),
    sanitize_body=True,
    max_body_size=1 * MB,
)


# Delete - numeric id route parameter
DELETE_PRESET = ValidationConfig(
    allowed_methods=frozenset({'DELETE'}),
    params_schema=IdSerializer,
)


# Upload - file bodies are never sanitized, 10 MB
UPLOAD_PRESET = ValidationConfig(
    allowed_methods=frozenset({'POST'}),
    sanitize_body=False,
    max_body_size=10 * MB,
)


# Auth - small credential payloads
AUTH_PRESET = ValidationConfig(
    allowed_methods=frozenset({'POST'}),
    sanitize_body=True,
    max_body_size=1 * KB,
)


# Preset registry
PRESETS: Dict[str, ValidationConfig] = {
    "create": CREATE_PRESET,
    "read": READ_PRESET,
    "list": READ_PRESET,  # Alias for read
    "update": UPDATE_PRESET,
    "delete": DELETE_PRESET,
    "upload": UPLOAD_PRESET,
    "auth": AUTH_PRESET,
    "login": AUTH_PRESET,  # Alias for auth
}


def get_preset(name: str) -> ValidationConfig:
    """
    Get a validation preset by name.

    Args:
        name: Preset name ('create', 'read', 'update', 'delete', 'upload', 'auth')

    Returns:
        The shared, immutable ValidationConfig

    Raises:
        ValueError: If preset name is not found
    """
    name = name.lower()
    preset = PRESETS.get(name)
    if preset is None:
        available = ", ".join(sorted(PRESETS.keys()))
        raise ValueError(f"Unknown preset: {name}. Available presets: {available}")

    return preset


def list_presets() -> List[str]:
    """
    List all available presets.

    Returns:
        List of available preset names
    """
    return sorted(PRESETS.keys())


def get_preset_description(name: str) -> str:
    """
    Get a description of a validation preset.

    Args:
        name: Preset name

    Returns:
        String description of the preset
    """
    descriptions = {
        "create": "POST only. Sanitizes the body; 1 MB limit. Attach a body schema.",
        "read": "GET only. Validates pagination, search and sorting query parameters.",
        "list": "Alias for read preset.",
        "update": "PUT or PATCH. Sanitizes the body; 1 MB limit. Attach a body schema.",
        "delete": "DELETE only. Requires a positive integer 'id' route parameter.",
        "upload": "POST only. 10 MB limit; body is not sanitized so file metadata is kept.",
        "auth": "POST only. Sanitizes the body; 1 KB limit for credential payloads.",
        "login": "Alias for auth preset.",
    }

    return descriptions.get(name.lower(), "No description available.")
