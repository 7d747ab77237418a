from django.apps import AppConfig


class RequestValidationConfig(AppConfig):
    """
    Configuration for the Request Validation app.

    This app provides:
    - A validation pipeline producing one verdict per request
    - Threat scanning for injection patterns
    - Sanitizers for HTML, text, search queries, file names and URLs
    - Prebuilt route presets and a view decorator
    """
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'request_validation'
    verbose_name = 'Request Validation & Sanitization'

    def ready(self):
        """Register system checks."""
        from . import checks  # noqa: F401
