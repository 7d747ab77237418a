"""
Schema integration for the validation pipeline.

The pipeline only needs one capability from a schema: ``parse(value)``
returning either the validated value or a list of field errors. DRF
serializers are the native way to express schemas here, so any Serializer
class is adapted automatically; other objects may implement ``parse``
themselves.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Optional, Protocol, Tuple, Union

from rest_framework import serializers

PathPart = Union[str, int]


@dataclass(frozen=True)
class SchemaError:
    path: Tuple[PathPart, ...]
    message: str

    @property
    def dotted_path(self) -> str:
        return '.'.join(str(part) for part in self.path)


@dataclass(frozen=True)
class SchemaResult:
    value: Any = None
    errors: Tuple[SchemaError, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


class Schema(Protocol):
    def parse(self, value: Any) -> SchemaResult:
        ...


def flatten_errors(errors: Any, path: Tuple[PathPart, ...] = ()) -> Iterator[SchemaError]:
    """
    Flatten DRF's nested ``serializer.errors`` into path/message pairs.

    Dict keys and list positions of nested serializers become path parts;
    plain message lists are reported at the current path.
    """
    if isinstance(errors, Mapping):
        for key, nested in errors.items():
            yield from flatten_errors(nested, path + (key,))
    elif isinstance(errors, (list, tuple)):
        for index, item in enumerate(errors):
            if isinstance(item, (Mapping, list, tuple)):
                yield from flatten_errors(item, path + (index,))
            else:
                yield SchemaError(path=path, message=str(item))
    else:
        yield SchemaError(path=path, message=str(errors))


class SerializerSchema:
    """Adapt a DRF serializer class to the Schema protocol."""

    def __init__(self, serializer_class: type, context: Optional[Dict[str, Any]] = None):
        self.serializer_class = serializer_class
        self.context = dict(context or {})

    def parse(self, value: Any) -> SchemaResult:
        # A fresh serializer per call; instances hold per-validation state
        serializer = self.serializer_class(data=value, context=dict(self.context))

        if serializer.is_valid():
            data = serializer.validated_data
            return SchemaResult(value=dict(data) if isinstance(data, Mapping) else data)

        return SchemaResult(errors=tuple(flatten_errors(serializer.errors)))

    def __repr__(self) -> str:
        return f'SerializerSchema({self.serializer_class.__name__})'


def as_schema(obj: Any) -> Optional[Schema]:
    """
    Coerce a configured schema.

    Raises:
        TypeError: obj is neither a Serializer class nor has a parse() method
    """
    if obj is None:
        return None

    if isinstance(obj, type) and issubclass(obj, serializers.BaseSerializer):
        return SerializerSchema(obj)

    if callable(getattr(obj, 'parse', None)):
        return obj

    raise TypeError(
        f'Expected a Serializer class or an object with parse(), got {type(obj).__name__}'
    )


# =============================================================================
# Common Schemas
# =============================================================================


SORT_ORDER_CHOICES = ('asc', 'desc')

ROLE_CHOICES = (
    'SUPER_ADMIN',
    'ADMIN',
    'DEPARTMENT_HEAD',
    'INSTRUCTOR',
    'STUDENT',
    'SYSTEM_AUDITOR',
)


class PaginationSerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, max_value=1000, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)
    offset = serializers.IntegerField(min_value=0, required=False)


class SearchSerializer(serializers.Serializer):
    q = serializers.CharField(max_length=200, required=False, allow_blank=True)
    query = serializers.CharField(max_length=200, required=False, allow_blank=True)
    search = serializers.CharField(max_length=200, required=False, allow_blank=True)


class SortingSerializer(serializers.Serializer):
    sort_by = serializers.CharField(max_length=50, required=False)
    sort_order = serializers.ChoiceField(choices=SORT_ORDER_CHOICES, default='asc')
    order_by = serializers.CharField(max_length=50, required=False)
    order = serializers.ChoiceField(choices=SORT_ORDER_CHOICES, required=False)


class ListQuerySerializer(PaginationSerializer, SearchSerializer, SortingSerializer):
    """Pagination, search and sorting parameters of a list endpoint."""


class IdSerializer(serializers.Serializer):
    id = serializers.IntegerField(min_value=1)


class UserInputSerializer(serializers.Serializer):
    """
    Typical person/contact form.
    """

    name = serializers.CharField(min_length=1, max_length=100)
    email = serializers.EmailField(max_length=255)
    phone = serializers.RegexField(
        r'^[\+]?[\d\-\(\)\s]+$',
        max_length=20,
        required=False,
    )
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True)

    def validate_email(self, value: str) -> str:
        return value.lower()


class FileUploadSerializer(serializers.Serializer):
    filename = serializers.CharField(max_length=255)
    mimetype = serializers.RegexField(
        r'^[a-zA-Z0-9][a-zA-Z0-9!#$&\-\^_]*/[a-zA-Z0-9][a-zA-Z0-9!#$&\-\^_.]*$'
    )
    size = serializers.IntegerField(min_value=0, max_value=10 * 1024 * 1024)  # 10 MB


class CredentialsSerializer(serializers.Serializer):
    token = serializers.CharField(min_length=1, max_length=500)
    password = serializers.CharField(min_length=8, max_length=128, trim_whitespace=False)
    role = serializers.ChoiceField(choices=ROLE_CHOICES)


class DateRangeSerializer(serializers.Serializer):
    start_date = serializers.DateTimeField(required=False)
    end_date = serializers.DateTimeField(required=False)

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and end < start:
            raise serializers.ValidationError({
                'end_date': 'End date must not be before start date.'
            })
        return attrs
