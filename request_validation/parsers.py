"""
Request body parsing.

Decodes a Django request body into a plain value tree according to its
declared content type. File uploads are never read here: they surface as
``FileRef`` records wrapping Django's ``UploadedFile`` handle.
"""

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from django.core.exceptions import (
    RequestAborted,
    RequestDataTooBig,
    SuspiciousOperation,
)
from django.http import HttpRequest, QueryDict, UnreadablePostError
from django.http.multipartparser import MultiPartParserError

from .exceptions import BodyTooLargeError, MalformedBodyError, RequestAbortedError

logger = logging.getLogger(__name__)

ARRAY_SUFFIX = '[]'


@dataclass(frozen=True)
class FileRef:
    """
    Metadata for an uploaded file.

    ``content_handle`` is the underlying ``UploadedFile``; nothing in this
    package reads from it.
    """

    name: str
    size: int
    mime_type: str
    content_handle: Any = field(default=None, repr=False, compare=False)

    @property
    def content_type(self) -> str:
        return self.mime_type

    @classmethod
    def from_upload(cls, upload: Any) -> 'FileRef':
        return cls(
            name=getattr(upload, 'name', None) or '',
            size=getattr(upload, 'size', None) or 0,
            mime_type=getattr(upload, 'content_type', None) or '',
            content_handle=upload,
        )


class BodyKind(enum.Enum):
    JSON = 'json'
    MULTIPART = 'multipart'
    URLENCODED = 'urlencoded'
    EMPTY = 'empty'

    @classmethod
    def from_content_type(cls, content_type: str) -> 'BodyKind':
        """Classify a Content-Type value; parameters such as charset are ignored."""
        media_type = (content_type or '').split(';', 1)[0].strip().lower()

        if media_type == 'application/json' or media_type.endswith('+json'):
            return cls.JSON
        if media_type == 'multipart/form-data':
            return cls.MULTIPART
        if media_type == 'application/x-www-form-urlencoded':
            return cls.URLENCODED
        return cls.EMPTY


def coalesce_pairs(pairs: Iterable[Tuple[str, List[Any]]]) -> Dict[str, Any]:
    """
    Flatten multi-valued form/query pairs.

    ``name[]`` keys become one list under ``name`` in submission order; any
    other repeated key keeps its last value.
    """
    result: Dict[str, Any] = {}

    for key, values in pairs:
        if key.endswith(ARRAY_SUFFIX) and len(key) > len(ARRAY_SUFFIX):
            base_key = key[:-len(ARRAY_SUFFIX)]
            existing = result.get(base_key)
            if not isinstance(existing, list):
                existing = []
            result[base_key] = existing + list(values)
        elif values:
            result[key] = values[-1]
        else:
            result[key] = ''

    return result


def flatten_query_dict(query_dict: QueryDict) -> Dict[str, Any]:
    """Flatten a QueryDict (GET parameters or a url-encoded body)."""
    return coalesce_pairs(query_dict.lists())


class BodyParser:
    """
    Content-type dispatched body decoder.

    Stateless; one instance can serve any number of concurrent requests.
    """

    def parse(self, request: HttpRequest) -> Any:
        """
        Parse the request body.

        Returns:
            dict/list/primitive tree; ``{}`` for a missing or unknown content type

        Raises:
            MalformedBodyError: body does not decode as declared
            BodyTooLargeError: transport refused to buffer the body
            RequestAbortedError: body stream could not be read
        """
        kind = BodyKind.from_content_type(request.content_type)
        handler = getattr(self, f'parse_{kind.value}')
        return handler(request)

    def parse_json(self, request: HttpRequest) -> Any:
        raw = self._read_body(request)

        try:
            text = raw.decode(request.encoding or 'utf-8')
            return json.loads(text, parse_constant=_reject_constant)
        except (UnicodeDecodeError, LookupError, ValueError, RecursionError) as e:
            raise MalformedBodyError('Invalid JSON in request body') from e

    def parse_multipart(self, request: HttpRequest) -> Dict[str, Any]:
        try:
            if request.method == 'POST':
                fields, files = request.POST, request.FILES
            else:
                # Django only populates request.POST for POST requests
                fields, files = request.parse_file_upload(request.META, request)
        except RequestDataTooBig as e:
            raise BodyTooLargeError(str(e)) from e
        except (MultiPartParserError, SuspiciousOperation) as e:
            raise MalformedBodyError('Invalid form data in request body') from e
        except (UnreadablePostError, RequestAborted, OSError) as e:
            raise RequestAbortedError('Request body could not be read') from e

        pairs = list(fields.lists())
        pairs.extend(
            (key, [FileRef.from_upload(upload) for upload in uploads])
            for key, uploads in files.lists()
        )
        return coalesce_pairs(pairs)

    def parse_urlencoded(self, request: HttpRequest) -> Dict[str, Any]:
        raw = self._read_body(request)

        try:
            query_dict = QueryDict(raw, encoding=request.encoding)
        except (SuspiciousOperation, UnicodeDecodeError, LookupError) as e:
            raise MalformedBodyError('Invalid form data in request body') from e

        return flatten_query_dict(query_dict)

    def parse_empty(self, request: HttpRequest) -> Dict[str, Any]:
        return {}

    def _read_body(self, request: HttpRequest) -> bytes:
        try:
            return request.body
        except RequestDataTooBig as e:
            raise BodyTooLargeError(str(e)) from e
        except (UnreadablePostError, RequestAborted, OSError) as e:
            logger.info(f"Request body read aborted: {e}")
            raise RequestAbortedError('Request body could not be read') from e


def _reject_constant(name: str) -> Any:
    raise ValueError(f'Invalid JSON constant: {name}')
