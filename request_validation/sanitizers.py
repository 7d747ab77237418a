"""
Input sanitization utilities.

This module provides functions to clean untrusted input:
- HTML (allow-list based, via bleach)
- Plain text
- Search queries
- File names
- URLs (SSRF-unsafe hosts rejected)
- Highlight markup over sanitized text
- Whole payload trees

Every function runs directly on attacker-controlled input, so none of them
raises: on an internal error each one logs and returns a neutral value.
"""

import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, Iterable, Optional, Sequence, Tuple
from urllib.parse import urlsplit, urlunsplit

import bleach
from django.utils.safestring import SafeString, mark_safe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SanitizerPolicy:
    """
    Immutable HTML sanitization policy.

    Built once and shared by reference; per-call options derive new values
    instead of mutating it.
    """

    allowed_tags: FrozenSet[str]
    # Attribute names; entries ending in '*' are prefixes ('data-*')
    allowed_attributes: FrozenSet[str]
    forbidden_tags: FrozenSet[str]
    denied_attributes: FrozenSet[str]
    protocols: FrozenSet[str]


DEFAULT_POLICY = SanitizerPolicy(
    allowed_tags=frozenset({
        'b', 'i', 'em', 'strong', 'u', 'span', 'div', 'p', 'br',
        'ul', 'ol', 'li', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
        'blockquote', 'pre', 'code', 'mark', 'small', 'del', 'ins',
    }),
    allowed_attributes=frozenset({'class', 'id', 'title', 'data-*', 'aria-*'}),
    forbidden_tags=frozenset({'script', 'object', 'embed', 'link', 'style', 'meta'}),
    denied_attributes=frozenset({'href', 'src'}),
    protocols=frozenset({'http', 'https', 'mailto'}),
)

ELLIPSIS = '...'
MAX_SEARCH_QUERY_LENGTH = 200
MAX_FILE_NAME_LENGTH = 255
MAX_URL_LENGTH = 2048
DEFAULT_FILE_NAME = 'untitled'
DEFAULT_HIGHLIGHT_CLASS = 'highlight'

BLOCKED_HOSTS = frozenset({'localhost', '127.0.0.1', '0.0.0.0', '::', '::1'})
PRIVATE_HOST_PATTERN = re.compile(
    r'^(10\.|172\.(1[6-9]|2[0-9]|3[01])\.|192\.168\.|169\.254\.|127\.)'
)

_WHITESPACE = re.compile(r'\s+')
_TRAILING_ENTITY = re.compile(r'&[#\w]*$')
_CONTROL_OR_SPACE = re.compile(r'[\x00-\x20\x7f]')
_CLASS_NAME_UNSAFE = re.compile(r'[^a-zA-Z0-9_-]')
# Hosts that resolvers read as IPv4: decimal, octal or 0x-hex labels
_NUMERIC_HOST = re.compile(r'^((0x[0-9a-f]*|[0-9]+)\.){0,3}(0x[0-9a-f]*|[0-9]+)\.?$', re.IGNORECASE)


def _forbidden_block_pattern(tags: Iterable[str]) -> 're.Pattern[str]':
    names = '|'.join(sorted(re.escape(tag) for tag in tags))
    return re.compile(
        rf'<\s*({names})\b[^>]*>.*?<\s*/\s*\1\s*>',
        re.IGNORECASE | re.DOTALL,
    )


_DEFAULT_FORBIDDEN_BLOCKS = _forbidden_block_pattern(DEFAULT_POLICY.forbidden_tags)


def _strip_forbidden_blocks(value: str, policy: SanitizerPolicy) -> str:
    """Remove forbidden elements together with their content."""
    pattern = (
        _DEFAULT_FORBIDDEN_BLOCKS
        if policy.forbidden_tags == DEFAULT_POLICY.forbidden_tags
        else _forbidden_block_pattern(policy.forbidden_tags)
    )
    # Repeat until stable so nested fragments cannot reassemble a block
    while True:
        stripped = pattern.sub('', value)
        if stripped == value:
            return stripped
        value = stripped


def _attribute_filter(
    policy: SanitizerPolicy,
    allowed_attributes: Optional[Iterable[str]],
) -> Callable[[str, str, str], bool]:
    explicit = allowed_attributes is not None
    entries = (
        frozenset(attr.lower() for attr in allowed_attributes)
        if explicit
        else policy.allowed_attributes
    )
    names = frozenset(entry for entry in entries if not entry.endswith('*'))
    prefixes = tuple(entry[:-1] for entry in entries if entry.endswith('*'))

    def allow(tag: str, name: str, value: str) -> bool:
        name = name.lower()
        if name.startswith('on'):
            return False
        if name in policy.denied_attributes and not (explicit and name in names):
            return False
        return name in names or name.startswith(prefixes)

    return allow


def sanitize_html(
    value: Any,
    allowed_tags: Optional[Iterable[str]] = None,
    allowed_attributes: Optional[Iterable[str]] = None,
    strip_tags: bool = False,
    max_length: Optional[int] = None,
    policy: SanitizerPolicy = DEFAULT_POLICY,
) -> str:
    """
    Sanitize HTML content against an allow-list.

    Args:
        value: HTML content to sanitize
        allowed_tags: Tags to keep instead of the policy's default set
        allowed_attributes: Attribute names to keep ('data-*' style prefixes allowed)
        strip_tags: Remove every tag, keeping text content
        max_length: Truncate the input to this length (plus '...') before cleaning
        policy: Base policy

    Returns:
        Sanitized HTML, or '' for empty/non-string input or on error.
        Forbidden tags and on* handlers never survive, whatever the options.
    """
    if not value or not isinstance(value, str):
        return ''

    try:
        content = value.replace('\x00', '')
        if max_length and len(content) > max_length:
            content = content[:max_length] + ELLIPSIS

        content = _strip_forbidden_blocks(content, policy)

        if strip_tags:
            return bleach.clean(content, tags=set(), attributes={}, strip=True)

        tags = set(allowed_tags) if allowed_tags is not None else set(policy.allowed_tags)
        tags -= policy.forbidden_tags

        return bleach.clean(
            content,
            tags=tags,
            attributes=_attribute_filter(policy, allowed_attributes),
            protocols=set(policy.protocols),
            strip=True,
            strip_comments=True,
        )
    except Exception as e:
        logger.error(f"HTML sanitization error: {str(e)}", exc_info=True)
        return ''


def _truncate(value: str, max_length: int, suffix: str = ELLIPSIS) -> str:
    """Truncate escaped text to max_length characters including suffix."""
    if len(value) <= max_length:
        return value

    # No room for the suffix
    if max_length <= len(suffix):
        return _TRAILING_ENTITY.sub('', value[:max_length]).rstrip()

    cut = value[:max_length - len(suffix)]
    # Never leave half an entity behind
    cut = _TRAILING_ENTITY.sub('', cut).rstrip()
    return cut + suffix


def sanitize_text(value: Any, max_length: Optional[int] = None) -> str:
    """
    Reduce input to plain text.

    All markup is removed (forbidden elements with their content), remaining
    special characters stay entity-escaped, whitespace runs collapse to one
    space, and the result is trimmed and optionally truncated. Applying it
    twice gives the same result as applying it once.
    """
    if not value or not isinstance(value, str):
        return ''

    try:
        cleaned = _strip_forbidden_blocks(value.replace('\x00', ''), DEFAULT_POLICY)
        cleaned = bleach.clean(cleaned, tags=set(), attributes={}, strip=True)
        cleaned = _WHITESPACE.sub(' ', cleaned).strip()

        if max_length and len(cleaned) > max_length:
            cleaned = _truncate(cleaned, max_length)

        return cleaned
    except Exception as e:
        logger.error(f"Text sanitization error: {str(e)}", exc_info=True)
        return ''


def sanitize_search_query(query: Any) -> str:
    """Restrict a search query to word characters, spaces, hyphens and dots."""
    if not query or not isinstance(query, str):
        return ''

    try:
        cleaned = re.sub(r'[<>"\'%&\x00-\x1f\x7f-\x9f]', '', query)
        cleaned = re.sub(r'[^\w\s\-.]', '', cleaned, flags=re.ASCII)
        cleaned = _WHITESPACE.sub(' ', cleaned).strip()
        return cleaned[:MAX_SEARCH_QUERY_LENGTH].rstrip()
    except Exception as e:
        logger.error(f"Search query sanitization error: {str(e)}", exc_info=True)
        return ''


def sanitize_file_name(name: Any) -> str:
    """
    Make a client-supplied file name safe to use as a single path component.

    Never returns '/', '\\' or '..', and never an empty string.
    """
    if not name or not isinstance(name, str):
        return DEFAULT_FILE_NAME

    try:
        cleaned = re.sub(r'[/\\:*?"<>|]', '_', name)
        cleaned = cleaned.replace('..', '_')
        cleaned = re.sub(r'^\.+', '', cleaned)
        cleaned = re.sub(r'[^\w\-.]', '_', cleaned, flags=re.ASCII)
        cleaned = re.sub(r'_+', '_', cleaned)
        cleaned = cleaned.strip()[:MAX_FILE_NAME_LENGTH]

        return cleaned or DEFAULT_FILE_NAME
    except Exception as e:
        logger.error(f"File name sanitization error: {str(e)}", exc_info=True)
        return DEFAULT_FILE_NAME


def _canonical_ipv4(hostname: str) -> Optional[str]:
    """
    Dotted form of a numeric IPv4 host ('2130706433', '0x7f.1', '0177.0.0.1').

    Returns None for domain names. Raises ValueError for a numeric host that
    is not a valid address.
    """
    if not _NUMERIC_HOST.match(hostname):
        return None

    packed = socket.inet_aton(hostname.rstrip('.'))
    return str(ipaddress.IPv4Address(packed))


def _is_blocked_host(hostname: str) -> bool:
    if hostname.rstrip('.') in BLOCKED_HOSTS or PRIVATE_HOST_PATTERN.match(hostname):
        return True

    if '..' in hostname or '//' in hostname:
        return True

    if ':' in hostname:
        try:
            address = ipaddress.ip_address(hostname)
        except ValueError:
            return True
        mapped = getattr(address, 'ipv4_mapped', None)
        if mapped is not None:
            return _is_blocked_host(str(mapped))
        return address.is_loopback or address.is_unspecified

    return False


def sanitize_url(url: Any) -> Optional[str]:
    """
    Validate a URL for rendering or following.

    Returns:
        The canonical URL, or None when the URL is too long, uses a protocol
        other than http/https/mailto, or points at a loopback/private host.
        Callers must treat None as "do not render/follow".
    """
    if not url or not isinstance(url, str):
        return None

    try:
        if len(url) > MAX_URL_LENGTH:
            return None

        candidate = url.strip()
        if _CONTROL_OR_SPACE.search(candidate):
            return None

        parts = urlsplit(candidate)
        scheme = parts.scheme.lower()
        if scheme not in DEFAULT_POLICY.protocols:
            return None

        if scheme == 'mailto':
            if not parts.path:
                return None
            return urlunsplit((scheme, '', parts.path, parts.query, parts.fragment))

        # Browsers read '\' as '/' in http(s) URLs
        if '\\' in candidate:
            parts = urlsplit(candidate.replace('\\', '/'))

        hostname = parts.hostname
        if not hostname:
            return None

        try:
            hostname = _canonical_ipv4(hostname) or hostname
        except (OSError, ValueError):
            return None

        if _is_blocked_host(hostname):
            return None

        netloc = f'[{hostname}]' if ':' in hostname else hostname
        if parts.port is not None:
            netloc = f'{netloc}:{parts.port}'
        if '@' in parts.netloc:
            userinfo = parts.netloc.rsplit('@', 1)[0]
            netloc = f'{userinfo}@{netloc}'

        return urlunsplit((scheme, netloc, parts.path or '/', parts.query, parts.fragment))
    except Exception as e:
        logger.error(f"URL sanitization error: {str(e)}", exc_info=True)
        return None


def safe_highlight(
    text: Any,
    matches: Optional[Sequence[Tuple[int, int]]],
    class_name: str = DEFAULT_HIGHLIGHT_CLASS,
) -> str:
    """
    Wrap ranges of sanitized text in <span class="..."> markup.

    Args:
        text: Raw text; it is passed through sanitize_text first
        matches: Inclusive (start, end) offsets into the sanitized text
        class_name: CSS class, reduced to [a-zA-Z0-9_-]

    Returns:
        Highlighted HTML. Out-of-range or overlapping matches are dropped.
    """
    if not text or not matches:
        return sanitize_html(text)

    try:
        clean_text = sanitize_text(text)
        valid = [
            (start, end)
            for start, end in matches
            if isinstance(start, int) and isinstance(end, int)
            and 0 <= start <= end < len(clean_text)
        ]
        if not valid:
            return sanitize_html(text)

        safe_class = _CLASS_NAME_UNSAFE.sub('', sanitize_text(class_name)) or DEFAULT_HIGHLIGHT_CLASS

        result = clean_text
        boundary = len(clean_text)
        # Descending order keeps the offsets of not-yet-applied matches valid
        for start, end in sorted(valid, key=lambda match: match[0], reverse=True):
            if end >= boundary:
                continue
            result = (
                f'{result[:start]}<span class="{safe_class}">'
                f'{result[start:end + 1]}</span>{result[end + 1:]}'
            )
            boundary = start

        return result
    except Exception as e:
        logger.error(f"Safe highlight error: {str(e)}", exc_info=True)
        return sanitize_html(text)


def _sanitize_node(value: Any, depth: int) -> Any:
    if isinstance(value, str):
        return sanitize_html(value)

    if isinstance(value, dict):
        if depth <= 0:
            return value
        return {
            sanitize_text(str(key)): _sanitize_node(item, depth - 1)
            for key, item in value.items()
        }

    if isinstance(value, list):
        if depth <= 0:
            return value
        return [_sanitize_node(item, depth - 1) for item in value]

    return value


def sanitize_object(obj: Any, max_depth: int = 5) -> Any:
    """
    Rebuild a payload tree with every string sanitized.

    Keys go through sanitize_text, string values through sanitize_html. Each
    dict or list consumes one level of ``max_depth``; containers found past
    the limit are returned unchanged. On an internal error the result is an
    empty dict.
    """
    if not isinstance(obj, (dict, list)):
        return obj

    try:
        return _sanitize_node(obj, max_depth)
    except Exception as e:
        logger.error(f"Object sanitization error: {str(e)}", exc_info=True)
        return {}


def create_safe_html(value: Any, **options: Any) -> SafeString:
    """Sanitize HTML and mark it safe for template rendering."""
    return mark_safe(sanitize_html(value, **options))
