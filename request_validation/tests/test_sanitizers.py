"""
Tests for sanitizers.
"""

import re
from unittest import mock

from django.test import SimpleTestCase
from django.utils.safestring import SafeString

from request_validation.parsers import FileRef
from request_validation.sanitizers import (
    DEFAULT_POLICY,
    create_safe_html,
    safe_highlight,
    sanitize_file_name,
    sanitize_html,
    sanitize_object,
    sanitize_search_query,
    sanitize_text,
    sanitize_url,
)


class SanitizeHtmlTests(SimpleTestCase):
    """Tests for sanitize_html."""

    def test_allowed_markup_is_kept(self):
        """Default allow-listed tags and attributes survive."""
        result = sanitize_html('<p class="lead" data-id="7" aria-label="intro">Hi <b>there</b></p>')
        self.assertIn('<b>there</b>', result)
        self.assertIn('class="lead"', result)
        self.assertIn('data-id="7"', result)
        self.assertIn('aria-label="intro"', result)

    def test_script_removed_with_content(self):
        """Forbidden elements are dropped together with their content."""
        result = sanitize_html('<script>alert("XSS")</script><b>ok</b>')
        self.assertEqual(result, '<b>ok</b>')

    def test_event_handlers_removed(self):
        """on* handlers never survive."""
        result = sanitize_html('<p onclick="steal()">Hi</p>')
        self.assertEqual(result, '<p>Hi</p>')

    def test_href_and_src_denied_by_default(self):
        """Links and media attributes are not allowed by default."""
        result = sanitize_html('<span href="https://example.com" src="x.png">t</span>')
        self.assertEqual(result, '<span>t</span>')

    def test_style_attribute_denied(self):
        result = sanitize_html('<div style="color: red" title="t">x</div>')
        self.assertEqual(result, '<div title="t">x</div>')

    def test_obfuscated_payloads(self):
        """Output never carries script tags, handlers or script URLs."""
        payloads = [
            '<ScRiPt>alert(1)</sCrIpT>',
            '<script >alert(1)</script >',
            '<img src=x onerror=alert(1)>',
            '<IMG SRC="javascript:alert(\'x\')">',
            '<b onmouseover = "x">y</b>',
            '<div OnLoad="x">y</div>',
            '<a href="javascript:alert(1)">click</a>',
            '<a href="data:text/html;base64,PHNjcmlwdD4=">click</a>',
            '<svg><script>alert(1)</script></svg>',
            '<object data="evil.swf"></object><embed src="evil.swf">',
            '<style>body{}</style><link rel="stylesheet" href="x.css"><meta http-equiv="refresh">',
        ]

        for payload in payloads:
            with self.subTest(payload=payload):
                result = sanitize_html(payload)
                self.assertNotRegex(result, re.compile(r'<\s*script', re.IGNORECASE))
                self.assertNotRegex(result, re.compile(r'on[a-z]+\s*=', re.IGNORECASE))
                self.assertNotRegex(result, re.compile(r'(javascript|data):', re.IGNORECASE))

    def test_max_length_truncates_before_cleaning(self):
        self.assertEqual(sanitize_html('abcdefghij', max_length=5), 'abcde...')

    def test_strip_tags(self):
        """All tags removed, text kept."""
        self.assertEqual(sanitize_html('<b>bold</b> text', strip_tags=True), 'bold text')

    def test_custom_allowed_tags_and_attributes(self):
        """Explicitly allowed href survives with a safe protocol only."""
        result = sanitize_html(
            '<a href="https://example.com">x</a>',
            allowed_tags=['a'],
            allowed_attributes=['href'],
        )
        self.assertEqual(result, '<a href="https://example.com">x</a>')

        result = sanitize_html(
            '<a href="javascript:alert(1)">x</a>',
            allowed_tags=['a'],
            allowed_attributes=['href'],
        )
        self.assertEqual(result, '<a>x</a>')

    def test_forbidden_tags_cannot_be_allowed(self):
        result = sanitize_html('<script>x</script><style>y</style>', allowed_tags=['script', 'style'])
        self.assertEqual(result, '')

    def test_handlers_cannot_be_allowed(self):
        result = sanitize_html('<b onclick="x">y</b>', allowed_attributes=['onclick'])
        self.assertEqual(result, '<b>y</b>')

    def test_non_string_input(self):
        for value in [None, 42, ['<b>x</b>'], '']:
            with self.subTest(value=value):
                self.assertEqual(sanitize_html(value), '')

    def test_internal_error_returns_empty_string(self):
        with mock.patch('request_validation.sanitizers.bleach.clean', side_effect=RuntimeError('boom')):
            self.assertEqual(sanitize_html('<b>x</b>'), '')

    def test_default_policy_is_immutable(self):
        with self.assertRaises(AttributeError):
            DEFAULT_POLICY.allowed_tags = frozenset({'script'})


class SanitizeTextTests(SimpleTestCase):
    """Tests for sanitize_text."""

    def test_strips_markup_and_whitespace(self):
        self.assertEqual(sanitize_text('<p>Hello   <b>World</b></p>\n\n'), 'Hello World')

    def test_drops_script_content(self):
        self.assertEqual(sanitize_text('<script>alert(1)</script>Hi'), 'Hi')

    def test_removes_null_bytes(self):
        self.assertEqual(sanitize_text('Hello\x00World'), 'HelloWorld')

    def test_truncate(self):
        """Truncated text, suffix included, fits max_length."""
        result = sanitize_text('Hello wonderful world', max_length=10)
        self.assertEqual(result, 'Hello w...')
        self.assertLessEqual(len(result), 10)

    def test_truncate_shorter_than_suffix(self):
        """No room for '...': the text is cut without it."""
        for max_length in [1, 2, 3]:
            with self.subTest(max_length=max_length):
                result = sanitize_text('Hello world', max_length=max_length)
                self.assertEqual(result, 'Hello'[:max_length])
                self.assertEqual(sanitize_text(result, max_length=max_length), result)

        self.assertEqual(sanitize_text('a &amp; b', max_length=3), 'a')

    def test_idempotent(self):
        samples = [
            'plain',
            'a < b & c',
            '<b>x</b>  y',
            '&amp;lt;',
            '  spaced\t\ttext ',
            '<<b>script>alert(1)</b>',
            '<p>caf\u00e9 &nbsp; cr\u00e8me</p>',
            'x' * 50,
        ]

        for sample in samples:
            with self.subTest(sample=sample):
                once = sanitize_text(sample)
                self.assertEqual(sanitize_text(once), once)

        for sample in samples:
            with self.subTest(sample=sample, max_length=8):
                once = sanitize_text(sample, max_length=8)
                self.assertEqual(sanitize_text(once, max_length=8), once)

    def test_non_string_input(self):
        self.assertEqual(sanitize_text(None), '')
        self.assertEqual(sanitize_text(12), '')


class SanitizeSearchQueryTests(SimpleTestCase):
    """Tests for sanitize_search_query."""

    def test_removes_dangerous_characters(self):
        result = sanitize_search_query('hello <script>"world"</script> 100%')
        self.assertEqual(result, 'hello scriptworldscript 100')

    def test_keeps_safe_characters(self):
        self.assertEqual(sanitize_search_query('data-science v2.0_final'), 'data-science v2.0_final')

    def test_collapses_whitespace(self):
        self.assertEqual(sanitize_search_query('  multiple   spaces  here  '), 'multiple spaces here')

    def test_length_cap(self):
        self.assertEqual(len(sanitize_search_query('a' * 300)), 200)

    def test_non_string_input(self):
        self.assertEqual(sanitize_search_query(None), '')


class SanitizeFileNameTests(SimpleTestCase):
    """Tests for sanitize_file_name."""

    def test_examples(self):
        test_cases = [
            ('report.pdf', 'report.pdf'),
            ('../../etc/passwd', '_etc_passwd'),
            ('.hidden', 'hidden'),
            ('my file?.txt', 'my_file_.txt'),
            ('C:\\Windows\\system32', 'C_Windows_system32'),
            ('a<b>c|d', 'a_b_c_d'),
        ]

        for name, expected in test_cases:
            with self.subTest(name=name):
                self.assertEqual(sanitize_file_name(name), expected)

    def test_never_unsafe_or_empty(self):
        names = ['', '..', '...', '/', '\\', '../..', '....//....', '.', '  ', '..\\..\\x', None, 7]

        for name in names:
            with self.subTest(name=name):
                result = sanitize_file_name(name)
                self.assertTrue(result)
                self.assertNotIn('/', result)
                self.assertNotIn('\\', result)
                self.assertNotIn('..', result)

    def test_empty_becomes_untitled(self):
        self.assertEqual(sanitize_file_name(''), 'untitled')
        self.assertEqual(sanitize_file_name('.'), 'untitled')

    def test_length_cap(self):
        self.assertEqual(len(sanitize_file_name('a' * 300 + '.txt')), 255)


class SanitizeUrlTests(SimpleTestCase):
    """Tests for sanitize_url."""

    def test_safe_urls(self):
        test_cases = [
            ('https://example.com/path', 'https://example.com/path'),
            ('https://Example.COM', 'https://example.com/'),
            ('https://example.com:8443/x?y=1#z', 'https://example.com:8443/x?y=1#z'),
            ('http://172.32.0.1/', 'http://172.32.0.1/'),
            ('mailto:user@example.com', 'mailto:user@example.com'),
            ('  https://example.com/padded  ', 'https://example.com/padded'),
            ('http://0x08080808/dns', 'http://8.8.8.8/dns'),
            ('http://134744072/', 'http://8.8.8.8/'),
            ('https://example.com\\docs\\a', 'https://example.com/docs/a'),
        ]

        for url, expected in test_cases:
            with self.subTest(url=url):
                self.assertEqual(sanitize_url(url), expected)

    def test_rejected_urls(self):
        urls = [
            'http://localhost/x',
            'http://10.0.0.5/',
            'http://127.0.0.1:8000/',
            'http://127.1.2.3/',
            'http://0.0.0.0/',
            'http://[::1]/',
            'http://[::]/',
            'http://172.16.0.1/',
            'http://172.31.255.255/',
            'http://192.168.1.1/admin',
            'http://169.254.169.254/latest/meta-data',
            'http://2130706433/',
            'http://0x7f000001/',
            'http://0177.0.0.1/',
            'http://0x7f.1/',
            'http://127.1/',
            'http://0/',
            'http://3232235777/',
            'http://localhost./',
            'http://127.0.0.1\\@evil.com/',
            'https://localhost\\.example.com/',
            'http://256.1.1.1/',
            'javascript:alert(1)',
            'data:text/html;base64,PHNjcmlwdD4=',
            'ftp://example.com/file',
            'http:///path',
            'http://a..b/',
            'https://exa mple.com/',
            'not a url',
            'https://example.com/' + 'a' * 2100,
            '',
            None,
        ]

        for url in urls:
            with self.subTest(url=url):
                self.assertIsNone(sanitize_url(url))


class SafeHighlightTests(SimpleTestCase):
    """Tests for safe_highlight."""

    def test_single_match(self):
        result = safe_highlight('hello world', [(0, 4)], 'hl')
        self.assertEqual(result, '<span class="hl">hello</span> world')

    def test_output_is_stable_under_sanitize_html(self):
        result = safe_highlight('hello world', [(0, 4)], 'hl')
        self.assertEqual(sanitize_html(result), result)

    def test_multiple_matches(self):
        result = safe_highlight('hello world', [[0, 4], [6, 10]], 'hl')
        self.assertEqual(result, '<span class="hl">hello</span> <span class="hl">world</span>')

    def test_out_of_range_matches_dropped(self):
        self.assertEqual(safe_highlight('hello', [(2, 10), (-1, 2), (3, 1)]), 'hello')

    def test_overlapping_matches_dropped(self):
        result = safe_highlight('hello world', [(0, 4), (2, 6)])
        self.assertEqual(result, 'he<span class="highlight">llo w</span>orld')

    def test_class_name_restricted(self):
        result = safe_highlight('abc', [(0, 0)], 'hl x;y')
        self.assertEqual(result, '<span class="hlxy">a</span>bc')

    def test_text_is_sanitized(self):
        result = safe_highlight('<b>bold</b> move', [(0, 3)])
        self.assertEqual(result, '<span class="highlight">bold</span> move')

    def test_no_matches(self):
        self.assertEqual(safe_highlight('<b>x</b>', []), '<b>x</b>')
        self.assertEqual(safe_highlight('<b>x</b>', None), '<b>x</b>')


class SanitizeObjectTests(SimpleTestCase):
    """Tests for sanitize_object."""

    def test_sanitizes_strings_recursively(self):
        data = {
            'name': '<script>x</script>Bob',
            'tags': ['<b>a</b>', '<img src=x onerror=y>'],
            'count': 1,
            'active': True,
            'nested': {'bio': '<p onclick="z">text</p>'},
        }

        result = sanitize_object(data)

        self.assertEqual(result, {
            'name': 'Bob',
            'tags': ['<b>a</b>', ''],
            'count': 1,
            'active': True,
            'nested': {'bio': '<p>text</p>'},
        })

    def test_keys_are_sanitized_as_text(self):
        self.assertEqual(sanitize_object({'<b>key</b>': 'v'}), {'key': 'v'})

    def test_input_is_not_mutated(self):
        data = {'a': '<script>x</script>'}
        sanitize_object(data)
        self.assertEqual(data, {'a': '<script>x</script>'})

    def test_depth_limit(self):
        """At max_depth=5 the first five levels are sanitized, the rest kept intact."""
        payload = '<img src=x onerror=alert(1)>'
        root = current = {'value': payload}
        for _ in range(9):
            child = {'value': payload}
            current['child'] = child
            current = child

        result = sanitize_object(root, max_depth=5)

        node = result
        for level in range(1, 6):
            with self.subTest(level=level):
                self.assertEqual(node['value'], '')
            node = node['child']

        levels_left = 0
        while node is not None:
            self.assertEqual(node['value'], payload)
            levels_left += 1
            node = node.get('child')
        self.assertEqual(levels_left, 5)

    def test_file_refs_pass_through(self):
        ref = FileRef(name='a.txt', size=1, mime_type='text/plain')
        self.assertEqual(sanitize_object({'file': ref}), {'file': ref})

    def test_lists_at_top_level(self):
        self.assertEqual(sanitize_object(['<b>x</b>', {'k': '<script>v</script>'}]), ['<b>x</b>', {'k': ''}])

    def test_non_containers_returned_unchanged(self):
        self.assertEqual(sanitize_object('text'), 'text')
        self.assertIsNone(sanitize_object(None))

    def test_internal_error_fails_closed(self):
        with mock.patch('request_validation.sanitizers._sanitize_node', side_effect=RuntimeError('boom')):
            self.assertEqual(sanitize_object({'a': 'b'}), {})


class CreateSafeHtmlTests(SimpleTestCase):
    """Tests for create_safe_html."""

    def test_returns_safe_string(self):
        result = create_safe_html('<b onclick="x">y</b>')
        self.assertIsInstance(result, SafeString)
        self.assertEqual(result, '<b>y</b>')

    def test_passes_options(self):
        self.assertEqual(create_safe_html('<b>bold</b>', strip_tags=True), 'bold')
