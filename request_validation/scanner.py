"""
Threat scanner for parsed request values.

Walks an arbitrary value tree and tests every string leaf against a table of
injection heuristics:
- SQL injection
- XSS
- Path traversal
- Command injection

The heuristics are deliberately coarse. They flag, they never modify, and
they carry no policy: deciding that a finding rejects the request is the
pipeline's job.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, List, Pattern, Sequence, Tuple

from .exceptions import Finding, ThreatCategory
from .parsers import FileRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThreatRule:
    """
    One detection rule.

    ``supersedes`` lists categories that are not reported for a leaf once this
    rule matched it.
    """

    category: ThreatCategory
    pattern: Pattern[str]
    supersedes: FrozenSet[ThreatCategory] = frozenset()


DEFAULT_RULES: Tuple[ThreatRule, ...] = (
    ThreatRule(
        ThreatCategory.SQL_INJECTION,
        re.compile(
            r"(\b(SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC|UNION|SCRIPT)\b"
            r"|['\";]|--|\/\*|\*\/)",
            re.IGNORECASE,
        ),
    ),
    ThreatRule(
        ThreatCategory.XSS,
        re.compile(
            r'<script|javascript:|vbscript:|onload=|onerror=|onclick=|onmouseover=',
            re.IGNORECASE,
        ),
        # A script payload always carries the SCRIPT keyword and call parentheses
        supersedes=frozenset({
            ThreatCategory.SQL_INJECTION,
            ThreatCategory.COMMAND_INJECTION,
        }),
    ),
    ThreatRule(
        ThreatCategory.PATH_TRAVERSAL,
        re.compile(r'\.\.|%2e%2e|%2e\.|\.%2e', re.IGNORECASE),
    ),
    ThreatRule(
        ThreatCategory.COMMAND_INJECTION,
        re.compile(r'[;&|`$(){}\[\]\\]'),
    ),
)


def _join_key(path: str, key: Any) -> str:
    return f'{path}.{key}' if path else str(key)


class ThreatScanner:
    """
    Pure, deterministic scanner over value trees.

    Uses an explicit work stack instead of recursion so adversarially deep
    payloads cannot exhaust the interpreter stack.
    """

    def __init__(self, rules: Sequence[ThreatRule] = DEFAULT_RULES):
        self.rules = tuple(rules)

    def scan(self, value: Any, path_prefix: str = '') -> List[Finding]:
        """
        Scan a value tree.

        Args:
            value: Parsed value (dict, list, str, FileRef, other primitives)
            path_prefix: Path of ``value`` itself, e.g. 'body'

        Returns:
            Findings in document order
        """
        findings: List[Finding] = []
        stack: List[Tuple[Any, str]] = [(value, path_prefix)]

        while stack:
            node, path = stack.pop()
            try:
                if isinstance(node, str):
                    findings.extend(self.scan_leaf(node, path))
                elif isinstance(node, dict):
                    stack.extend(reversed([
                        (child, _join_key(path, key)) for key, child in node.items()
                    ]))
                elif isinstance(node, (list, tuple)):
                    stack.extend(reversed([
                        (child, f'{path}[{index}]') for index, child in enumerate(node)
                    ]))
                elif isinstance(node, FileRef):
                    stack.extend(reversed([
                        (node.name, _join_key(path, 'name')),
                        (node.mime_type, _join_key(path, 'mime_type')),
                    ]))
            except Exception:
                logger.warning(f"Threat scan skipped value at {path or 'input'}", exc_info=True)

        return findings

    def scan_leaf(self, text: str, path: str = '') -> List[Finding]:
        """Test one string against every rule. Never raises."""
        try:
            matched = [rule for rule in self.rules if rule.pattern.search(text)]
        except Exception:
            logger.warning(f"Threat scan failed for {path or 'input'}", exc_info=True)
            return []

        suppressed = set()
        for rule in matched:
            suppressed.update(rule.supersedes)

        findings = []
        reported = set()
        for rule in matched:
            if rule.category in suppressed or rule.category in reported:
                continue
            reported.add(rule.category)
            findings.append(Finding(category=rule.category, path=path))

        return findings


default_scanner = ThreatScanner()


def scan(value: Any, path_prefix: str = '') -> List[Finding]:
    """Scan ``value`` with the default rule table."""
    return default_scanner.scan(value, path_prefix)


def categories(findings: Iterable[Finding]) -> List[ThreatCategory]:
    """Distinct categories present in ``findings``, first-seen order."""
    seen: List[ThreatCategory] = []
    for finding in findings:
        if finding.category not in seen:
            seen.append(finding.category)
    return seen
