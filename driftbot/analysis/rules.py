"""Pattern rules evaluated against added diff lines.

Rules are plain data: adding a detection means appending a ``DriftRule``
to ``DEFAULT_RULES``, not writing a new branch in the analyzer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Pattern

from driftbot.models.analysis import Finding, Severity


def _any_file(filename: str) -> bool:
    return True


def _non_test_file(filename: str) -> bool:
    return "test" not in filename


@dataclass(frozen=True, slots=True)
class DriftRule:
    id: str
    gate: str
    severity: Severity
    pattern: Pattern[str]
    message: str
    suggestion: str | None = None
    applies_to: Callable[[str], bool] = _any_file

    def matches(self, filename: str, content: str) -> bool:
        return self.applies_to(filename) and self.pattern.search(content) is not None

    def to_finding(self, filename: str, line: int) -> Finding:
        return Finding(
            id=self.id,
            gate=self.gate,
            severity=self.severity,
            message=self.message,
            file=filename,
            line=line,
            suggestion=self.suggestion,
        )


HARDCODED_SECRET = DriftRule(
    id="security-hardcoded-secret",
    gate="security-drift",
    severity="error",
    pattern=re.compile(r"(?:password|secret|api[_-]?key|token)\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE),
    message="Potential hardcoded secret detected",
    suggestion="Use environment variables or a secrets manager",
)

SQL_INJECTION = DriftRule(
    id="security-sql-injection",
    gate="security-drift",
    severity="error",
    pattern=re.compile(r"\.(execute|query)\s*\([^)]*\+|f['\"].*\{.*\}.*SELECT", re.IGNORECASE),
    message="Potential SQL injection vulnerability",
    suggestion="Use parameterized queries",
)

CONSOLE_LOG = DriftRule(
    id="pattern-console-log",
    gate="pattern-drift",
    severity="warning",
    pattern=re.compile(r"console\.(log|debug|info)\("),
    message="Console statement should be removed before production",
    suggestion="Use a proper logging library",
    applies_to=_non_test_file,
)

STALE_REACT_LIFECYCLE = DriftRule(
    id="stale-react-lifecycle",
    gate="staleness-drift",
    severity="warning",
    pattern=re.compile(r"componentWillMount|componentWillReceiveProps|componentWillUpdate"),
    message="Using deprecated React lifecycle method",
    suggestion="Use modern React hooks or updated lifecycle methods",
)

TODO_COMMENT = DriftRule(
    id="pattern-todo-comment",
    gate="pattern-drift",
    severity="info",
    pattern=re.compile(r"//\s*(TODO|FIXME|HACK|XXX):", re.IGNORECASE),
    message="TODO/FIXME comment detected",
)

DEFAULT_RULES: tuple[DriftRule, ...] = (
    HARDCODED_SECRET,
    SQL_INJECTION,
    CONSOLE_LOG,
    STALE_REACT_LIFECYCLE,
    TODO_COMMENT,
)


def evaluate_line(
    filename: str,
    line: int,
    content: str,
    rules: Iterable[DriftRule] = DEFAULT_RULES,
) -> Iterator[Finding]:
    """Yield one finding per rule that fires on ``content``, in rule order."""

    for rule in rules:
        if rule.matches(filename, content):
            yield rule.to_finding(filename, line)
