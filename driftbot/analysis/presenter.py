"""Turn findings into check-run output and pull request review text."""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence, TypeVar

from driftbot.models.analysis import (
    AnalysisRequest,
    AnalysisResult,
    Annotation,
    AnnotationLevel,
    Finding,
    has_errors,
)

MAX_ANNOTATIONS_PER_REQUEST = 50
NO_DRIFT_SUMMARY = "✅ No drift detected. All checks passed."
REVIEW_TRAILER = "---\n*Powered by [Rigour](https://rigour.run)*"

_LEVELS: Dict[str, AnnotationLevel] = {
    "error": "failure",
    "warning": "warning",
    "info": "notice",
}

T = TypeVar("T")


def summarize(findings: Sequence[Finding]) -> str:
    if not findings:
        return NO_DRIFT_SUMMARY

    counts = {"error": 0, "warning": 0, "info": 0}
    for finding in findings:
        counts[finding.severity] = counts.get(finding.severity, 0) + 1

    parts = []
    if counts["error"]:
        parts.append(f"{counts['error']} error(s)")
    if counts["warning"]:
        parts.append(f"{counts['warning']} warning(s)")
    if counts["info"]:
        parts.append(f"{counts['info']} notice(s)")
    return f"Found {', '.join(parts)}"


def to_annotation(finding: Finding) -> Annotation | None:
    """Convert a finding that points at a file and line; others have no location."""

    if not finding.file or not finding.line:
        return None
    message = finding.message
    if finding.suggestion:
        message = f"{message}\n\nSuggestion: {finding.suggestion}"
    return Annotation(
        path=finding.file,
        start_line=finding.line,
        end_line=finding.end_line or finding.line,
        annotation_level=_LEVELS.get(finding.severity, "notice"),
        message=message,
        title=finding.gate,
    )


def to_annotations(findings: Iterable[Finding]) -> List[Annotation]:
    annotations = []
    for finding in findings:
        annotation = to_annotation(finding)
        if annotation is not None:
            annotations.append(annotation)
    return annotations


def chunk(items: Sequence[T], size: int = MAX_ANNOTATIONS_PER_REQUEST) -> List[List[T]]:
    """Split ``items`` into consecutive batches; an empty input yields one empty batch."""

    if size <= 0:
        raise ValueError("chunk size must be positive")
    if not items:
        return [[]]
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _format_entry(finding: Finding) -> str:
    entry = f"- **{finding.gate}**: {finding.message}"
    if finding.file:
        entry += f" (`{finding.file}:{finding.line or '?'}`)"
    if finding.suggestion:
        entry += f"\n  - 💡 {finding.suggestion}"
    return entry


def build_review_body(findings: Sequence[Finding], request: AnalysisRequest) -> str:
    files_line = f"**Files analyzed:** {len(request.files)}"
    branch_line = f"**Branch:** `{request.branch}` → `{request.base_branch}`"

    if not findings:
        return "\n".join([
            "## ✅ Rigour Analysis",
            "",
            "No issues detected in this pull request.",
            "",
            files_line,
            branch_line,
        ])

    errors = [f for f in findings if f.severity == "error"]
    warnings = [f for f in findings if f.severity == "warning"]

    icon = "❌" if errors else "⚠️"
    sections = [f"## {icon} Rigour Analysis", f"{files_line}\n{branch_line}"]
    if errors:
        lines = [f"### 🚨 Errors ({len(errors)})", ""]
        lines.extend(_format_entry(f) for f in errors)
        sections.append("\n".join(lines))
    if warnings:
        lines = [f"### ⚠️ Warnings ({len(warnings)})", ""]
        lines.extend(_format_entry(f) for f in warnings)
        sections.append("\n".join(lines))
    sections.append(REVIEW_TRAILER)
    return "\n\n".join(sections)


def build_result(
    findings: Sequence[Finding],
    request: AnalysisRequest,
    *,
    passed: bool | None = None,
    source: str = "local",
) -> AnalysisResult:
    """Assemble an ``AnalysisResult``.

    When ``passed`` is omitted it is derived from the findings: a result
    fails exactly when some finding has severity ``error``. A remote verdict
    can be supplied explicitly.
    """

    findings = tuple(findings)
    if passed is None:
        passed = not has_errors(findings)
    return AnalysisResult(
        passed=passed,
        summary=summarize(findings),
        findings=findings,
        annotations=tuple(to_annotations(findings)),
        review_body=build_review_body(findings, request),
        source=source,
    )
