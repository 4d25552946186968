"""Shared data structures for drift analysis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Tuple

Severity = Literal["error", "warning", "info"]
AnnotationLevel = Literal["failure", "warning", "notice"]
Conclusion = Literal["success", "failure"]
ReviewEvent = Literal["APPROVE", "REQUEST_CHANGES", "COMMENT"]


@dataclass(frozen=True, slots=True)
class ChangedFile:
    filename: str
    status: str
    additions: int
    deletions: int
    patch: str | None = None


@dataclass(frozen=True, slots=True)
class AnalysisRequest:
    repository: str
    branch: str
    base_branch: str
    commit: str
    diff: str
    files: Tuple[ChangedFile, ...] = ()

    @property
    def filenames(self) -> list[str]:
        return [changed.filename for changed in self.files]


@dataclass(frozen=True, slots=True)
class Finding:
    id: str
    gate: str
    severity: Severity
    message: str
    file: str | None = None
    line: int | None = None
    end_line: int | None = None
    suggestion: str | None = None


@dataclass(frozen=True, slots=True)
class Annotation:
    path: str
    start_line: int
    end_line: int
    annotation_level: AnnotationLevel
    message: str
    title: str | None = None

    def to_payload(self) -> dict:
        payload = {
            "path": self.path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "annotation_level": self.annotation_level,
            "message": self.message,
        }
        if self.title:
            payload["title"] = self.title
        return payload


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    passed: bool
    summary: str
    findings: Tuple[Finding, ...] = ()
    annotations: Tuple[Annotation, ...] = ()
    review_body: str = ""
    source: Literal["remote", "local"] = "local"

    @property
    def conclusion(self) -> Conclusion:
        return "success" if self.passed else "failure"

    @property
    def review_event(self) -> ReviewEvent:
        return "COMMENT" if self.passed else "REQUEST_CHANGES"

    @property
    def should_post_review(self) -> bool:
        # Info-only findings still produce a review comment.
        return len(self.findings) > 0


def has_errors(findings: Tuple[Finding, ...] | list[Finding]) -> bool:
    return any(finding.severity == "error" for finding in findings)

