"""Pattern-based drift analysis used when the Rigour service is unavailable."""

from __future__ import annotations

from typing import Iterable, List

from driftbot.analysis.diff_scanner import iter_added_lines
from driftbot.analysis.presenter import build_result
from driftbot.analysis.rules import DEFAULT_RULES, DriftRule, evaluate_line
from driftbot.logger import get_logger, log_with_context
from driftbot.models.analysis import AnalysisRequest, AnalysisResult, ChangedFile, Finding

logger = get_logger()


class LocalAnalyzer:
    def __init__(self, rules: Iterable[DriftRule] = DEFAULT_RULES) -> None:
        self._rules = tuple(rules)

    def scan_file(self, changed: ChangedFile) -> List[Finding]:
        # Binary, oversized and omitted files arrive without a patch.
        if not changed.patch:
            return []

        findings: List[Finding] = []
        for line_number, content in iter_added_lines(changed.patch):
            findings.extend(evaluate_line(changed.filename, line_number, content, self._rules))
        return findings

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        ctx_logger = log_with_context(logger, repository=request.repository, head_sha=request.commit)

        findings: List[Finding] = []
        skipped = 0
        for changed in request.files:
            if not changed.patch:
                skipped += 1
                continue
            findings.extend(self.scan_file(changed))

        result = build_result(findings, request, source="local")
        ctx_logger.info(
            f"Local analysis finished: files={len(request.files)}, skipped_without_patch={skipped}, "
            f"findings={len(findings)}, passed={result.passed}"
        )
        return result
