"""Client wrapper for the Rigour drift-analysis service.

The remote call is best effort. Timeouts, transport errors, non-2xx
responses and unusable payloads all resolve to a ``Fallback`` outcome, and
the request is then analysed by ``LocalAnalyzer`` instead.
"""

from __future__ import annotations

import asyncio
import json
import os
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, List

import httpx

from driftbot.analysis.local_analyzer import LocalAnalyzer
from driftbot.analysis.presenter import build_result
from driftbot.config import DEFAULT_RIGOUR_API_URL
from driftbot.logger import get_logger, log_timing, log_with_context
from driftbot.models.analysis import AnalysisRequest, AnalysisResult, Finding

logger = get_logger()

REVIEW_TOOL_NAME = "rigour_review"


class RigourAPIError(RuntimeError):
    """Raised when the Rigour API responds with an error or an unusable payload."""


@dataclass(frozen=True, slots=True)
class RemoteSucceeded:
    result: AnalysisResult


@dataclass(frozen=True, slots=True)
class Fallback:
    reason: str


RemoteOutcome = RemoteSucceeded | Fallback


class RigourClient:
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_RIGOUR_API_URL,
        timeout: float = 30.0,
        local_analyzer: LocalAnalyzer | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._local_analyzer = local_analyzer or LocalAnalyzer()
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Analyse ``request`` remotely, degrading to local analysis on any failure."""

        outcome = await self.request_remote(request)
        return resolve_analysis(outcome, request, self._local_analyzer)

    async def request_remote(self, request: AnalysisRequest) -> RemoteOutcome:
        ctx_logger = log_with_context(logger, repository=request.repository, head_sha=request.commit)

        try:
            with log_timing(ctx_logger, "rigour_review"):
                text = await asyncio.wait_for(self._call_review_tool(request), timeout=self._timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return Fallback(f"Rigour API timed out after {self._timeout:g}s")
        except httpx.HTTPError as exc:
            return Fallback(f"Rigour API transport error: {exc!r}")
        except RigourAPIError as exc:
            return Fallback(str(exc))

        if not text:
            return Fallback("Rigour API returned no result text")

        try:
            result = parse_review_text(text, request)
        except Exception as exc:
            return Fallback(f"Failed to parse Rigour response: {exc!r}")

        ctx_logger.info(f"Rigour analysis parsed: findings={len(result.findings)}, passed={result.passed}")
        return RemoteSucceeded(result)

    async def _call_review_tool(self, request: AnalysisRequest) -> str | None:
        response = await self._client.post("/mcp", json=_build_rpc_request(request))
        _raise_for_status("call rigour_review", response)
        try:
            data = response.json()
        except ValueError as exc:
            raise RigourAPIError(f"Rigour API returned invalid JSON: {exc}") from exc
        return _extract_result_text(data)


def resolve_analysis(
    outcome: RemoteOutcome,
    request: AnalysisRequest,
    local_analyzer: LocalAnalyzer,
) -> AnalysisResult:
    """Pick the remote result, or run local analysis when the remote stage fell back."""

    if isinstance(outcome, RemoteSucceeded):
        return outcome.result

    log_with_context(logger, repository=request.repository, head_sha=request.commit).warning(
        f"Falling back to local analysis: {outcome.reason}"
    )
    return local_analyzer.analyze(request)


def _raise_for_status(action: str, response: httpx.Response) -> None:
    if response.is_success:
        return
    detail: Any | None
    try:
        detail = response.json()
    except ValueError:
        detail = response.text
    raise RigourAPIError(f"Failed to {action}: status={response.status_code}, detail={detail}")


def _build_rpc_request(request: AnalysisRequest) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": f"rigour-{int(time.time() * 1000)}-{secrets.token_hex(4)}",
        "method": "tools/call",
        "params": {
            "name": REVIEW_TOOL_NAME,
            "arguments": {
                "cwd": os.getcwd(),
                "repository": request.repository,
                "branch": request.branch,
                "diff": request.diff,
                "files": request.filenames,
            },
        },
    }


def _extract_result_text(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    result = data.get("result")
    if not isinstance(result, dict):
        return None
    content = result.get("content")
    if not isinstance(content, list) or not content:
        return None
    first = content[0]
    if not isinstance(first, dict):
        return None
    text = first.get("text")
    return text if isinstance(text, str) else None


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def parse_review_text(text: str, request: AnalysisRequest) -> AnalysisResult:
    """Map a Rigour verdict (``{"status": ..., "failures": [...]}``) to a result.

    Raises ``ValueError``, ``TypeError`` or ``OverflowError`` when the text is
    not a usable verdict.
    """

    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Rigour verdict is not a JSON object")

    failures = data.get("failures") or []
    if not isinstance(failures, list):
        raise TypeError("Rigour 'failures' is not a list")

    findings: List[Finding] = []
    for entry in failures:
        if not isinstance(entry, dict):
            raise TypeError(f"Rigour failure entry is not an object: {entry!r}")
        findings.append(
            Finding(
                id=str(entry.get("id") or ""),
                gate=str(entry.get("gate") or ""),
                severity="error" if entry.get("severity") == "FAIL" else "warning",
                message=str(entry.get("message") or ""),
                file=_optional_str(entry.get("file")),
                line=_optional_int(entry.get("line")),
                end_line=_optional_int(entry.get("endLine")),
                suggestion=_optional_str(entry.get("suggestion")),
            )
        )

    return build_result(findings, request, passed=data.get("status") == "PASS", source="remote")
