"""Helpers to build an analysis request from a pull request event."""

from __future__ import annotations

from typing import Any, Dict, List

from driftbot.dispatch.models import PullRequestPayload
from driftbot.github_client import GitHubAPIError, GitHubInstallationClient
from driftbot.logger import get_logger, log_timing, log_with_context
from driftbot.models.analysis import AnalysisRequest, ChangedFile

logger = get_logger()


def serialize_files(files: List[Dict[str, Any]]) -> List[ChangedFile]:
    serialized: List[ChangedFile] = []
    skipped_count = 0
    for file in files:
        filename = file.get("filename")
        if not filename:
            logger.warning(f"Skipping file entry missing filename: {file}")
            skipped_count += 1
            continue
        serialized.append(
            ChangedFile(
                filename=filename,
                status=file.get("status", ""),
                additions=int(file.get("additions", 0) or 0),
                deletions=int(file.get("deletions", 0) or 0),
                patch=file.get("patch"),
            )
        )
    if skipped_count > 0:
        logger.warning(f"Skipped {skipped_count} file(s) due to missing filename")
    return serialized


def _log_api_error(ctx_logger, operation: str, exc: GitHubAPIError) -> None:
    if exc.status_code == 404:
        ctx_logger.error(f"{operation}: PR or repository not found (404): {exc}")
    elif exc.status_code == 403:
        ctx_logger.error(f"{operation}: permission denied (403): {exc}")
    elif exc.status_code == 429:
        ctx_logger.error(f"{operation}: rate limit exceeded (429): {exc}")
    else:
        ctx_logger.error(f"{operation}: GitHub API error ({exc.status_code}): {exc}")


async def build_analysis_request(
    client: GitHubInstallationClient,
    event: PullRequestPayload,
) -> AnalysisRequest:
    """Fetch the PR diff and changed files. GitHub errors propagate to the caller."""

    if event.installation_id is None:
        raise ValueError("Pull request event missing installation id")

    pr_info = event.pull_request
    full_name = event.repository.full_name
    ctx_logger = log_with_context(logger, repository=full_name, pull_number=pr_info.number)

    try:
        with log_timing(ctx_logger, "fetch_pr_diff"):
            diff = await client.get_pull_request_diff(
                installation_id=event.installation_id,
                full_name=full_name,
                pull_number=pr_info.number,
            )
    except GitHubAPIError as exc:
        _log_api_error(ctx_logger, "fetch_pr_diff", exc)
        raise

    try:
        with log_timing(ctx_logger, "fetch_pr_files"):
            raw_files = await client.list_pull_request_files(
                installation_id=event.installation_id,
                full_name=full_name,
                pull_number=pr_info.number,
            )
    except GitHubAPIError as exc:
        _log_api_error(ctx_logger, "fetch_pr_files", exc)
        raise

    files = serialize_files(raw_files)
    if not files:
        ctx_logger.warning(f"No files changed in PR #{pr_info.number}")

    ctx_logger.info(f"AnalysisRequest built: PR#{pr_info.number}, files={len(files)}, diff_chars={len(diff)}")
    return AnalysisRequest(
        repository=full_name,
        branch=pr_info.head.ref,
        base_branch=pr_info.base.ref,
        commit=pr_info.head.sha,
        diff=diff,
        files=tuple(files),
    )
