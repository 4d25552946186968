import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from driftbot.config import Settings
from driftbot.dispatch.models import PullRequestEndpoint, PullRequestInfo, PullRequestPayload, RepositoryInfo
from driftbot.github_client import GitHubAPIError
from driftbot.rigour_client import RigourClient
from driftbot.services.dedup import InFlightRegistry
from driftbot.services.pull_request_processor import PullRequestProcessor

from conftest import CLEAN_PATCH, SECRET_PATCH, TODO_PATCH


def _event(*, installation_id=7, sha="head456") -> PullRequestPayload:
    return PullRequestPayload(
        action="opened",
        installation_id=installation_id,
        repository=RepositoryInfo(full_name="octo/demo-repo", owner="octo", name="demo-repo"),
        pull_request=PullRequestInfo(
            number=12,
            head=PullRequestEndpoint(ref="feature/login", sha=sha),
            base=PullRequestEndpoint(ref="main", sha="base123"),
        ),
        delivery_id="delivery-1",
    )


def _github(patch: str) -> AsyncMock:
    github = AsyncMock()
    github.create_check_run.return_value = 42
    github.get_pull_request_diff.return_value = patch
    github.list_pull_request_files.return_value = [
        {"filename": "src/app.js", "status": "modified", "additions": 1, "deletions": 0, "patch": patch}
    ]
    return github


def _unavailable_rigour(settings: Settings) -> RigourClient:
    transport = httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "down"}))
    return RigourClient(
        base_url=settings.normalized_rigour_api_url,
        client=httpx.AsyncClient(base_url=settings.normalized_rigour_api_url, transport=transport),
    )


def _processor(settings, github, registry=None) -> PullRequestProcessor:
    return PullRequestProcessor(
        settings=settings,
        registry=registry or InFlightRegistry(),
        github_client_factory=lambda _settings, _credentials: github,
        rigour_client_factory=_unavailable_rigour,
    )


@pytest.mark.asyncio
async def test_secret_fails_check_and_requests_changes(settings):
    github = _github(SECRET_PATCH)

    await _processor(settings, github)(_event())

    github.create_check_run.assert_awaited_once_with(
        installation_id=7, full_name="octo/demo-repo", head_sha="head456", name="Rigour Analysis", status="in_progress"
    )
    update = github.update_check_run.await_args.kwargs
    assert update["check_run_id"] == 42
    assert update["conclusion"] == "failure"
    assert update["output"]["summary"] == "Found 1 error(s)"
    annotation = update["output"]["annotations"][0]
    assert annotation["path"] == "src/app.js"
    assert annotation["start_line"] == 10
    assert annotation["annotation_level"] == "failure"

    review = github.create_pull_request_review.await_args.kwargs
    assert review["event"] == "REQUEST_CHANGES"
    assert review["pull_number"] == 12
    assert "**security-drift**: Potential hardcoded secret detected (`src/app.js:10`)" in review["body"]
    github.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_info_only_findings_pass_with_comment_review(settings):
    github = _github(TODO_PATCH)

    await _processor(settings, github)(_event())

    assert github.update_check_run.await_args.kwargs["conclusion"] == "success"
    assert github.create_pull_request_review.await_args.kwargs["event"] == "COMMENT"


@pytest.mark.asyncio
async def test_clean_diff_skips_review(settings):
    github = _github(CLEAN_PATCH)

    await _processor(settings, github)(_event())

    update = github.update_check_run.await_args.kwargs
    assert update["conclusion"] == "success"
    assert update["output"]["summary"] == "✅ No drift detected. All checks passed."
    github.create_pull_request_review.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_installation_makes_no_calls(settings):
    github = _github(SECRET_PATCH)

    await _processor(settings, github)(_event(installation_id=None))

    github.create_check_run.assert_not_awaited()
    github.get_pull_request_diff.assert_not_awaited()


@pytest.mark.asyncio
async def test_key_already_in_flight_is_skipped(settings):
    github = _github(SECRET_PATCH)
    registry = InFlightRegistry()
    registry.try_acquire(_event().dedup_key)

    await _processor(settings, github, registry)(_event())

    github.create_check_run.assert_not_awaited()
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_runs_once_then_key_is_released(settings):
    github = _github(SECRET_PATCH)
    registry = InFlightRegistry()
    gate = asyncio.Event()

    async def slow_diff(**kwargs):
        await gate.wait()
        return SECRET_PATCH

    github.get_pull_request_diff.side_effect = slow_diff
    processor = _processor(settings, github, registry)

    first = asyncio.create_task(processor(_event()))
    await asyncio.sleep(0)
    await processor(_event())
    assert github.create_check_run.await_count == 1

    gate.set()
    await first
    assert len(registry) == 0

    await processor(_event())
    assert github.create_check_run.await_count == 2


@pytest.mark.asyncio
async def test_different_head_sha_is_not_a_duplicate(settings):
    github = _github(CLEAN_PATCH)
    registry = InFlightRegistry()
    registry.try_acquire(_event(sha="older").dedup_key)

    await _processor(settings, github, registry)(_event(sha="newer"))

    github.create_check_run.assert_awaited_once()


@pytest.mark.asyncio
async def test_diff_failure_marks_same_run_failed(settings):
    github = _github(SECRET_PATCH)
    github.get_pull_request_diff.side_effect = GitHubAPIError("Not Found", 404)
    registry = InFlightRegistry()

    await _processor(settings, github, registry)(_event())

    github.create_check_run.assert_awaited_once()
    update = github.update_check_run.await_args.kwargs
    assert update["check_run_id"] == 42
    assert update["conclusion"] == "failure"
    assert update["output"]["summary"] == "An error occurred during analysis: Not Found"
    github.create_pull_request_review.assert_not_awaited()
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_check_run_creation_failure_aborts(settings):
    github = _github(SECRET_PATCH)
    github.create_check_run.side_effect = GitHubAPIError("Forbidden", 403)

    await _processor(settings, github)(_event())

    github.get_pull_request_diff.assert_not_awaited()
    github.update_check_run.assert_not_awaited()
    github.create_pull_request_review.assert_not_awaited()
    github.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_failure_while_reporting_failure_is_contained(settings):
    github = _github(SECRET_PATCH)
    github.get_pull_request_diff.side_effect = GitHubAPIError("Server Error", 500)
    github.update_check_run.side_effect = GitHubAPIError("Still down", 502)
    registry = InFlightRegistry()

    await _processor(settings, github, registry)(_event())

    github.update_check_run.assert_awaited_once()
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_review_failure_keeps_check_run_verdict(settings):
    github = _github(SECRET_PATCH)
    github.create_pull_request_review.side_effect = GitHubAPIError("Unprocessable", 422)

    await _processor(settings, github)(_event())

    github.update_check_run.assert_awaited_once()
    assert github.update_check_run.await_args.kwargs["conclusion"] == "failure"


@pytest.mark.asyncio
async def test_missing_credentials_makes_no_calls():
    github = _github(SECRET_PATCH)
    factory_calls = []

    processor = PullRequestProcessor(
        settings=Settings(),
        registry=InFlightRegistry(),
        github_client_factory=lambda *args: factory_calls.append(args) or github,
        rigour_client_factory=_unavailable_rigour,
    )
    await processor(_event())

    assert factory_calls == []
    github.create_check_run.assert_not_awaited()


@pytest.mark.asyncio
async def test_review_transport_error_is_contained(settings):
    github = _github(SECRET_PATCH)
    github.create_pull_request_review.side_effect = httpx.ConnectError("connection refused")
    registry = InFlightRegistry()

    await _processor(settings, github, registry)(_event())

    github.update_check_run.assert_awaited_once()
    assert github.update_check_run.await_args.kwargs["conclusion"] == "failure"
    assert len(registry) == 0
    github.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_overflow_batch_failure_keeps_concluded_verdict(settings):
    patch = "@@ -1,0 +1,51 @@\n" + "\n".join(f'+const token = "s{i}";' for i in range(51))
    github = _github(patch)
    github.update_check_run.side_effect = [None, GitHubAPIError("Server Error", 500)]

    await _processor(settings, github)(_event())

    updates = github.update_check_run.await_args_list
    assert len(updates) == 2
    assert updates[0].kwargs["conclusion"] == "failure"
    assert updates[1].kwargs["conclusion"] is None
    assert not any(
        update.kwargs["output"]["summary"].startswith("An error occurred") for update in updates
    )
