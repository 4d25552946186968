"""Pull request event processor: check run, analysis, and review publishing."""

from __future__ import annotations

from typing import Callable

from driftbot.config import AppCredentials, Settings, SettingsError, get_settings
from driftbot.dispatch.models import PullRequestPayload
from driftbot.github_client import GitHubInstallationClient
from driftbot.logger import get_logger, log_failure, log_success, log_timing, log_with_context
from driftbot.models.analysis import AnalysisRequest, AnalysisResult
from driftbot.rigour_client import RigourClient
from driftbot.services.analysis_context import build_analysis_request
from driftbot.services.check_runs import CheckRunManager
from driftbot.services.dedup import InFlightRegistry

logger = get_logger()

GitHubClientFactory = Callable[[Settings, AppCredentials], GitHubInstallationClient]
RigourClientFactory = Callable[[Settings], RigourClient]

IN_FLIGHT = InFlightRegistry()


def _default_github_client(settings: Settings, credentials: AppCredentials) -> GitHubInstallationClient:
    return GitHubInstallationClient(
        base_url=settings.normalized_github_api_base_url,
        app_id=credentials.github_app_id,
        private_key_pem=credentials.github_private_key_pem,
    )


def _default_rigour_client(settings: Settings) -> RigourClient:
    return RigourClient(
        base_url=settings.normalized_rigour_api_url,
        timeout=settings.rigour_timeout_seconds,
    )


class PullRequestProcessor:
    def __init__(
        self,
        *,
        settings: Settings | None = None,
        registry: InFlightRegistry | None = None,
        github_client_factory: GitHubClientFactory = _default_github_client,
        rigour_client_factory: RigourClientFactory = _default_rigour_client,
    ) -> None:
        self._settings = settings
        self._registry = registry if registry is not None else IN_FLIGHT
        self._github_client_factory = github_client_factory
        self._rigour_client_factory = rigour_client_factory

    async def __call__(self, event: PullRequestPayload) -> None:
        full_name = event.repository.full_name
        pr_number = event.pull_request.number
        ctx_logger = log_with_context(
            logger,
            delivery_id=event.delivery_id,
            repository=full_name,
            pull_number=pr_number,
            head_sha=event.pull_request.head.sha,
        )

        if not event.installation_id:
            ctx_logger.error("No installation ID found in payload; skipping")
            return

        key = event.dedup_key
        with self._registry.hold(key) as acquired:
            if not acquired:
                ctx_logger.info(f"Skipping duplicate analysis for {key}")
                return
            await self._process(event, ctx_logger)

    async def _process(self, event: PullRequestPayload, ctx_logger) -> None:
        full_name = event.repository.full_name
        pr_number = event.pull_request.number

        try:
            settings = self._settings or get_settings()
            credentials = settings.require_app_credentials()
        except SettingsError as exc:
            log_failure(logger, "Configuration incomplete; cannot reach GitHub", exc, repository=full_name)
            return

        github_client = self._github_client_factory(settings, credentials)
        try:
            check_run = CheckRunManager(
                github_client,
                installation_id=event.installation_id,
                full_name=full_name,
                head_sha=event.pull_request.head.sha,
                name=settings.check_run_name,
            )
            try:
                with log_timing(ctx_logger, "create_check_run"):
                    await check_run.start()
            except Exception as exc:
                log_failure(logger, f"Failed to create check run for {full_name}#{pr_number}; aborting", exc,
                            repository=full_name, pull_number=pr_number)
                return

            try:
                with log_timing(ctx_logger, "build_analysis_request"):
                    request = await build_analysis_request(github_client, event)

                with log_timing(ctx_logger, "analyze"):
                    result = await self._analyze(settings, request)

                with log_timing(ctx_logger, "complete_check_run"):
                    await check_run.complete(result)
            except Exception as exc:
                log_failure(logger, f"Error analyzing PR {full_name}#{pr_number}", exc,
                            repository=full_name, pull_number=pr_number)
                if check_run.completed:
                    ctx_logger.warning(f"Check run {check_run.check_run_id} already concluded; keeping its verdict")
                else:
                    await check_run.fail(str(exc) or exc.__class__.__name__)
                return

            await self._publish_review(github_client, event, result, ctx_logger)

            log_success(
                logger,
                f"Analysis complete for {full_name}#{pr_number}: {'PASSED' if result.passed else 'FAILED'} "
                f"(source={result.source}, findings={len(result.findings)})",
                repository=full_name,
                pull_number=pr_number,
            )
        finally:
            await github_client.aclose()

    async def _analyze(self, settings: Settings, request: AnalysisRequest) -> AnalysisResult:
        rigour_client = self._rigour_client_factory(settings)
        try:
            return await rigour_client.analyze(request)
        finally:
            await rigour_client.aclose()

    async def _publish_review(
        self,
        github_client: GitHubInstallationClient,
        event: PullRequestPayload,
        result: AnalysisResult,
        ctx_logger,
    ) -> None:
        if not result.should_post_review:
            ctx_logger.info("No findings; skipping review comment")
            return

        try:
            with log_timing(ctx_logger, "create_review"):
                await github_client.create_pull_request_review(
                    installation_id=event.installation_id,
                    full_name=event.repository.full_name,
                    pull_number=event.pull_request.number,
                    body=result.review_body,
                    event=result.review_event,
                )
        except Exception as exc:
            # The check run already carries the verdict.
            log_failure(logger, f"Failed to post review to GitHub: {exc}", exc,
                        repository=event.repository.full_name, pull_number=event.pull_request.number)
