"""Check run lifecycle: one in-progress run per event, completed exactly once."""

from __future__ import annotations

from typing import Any, Dict, Sequence

from driftbot.analysis.presenter import chunk
from driftbot.github_client import GitHubInstallationClient
from driftbot.logger import get_logger, log_failure, log_with_context
from driftbot.models.analysis import AnalysisResult, Annotation

logger = get_logger()

PASSED_TITLE = "Rigour: All checks passed"
FAILED_TITLE = "Rigour: Issues detected"


class CheckRunManager:
    """Owns the single check run created for one pull request event."""

    def __init__(
        self,
        github_client: GitHubInstallationClient,
        *,
        installation_id: int,
        full_name: str,
        head_sha: str,
        name: str,
    ) -> None:
        self._github = github_client
        self._installation_id = installation_id
        self._full_name = full_name
        self._head_sha = head_sha
        self._name = name
        self.check_run_id: int | None = None
        self.completed = False
        self._logger = log_with_context(logger, repository=full_name, head_sha=head_sha)

    async def start(self) -> int:
        """Create the in-progress check run. Errors propagate to the caller."""

        if self.check_run_id is not None:
            raise RuntimeError(f"Check run {self.check_run_id} already created for this event")
        self.check_run_id = await self._github.create_check_run(
            installation_id=self._installation_id,
            full_name=self._full_name,
            head_sha=self._head_sha,
            name=self._name,
            status="in_progress",
        )
        self._logger.info(f"Created check run {self.check_run_id} ({self._name})")
        return self.check_run_id

    async def complete(self, result: AnalysisResult) -> None:
        """Complete with the analysis verdict, sending annotations 50 at a time.

        Only the first update carries the conclusion. Errors propagate so the
        caller can move the run to failure instead.
        """

        self._require_started()
        title = PASSED_TITLE if result.passed else FAILED_TITLE
        batches = chunk(list(result.annotations))

        await self._update(title, result.summary, batches[0], conclusion=result.conclusion)
        self.completed = True
        for batch in batches[1:]:
            await self._update(title, result.summary, batch)

        self._logger.info(
            f"Completed check run {self.check_run_id}: conclusion={result.conclusion}, "
            f"annotations={len(result.annotations)}, requests={len(batches)}"
        )

    async def fail(self, message: str) -> bool:
        """Move the existing check run to ``failure``. Never creates a new run."""

        if self.check_run_id is None:
            self._logger.warning("No check run to mark as failed")
            return False
        try:
            await self._update(
                FAILED_TITLE,
                f"An error occurred during analysis: {message}",
                [],
                conclusion="failure",
            )
        except Exception as exc:
            log_failure(logger, f"Failed to update check run {self.check_run_id} with error", exc,
                        repository=self._full_name, head_sha=self._head_sha)
            return False
        self.completed = True
        return True

    def _require_started(self) -> None:
        if self.check_run_id is None:
            raise RuntimeError("Check run has not been created")

    async def _update(
        self,
        title: str,
        summary: str,
        annotations: Sequence[Annotation],
        *,
        conclusion: str | None = None,
    ) -> None:
        output: Dict[str, Any] = {
            "title": title,
            "summary": summary,
            "annotations": [annotation.to_payload() for annotation in annotations],
        }
        await self._github.update_check_run(
            installation_id=self._installation_id,
            full_name=self._full_name,
            check_run_id=self.check_run_id,
            output=output,
            conclusion=conclusion,
        )
