"""Data models for dispatched pull request events."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field


class RepositoryInfo(BaseModel):
    full_name: str
    owner: str
    name: str


class PullRequestEndpoint(BaseModel):
    ref: str
    sha: str


class PullRequestInfo(BaseModel):
    number: int
    head: PullRequestEndpoint
    base: PullRequestEndpoint


class PullRequestPayload(BaseModel):
    event_type: Literal["pull_request"] = "pull_request"
    action: str
    installation_id: int | None = None
    repository: RepositoryInfo
    pull_request: PullRequestInfo
    delivery_id: str | None = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def dedup_key(self) -> str:
        """Repository, PR number and head commit: the in-flight correlation key."""
        return f"{self.repository.full_name}#{self.pull_request.number}@{self.pull_request.head.sha}"
