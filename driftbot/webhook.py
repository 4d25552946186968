"""GitHub webhook ingestion."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from driftbot.config import Settings
from driftbot.dependencies import settings_dependency
from driftbot.dispatch import dispatch_pull_request_event
from driftbot.dispatch.models import (
    PullRequestEndpoint,
    PullRequestInfo,
    PullRequestPayload,
    RepositoryInfo,
)
from driftbot.logger import get_logger, log_failure, log_with_context
from driftbot.utils.security import verify_github_signature

router = APIRouter()

logger = get_logger()

SUPPORTED_PR_ACTIONS = {"opened", "synchronize", "reopened"}


class IgnoreEventError(RuntimeError):
    """Raised when a webhook event should be acknowledged but not processed."""


def _repository_info(payload: Dict[str, Any]) -> RepositoryInfo:
    repository = payload.get("repository") or {}
    if not repository.get("full_name"):
        raise ValueError("Event missing repository metadata.")
    return RepositoryInfo(
        full_name=repository.get("full_name"),
        owner=(repository.get("owner") or {}).get("login"),
        name=repository.get("name"),
    )


def _installation_id(payload: Dict[str, Any]) -> int | None:
    return (payload.get("installation") or {}).get("id") or None


def _pull_request_info(pull_request: Dict[str, Any]) -> PullRequestInfo:
    head = pull_request.get("head") or {}
    base = pull_request.get("base") or {}
    return PullRequestInfo(
        number=pull_request.get("number"),
        head=PullRequestEndpoint(ref=head.get("ref"), sha=head.get("sha")),
        base=PullRequestEndpoint(ref=base.get("ref"), sha=base.get("sha")),
    )


def build_pull_request_events(event: str, payload: Dict[str, Any], delivery_id: str) -> List[PullRequestPayload]:
    """Translate a webhook delivery into the pull request events it should trigger."""

    action = payload.get("action")

    if event == "pull_request":
        if action not in SUPPORTED_PR_ACTIONS:
            raise IgnoreEventError(f"Pull request action '{action}' not actionable.")
        pull_request = payload.get("pull_request") or {}
        if not pull_request.get("number"):
            raise ValueError("Pull request payload missing number.")
        return [
            PullRequestPayload(
                action=action,
                installation_id=_installation_id(payload),
                repository=_repository_info(payload),
                pull_request=_pull_request_info(pull_request),
                delivery_id=delivery_id,
            )
        ]

    if event == "check_run":
        if action != "rerequested":
            raise IgnoreEventError(f"Check run action '{action}' not actionable.")
        check_run = payload.get("check_run") or {}
        repository = _repository_info(payload)
        events = [
            PullRequestPayload(
                action=action,
                installation_id=_installation_id(payload),
                repository=repository,
                pull_request=_pull_request_info(pull_request),
                delivery_id=delivery_id,
            )
            for pull_request in check_run.get("pull_requests") or []
        ]
        if not events:
            raise IgnoreEventError("Re-requested check run is not attached to a pull request.")
        return events

    if event == "installation":
        account = ((payload.get("installation") or {}).get("account") or {}).get("login")
        logger.info(f"Installation {action} for account {account}")
        raise IgnoreEventError(f"Installation event '{action}' recorded.")

    raise IgnoreEventError(f"Event '{event}' is not handled.")


@router.post("/webhooks", summary="Receive GitHub webhooks")
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(settings_dependency),
) -> Dict[str, str]:
    """Verify the signature, then dispatch pull request analysis in the background."""

    delivery_id = request.headers.get("X-GitHub-Delivery")
    event = request.headers.get("X-GitHub-Event")

    if not delivery_id:
        log_failure(logger, "Missing X-GitHub-Delivery header", event_type=event)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing X-GitHub-Delivery header")
    if not event:
        log_failure(logger, "Missing X-GitHub-Event header", delivery_id=delivery_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing X-GitHub-Event header")

    ctx_logger = log_with_context(logger, delivery_id=delivery_id, event_type=event)
    raw_body = await request.body()

    if settings.github_webhook_secret:
        signature = request.headers.get("X-Hub-Signature-256")
        if not verify_github_signature(settings.github_webhook_secret, raw_body, signature):
            log_failure(logger, "Webhook signature verification failed", delivery_id=delivery_id, event_type=event)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    else:
        ctx_logger.warning("GITHUB_WEBHOOK_SECRET not set - webhook signature verification disabled (dev only)")

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        log_failure(logger, "Invalid JSON payload", exc, delivery_id=delivery_id, event_type=event)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload") from exc

    if event == "ping":
        ctx_logger.info("Ping received")
        return {"status": "ok"}

    try:
        events = build_pull_request_events(event, payload, delivery_id)
    except IgnoreEventError as exc:
        ctx_logger.debug(f"Webhook ignored: {exc}")
        return {"status": "ignored", "reason": str(exc)}
    except (ValueError, ValidationError) as exc:
        log_failure(logger, f"Invalid payload structure: {exc}", exc, delivery_id=delivery_id, event_type=event)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload structure") from exc

    for pr_event in events:
        ctx_logger.info(f"Accepted {event}.{pr_event.action} for {pr_event.repository.full_name}#{pr_event.pull_request.number}")
        dispatch_pull_request_event(pr_event)

    return {"status": "accepted"}
