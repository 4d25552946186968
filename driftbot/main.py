from typing import Any

from fastapi import FastAPI

from driftbot.dispatch import configure_pull_request_handler, pending_tasks, shutdown_dispatcher
from driftbot.services.pull_request_processor import IN_FLIGHT, PullRequestProcessor
from driftbot.webhook import router as webhook_router

app = FastAPI(title="Rigour Bot")

app.include_router(webhook_router, tags=["webhook"])


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "service": "rigour-bot",
        "in_flight_events": pending_tasks(),
        "in_flight_keys": len(IN_FLIGHT),
    }


@app.on_event("startup")
async def _configure_dispatcher() -> None:
    configure_pull_request_handler(PullRequestProcessor())


@app.on_event("shutdown")
async def _shutdown_dispatcher() -> None:
    await shutdown_dispatcher()
