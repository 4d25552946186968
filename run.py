from driftbot.config import get_settings
from driftbot.logger import logger


def main() -> None:
    host = "0.0.0.0"
    port = get_settings().port
    display_url = f"http://localhost:{port}"

    logger.info(
        "Starting Rigour Bot on {display_url} (binding to {host}:{port}); webhooks at {display_url}/webhooks",
        display_url=display_url,
        host=host,
        port=port,
    )

    import uvicorn

    uvicorn.run(
        app="driftbot.main:app",
        host=host,
        port=port,
        workers=1,
        log_level="info",
    )


if __name__ == "__main__":
    main()
