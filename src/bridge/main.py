"""FastAPI service mirroring Zoom Phone call events into FileMaker."""

from contextlib import asynccontextmanager
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI

from src.bridge.controllers.health import router as health_router
from src.bridge.event_dispatcher import EventDispatcher, options_from_config
from src.bridge.routes import router as webhook_router
from src.bridge.services.call_log_sync import CallLogSyncService
from src.bridge.services.filemaker_auth import FileMakerSessionManager
from src.clients.filemaker import FileMakerClient
from src.utils.config import (
    get_app_environment,
    get_filemaker_session_lease_seconds,
    get_port,
)
from src.utils.logging import get_logger, get_uvicorn_log_config

logger = get_logger(__name__)


async def check_initial_connection(
    client: FileMakerClient, sessions: FileMakerSessionManager
) -> bool:
    """Log in once at startup so misconfiguration shows up in the boot logs, not the first call."""
    try:
        layouts = await sessions.with_auth(client.list_layouts)
    except Exception as e:
        logger.error("Initial FileMaker connection failed", error=str(e))
        logger.error("Make sure 2FA is disabled for the API account")
        return False

    logger.info("FileMaker connection established", available_layouts=layouts)
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the FileMaker session on startup and log out on shutdown."""
    logger.info(
        "🚀 Starting Zoom-FileMaker bridge",
        port=get_port(),
        environment=get_app_environment(),
    )

    filemaker_client = FileMakerClient.from_config()
    sessions = FileMakerSessionManager(
        filemaker_client,
        lease=timedelta(seconds=get_filemaker_session_lease_seconds()),
    )
    sync_service = CallLogSyncService(filemaker_client, sessions)

    app.state.filemaker_client = filemaker_client
    app.state.filemaker_sessions = sessions
    app.state.event_dispatcher = EventDispatcher(sync_service, options_from_config())

    await check_initial_connection(filemaker_client, sessions)
    await sessions.start()

    logger.info("✅ Zoom-FileMaker bridge startup complete")

    yield

    logger.info("🛑 Shutting down Zoom-FileMaker bridge...")

    # In-flight requests are not drained
    await sessions.stop()
    await filemaker_client.close()

    logger.info("✅ Zoom-FileMaker bridge shutdown complete")


app = FastAPI(
    title="Zoom-FileMaker Integration",
    description="Mirrors Zoom Phone call-log webhooks into a FileMaker layout",
    version="1.0.0",
    lifespan=lifespan,
)
app.include_router(health_router)
app.include_router(webhook_router)


def main() -> None:
    """Run the bridge service."""
    import uvicorn

    uvicorn.run(
        "src.bridge.main:app",
        host="0.0.0.0",
        port=get_port(),
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    main()
