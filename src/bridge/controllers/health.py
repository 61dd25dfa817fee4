"""Liveness and FileMaker connectivity endpoints."""

import datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from src.bridge.models import HealthResponse
from src.bridge.services.filemaker_auth import FileMakerSessionManager
from src.clients.filemaker import FileMakerClient
from src.utils.logging import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "Zoom-FileMaker Integration"

router = APIRouter(tags=["health"])


def _now_iso() -> str:
    return datetime.datetime.now(datetime.UTC).isoformat()


@router.get("/")
async def root():
    """Liveness probe - always returns running if the process is up."""
    return {"status": "running", "service": SERVICE_NAME, "timestamp": _now_iso()}


@router.get("/health")
async def health_check(request: Request):
    """Ensure a FileMaker session can be obtained and the database answers."""
    sessions: FileMakerSessionManager = request.app.state.filemaker_sessions
    client: FileMakerClient = request.app.state.filemaker_client

    try:
        layouts = await sessions.with_auth(client.list_layouts)
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": str(e)})

    return HealthResponse(
        status="healthy",
        timestamp=_now_iso(),
        filemakerConnected=True,
        availableLayouts=layouts,
    )
