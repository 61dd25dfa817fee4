"""Pydantic models for the bridge service."""

from typing import Any

from pydantic import BaseModel


class ZoomWebhookEnvelope(BaseModel):
    """Outer Zoom webhook body: `{"event", "event_ts", "payload": {"account_id", "object"}}`."""

    event: str = ""
    event_ts: int | None = None
    payload: dict[str, Any] | None = None

    model_config = {"extra": "allow"}


class UrlValidationResponse(BaseModel):
    plainToken: str
    encryptedToken: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    filemakerConnected: bool
    availableLayouts: list[str] = []
