"""
Zoom webhook verification utilities.

Handles verification of Zoom webhook signatures and the endpoint URL validation handshake.
"""

import hashlib
import hmac
import json
import logging

from src.bridge.verification import BaseSigningSecretVerifier
from src.utils.config import get_zoom_webhook_secret

logger = logging.getLogger(__name__)

ZOOM_TIMESTAMP_HEADER = "x-zm-request-timestamp"
ZOOM_SIGNATURE_HEADER = "x-zm-signature"
URL_VALIDATION_EVENT = "endpoint.url_validation"


def compute_zoom_signature(body: bytes | str, timestamp: str, secret: str) -> str:
    """Compute the `v0=<hex>` signature Zoom sends for a request."""
    body_str = body.decode("utf-8") if isinstance(body, bytes) else body
    message = f"v0:{timestamp}:{body_str}"
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"v0={digest}"


def verify_zoom_signature(
    body: bytes, timestamp: str | None, signature: str | None, secret: str | None
) -> bool:
    """Return True when `signature` matches the HMAC of `v0:{timestamp}:{body}`.

    Never raises; missing inputs and undecodable bodies simply fail verification.
    """
    if not secret or not timestamp or not signature:
        return False

    try:
        expected = compute_zoom_signature(body, timestamp, secret)
    except UnicodeDecodeError:
        return False

    return hmac.compare_digest(expected, signature)


def verify_zoom_webhook(headers: dict[str, str], body: bytes, secret: str) -> None:
    """Verify Zoom webhook signature headers.

    Raises:
        ValueError: If a header is missing or the signature does not match
    """
    timestamp = headers.get(ZOOM_TIMESTAMP_HEADER)
    signature = headers.get(ZOOM_SIGNATURE_HEADER)

    if not timestamp or not signature:
        raise ValueError("Missing required Zoom signature headers")

    if not verify_zoom_signature(body, timestamp, signature, secret):
        raise ValueError("Zoom webhook signature verification failed")


class ZoomWebhookVerifier(BaseSigningSecretVerifier):
    """Verifier for Zoom webhooks using HMAC-SHA256 signatures."""

    source_type = "zoom"
    verify_func = staticmethod(lambda h, b, s: verify_zoom_webhook(h, b, s))

    def get_secret(self) -> str | None:
        return get_zoom_webhook_secret()


def answer_url_validation(plain_token: str, secret: str) -> dict[str, str]:
    """Build the response Zoom expects for `endpoint.url_validation`.

    The encrypted token is the hex HMAC-SHA256 of the plain token keyed by the webhook secret.
    """
    encrypted_token = hmac.new(
        secret.encode("utf-8"), plain_token.encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return {"plainToken": plain_token, "encryptedToken": encrypted_token}


def extract_url_validation_token(payload: dict | None) -> str | None:
    """Return the plain token if `payload` is a URL validation request, None otherwise."""
    if not isinstance(payload, dict) or payload.get("event") != URL_VALIDATION_EVENT:
        return None

    inner = payload.get("payload")
    if not isinstance(inner, dict):
        return None

    plain_token = inner.get("plainToken")
    return plain_token if isinstance(plain_token, str) else None


def extract_zoom_webhook_metadata(body_str: str) -> dict[str, str | int]:
    """Extract metadata from a Zoom webhook for observability.

    Safely extracts key information without failing webhook processing.
    """
    metadata: dict[str, str | int] = {"payload_size": len(body_str)}

    try:
        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        if not isinstance(payload, dict):
            return metadata

        metadata["event_name"] = str(payload.get("event", "unknown"))
        if "event_ts" in payload:
            metadata["event_ts"] = payload["event_ts"]

        # Structure: { "event": "...", "payload": { "account_id": "...", "object": {...} } }
        inner = payload.get("payload") or {}
        if "account_id" in inner:
            metadata["account_id"] = inner["account_id"]

        call = inner.get("object") or {}
        call_id = call.get("call_id") or call.get("id")
        if call_id:
            metadata["call_id"] = str(call_id)

    except Exception as e:
        # Log but don't fail
        logger.error(f"Error extracting Zoom webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
