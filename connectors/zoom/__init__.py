# Call logs
from connectors.zoom.zoom_call_log import (
    NormalizationOptions,
    NormalizedCallRecord,
    normalize_completed_call,
    normalize_missed_call,
    strip_event_prefix,
)

# Webhook Handlers
from connectors.zoom.zoom_webhook_handler import (
    ZoomWebhookVerifier,
    answer_url_validation,
    extract_url_validation_token,
    extract_zoom_webhook_metadata,
    verify_zoom_signature,
    verify_zoom_webhook,
)

__all__ = [
    # Call logs
    "NormalizationOptions",
    "NormalizedCallRecord",
    "normalize_completed_call",
    "normalize_missed_call",
    "strip_event_prefix",
    # Webhook Handlers
    "ZoomWebhookVerifier",
    "answer_url_validation",
    "extract_url_validation_token",
    "extract_zoom_webhook_metadata",
    "verify_zoom_signature",
    "verify_zoom_webhook",
]
