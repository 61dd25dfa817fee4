"""Routes verified Zoom Phone events to a normalizer and the FileMaker upsert."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from connectors.zoom.zoom_call_log import (
    CALLEE_MISSED,
    COMPLETED_CALL_EVENTS,
    FIELD_STATUS,
    NormalizationOptions,
    NormalizedCallRecord,
    normalize_completed_call,
    normalize_missed_call,
    strip_event_prefix,
)
from src.bridge.services.call_log_sync import CallLogSyncService, RecordWriteError
from src.utils.config import (
    get_display_timezone,
    get_duration_display_field,
    get_missed_call_sets_end_time,
)
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

Normalizer = Callable[[dict[str, Any], NormalizationOptions], NormalizedCallRecord]

DispatchOutcome = Literal["upserted", "ignored", "write_failed"]

EVENT_NORMALIZERS: dict[str, Normalizer] = {
    **{event: normalize_completed_call for event in COMPLETED_CALL_EVENTS},
    CALLEE_MISSED: normalize_missed_call,
}


@dataclass(slots=True)
class DispatchResult:
    event_name: str
    outcome: DispatchOutcome
    call_id: str | None = None
    action: str | None = None
    error: str | None = None


def options_from_config() -> NormalizationOptions:
    return NormalizationOptions(
        tz_name=get_display_timezone(),
        missed_call_sets_end_time=get_missed_call_sets_end_time(),
        duration_display_field=get_duration_display_field(),
    )


def is_handled_event(event_name: str) -> bool:
    return strip_event_prefix(event_name) in EVENT_NORMALIZERS


class EventDispatcher:
    """Stateless per request: one `dispatch` call per verified webhook."""

    def __init__(
        self, sync_service: CallLogSyncService, options: NormalizationOptions | None = None
    ) -> None:
        self._sync_service = sync_service
        self._options = options or NormalizationOptions()

    async def dispatch(self, event_name: str, payload: dict[str, Any]) -> DispatchResult:
        """Normalize and upsert a call event; unknown events are acknowledged without DB calls.

        Lookup failures and conflicts propagate to the caller. Rejected writes are logged and
        reported as `write_failed` so the webhook is still acknowledged.
        """
        normalizer = EVENT_NORMALIZERS.get(strip_event_prefix(event_name))
        if normalizer is None:
            logger.info("Unhandled event type", event_name=event_name)
            return DispatchResult(event_name=event_name, outcome="ignored")

        call = payload.get("object") if isinstance(payload, dict) else None
        if not isinstance(call, dict):
            raise ValueError(f"Event {event_name} payload has no call object")

        record = normalizer(call, self._options)

        with LogContext(call_id=record.call_id or "unknown"):
            logger.info(
                "Normalized call event",
                direction=record.direction or "unknown",
                duration=record.formatted_duration,
            )
            if not record.call_id:
                logger.warning("Call event has no call_id; creating without duplicate check")

            try:
                result = await self._sync_service.upsert(
                    record.call_id,
                    record.to_field_data(
                        include_status=False,
                        duration_display_field=self._options.duration_display_field,
                    ),
                    initial_field_data={FIELD_STATUS: record.status},
                )
            except RecordWriteError as e:
                logger.error(
                    "FileMaker write failed; acknowledging webhook",
                    action=e.action,
                    error=str(e),
                )
                return DispatchResult(
                    event_name=event_name,
                    outcome="write_failed",
                    call_id=record.call_id or None,
                    action=e.action,
                    error=str(e),
                )

        return DispatchResult(
            event_name=event_name,
            outcome="upserted",
            call_id=record.call_id or None,
            action=result.action,
        )
