"""Normalization of Zoom Phone call-log webhook payloads into FileMaker call records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.utils.time_formatting import format_duration, format_timestamp

ZOOM_PHONE_EVENT_PREFIX = "phone."

CALL_LOG_CREATED = "call_log_created"
CALLER_CALL_LOG_COMPLETED = "caller_call_log_completed"
CALLEE_CALL_LOG_COMPLETED = "callee_call_log_completed"
CALLEE_MISSED = "callee_missed"

COMPLETED_CALL_EVENTS = frozenset(
    {CALL_LOG_CREATED, CALLER_CALL_LOG_COMPLETED, CALLEE_CALL_LOG_COMPLETED}
)

# FileMaker field names on the call-log layout
FIELD_CALL_ID = "call_id"
FIELD_DURATION_SECONDS = "call_duration_seconds"
FIELD_DIRECTION = "call_direction"
FIELD_END_TIME = "call_end_time"
FIELD_PHONE_NUMBER = "電話番号"
FIELD_INTERACTION_TIMESTAMP = "対応日時"
FIELD_STATUS = "状態"

STATUS_UNHANDLED = "未対応"

DIRECTION_INBOUND = "inbound"
DIRECTION_OUTBOUND = "outbound"
DIRECTION_UNKNOWN = ""


@dataclass(slots=True)
class NormalizationOptions:
    tz_name: str = "UTC"
    missed_call_sets_end_time: bool = False
    duration_display_field: str | None = None


@dataclass(slots=True)
class NormalizedCallRecord:
    """One logical call, keyed by `call_id` across repeated webhook deliveries."""

    call_id: str
    duration_seconds: int
    direction: str
    phone_number: str
    interaction_timestamp: str
    end_time: str | None = None
    status: str = STATUS_UNHANDLED

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration_seconds)

    def to_field_data(
        self, *, include_status: bool = True, duration_display_field: str | None = None
    ) -> dict[str, Any]:
        """Build the FileMaker `fieldData` mapping.

        `call_end_time` is only written when the normalizer populated it, so records that never
        had an end time keep whatever value FileMaker holds.
        """
        field_data: dict[str, Any] = {
            FIELD_CALL_ID: self.call_id,
            FIELD_DURATION_SECONDS: self.duration_seconds,
            FIELD_DIRECTION: self.direction,
            FIELD_PHONE_NUMBER: self.phone_number,
            FIELD_INTERACTION_TIMESTAMP: self.interaction_timestamp,
        }
        if self.end_time is not None:
            field_data[FIELD_END_TIME] = self.end_time
        if include_status:
            field_data[FIELD_STATUS] = self.status
        if duration_display_field:
            field_data[duration_display_field] = self.formatted_duration
        return field_data


def strip_event_prefix(event_name: str) -> str:
    """`phone.callee_missed` -> `callee_missed`; other names pass through unchanged."""
    if event_name.startswith(ZOOM_PHONE_EVENT_PREFIX):
        return event_name[len(ZOOM_PHONE_EVENT_PREFIX) :]
    return event_name


def _call_id(call: dict[str, Any]) -> str:
    call_id = call.get("call_id") or call.get("id")
    return str(call_id) if call_id else ""


def _duration_seconds(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _direction(value: Any) -> str:
    if isinstance(value, str) and value.lower() in (DIRECTION_INBOUND, DIRECTION_OUTBOUND):
        return value.lower()
    return DIRECTION_UNKNOWN


def normalize_completed_call(
    call: dict[str, Any], options: NormalizationOptions
) -> NormalizedCallRecord:
    """Normalize `call_log_created` and the `*_call_log_completed` events."""
    return NormalizedCallRecord(
        call_id=_call_id(call),
        duration_seconds=_duration_seconds(call.get("duration")),
        direction=_direction(call.get("direction")),
        end_time=format_timestamp(call.get("end_time"), options.tz_name),
        phone_number=str(call.get("caller_number") or call.get("callee_number") or ""),
        interaction_timestamp=format_timestamp(
            call.get("start_time") or call.get("date_time"), options.tz_name
        ),
    )


def normalize_missed_call(
    call: dict[str, Any], options: NormalizationOptions
) -> NormalizedCallRecord:
    """Normalize `callee_missed`: always inbound with zero duration."""
    end_time = None
    if options.missed_call_sets_end_time:
        end_time = format_timestamp(call.get("end_time"), options.tz_name)

    return NormalizedCallRecord(
        call_id=_call_id(call),
        duration_seconds=0,
        direction=DIRECTION_INBOUND,
        end_time=end_time,
        phone_number=str(call.get("caller_number") or ""),
        interaction_timestamp=format_timestamp(call.get("date_time"), options.tz_name),
    )
