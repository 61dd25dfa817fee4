"""Timestamp and duration rendering for FileMaker timestamp/time fields."""

import logging
from datetime import UTC, datetime

import pytz

logger = logging.getLogger(__name__)

# FileMaker's default US-locale timestamp layout
FILEMAKER_TIMESTAMP_FORMAT = "%m/%d/%Y %H:%M:%S"

# Epoch values above this are treated as milliseconds (year ~5138 in seconds)
EPOCH_MILLISECONDS_THRESHOLD = 100_000_000_000


def parse_timestamp(value: str | int | float) -> datetime:
    """
    Parse an epoch number or ISO 8601 string into an aware UTC datetime.

    Naive ISO strings are assumed to be UTC. Epoch numbers may be seconds or milliseconds.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp '{value}'")

    if isinstance(value, str):
        stripped = value.strip()
        try:
            value = float(stripped)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(stripped.replace("Z", "+00:00"))
            except ValueError as e:
                raise ValueError(f"Invalid timestamp '{value}': {e}") from e
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)

    try:
        seconds = float(value)
        if abs(seconds) >= EPOCH_MILLISECONDS_THRESHOLD:
            seconds /= 1000
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (ValueError, TypeError, OverflowError, OSError) as e:
        raise ValueError(f"Invalid timestamp '{value}': {e}") from e


def format_timestamp(value: str | int | float | None, tz_name: str = "UTC") -> str:
    """
    Render a timestamp as `MM/DD/YYYY HH:MM:SS` in the given timezone.

    Returns an empty string for missing or unparseable input.
    """
    if value is None or value == "" or value == 0:
        return ""

    try:
        parsed = parse_timestamp(value)
    except ValueError:
        logger.warning(f"Could not parse timestamp {value!r}; leaving field empty")
        return ""

    local = parsed.astimezone(pytz.timezone(tz_name))
    return local.strftime(FILEMAKER_TIMESTAMP_FORMAT)


def format_duration(seconds: int | float | str | None) -> str:
    """Render a number of seconds as zero-padded `HH:MM:SS`.

    Missing, negative or non-numeric input renders as `00:00:00`. Hours are not capped at 24.
    """
    try:
        total = int(float(seconds)) if seconds else 0
    except (TypeError, ValueError):
        total = 0
    total = max(total, 0)

    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
