"""Idempotent upsert of call-log records into FileMaker, keyed by Zoom `call_id`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from connectors.zoom.zoom_call_log import FIELD_CALL_ID
from src.bridge.services.filemaker_auth import FileMakerSessionManager
from src.clients.filemaker import (
    FileMakerAPIError,
    FileMakerClient,
    FileMakerUnauthorizedError,
    NoRecordsFoundError,
    RecordConflictError,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Characters FileMaker treats as find operators
_FIND_SPECIAL_CHARACTERS = set('\\@*#?!=<>"~')


def escape_find_value(value: str) -> str:
    return "".join(f"\\{ch}" if ch in _FIND_SPECIAL_CHARACTERS else ch for ch in value)


@dataclass(slots=True)
class RecordRef:
    record_id: str
    mod_id: str


@dataclass(slots=True)
class UpsertResult:
    action: Literal["created", "updated"]
    record_id: str
    mod_id: str | None = None


class RecordWriteError(Exception):
    """FileMaker rejected a create or update after the lookup completed."""

    def __init__(self, message: str, *, action: str, call_id: str | None):
        super().__init__(message)
        self.action = action
        self.call_id = call_id


class CallLogSyncService:
    """Find-then-create-or-update against one FileMaker layout.

    Two deliveries of the same new call racing each other can both miss the lookup and both
    create. That window is accepted; there is no cross-request lock.
    """

    def __init__(
        self,
        client: FileMakerClient,
        sessions: FileMakerSessionManager,
        *,
        key_field: str = FIELD_CALL_ID,
    ) -> None:
        self._client = client
        self._sessions = sessions
        self._key_field = key_field

    async def find_by_call_id(self, call_id: str) -> RecordRef | None:
        """Look up the record for `call_id`. No match is a normal outcome, not an error."""
        query = [{self._key_field: f"=={escape_find_value(call_id)}"}]

        async def _find(token: str) -> list[dict[str, Any]]:
            return await self._client.find_records(token, query)

        try:
            records = await self._sessions.with_auth(_find)
        except NoRecordsFoundError:
            return None

        if not records:
            return None
        if len(records) > 1:
            logger.warning(
                "Multiple FileMaker records share a call_id; updating the first",
                call_id=call_id,
                match_count=len(records),
            )

        record = records[0]
        return RecordRef(record_id=str(record["recordId"]), mod_id=str(record.get("modId", "")))

    async def upsert(
        self,
        call_id: str | None,
        field_data: dict[str, Any],
        *,
        initial_field_data: dict[str, Any] | None = None,
    ) -> UpsertResult:
        """Create the record for `call_id`, or update it if one already exists.

        Args:
            call_id: Business key; when empty the lookup is skipped and a record is always created
            field_data: Fields written on both create and update
            initial_field_data: Fields written only on create (e.g. the initial status)

        Raises:
            RecordConflictError: The record changed between lookup and update; retry from the top
            RecordWriteError: FileMaker rejected the create or update
        """
        existing = await self.find_by_call_id(call_id) if call_id else None

        if existing is not None:
            return await self._update(call_id, existing, field_data)

        return await self._create(call_id, {**field_data, **(initial_field_data or {})})

    async def _create(self, call_id: str | None, field_data: dict[str, Any]) -> UpsertResult:
        async def _do_create(token: str) -> dict[str, str]:
            return await self._client.create_record(token, field_data)

        try:
            created = await self._sessions.with_auth(_do_create)
        except FileMakerUnauthorizedError:
            raise
        except FileMakerAPIError as e:
            raise RecordWriteError(
                f"FileMaker create failed: {e}", action="create", call_id=call_id
            ) from e

        logger.info(
            "FileMaker record created",
            call_id=call_id or "unknown",
            record_id=created["recordId"],
        )
        return UpsertResult(action="created", record_id=created["recordId"], mod_id=created["modId"])

    async def _update(
        self, call_id: str | None, existing: RecordRef, field_data: dict[str, Any]
    ) -> UpsertResult:
        async def _do_update(token: str) -> dict[str, str]:
            return await self._client.update_record(
                token, existing.record_id, field_data, mod_id=existing.mod_id or None
            )

        try:
            updated = await self._sessions.with_auth(_do_update)
        except (FileMakerUnauthorizedError, RecordConflictError):
            raise
        except FileMakerAPIError as e:
            raise RecordWriteError(
                f"FileMaker update failed: {e}", action="update", call_id=call_id
            ) from e

        logger.info(
            "FileMaker record updated",
            call_id=call_id,
            record_id=existing.record_id,
            previous_mod_id=existing.mod_id,
            mod_id=updated["modId"],
        )
        return UpsertResult(action="updated", record_id=existing.record_id, mod_id=updated["modId"])
