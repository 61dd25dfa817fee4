"""Tests for the find-then-create-or-update call log sync."""

import pytest

from src.bridge.services.call_log_sync import (
    RecordRef,
    RecordWriteError,
    escape_find_value,
)
from src.clients.filemaker import FileMakerUnauthorizedError, RecordConflictError


@pytest.mark.asyncio
async def test_find_returns_none_when_filemaker_reports_no_records(sync_service, fm_server):
    assert await sync_service.find_by_call_id("missing") is None
    assert fm_server.count("POST", "/_find") == 1


@pytest.mark.asyncio
async def test_find_returns_record_ref(sync_service, fm_server):
    fm_server.records["7"] = {"fieldData": {"call_id": "123"}, "modId": "4"}

    assert await sync_service.find_by_call_id("123") == RecordRef(record_id="7", mod_id="4")


@pytest.mark.asyncio
async def test_upsert_creates_when_no_match(sync_service, fm_server):
    result = await sync_service.upsert(
        "123", {"call_id": "123", "call_duration_seconds": 65}, initial_field_data={"状態": "未対応"}
    )

    assert result.action == "created"
    assert fm_server.records[result.record_id]["fieldData"] == {
        "call_id": "123",
        "call_duration_seconds": 65,
        "状態": "未対応",
    }


@pytest.mark.asyncio
async def test_repeated_delivery_creates_once_then_updates(sync_service, fm_server):
    fields = {"call_id": "123", "call_duration_seconds": 65}

    first = await sync_service.upsert("123", fields, initial_field_data={"状態": "未対応"})
    fm_server.records[first.record_id]["fieldData"]["状態"] = "対応済"
    second = await sync_service.upsert("123", fields, initial_field_data={"状態": "未対応"})

    assert (first.action, second.action) == ("created", "updated")
    assert len(fm_server.records) == 1
    assert fm_server.count("POST", "/records") == 1
    assert fm_server.count("PATCH", f"/records/{first.record_id}") == 1
    # Status set by a person is not reset by the redelivery
    assert fm_server.records[first.record_id]["fieldData"]["状態"] == "対応済"
    assert second.mod_id == "1"


@pytest.mark.asyncio
async def test_empty_call_id_skips_lookup_and_creates(sync_service, fm_server):
    await sync_service.upsert("", {"call_id": ""})
    await sync_service.upsert(None, {"call_id": ""})

    assert fm_server.count("POST", "/_find") == 0
    assert len(fm_server.records) == 2


@pytest.mark.asyncio
async def test_single_auth_failure_on_create_relogs_in_and_retries(
    sync_service, sessions, fm_server
):
    await sessions.ensure_valid()
    fm_server.expire_all_tokens()

    result = await sync_service.upsert("", {"call_id": "9"})

    assert result.action == "created"
    assert fm_server.login_count == 2
    assert fm_server.count("POST", "/records") == 2
    assert len(fm_server.records) == 1


@pytest.mark.asyncio
async def test_two_auth_failures_on_create_propagate(sync_service, fm_server):
    fm_server.reject_next_tokens = 2

    with pytest.raises(FileMakerUnauthorizedError):
        await sync_service.upsert("", {"call_id": "9"})

    assert fm_server.records == {}
    assert fm_server.login_count == 2


@pytest.mark.asyncio
async def test_rejected_create_raises_record_write_error(sync_service, fm_server):
    fm_server.reject_creates = True

    with pytest.raises(RecordWriteError) as exc_info:
        await sync_service.upsert("123", {"call_id": "123"})

    assert exc_info.value.action == "create"
    assert exc_info.value.call_id == "123"


@pytest.mark.asyncio
async def test_stale_mod_id_surfaces_conflict(sync_service, fm_server):
    fm_server.records["1"] = {"fieldData": {"call_id": "123"}, "modId": "0"}
    fm_server.stale_mod_ids = True

    with pytest.raises(RecordConflictError):
        await sync_service.upsert("123", {"call_id": "123", "call_duration_seconds": 5})

    assert fm_server.count("PATCH", "/records/1") == 1


def test_escape_find_value():
    assert escape_find_value("7012345678") == "7012345678"
    assert escape_find_value('a*b"c') == 'a\\*b\\"c'
    assert escape_find_value("==x") == "\\=\\=x"


@pytest.mark.asyncio
async def test_find_escapes_operators(sync_service, fm_server):
    fm_server.records["1"] = {"fieldData": {"call_id": "ab*"}, "modId": "0"}
    fm_server.records["2"] = {"fieldData": {"call_id": "abc"}, "modId": "0"}

    assert await sync_service.find_by_call_id("ab*") == RecordRef(record_id="1", mod_id="0")
