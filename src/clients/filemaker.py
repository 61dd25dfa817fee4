"""Async FileMaker Data API client used by the call-log bridge.

Every data call takes the session token explicitly; token lifecycle lives in
`src.bridge.services.filemaker_auth`.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from src.utils.config import (
    get_filemaker_credentials,
    get_filemaker_database,
    get_filemaker_http_timeout_seconds,
    get_filemaker_layout,
    get_filemaker_server_url,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

DATA_API_VERSION = "vLatest"

# FileMaker error codes from messages[0].code
FM_CODE_OK = "0"
FM_CODE_RECORD_MODIFIED = "306"
FM_CODE_NO_RECORDS_MATCH = "401"
FM_CODE_INVALID_ACCOUNT = "212"
FM_CODE_INVALID_TOKEN = "952"


class FileMakerAPIError(Exception):
    """Base exception for FileMaker Data API failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        fm_code: str | None = None,
        response_body: Any | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.fm_code = fm_code
        self.response_body = response_body


class FileMakerAuthenticationError(FileMakerAPIError):
    """Credentials were rejected while creating a session."""


class FileMakerUnauthorizedError(FileMakerAPIError):
    """The session token was rejected on a data call (expired or logged out)."""


class NoRecordsFoundError(FileMakerAPIError):
    """A find request matched no records."""


class RecordConflictError(FileMakerAPIError):
    """The record changed since it was read; the modId is stale. Safe to retry from the lookup."""


def _first_message(body: Any) -> tuple[str | None, str]:
    if isinstance(body, dict):
        messages = body.get("messages") or []
        if messages and isinstance(messages[0], dict):
            code = messages[0].get("code")
            return (str(code) if code is not None else None), str(messages[0].get("message", ""))
    return None, ""


def raise_for_filemaker_response(response: httpx.Response, *, is_login: bool = False) -> dict:
    """Return the `response` object of a successful Data API reply or raise a typed error."""
    try:
        body = response.json()
    except ValueError:
        body = response.text

    fm_code, fm_message = _first_message(body)

    if response.is_success and fm_code in (None, FM_CODE_OK):
        inner = body.get("response") if isinstance(body, dict) else None
        return inner or {}

    description = fm_message or (body if isinstance(body, str) else "") or response.reason_phrase
    message = f"FileMaker Data API error {fm_code or '-'} (HTTP {response.status_code}): {description}"
    kwargs = {"status_code": response.status_code, "fm_code": fm_code, "response_body": body}

    if is_login and (response.status_code == 401 or fm_code == FM_CODE_INVALID_ACCOUNT):
        raise FileMakerAuthenticationError(message, **kwargs)
    if fm_code == FM_CODE_NO_RECORDS_MATCH:
        raise NoRecordsFoundError(message, **kwargs)
    if fm_code == FM_CODE_RECORD_MODIFIED:
        raise RecordConflictError(message, **kwargs)
    if response.status_code == 401 or fm_code == FM_CODE_INVALID_TOKEN:
        raise FileMakerUnauthorizedError(message, **kwargs)
    raise FileMakerAPIError(message, **kwargs)


class FileMakerClient:
    """Thin async wrapper around the FileMaker Data API endpoints for one database and layout."""

    def __init__(
        self,
        *,
        server_url: str,
        database: str,
        layout: str,
        username: str,
        password: str,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not server_url:
            raise ValueError("server_url is required")
        if not database:
            raise ValueError("database is required")
        if not layout:
            raise ValueError("layout is required")

        self._base_url = (
            f"{server_url.rstrip('/')}/fmi/data/{DATA_API_VERSION}/databases/{quote(database, safe='')}"
        )
        self._layout = layout
        self._layout_path = f"/layouts/{quote(layout, safe='')}"
        self._credentials = (username, password)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Accept": "application/json",
                "User-Agent": "zoom-filemaker-bridge/1.0",
            },
            timeout=timeout_seconds,
        )

    @classmethod
    def from_config(cls, http_client: httpx.AsyncClient | None = None) -> FileMakerClient:
        username, password = get_filemaker_credentials()
        return cls(
            server_url=get_filemaker_server_url(),
            database=get_filemaker_database(),
            layout=get_filemaker_layout(),
            username=username,
            password=password,
            timeout_seconds=get_filemaker_http_timeout_seconds(),
            http_client=http_client,
        )

    @property
    def layout(self) -> str:
        return self._layout

    async def __aenter__(self) -> FileMakerClient:
        return self

    async def __aexit__(self, _exc_type, _exc, _tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    async def create_session(self) -> str:
        """Log in with the configured account and return a new session token."""
        response = await self._client.post(
            "/sessions",
            auth=httpx.BasicAuth(*self._credentials),
            json={},
        )
        data = raise_for_filemaker_response(response, is_login=True)

        token = data.get("token") or response.headers.get("X-FM-Data-Access-Token")
        if not token:
            raise FileMakerAPIError(
                "FileMaker session response missing token",
                status_code=response.status_code,
                response_body=data,
            )
        return token

    async def delete_session(self, token: str) -> None:
        response = await self._client.delete(f"/sessions/{quote(token, safe='')}")
        raise_for_filemaker_response(response)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------
    async def find_records(
        self, token: str, query: list[dict[str, str]], *, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Run a `_find` on the layout.

        Raises:
            NoRecordsFoundError: When nothing matches (FileMaker reports this as an error)
        """
        body: dict[str, Any] = {"query": query}
        if limit is not None:
            body["limit"] = str(limit)

        response = await self._client.post(
            f"{self._layout_path}/_find", headers=self._bearer(token), json=body
        )
        data = raise_for_filemaker_response(response)
        return data.get("data", [])

    async def create_record(self, token: str, field_data: dict[str, Any]) -> dict[str, str]:
        """Create a record and return `{"recordId", "modId"}`."""
        response = await self._client.post(
            f"{self._layout_path}/records",
            headers=self._bearer(token),
            json={"fieldData": field_data},
        )
        data = raise_for_filemaker_response(response)
        return {"recordId": str(data.get("recordId", "")), "modId": str(data.get("modId", ""))}

    async def update_record(
        self,
        token: str,
        record_id: str,
        field_data: dict[str, Any],
        *,
        mod_id: str | None = None,
    ) -> dict[str, str]:
        """Edit a record. With `mod_id`, FileMaker rejects the edit if the record changed since."""
        body: dict[str, Any] = {"fieldData": field_data}
        if mod_id:
            body["modId"] = mod_id

        response = await self._client.patch(
            f"{self._layout_path}/records/{quote(str(record_id), safe='')}",
            headers=self._bearer(token),
            json=body,
        )
        data = raise_for_filemaker_response(response)
        return {"modId": str(data.get("modId", ""))}

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    async def list_layouts(self, token: str) -> list[str]:
        response = await self._client.get("/layouts", headers=self._bearer(token))
        data = raise_for_filemaker_response(response)
        return [layout["name"] for layout in data.get("layouts", []) if "name" in layout]
