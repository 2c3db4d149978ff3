"""HTTP clients for the cloud backend.

This module provides:
- CloudClient: Common base (httpx session, error mapping, request retries)
- SupabaseClient: PostgREST backend (upserts and change queries per table)
- RestClient: Generic REST backend (/api/sync/...)
- create_cloud_client: Pick the client matching the configured provider
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from possync.client.sync.retry import retry_with_backoff
from possync.core.config import CloudConfig
from possync.core.naming import snake_case_keys
from possync.core.types import SYNCABLE_TABLES, ChangeType, CloudProvider

logger = logging.getLogger(__name__)

# Tables without an updated_at column and the column that replaces it
CHANGE_TIMESTAMP_COLUMNS = {
    "debts": "created_at",
    "debt_payments": "date",
}

EPOCH_ISO = "1970-01-01T00:00:00+00:00"


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed (401/403)."""


class NotFoundError(APIError):
    """Resource not found."""


class RateLimitError(APIError):
    """Too many requests (429)."""


class ServerError(APIError):
    """The backend failed (5xx)."""


class CloudUnreachableError(APIError):
    """The backend could not be reached at all."""


# Failures worth repeating the same request for
RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    ServerError,
    RateLimitError,
    httpx.TimeoutException,
    httpx.NetworkError,
)


@dataclass
class RemoteChange:
    """A change recorded on the cloud side (for pull)."""

    table_name: str
    record_id: str
    change_type: ChangeType
    data: dict[str, Any]
    server_updated_at: str | None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteChange:
        """Create from API response dictionary."""
        return cls(
            table_name=data["table_name"],
            record_id=str(data["record_id"]),
            change_type=ChangeType(data.get("change_type", "update")),
            data=dict(data.get("data") or {}),
            server_updated_at=data.get("server_updated_at"),
        )


@dataclass
class UpsertResult:
    """Result of pushing one record."""

    remote_id: str


def _error_detail(response: httpx.Response) -> str:
    """Extract a readable error message from an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("detail", "message", "error", "hint"):
            if body.get(key):
                return str(body[key])
    return response.text or response.reason_phrase


class CloudClient(ABC):
    """HTTP client for a cloud backend."""

    def __init__(
        self,
        config: CloudConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the cloud client.

        Args:
            config: Backend URL, key and request settings.
            transport: Optional httpx transport (used by tests).
        """
        self._config = config
        self._client = httpx.Client(
            base_url=config.cloud_url,
            timeout=config.timeout,
            headers=self._headers(),
            verify=config.verify_ssl,
            transport=transport,
        )

    @property
    def config(self) -> CloudConfig:
        """Connection settings."""
        return self._config

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> CloudClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        status = response.status_code
        if status < 400:
            return response
        detail = _error_detail(response)
        if status in (401, 403):
            raise AuthenticationError(detail, status)
        if status == 404:
            raise NotFoundError(detail, status)
        if status == 429:
            raise RateLimitError(detail, status)
        if status >= 500:
            raise ServerError(detail, status)
        raise APIError(detail, status)

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transient failures with backoff.

        Raises:
            CloudUnreachableError: If no connection can be established.
            APIError: On an error response that survived the retries.
        """

        def attempt() -> httpx.Response:
            try:
                response = self._client.request(method, url, **kwargs)
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                raise CloudUnreachableError(
                    f"Cannot reach {self._config.cloud_url}: {e}"
                ) from e
            return self._handle_response(response)

        result: httpx.Response = retry_with_backoff(
            attempt,
            max_retries=self._config.max_retries,
            initial_backoff=self._config.initial_backoff,
            retryable_exceptions=RETRYABLE_EXCEPTIONS,
        )
        return result

    @abstractmethod
    def upsert_record(
        self, table_name: str, record_id: str, data: dict[str, Any]
    ) -> UpsertResult:
        """Create or replace a record on the backend."""

    @abstractmethod
    def get_changes(self, since: str | None) -> list[RemoteChange]:
        """Get all changes recorded after a timestamp (None = everything)."""

    @abstractmethod
    def test_connection(self) -> str:
        """Check credentials and reachability.

        Returns:
            Human-readable success message.
        """


class SupabaseClient(CloudClient):
    """Client for a Supabase (PostgREST) backend."""

    def __init__(
        self,
        config: CloudConfig,
        transport: httpx.BaseTransport | None = None,
        tables: Sequence[str] = SYNCABLE_TABLES,
    ) -> None:
        super().__init__(config, transport)
        self._tables = tuple(tables)

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["apikey"] = self._config.api_key
        headers["Prefer"] = "return=representation"
        return headers

    def _table_url(self, table_name: str) -> str:
        return f"/rest/v1/{self._config.table_prefix}{table_name}"

    def upsert_record(
        self, table_name: str, record_id: str, data: dict[str, Any]
    ) -> UpsertResult:
        """Upsert a record, merging on the id column."""
        payload = snake_case_keys(data)
        payload["id"] = record_id
        response = self._send(
            "POST",
            self._table_url(table_name),
            params={"on_conflict": "id"},
            json=payload,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        rows = response.json() if response.content else []
        if isinstance(rows, list) and rows and rows[0].get("id") is not None:
            return UpsertResult(remote_id=str(rows[0]["id"]))
        return UpsertResult(remote_id=record_id)

    def get_changes(self, since: str | None) -> list[RemoteChange]:
        """Query every syncable table for rows changed or deleted after `since`.

        Tables missing on the backend are skipped. Any other failure is
        raised so that a partial listing never moves the watermark.
        """
        timestamp = since or EPOCH_ISO
        changes: list[RemoteChange] = []

        for table in self._tables:
            column = CHANGE_TIMESTAMP_COLUMNS.get(table, "updated_at")
            if column == "updated_at":
                active_params = {
                    "or": f"(updated_at.gt.{timestamp},created_at.gt.{timestamp})",
                    "deleted_at": "is.null",
                    "order": "updated_at.asc",
                    "select": "*",
                }
            else:
                active_params = {
                    column: f"gt.{timestamp}",
                    "deleted_at": "is.null",
                    "order": f"{column}.asc",
                    "select": "*",
                }

            try:
                response = self._send("GET", self._table_url(table), params=active_params)
            except NotFoundError:
                logger.warning("Table %s not found on the backend, skipping", table)
                continue
            for record in response.json():
                changes.append(
                    RemoteChange(
                        table_name=table,
                        record_id=str(record["id"]),
                        change_type=ChangeType.UPDATE,
                        data=record,
                        server_updated_at=(
                            record.get("updated_at")
                            or record.get("created_at")
                            or record.get(column)
                        ),
                    )
                )

            deleted_params = {
                "deleted_at": f"gt.{timestamp}",
                "order": "deleted_at.asc",
                "select": "*",
            }
            try:
                response = self._send("GET", self._table_url(table), params=deleted_params)
            except APIError as e:
                # 400: older schema without deleted_at
                if e.status_code in (400, 404):
                    logger.warning(
                        "Cannot query deleted rows of %s (schema may need an update): %s",
                        table,
                        e,
                    )
                    continue
                raise
            for record in response.json():
                changes.append(
                    RemoteChange(
                        table_name=table,
                        record_id=str(record["id"]),
                        change_type=ChangeType.DELETE,
                        data=record,
                        server_updated_at=record.get("deleted_at"),
                    )
                )

        return changes

    def test_connection(self) -> str:
        """Query an empty page of the customers table."""
        try:
            self._send("GET", self._table_url("customers"), params={"limit": "0"})
        except AuthenticationError as e:
            raise AuthenticationError(
                "Invalid API key or insufficient permissions", e.status_code
            ) from e
        except NotFoundError as e:
            raise NotFoundError(
                "Table not found. Please create tables in Supabase first.", e.status_code
            ) from e
        return "Connection successful"


class RestClient(CloudClient):
    """Client for a custom REST backend."""

    def upsert_record(
        self, table_name: str, record_id: str, data: dict[str, Any]
    ) -> UpsertResult:
        """PUT the record at /api/sync/{table}/{id}."""
        response = self._send(
            "PUT", f"/api/sync/{table_name}/{record_id}", json=data
        )
        body = response.json() if response.content else {}
        if isinstance(body, dict) and body.get("id") is not None:
            return UpsertResult(remote_id=str(body["id"]))
        return UpsertResult(remote_id=record_id)

    def get_changes(self, since: str | None) -> list[RemoteChange]:
        """GET /api/sync/changes?since=..."""
        params = {"since": since} if since else {}
        response = self._send("GET", "/api/sync/changes", params=params)
        return [RemoteChange.from_dict(c) for c in response.json().get("changes", [])]

    def test_connection(self) -> str:
        """GET /health."""
        self._send("GET", "/health")
        return "Connection successful"


def create_cloud_client(
    config: CloudConfig,
    transport: httpx.BaseTransport | None = None,
) -> CloudClient:
    """Create the client for the configured provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    if config.provider == CloudProvider.SUPABASE:
        return SupabaseClient(config, transport)
    if config.provider == CloudProvider.CUSTOM:
        return RestClient(config, transport)
    raise ValueError(f"Unknown provider: {config.provider}")
