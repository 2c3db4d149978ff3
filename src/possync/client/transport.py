"""Transports carrying control requests to the sync service.

This module provides:
- Transport: Protocol with a single invoke(op, args) method
- LocalTransport: Calls a ControlAPI in the same process
- HttpTransport: Posts to the local control server
- SyncServiceClient: Caller-side facade with one method per operation

The transport is chosen once, when the client is built.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from possync.server.schemas import Envelope

if TYPE_CHECKING:
    from possync.server.control import ControlAPI

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://127.0.0.1:8765"
INVOKE_PATH = "/api/sync/invoke"


class Transport(Protocol):
    """Carries one control request and returns its envelope."""

    def invoke(self, op: str, args: dict[str, Any] | None = None) -> Envelope[Any]: ...

    def close(self) -> None: ...


class LocalTransport:
    """In-process transport."""

    def __init__(self, api: ControlAPI) -> None:
        self._api = api

    def invoke(self, op: str, args: dict[str, Any] | None = None) -> Envelope[Any]:
        return self._api.dispatch({"op": op, **(args or {})})

    def close(self) -> None:
        pass


class HttpTransport:
    """Transport to a running control server."""

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_URL,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP transport.

        Args:
            base_url: URL of the control server.
            timeout: Request timeout in seconds (a sync pass may take a while).
            transport: Optional httpx transport (used by tests).
        """
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    def invoke(self, op: str, args: dict[str, Any] | None = None) -> Envelope[Any]:
        """POST the request; connection problems come back as failed envelopes."""
        try:
            response = self._client.post(INVOKE_PATH, json={"op": op, **(args or {})})
        except httpx.HTTPError as e:
            logger.warning("Control server request %s failed: %s", op, e)
            return Envelope.fail(f"Cannot reach sync service: {e}")
        if response.status_code != 200:
            return Envelope.fail(f"Sync service error {response.status_code}: {response.text}")
        return Envelope[Any].model_validate(response.json())

    def close(self) -> None:
        self._client.close()


class SyncServiceClient:
    """Typed access to the control operations over any transport."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> SyncServiceClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def get_status(self) -> Envelope[Any]:
        return self._transport.invoke("getStatus")

    def get_health(self) -> Envelope[Any]:
        return self._transport.invoke("getHealth")

    def get_config(self) -> Envelope[Any]:
        return self._transport.invoke("getConfig")

    def update_config(self, **updates: Any) -> Envelope[Any]:
        return self._transport.invoke("updateConfig", {"config": updates})

    def set_enabled(self, enabled: bool) -> Envelope[Any]:
        return self._transport.invoke("setEnabled", {"enabled": enabled})

    def sync_all(self) -> Envelope[Any]:
        return self._transport.invoke("syncAll")

    def pull_changes(self) -> Envelope[Any]:
        return self._transport.invoke("pullChanges")

    def get_pending(self, limit: int | None = None) -> Envelope[Any]:
        return self._transport.invoke("getPending", {"limit": limit} if limit else None)

    def get_queue(
        self,
        status: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Envelope[Any]:
        filters: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            filters["status"] = status
        return self._transport.invoke("getQueue", {"filters": filters})

    def clear_queue(self, status: str | None = None) -> Envelope[Any]:
        return self._transport.invoke("clearQueue", {"status": status} if status else None)

    def reset_failed(self, item_ids: list[int] | None = None) -> Envelope[Any]:
        return self._transport.invoke(
            "resetFailed", {"item_ids": item_ids} if item_ids else None
        )

    def test_connection(self, **override: Any) -> Envelope[Any]:
        return self._transport.invoke("testConnection", {"config": override} if override else None)

    def get_conflicts(self, include_resolved: bool = False) -> Envelope[Any]:
        return self._transport.invoke("getConflicts", {"include_resolved": include_resolved})

    def resolve_conflict(self, conflict_id: int, keep: str) -> Envelope[Any]:
        return self._transport.invoke("resolveConflict", {"conflict_id": conflict_id, "keep": keep})
