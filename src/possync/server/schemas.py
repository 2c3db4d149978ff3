"""Pydantic schemas for the control API.

Requests form a closed union keyed by `op`; every response is an Envelope.
Field names of the data payloads are the ones the POS front end reads.
"""

from __future__ import annotations

from typing import Annotated, Any, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from possync.core.types import CloudProvider, ConflictResolution, ConflictStrategy, SyncStatus

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Uniform result of every control operation."""

    success: bool
    data: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> Envelope[Any]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> Envelope[Any]:
        return cls(success=False, error=error, data=data)


# === Request schemas ===


class ConfigUpdate(BaseModel):
    """Partial configuration accepted by updateConfig."""

    model_config = ConfigDict(extra="ignore")

    sync_enabled: bool | None = None
    sync_interval_minutes: int | None = Field(default=None, gt=0)
    cloud_provider: CloudProvider | None = None
    cloud_url: str | None = None
    api_key: str | None = None
    table_prefix: str | None = None
    conflict_resolution_strategy: ConflictStrategy | None = None

    def updates(self) -> dict[str, Any]:
        """Fields that were actually provided."""
        return self.model_dump(mode="json", exclude_none=True)


class ConnectionOverride(BaseModel):
    """Unsaved connection settings to test."""

    model_config = ConfigDict(extra="ignore")

    cloud_provider: CloudProvider | None = None
    cloud_url: str | None = None
    api_key: str | None = None
    table_prefix: str | None = None


class QueueFilter(BaseModel):
    """Filters of getQueue."""

    status: SyncStatus | None = None
    limit: int = Field(default=100, gt=0, le=1000)
    offset: int = Field(default=0, ge=0)


class GetStatusRequest(BaseModel):
    op: Literal["getStatus"] = "getStatus"


class GetHealthRequest(BaseModel):
    op: Literal["getHealth"] = "getHealth"


class GetConfigRequest(BaseModel):
    op: Literal["getConfig"] = "getConfig"


class UpdateConfigRequest(BaseModel):
    op: Literal["updateConfig"] = "updateConfig"
    config: ConfigUpdate


class SetEnabledRequest(BaseModel):
    op: Literal["setEnabled"] = "setEnabled"
    enabled: bool


class SyncAllRequest(BaseModel):
    op: Literal["syncAll"] = "syncAll"


class PullChangesRequest(BaseModel):
    op: Literal["pullChanges"] = "pullChanges"


class GetPendingRequest(BaseModel):
    op: Literal["getPending"] = "getPending"
    limit: int | None = Field(default=None, gt=0)


class GetQueueRequest(BaseModel):
    op: Literal["getQueue"] = "getQueue"
    filters: QueueFilter = Field(default_factory=QueueFilter)


class ClearQueueRequest(BaseModel):
    op: Literal["clearQueue"] = "clearQueue"
    status: SyncStatus | None = None


class ResetFailedRequest(BaseModel):
    op: Literal["resetFailed"] = "resetFailed"
    item_ids: list[int] | None = None


class ConnectionTestRequest(BaseModel):
    op: Literal["testConnection"] = "testConnection"
    config: ConnectionOverride | None = None


class GetConflictsRequest(BaseModel):
    op: Literal["getConflicts"] = "getConflicts"
    include_resolved: bool = False


class ResolveConflictRequest(BaseModel):
    op: Literal["resolveConflict"] = "resolveConflict"
    conflict_id: int = Field(gt=0)
    keep: ConflictResolution


ControlRequest = Annotated[
    Union[
        GetStatusRequest,
        GetHealthRequest,
        GetConfigRequest,
        UpdateConfigRequest,
        SetEnabledRequest,
        SyncAllRequest,
        PullChangesRequest,
        GetPendingRequest,
        GetQueueRequest,
        ClearQueueRequest,
        ResetFailedRequest,
        ConnectionTestRequest,
        GetConflictsRequest,
        ResolveConflictRequest,
    ],
    Field(discriminator="op"),
]


# === Response schemas ===


class StatusData(BaseModel):
    """Data of getStatus."""

    enabled: bool
    lastSyncAt: str | None
    lastPushAt: str | None = None
    pending: int
    errors: int
    deviceId: str
    cloudProvider: str
    isConfigured: bool


class HealthMetricsData(BaseModel):
    total: int
    pending: int
    errors: int
    stuck: int
    synced: int
    errorRate: float
    highRetryErrors: int
    recentErrors: int
    lastSyncAgeMinutes: int | None
    lastSyncAt: str | None


class HealthData(BaseModel):
    """Data of getHealth."""

    status: Literal["healthy", "warning", "critical"]
    metrics: HealthMetricsData
    warnings: list[str]
    alerts: list[str]
    enabled: bool
    isConfigured: bool
    isLocked: bool


class HealthResponse(BaseModel):
    """Liveness of the control server."""

    status: str
