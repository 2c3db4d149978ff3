"""Shared types for possync.

This module defines the enums used by the queue store, the sync engine and
the control API.
"""

from __future__ import annotations

from enum import Enum


class SyncStatus(str, Enum):
    """Status of a queue entry.

    Transitions: pending -> synced, pending -> error -> pending.
    """

    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class ChangeType(str, Enum):
    """Kind of local mutation recorded in the queue."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ConflictStrategy(str, Enum):
    """Which side wins when a remote change hits a locally modified record."""

    SERVER_WINS = "server_wins"
    CLIENT_WINS = "client_wins"
    MANUAL = "manual"


class ConflictResolution(str, Enum):
    """Version kept when a recorded conflict is resolved by hand."""

    LOCAL = "local"
    REMOTE = "remote"


class CloudProvider(str, Enum):
    """Supported cloud backends."""

    SUPABASE = "supabase"
    CUSTOM = "custom"


class HealthStatus(str, Enum):
    """Overall classification of the sync queue health."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class SyncState(str, Enum):
    """State of the sync engine, pushed to listeners on change."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


# Tables whose rows propagate to the cloud
SYNCABLE_TABLES: tuple[str, ...] = (
    "customers",
    "product_models",
    "products",
    "inventory_items",
    "product_accessories",
    "sales",
    "invoices",
    "returns",
    "swaps",
    "deals",
    "debts",
    "debt_payments",
    "boqs",
    "invoice_templates",
    "users",
)

# Local-only tables (security data and sync bookkeeping)
EXCLUDED_TABLES: tuple[str, ...] = (
    "company_settings",
    "license_activations",
    "license_validations",
    "hardware_snapshots",
    "sync_queue",
    "sync_metadata",
    "sync_conflicts",
)

# Parents before the rows that reference them
SYNC_ORDER: tuple[str, ...] = (
    "customers",
    "product_models",
    "users",
    "invoice_templates",
    "products",
    "deals",
    "debts",
    "sales",
    "invoices",
    "returns",
    "debt_payments",
    "product_accessories",
    "inventory_items",
    "swaps",
    "boqs",
)
