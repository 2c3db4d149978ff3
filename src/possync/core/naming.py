"""Field name conversion between the local database and the cloud.

The POS front end writes camelCase keys into payload snapshots while the
cloud tables and the local SQLite columns are snake_case.
"""

from __future__ import annotations

import re
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_snake_case(name: str) -> str:
    """Convert a camelCase name to snake_case ("customerId" -> "customer_id")."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def to_camel_case(name: str) -> str:
    """Convert a snake_case name to camelCase ("customer_id" -> "customerId")."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def snake_case_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a record with top-level keys in snake_case.

    When both spellings of a key are present the snake_case value wins.
    """
    converted: dict[str, Any] = {}
    for key, value in data.items():
        snake = to_snake_case(key)
        if snake != key and snake in data:
            continue
        converted[snake] = value
    return converted
