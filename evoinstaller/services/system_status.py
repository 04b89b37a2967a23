"""Parsing of the PHP ``system-status`` probe output."""

from __future__ import annotations

import json
from typing import Any, List, Union

from ..errors import ProbeError
from ..models import StatusItem, StatusLevel, SystemStatus, normalize_system_status


def system_status_argv(php_binary: str, entry: str) -> List[str]:
    return [php_binary, entry, "system-status", "--format=json", "--no-ansi", "--no-interaction"]


def parse_system_status(raw: Union[str, bytes]) -> SystemStatus:
    """Build a normalized ``SystemStatus`` from the probe's JSON document.

    Item levels are coerced leniently. The document's own ``overall`` is
    ignored; it is always recomputed from the items.
    """

    try:
        data: Any = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProbeError(f"invalid system status JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProbeError("invalid system status JSON: expected an object")

    items: List[StatusItem] = []
    for entry in data.get("items") or []:
        if not isinstance(entry, dict):
            continue
        items.append(
            StatusItem(
                key=str(entry.get("key") or ""),
                label=str(entry.get("label") or ""),
                level=StatusLevel.coerce(entry.get("level")),
                details=str(entry.get("details") or ""),
            )
        )
    return normalize_system_status(SystemStatus(items=items))
