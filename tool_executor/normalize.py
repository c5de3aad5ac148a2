"""Adapters that turn data store envelopes into one canonical shape per call site.

The stored functions have returned several wrappers over time (raw JSON
text, a single-row list, ``{function_name: payload}``, ``results`` vs
``groups`` keys). Shape sniffing lives here and nowhere else.
"""
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger()

MAX_UNWRAP_DEPTH = 5


def to_float(value: Any) -> float:
    """Lenient numeric parse; anything unparseable counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0


def to_optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def unwrap_rpc_payload(raw: Any, function_name: Optional[str] = None) -> Dict[str, Any]:
    """Peel the wrappers a stored function result may arrive in."""
    payload = raw
    for _ in range(MAX_UNWRAP_DEPTH):
        if payload is None:
            return {}
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8", errors="ignore")
        if isinstance(payload, str):
            text = payload.strip()
            if not text:
                return {}
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("Store returned non-JSON text", function=function_name, preview=text[:100])
                return {}
            continue
        if isinstance(payload, list):
            # A bare list of row objects is itself the result set
            if payload and isinstance(payload[0], dict) and len(payload) == 1 and _looks_wrapped(payload[0], function_name):
                payload = payload[0]
                continue
            return {"results": payload}
        if isinstance(payload, dict):
            if function_name and len(payload) == 1 and function_name in payload:
                payload = payload[function_name]
                continue
            if len(payload) == 1 and "data" in payload and isinstance(payload["data"], (dict, list, str)):
                payload = payload["data"]
                continue
            return payload
        return {}
    return payload if isinstance(payload, dict) else {}


def _looks_wrapped(item: Dict[str, Any], function_name: Optional[str]) -> bool:
    if function_name and function_name in item:
        return True
    return any(key in item for key in ("results", "groups", "values", "sample_values", "top_values", "data"))


def normalize_grouping(raw: Any, function_name: str = "preview_grouping") -> Dict[str, Any]:
    """Canonical grouping: ``{"groups": [{group, value, count}], "total_groups": n}``.

    Values are left unrounded; callers round when they build their result.
    """
    payload = unwrap_rpc_payload(raw, function_name)
    rows = payload.get("results")
    if rows is None:
        rows = payload.get("groups")
    if not isinstance(rows, list):
        rows = []

    groups: List[Dict[str, Any]] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        label = row.get("group", row.get("name", row.get("label")))
        group = {
            "group": str(label) if label not in (None, "") else "Unknown",
            "value": to_float(row.get("value")),
            "count": int(to_float(row.get("count"))),
        }
        secondary = row.get("secondary_group", row.get("secondary"))
        if secondary is not None:
            group["secondary_group"] = str(secondary)
        groups.append(group)

    total_groups = payload.get("total_groups")
    return {
        "groups": groups,
        "total_groups": int(to_float(total_groups)) if total_groups is not None else len(groups),
    }


def normalize_field_exploration(raw: Any, field_name: str, function_name: str = "explore_single_field") -> Dict[str, Any]:
    """Canonical field exploration: coverage figures plus ``values[{value, count}]``."""
    payload = unwrap_rpc_payload(raw, function_name)
    rows = None
    for key in ("values", "top_values", "sample_values", "results"):
        if isinstance(payload.get(key), list):
            rows = payload[key]
            break
    rows = rows or []

    values: List[Dict[str, Any]] = []
    for row in rows:
        if isinstance(row, dict):
            label = row.get("value", row.get("name", row.get("group")))
            count = row.get("count", row.get("frequency", 0))
        else:
            label, count = row, 0
        values.append({
            "value": str(label) if label not in (None, "") else "Unknown",
            "count": int(to_float(count)),
        })

    total_count = int(to_float(payload.get("total_count")))
    populated_count = int(to_float(payload.get("populated_count", total_count)))
    coverage = payload.get("populated_percent", payload.get("coverage_percent"))
    if coverage is None:
        coverage = (populated_count / total_count * 100) if total_count else 0.0
    unique_count = payload.get("unique_count", payload.get("distinct_count"))

    return {
        "field_name": payload.get("field_name", field_name),
        "data_type": payload.get("data_type"),
        "total_count": total_count,
        "populated_count": populated_count,
        "coverage_percent": to_float(coverage),
        "unique_count": int(to_float(unique_count)) if unique_count is not None else len(values),
        "values": values,
    }
