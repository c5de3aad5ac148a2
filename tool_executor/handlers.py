"""Per-tool handlers translating tool input into analytical store calls."""
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from data_store.client import AnalyticsStore
from shared.exceptions import DataStoreError, ToolExecutionError
from shared.field_catalog import FieldCatalog
from shared.utils import comparison_windows, cutoff_date, period_to_days
from tool_executor.config import ToolExecutorConfig
from tool_executor.normalize import normalize_field_exploration, normalize_grouping, to_float, to_optional_float
from tool_executor.statistics import (
    aggregate,
    as_date,
    bucket_numeric,
    detect_outliers,
    group_rows,
    percent_change,
    period_bucket,
    round2,
    sensitivity_threshold,
)

logger = structlog.get_logger()

DATE_FIELD = "created_date"
SUMMARY_SUM_COLUMNS = ["cost", "retail", "miles"]


@dataclass(frozen=True)
class ToolContext:
    """Everything a handler may touch for one request."""
    store: AnalyticsStore
    customer_id: str
    config: ToolExecutorConfig
    catalog: FieldCatalog
    today: date


Handler = Callable[[ToolContext, Dict[str, Any]], Awaitable[Dict[str, Any]]]


def _int(value: Any, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    try:
        number = int(value) if value is not None else default
    except (TypeError, ValueError):
        number = default
    number = max(number, minimum)
    if maximum is not None:
        number = min(number, maximum)
    return number


def _rounded_groups(groups: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**g, "value": round2(g["value"])} for g in groups]


async def _grouping(
    ctx: ToolContext,
    group_by: str,
    metric: str,
    aggregation: str,
    limit: int,
    secondary_group_by: Optional[str] = None
) -> Dict[str, Any]:
    raw = await ctx.store.rpc("preview_grouping", {
        "p_customer_id": ctx.customer_id,
        "p_group_by": group_by,
        "p_metric": metric,
        "p_aggregation": aggregation,
        "p_secondary_group_by": secondary_group_by,
        "p_limit": limit,
    })
    return normalize_grouping(raw)


def _metric_values(rows: List[Dict[str, Any]], metric: str) -> List[float]:
    return [to_float(r.get(metric)) for r in rows if r.get(metric) is not None]


def _truncation(rows: List[Dict[str, Any]], row_limit: int) -> Dict[str, Any]:
    """Marks results computed from a row read that hit its limit."""
    if len(rows) >= row_limit:
        return {"truncated": True, "row_limit": row_limit}
    return {}


def _coverage_recommendation(coverage: float) -> str:
    if coverage < 30:
        return "Warning: Low coverage (<30%). Consider using a different field."
    if coverage < 70:
        return "Moderate coverage. May have some gaps in data."
    return "Good - field is well populated"


async def explore_field(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    field_name = tool_input["field_name"]
    sample_size = _int(tool_input.get("sample_size"), ctx.config.default_sample_size, maximum=100)

    raw = await ctx.store.rpc("explore_single_field", {
        "p_customer_id": ctx.customer_id,
        "p_field_name": field_name,
        "p_sample_size": sample_size,
    })
    result = normalize_field_exploration(raw, field_name)
    result["values"] = result["values"][:sample_size]
    result["coverage_percent"] = round2(result["coverage_percent"])
    result["recommendation"] = _coverage_recommendation(result["coverage_percent"])
    return result


async def preview_aggregation(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    group_by = tool_input["group_by"]
    metric = tool_input["metric"]
    aggregation = tool_input["aggregation"]
    secondary_group_by = tool_input.get("secondary_group_by") or None
    limit = _int(tool_input.get("limit"), ctx.config.default_group_limit, maximum=100)
    descending = (tool_input.get("sort") or "desc") != "asc"

    if ctx.catalog.is_bucketable(group_by):
        not_null = [group_by] if aggregation == "count" else [group_by, metric]
        rows = await ctx.store.select_rows(
            ctx.customer_id, [group_by, metric], not_null=not_null, limit=ctx.config.row_limit
        )
        # Buckets keep their natural range order
        groups = bucket_numeric(rows, group_by, metric, aggregation, ctx.catalog.buckets(group_by))
        return {
            "group_by": group_by,
            "metric": metric,
            "aggregation": aggregation,
            "is_bucketed": True,
            "groups": _rounded_groups(groups),
            "total_groups": len(groups),
            "total_records": len(rows),
            **_truncation(rows, ctx.config.row_limit),
        }

    grouping = await _grouping(ctx, group_by, metric, aggregation, limit, secondary_group_by)
    groups = sorted(grouping["groups"], key=lambda g: g["value"], reverse=descending)[:limit]
    result = {
        "group_by": group_by,
        "metric": metric,
        "aggregation": aggregation,
        "is_bucketed": False,
        "groups": _rounded_groups(groups),
        "total_groups": max(grouping["total_groups"], len(groups)),
    }
    if secondary_group_by:
        result["secondary_group_by"] = secondary_group_by
    return result


async def compare_periods(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    metric = tool_input["metric"]
    aggregation = tool_input["aggregation"]
    period1 = tool_input["period1"]
    period2 = tool_input["period2"]
    group_by = tool_input.get("group_by") or None

    days1 = period_to_days(period1, 30) or 30
    days2 = period_to_days(period2, 60) or 60
    (recent_since, _), (baseline_since, baseline_until) = comparison_windows(days1, days2, ctx.today)

    columns = [metric, group_by] if group_by else [metric]
    row_limit = ctx.config.row_limit
    recent_rows = await ctx.store.select_rows(ctx.customer_id, columns, since=recent_since, limit=row_limit)
    baseline_rows = await ctx.store.select_rows(
        ctx.customer_id, columns, since=baseline_since, until=baseline_until, limit=row_limit
    )

    value1 = aggregate(_metric_values(recent_rows, metric), aggregation, row_count=len(recent_rows))
    value2 = aggregate(_metric_values(baseline_rows, metric), aggregation, row_count=len(baseline_rows))

    result = {
        "metric": metric,
        "aggregation": aggregation,
        "period1": {"label": period1, "value": round2(value1), "count": len(recent_rows)},
        "period2": {"label": period2, "value": round2(value2), "count": len(baseline_rows)},
        "change": {
            "absolute": round2(value1 - value2),
            "percent": round2(percent_change(value1, value2)),
        },
    }
    result.update(_truncation(recent_rows, row_limit) or _truncation(baseline_rows, row_limit))

    if group_by:
        def key(row):
            label = row.get(group_by)
            return str(label) if label not in (None, "") else "Unknown"

        recent_groups = _split_by(recent_rows, key)
        baseline_groups = _split_by(baseline_rows, key)
        breakdown = []
        for label in dict.fromkeys(list(recent_groups) + list(baseline_groups)):
            rows1 = recent_groups.get(label, [])
            rows2 = baseline_groups.get(label, [])
            v1 = aggregate(_metric_values(rows1, metric), aggregation, row_count=len(rows1))
            v2 = aggregate(_metric_values(rows2, metric), aggregation, row_count=len(rows2))
            breakdown.append({
                "group": label,
                "period1": round2(v1),
                "period2": round2(v2),
                "percent_change": round2(percent_change(v1, v2)),
            })
        breakdown.sort(key=lambda b: b["period1"], reverse=True)
        result["group_by"] = group_by
        result["breakdown"] = breakdown[:ctx.config.default_group_limit]

    return result


def _split_by(rows: List[Dict[str, Any]], key_fn) -> Dict[str, List[Dict[str, Any]]]:
    split: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows:
        split.setdefault(key_fn(row), []).append(row)
    return split


async def detect_anomalies(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    metric = tool_input["metric"]
    group_by = tool_input.get("group_by") or "carrier_name"
    sensitivity = (tool_input.get("sensitivity") or "medium").lower()

    grouping = await _grouping(ctx, group_by, metric, "sum", ctx.config.anomaly_group_limit)
    groups = grouping["groups"]
    if len(groups) < ctx.config.anomaly_min_groups:
        return {
            "metric": metric,
            "group_by": group_by,
            "anomalies": [],
            "message": "Not enough data for anomaly detection",
        }

    outliers = detect_outliers(groups, sensitivity_threshold(sensitivity))
    return {
        "metric": metric,
        "group_by": group_by,
        "sensitivity": sensitivity,
        "groups_analyzed": len(groups),
        **outliers,
    }


async def investigate_root_cause(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    metric = tool_input["metric"]
    dimensions = ctx.config.root_cause_dimensions
    depth = _int(tool_input.get("max_depth"), ctx.config.default_root_cause_depth, maximum=len(dimensions))

    breakdown: Dict[str, List[Dict[str, Any]]] = {}
    top_contributors: Dict[str, Dict[str, Any]] = {}
    errors: Dict[str, str] = {}
    for dimension in dimensions[:depth]:
        try:
            grouping = await _grouping(ctx, dimension, metric, "sum", ctx.config.root_cause_group_limit)
        except DataStoreError as e:
            logger.warning("Root cause dimension failed", dimension=dimension, error=str(e))
            errors[dimension] = str(e)
            continue
        groups = grouping["groups"]
        breakdown[dimension] = _rounded_groups(groups)
        if groups:
            total = sum(g["value"] for g in groups)
            leader = max(groups, key=lambda g: g["value"])
            top_contributors[dimension] = {
                "group": leader["group"],
                "value": round2(leader["value"]),
                "share_percent": round2(leader["value"] / total * 100) if total else 0.0,
            }

    if errors and not breakdown:
        raise DataStoreError(next(iter(errors.values())))

    result = {
        "question": tool_input["question"],
        "metric": metric,
        "breakdown_by_dimension": breakdown,
        "top_contributors": top_contributors,
    }
    if tool_input.get("filters"):
        result["filters"] = tool_input["filters"]
    if errors:
        result["dimension_errors"] = errors
    return result


async def get_trend(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    metric = tool_input["metric"]
    aggregation = tool_input["aggregation"]
    period = tool_input["period"]
    days = period_to_days(tool_input.get("range") or ctx.config.default_range, 90)

    rows = await ctx.store.select_rows(
        ctx.customer_id,
        [DATE_FIELD, metric],
        since=cutoff_date(days, ctx.today),
        order_by=DATE_FIELD,
        limit=ctx.config.row_limit,
    )
    if not rows:
        return {"metric": metric, "aggregation": aggregation, "period": period,
                "trend": [], "message": "No data found for the specified period"}

    grouped = group_rows(rows, lambda r: period_bucket(r.get(DATE_FIELD), period), metric)
    trend = [
        {"period": key, "value": round2(group.aggregate(aggregation)), "count": group.row_count}
        for key, group in sorted(grouped.items())
    ]
    return {
        "metric": metric,
        "aggregation": aggregation,
        "period": period,
        "trend": trend,
        **_truncation(rows, ctx.config.row_limit),
    }


async def get_summary_stats(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    time_range = tool_input.get("time_range") or ctx.config.default_range
    days = period_to_days(time_range, 90)

    summary = await ctx.store.summarize(
        ctx.customer_id,
        SUMMARY_SUM_COLUMNS,
        distinct_columns=["carrier_name"],
        since=cutoff_date(days, ctx.today),
    )
    shipments = summary["row_count"]
    if not shipments:
        return {"time_range": time_range, "total_shipments": 0, "message": "No shipments found", "stats": {}}

    sums = summary["sums"]
    total_cost = to_optional_float(sums.get("cost"))
    total_retail = to_optional_float(sums.get("retail"))
    total_miles = to_optional_float(sums.get("miles"))
    earliest, latest = as_date(summary.get("earliest")), as_date(summary.get("latest"))

    def maybe(value: Optional[float]) -> Optional[float]:
        return round2(value) if value is not None else None

    return {
        "time_range": time_range,
        "total_shipments": shipments,
        "total_cost": maybe(total_cost),
        "total_retail": maybe(total_retail),
        "total_miles": maybe(total_miles),
        "avg_cost": maybe(total_cost / shipments if total_cost is not None else None),
        "avg_miles": maybe(total_miles / shipments if total_miles is not None else None),
        "cost_per_mile": maybe(total_cost / total_miles if total_cost is not None and total_miles else None),
        "unique_carriers": summary["distinct"].get("carrier_name", 0),
        "date_range": {
            "earliest": earliest.isoformat() if earliest else None,
            "latest": latest.isoformat() if latest else None,
        },
    }


async def get_hierarchical_data(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    metric = tool_input["metric"]
    group_by = tool_input["group_by"]
    aggregation = tool_input["aggregation"]
    limit = _int(tool_input.get("limit"), ctx.config.hierarchy_limit, maximum=100)

    grouping = await _grouping(ctx, group_by, metric, aggregation, limit)
    groups = grouping["groups"][:limit]
    if not groups:
        return {"metric": metric, "group_by": group_by, "items": [], "message": "No data found"}

    return {
        "metric": metric,
        "group_by": group_by,
        "items": [{"name": g["group"], "value": round2(g["value"])} for g in groups],
        "total": round2(sum(g["value"] for g in groups)),
    }


async def get_daily_activity(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    metric = tool_input["metric"]
    aggregation = tool_input["aggregation"]
    days = period_to_days(tool_input.get("range") or ctx.config.default_range, 90)

    rows = await ctx.store.select_rows(
        ctx.customer_id,
        [DATE_FIELD, metric],
        since=cutoff_date(days, ctx.today),
        order_by=DATE_FIELD,
        limit=ctx.config.row_limit,
    )
    if not rows:
        return {"metric": metric, "days": [], "message": "No data found"}

    grouped = group_rows(rows, lambda r: period_bucket(r.get(DATE_FIELD), "daily"), metric)
    return {
        "metric": metric,
        "aggregation": aggregation,
        "days": [
            {"date": day, "value": round2(group.aggregate(aggregation))}
            for day, group in sorted(grouped.items())
        ],
        **_truncation(rows, ctx.config.row_limit),
    }


async def get_geographic_data(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    metric = tool_input["metric"]
    aggregation = tool_input["aggregation"]
    location_type = tool_input["location_type"]
    state_field = "origin_state" if location_type == "origin" else "destination_state"

    grouping = await _grouping(ctx, state_field, metric, aggregation, ctx.config.geographic_group_limit)
    states = [
        {"state": g["group"].upper(), "value": round2(g["value"])}
        for g in grouping["groups"]
        if g["group"] and len(g["group"]) == 2
    ]
    result = {"metric": metric, "aggregation": aggregation, "location_type": location_type, "states": states}
    if not states:
        result["message"] = "No geographic data found"
    return result


async def get_flow_data(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    metric = tool_input["metric"]
    aggregation = tool_input["aggregation"]
    limit = _int(tool_input.get("limit"), ctx.config.flow_limit, maximum=100)

    rows = await ctx.store.select_rows(
        ctx.customer_id,
        ["origin_state", "destination_state", metric],
        not_null=["origin_state", "destination_state"],
        limit=ctx.config.flow_row_limit,
    )
    if not rows:
        return {"metric": metric, "flows": [], "message": "No flow data found"}

    lanes = group_rows(rows, lambda r: (str(r["origin_state"]), str(r["destination_state"])), metric)
    flows = [
        {
            "origin": origin,
            "destination": destination,
            "value": group.aggregate(aggregation),
            "count": group.row_count,
        }
        for (origin, destination), group in lanes.items()
    ]
    flows.sort(key=lambda f: f["value"], reverse=True)
    return {
        "metric": metric,
        "aggregation": aggregation,
        "flows": [{**f, "value": round2(f["value"])} for f in flows[:limit]],
        "total_lanes": len(flows),
        **_truncation(rows, ctx.config.flow_row_limit),
    }


async def get_multi_metric_comparison(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    group_by = tool_input["group_by"]
    metrics = tool_input["metrics"]
    if isinstance(metrics, str):
        metrics = [m.strip() for m in metrics.split(",") if m.strip()]
    if not isinstance(metrics, list) or not metrics:
        raise ToolExecutionError("metrics must be a non-empty list of field names")
    limit = _int(tool_input.get("limit"), ctx.config.radar_limit, maximum=25)

    values_by_group: Dict[str, Dict[str, float]] = {}
    maxima: Dict[str, float] = {}
    for metric in metrics:
        grouping = await _grouping(ctx, group_by, metric, "sum", limit)
        for g in grouping["groups"]:
            values_by_group.setdefault(g["group"], {})[metric] = g["value"]
        if grouping["groups"]:
            maxima[metric] = max(g["value"] for g in grouping["groups"])

    if not values_by_group:
        return {"group_by": group_by, "metrics": metrics, "comparison": [], "message": "No data found"}

    def score(group: str, metric: str) -> float:
        top = maxima.get(metric) or 0
        value = values_by_group.get(group, {}).get(metric)
        if value is None or top <= 0:
            return 0.0
        return round2(value / top * 100)

    # Focus on the group leading the first metric and score it against every metric's leader
    first = metrics[0]
    focus = max(values_by_group, key=lambda g: values_by_group[g].get(first, float("-inf")))

    comparison = []
    for metric in metrics:
        leader = None
        candidates = [g for g in values_by_group if metric in values_by_group[g]]
        if candidates:
            leader = max(candidates, key=lambda g: values_by_group[g][metric])
        comparison.append({
            "label": metric,
            "value": score(focus, metric),
            "full_mark": 100,
            "leader": leader,
        })

    return {
        "group_by": group_by,
        "metrics": metrics,
        "focus_group": focus,
        "comparison": comparison,
        "scores": {group: {m: score(group, m) for m in metrics} for group in values_by_group},
    }


HANDLERS: Dict[str, Handler] = {
    "explore_field": explore_field,
    "preview_aggregation": preview_aggregation,
    "compare_periods": compare_periods,
    "detect_anomalies": detect_anomalies,
    "investigate_root_cause": investigate_root_cause,
    "get_trend": get_trend,
    "get_summary_stats": get_summary_stats,
    "get_hierarchical_data": get_hierarchical_data,
    "get_daily_activity": get_daily_activity,
    "get_geographic_data": get_geographic_data,
    "get_flow_data": get_flow_data,
    "get_multi_metric_comparison": get_multi_metric_comparison,
}

# Shape returned alongside "error" when a tool fails
EMPTY_RESULTS: Dict[str, Dict[str, Any]] = {
    "explore_field": {"values": []},
    "preview_aggregation": {"groups": []},
    "compare_periods": {"period1": None, "period2": None, "change": None},
    "detect_anomalies": {"anomalies": []},
    "investigate_root_cause": {"breakdown_by_dimension": {}},
    "get_trend": {"trend": []},
    "get_summary_stats": {"stats": {}},
    "get_hierarchical_data": {"items": []},
    "get_daily_activity": {"days": []},
    "get_geographic_data": {"states": []},
    "get_flow_data": {"flows": []},
    "get_multi_metric_comparison": {"comparison": []},
}
