"""Maps tool results onto visualization descriptors."""
import uuid
from typing import Any, Callable, Dict, List, Optional

import structlog

from visualization.formatting import determine_format, format_value, humanize_metric_name
from visualization.models import (
    BarVisualization,
    ChoroplethData,
    ChoroplethVisualization,
    FlowmapData,
    FlowmapVisualization,
    HeatmapData,
    HeatmapVisualization,
    LineVisualization,
    PieVisualization,
    RadarData,
    RadarVisualization,
    SeriesData,
    StatData,
    StatVisualization,
    TreemapData,
    TreemapVisualization,
    Visualization,
)

logger = structlog.get_logger()

MAX_BAR_GROUPS = 10
MAX_PIE_SLICES = 10

Rule = Callable[[Dict[str, Any], Dict[str, Any], str], Optional[Visualization]]


def _r2(value: Any) -> float:
    return round(float(value or 0), 2)


def _rows(result: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    rows = result.get(key)
    return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []


def _bar(viz_id: str, title: str, rows: List[Dict[str, Any]], metric: str,
         config: Dict[str, Any], subtitle: Optional[str] = None) -> BarVisualization:
    return BarVisualization(
        id=viz_id,
        title=title,
        subtitle=subtitle,
        data=SeriesData(
            data=[
                {"label": str(r.get("group") or "Unknown"), "value": _r2(r.get("value"))}
                for r in rows[:MAX_BAR_GROUPS]
            ],
            format=determine_format(metric),
        ),
        config=config,
    )


def preview_aggregation_rule(tool_input, result, viz_id):
    groups = _rows(result, "groups")
    if not groups:
        return None
    metric = result.get("metric") or tool_input.get("metric", "")
    group_by = result.get("group_by") or tool_input.get("group_by", "")
    return _bar(
        viz_id,
        f"{humanize_metric_name(metric)} by {humanize_metric_name(group_by)}",
        groups,
        metric,
        {"metric": metric, "group_by": group_by, "aggregation": tool_input.get("aggregation")},
    )


def get_trend_rule(tool_input, result, viz_id):
    trend = _rows(result, "trend")
    if not trend:
        return None
    metric = tool_input.get("metric", "")
    return LineVisualization(
        id=viz_id,
        title=f"{humanize_metric_name(metric)} Over Time",
        data=SeriesData(
            data=[{"label": str(t.get("period")), "value": _r2(t.get("value"))} for t in trend],
            format=determine_format(metric),
        ),
        config={"metric": metric, "period": tool_input.get("period")},
    )


def compare_periods_rule(tool_input, result, viz_id):
    period1, period2, change = result.get("period1"), result.get("period2"), result.get("change")
    if not (isinstance(period1, dict) and isinstance(period2, dict) and isinstance(change, dict)):
        return None
    metric = tool_input.get("metric", "")
    value_format = determine_format(metric)
    change_percent = round(float(change.get("percent") or 0), 1)
    if change_percent > 0:
        direction = "up"
    elif change_percent < 0:
        direction = "down"
    else:
        direction = "neutral"
    return StatVisualization(
        id=viz_id,
        title=humanize_metric_name(metric),
        subtitle=f"{format_value(_r2(period2.get('value')), value_format)} in {period2.get('label')}",
        data=StatData(
            value=_r2(period1.get("value")),
            format=value_format,
            comparison={"value": change_percent, "label": f"vs {period2.get('label')}", "direction": direction},
        ),
        config={"metric": metric},
    )


def explore_field_rule(tool_input, result, viz_id):
    values = _rows(result, "values")
    # A pie with more slices than this is unreadable
    if not values or len(values) > MAX_PIE_SLICES:
        return None
    field_name = tool_input.get("field_name", "")
    return PieVisualization(
        id=viz_id,
        title=f"{humanize_metric_name(field_name)} Distribution",
        data=SeriesData(
            data=[{"label": str(v.get("value") or "Unknown"), "value": _r2(v.get("count"))} for v in values],
            format="number",
        ),
        config={"field": field_name},
    )


def get_summary_stats_rule(tool_input, result, viz_id):
    total_cost = result.get("total_cost")
    if total_cost is None:
        return None
    shipments = result.get("total_shipments")
    return StatVisualization(
        id=viz_id,
        title="Total Spend",
        subtitle=f"Across {format_value(shipments, 'number')} shipments" if shipments else None,
        data=StatData(value=_r2(total_cost), format="currency"),
        config={"time_range": result.get("time_range")},
    )


def get_hierarchical_data_rule(tool_input, result, viz_id):
    items = _rows(result, "items")
    if not items:
        return None
    metric = tool_input.get("metric", "")
    group_by = tool_input.get("group_by", "")
    return TreemapVisualization(
        id=viz_id,
        title=f"{humanize_metric_name(metric)} by {humanize_metric_name(group_by)}",
        subtitle="Size represents proportion of total",
        data=TreemapData(
            data=[{"name": str(i.get("name") or "Unknown"), "value": _r2(i.get("value"))} for i in items],
            format=determine_format(metric),
        ),
        config={"metric": metric, "group_by": group_by},
    )


def get_daily_activity_rule(tool_input, result, viz_id):
    days = _rows(result, "days")
    if not days:
        return None
    metric = tool_input.get("metric", "")
    return HeatmapVisualization(
        id=viz_id,
        title=f"Daily {humanize_metric_name(metric)} Activity",
        data=HeatmapData(
            data=[{"date": str(d.get("date")), "value": _r2(d.get("value"))} for d in days],
            value_label=humanize_metric_name(metric),
        ),
        config={"metric": metric},
    )


def get_geographic_data_rule(tool_input, result, viz_id):
    states = _rows(result, "states")
    if not states:
        return None
    metric = tool_input.get("metric", "")
    location_type = tool_input.get("location_type", "destination")
    side = "Origin" if location_type == "origin" else "Destination"
    return ChoroplethVisualization(
        id=viz_id,
        title=f"{humanize_metric_name(metric)} by {side} State",
        subtitle=humanize_metric_name(metric),
        data=ChoroplethData(
            data=[{"state": str(s.get("state")), "value": _r2(s.get("value"))} for s in states],
            format=determine_format(metric),
        ),
        config={"metric": metric, "location_type": location_type},
    )


def get_flow_data_rule(tool_input, result, viz_id):
    flows = _rows(result, "flows")
    if not flows:
        return None
    metric = tool_input.get("metric", "")
    return FlowmapVisualization(
        id=viz_id,
        title="Top Shipping Lanes",
        subtitle=f"By {humanize_metric_name(metric)}",
        data=FlowmapData(
            data=[
                {"origin": str(f.get("origin")), "destination": str(f.get("destination")), "value": _r2(f.get("value"))}
                for f in flows
            ],
            format=determine_format(metric),
        ),
        config={"metric": metric},
    )


def get_multi_metric_comparison_rule(tool_input, result, viz_id):
    comparison = _rows(result, "comparison")
    if not comparison:
        return None
    group_by = tool_input.get("group_by", "")
    focus = result.get("focus_group")
    return RadarVisualization(
        id=viz_id,
        title=f"{humanize_metric_name(group_by)} Performance Comparison",
        subtitle=f"Normalized scores for {focus}" if focus else "Normalized scores across metrics",
        data=RadarData(
            data=[
                {
                    "label": humanize_metric_name(str(c.get("label"))),
                    "value": _r2(c.get("value")),
                    "full_mark": c.get("full_mark") or 100,
                }
                for c in comparison
            ],
            value_label="Score (0-100)",
        ),
        config={"group_by": group_by, "metrics": result.get("metrics")},
    )


def detect_anomalies_rule(tool_input, result, viz_id):
    anomalies = _rows(result, "anomalies")
    if not anomalies:
        return None
    metric = result.get("metric") or tool_input.get("metric", "")
    group_by = result.get("group_by") or tool_input.get("group_by") or "carrier_name"
    threshold = (result.get("stats") or {}).get("threshold")
    return _bar(
        viz_id,
        f"{humanize_metric_name(metric)} Anomalies by {humanize_metric_name(group_by)}",
        anomalies,
        metric,
        {"metric": metric, "group_by": group_by},
        subtitle=f"More than {threshold} standard deviations from the mean" if threshold else None,
    )


def investigate_root_cause_rule(tool_input, result, viz_id):
    breakdown = result.get("breakdown_by_dimension")
    if not isinstance(breakdown, dict):
        return None
    metric = result.get("metric") or tool_input.get("metric", "")
    for dimension, groups in breakdown.items():
        rows = [g for g in groups if isinstance(g, dict)] if isinstance(groups, list) else []
        if rows:
            return _bar(
                viz_id,
                f"{humanize_metric_name(metric)} by {humanize_metric_name(dimension)}",
                rows,
                metric,
                {"metric": metric, "group_by": dimension},
                subtitle="Largest contributors",
            )
    return None


RULES: Dict[str, Rule] = {
    "preview_aggregation": preview_aggregation_rule,
    "get_trend": get_trend_rule,
    "compare_periods": compare_periods_rule,
    "explore_field": explore_field_rule,
    "get_summary_stats": get_summary_stats_rule,
    "get_hierarchical_data": get_hierarchical_data_rule,
    "get_daily_activity": get_daily_activity_rule,
    "get_geographic_data": get_geographic_data_rule,
    "get_flow_data": get_flow_data_rule,
    "get_multi_metric_comparison": get_multi_metric_comparison_rule,
    "detect_anomalies": detect_anomalies_rule,
    "investigate_root_cause": investigate_root_cause_rule,
}


class VisualizationMapper:
    """Turns a tool result into zero or one visualization."""

    def __init__(self, rules: Optional[Dict[str, Rule]] = None, id_factory: Optional[Callable[[], str]] = None):
        self.rules = rules if rules is not None else RULES
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def map(self, tool_name: str, tool_input: Optional[Dict[str, Any]], tool_result: Any) -> Optional[Visualization]:
        rule = self.rules.get(tool_name)
        if rule is None or not isinstance(tool_result, dict) or "error" in tool_result:
            return None
        try:
            return rule(tool_input or {}, tool_result, self.id_factory())
        except (TypeError, ValueError, AttributeError) as e:
            # pydantic's ValidationError is a ValueError
            logger.warning("Could not build visualization", tool=tool_name, error=str(e))
            return None
