"""Investigation tool definitions exposed to the reasoning backend.

The registry, the executor handlers and the visualization rules are keyed by
the same tool names. Adding a tool means adding an entry here, a handler in
``tool_executor.handlers`` and (optionally) a rule in ``visualization.mapper``,
and bumping ``TOOL_REGISTRY_VERSION``.
"""
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

TOOL_REGISTRY_VERSION = "1.3.0"

AGGREGATIONS_FULL = ["sum", "avg", "count", "countDistinct", "min", "max"]
AGGREGATIONS_BASIC = ["sum", "avg", "count"]


class ToolDefinition(BaseModel):
    """A named, schema-described capability the reasoning backend may invoke."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: Dict[str, Any]

    @property
    def properties(self) -> Dict[str, Any]:
        return self.input_schema.get("properties", {})

    @property
    def required_fields(self) -> List[str]:
        return list(self.input_schema.get("required", []))

    def enum_values(self, field_name: str) -> Optional[List[str]]:
        return self.properties.get(field_name, {}).get("enum")

    def to_backend_schema(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


def _schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


INVESTIGATION_TOOLS: Tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="explore_field",
        description="""Explore a data field to understand its values, distribution and quality.
Returns: unique value count, coverage %, top values with counts, a data quality recommendation.
Required: field_name. Optional: sample_size (default 15).
Use before aggregating to learn what data exists, e.g. "what carriers do we use", "which modes appear in the data".""",
        input_schema=_schema({
            "field_name": {"type": "string", "description": "Field to explore (e.g., 'carrier_name', 'destination_state', 'mode_name')"},
            "sample_size": {"type": "number", "description": "Number of top values to return (default: 15)"},
        }, ["field_name"]),
    ),
    ToolDefinition(
        name="preview_aggregation",
        description="""Get a metric aggregated per group of a dimension, from REAL DATA.
Returns: aggregated value and row count per group. Numeric group fields (miles, total_weight, retail, transit_days) are bucketed into ranges.
Required: group_by, metric, aggregation. Optional: secondary_group_by, limit (default 15), sort (default desc).
Use for "show me X by Y", "spend by carrier", "shipments per mode", "average cost by transit days".""",
        input_schema=_schema({
            "group_by": {"type": "string", "description": "Field to group by (e.g., 'carrier_name', 'origin_state')"},
            "metric": {"type": "string", "description": "Field to aggregate (e.g., 'cost', 'retail', 'miles')"},
            "aggregation": {"type": "string", "enum": AGGREGATIONS_FULL, "description": "Aggregation type"},
            "secondary_group_by": {"type": "string", "description": "Optional second grouping field for breakdown"},
            "limit": {"type": "number", "description": "Max groups to return (default: 15)"},
            "sort": {"type": "string", "enum": ["desc", "asc"], "description": "Sort direction (default: desc)"},
        }, ["group_by", "metric", "aggregation"]),
    ),
    ToolDefinition(
        name="compare_periods",
        description="""Compare a metric across two time periods.
Returns: value and row count for both periods, absolute change and percent change.
Required: metric, aggregation, period1, period2. Optional: group_by.
period1 is the recent window (e.g. 'last30'); period2 reaches further back (e.g. 'last60') and is measured up to the start of period1.
Use for "how has X changed", "compare this month to last month", "is spend up or down".""",
        input_schema=_schema({
            "metric": {"type": "string", "description": "Metric to compare (e.g., 'cost', 'retail')"},
            "aggregation": {"type": "string", "enum": ["sum", "avg", "count", "countDistinct"], "description": "How to aggregate"},
            "period1": {"type": "string", "description": "Current period (e.g., 'last30', 'last7', 'last90')"},
            "period2": {"type": "string", "description": "Previous period to compare against (e.g., 'last60', 'last180')"},
            "group_by": {"type": "string", "description": "Optional grouping for breakdown by dimension"},
        }, ["metric", "aggregation", "period1", "period2"]),
    ),
    ToolDefinition(
        name="detect_anomalies",
        description="""Find outliers: groups whose summed metric deviates strongly from the mean.
Returns: anomalies with z-score style deviation and type (high/low), plus mean, standard deviation and threshold.
Required: metric. Optional: group_by (default carrier_name), sensitivity (high=1.5, medium=2, low=3 standard deviations).
Use for "what's unusual", "any outliers", "find problems", "which carrier stands out".""",
        input_schema=_schema({
            "metric": {"type": "string", "description": "Metric to analyze for anomalies"},
            "group_by": {"type": "string", "description": "Grouping dimension (e.g., find anomalies per carrier)"},
            "sensitivity": {"type": "string", "enum": ["high", "medium", "low"], "description": "Detection sensitivity (high catches more)"},
        }, ["metric"]),
    ),
    ToolDefinition(
        name="investigate_root_cause",
        description="""Root cause breakdown of a metric across several dimensions at once.
Returns: top groups per dimension (carrier, origin state, destination state, mode) and the largest contributor in each.
Required: question, metric. Optional: filters, max_depth (number of dimensions, default 3, max 4).
Use for "why is X happening", "what is driving the increase", diagnostic questions.""",
        input_schema=_schema({
            "question": {"type": "string", "description": "The question to investigate"},
            "metric": {"type": "string", "description": "Primary metric to analyze"},
            "filters": {"type": "object", "description": "Optional filters to narrow scope"},
            "max_depth": {"type": "number", "description": "How many dimensions to analyze (default: 3)"},
        }, ["question", "metric"]),
    ),
    ToolDefinition(
        name="get_trend",
        description="""Get time-series trend data for a metric.
Returns: one data point per day, week or month with its value and row count.
Required: metric, aggregation, period. Optional: range (default 'last90').
Use for "show me the trend", "how has X changed over time", "monthly spend".""",
        input_schema=_schema({
            "metric": {"type": "string", "description": "Metric to trend (e.g., 'cost', 'retail', 'miles')"},
            "aggregation": {"type": "string", "enum": AGGREGATIONS_BASIC, "description": "Aggregation"},
            "period": {"type": "string", "enum": ["daily", "weekly", "monthly"], "description": "Time granularity"},
            "range": {"type": "string", "description": "Time range (e.g., 'last30', 'last90', 'last180')"},
        }, ["metric", "aggregation", "period"]),
    ),
    ToolDefinition(
        name="get_summary_stats",
        description="""Get summary statistics for the customer's shipments.
Returns: total shipments, total spend, total miles, average cost, cost per mile, carrier count, date range.
Required: none. Optional: time_range (default 'last90', 'all' for everything).
Use as a starting point for overview questions and for "how many shipments" style counts.""",
        input_schema=_schema({
            "time_range": {"type": "string", "description": "Time range (e.g., 'last30', 'last90', 'all')"},
        }, []),
    ),
    ToolDefinition(
        name="get_hierarchical_data",
        description="""Get proportional data for treemap visualizations.
Returns: items with their share of a metric across the categories of a dimension.
Required: metric, group_by, aggregation. Optional: limit (default 20).
Use for "treemap of X by Y", "proportion breakdown", "how is X distributed".""",
        input_schema=_schema({
            "metric": {"type": "string", "description": "Metric to visualize (e.g., 'cost', 'retail')"},
            "group_by": {"type": "string", "description": "Primary grouping (e.g., 'carrier_name', 'mode_name')"},
            "aggregation": {"type": "string", "enum": AGGREGATIONS_BASIC, "description": "Aggregation type"},
            "limit": {"type": "number", "description": "Max items to return (default: 20)"},
        }, ["metric", "group_by", "aggregation"]),
    ),
    ToolDefinition(
        name="get_daily_activity",
        description="""Get daily activity data for heatmap/calendar visualizations.
Returns: date-value pairs showing the activity level per day.
Required: metric, aggregation. Optional: range (default 'last90').
Use for "heatmap of daily X", "calendar view", "which days are busiest".""",
        input_schema=_schema({
            "metric": {"type": "string", "description": "Metric to measure (e.g., 'cost', 'retail')"},
            "aggregation": {"type": "string", "enum": AGGREGATIONS_BASIC, "description": "Aggregation type"},
            "range": {"type": "string", "description": "Time range (e.g., 'last90', 'last180')"},
        }, ["metric", "aggregation"]),
    ),
    ToolDefinition(
        name="get_geographic_data",
        description="""Get a metric aggregated by two-letter state code for choropleth maps.
Returns: state codes with metric values.
Required: metric, aggregation, location_type (origin or destination).
Use for "which states have the highest X", "map of spend by destination", regional questions.""",
        input_schema=_schema({
            "metric": {"type": "string", "description": "Metric to map (e.g., 'cost', 'retail')"},
            "aggregation": {"type": "string", "enum": AGGREGATIONS_BASIC, "description": "Aggregation"},
            "location_type": {"type": "string", "enum": ["origin", "destination"], "description": "Use origin or destination state"},
        }, ["metric", "aggregation", "location_type"]),
    ),
    ToolDefinition(
        name="get_flow_data",
        description="""Get origin-destination lane data for flow map visualizations.
Returns: origin/destination state pairs with the aggregated value and shipment count per lane.
Required: metric, aggregation. Optional: limit (default 20).
Use for "top shipping lanes", "busiest routes", "where do shipments flow from and to".""",
        input_schema=_schema({
            "metric": {"type": "string", "description": "Metric to aggregate (e.g., 'cost', 'retail')"},
            "aggregation": {"type": "string", "enum": AGGREGATIONS_BASIC, "description": "Aggregation"},
            "limit": {"type": "number", "description": "Max lanes to return (default: 20)"},
        }, ["metric", "aggregation"]),
    ),
    ToolDefinition(
        name="get_multi_metric_comparison",
        description="""Compare several metrics at once for radar charts.
Returns: per metric a normalized score (0-100) for the leading group and the name of that group.
Required: group_by, metrics (list). Optional: limit (default 5).
Use for "compare carriers across metrics", "how do modes stack up on cost, miles and weight".""",
        input_schema=_schema({
            "group_by": {"type": "string", "description": "What to compare (e.g., 'carrier_name')"},
            "metrics": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of metrics to compare (e.g., ['cost', 'miles', 'retail'])",
            },
            "limit": {"type": "number", "description": "Max items to compare (default: 5)"},
        }, ["group_by", "metrics"]),
    ),
)


class ToolRegistry:
    """Read-only lookup over the investigation tools."""

    def __init__(self, tools: Tuple[ToolDefinition, ...] = INVESTIGATION_TOOLS, version: str = TOOL_REGISTRY_VERSION):
        self.version = version
        self._tools: Dict[str, ToolDefinition] = {tool.name: tool for tool in tools}
        if len(self._tools) != len(tools):
            raise ValueError("Duplicate tool names in registry")

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def backend_schemas(self) -> List[Dict[str, Any]]:
        return [tool.to_backend_schema() for tool in self._tools.values()]


_default_registry = ToolRegistry()


def default_registry() -> ToolRegistry:
    return _default_registry
