from datetime import date

import pytest

from conftest import FakeStore
from shared.exceptions import DataStoreError
from tool_executor.config import ToolExecutorConfig
from tool_executor.handlers import EMPTY_RESULTS, HANDLERS
from tool_registry.definitions import default_registry

CARRIER_GROUPS = {
    "results": [
        {"name": "FedEx", "value": 5000.4567, "count": 40},
        {"name": "UPS", "value": 3000.0, "count": 25},
        {"name": "XPO", "value": 1500.0, "count": 12},
        {"name": "Estes", "value": 900.0, "count": 8},
        {"name": "Saia", "value": 600.0, "count": 5},
    ]
}


def test_every_registered_tool_has_a_handler_and_empty_shape():
    names = set(default_registry().names())

    assert names == set(HANDLERS) == set(EMPTY_RESULTS)


@pytest.mark.asyncio
async def test_unknown_tool(make_executor):
    executor = make_executor(FakeStore())

    result = await executor.execute("drop_tables", {})

    assert result == {"error": "Unknown tool: drop_tables"}


@pytest.mark.asyncio
async def test_missing_required_input(make_executor):
    store = FakeStore()
    executor = make_executor(store)

    result = await executor.execute("preview_aggregation", {"group_by": "carrier_name"})

    assert "metric" in result["error"]
    assert result["groups"] == []
    assert store.rpc_calls == []


@pytest.mark.asyncio
async def test_invalid_enum_value(make_executor):
    executor = make_executor(FakeStore())

    result = await executor.execute("get_trend", {"metric": "cost", "aggregation": "sum", "period": "hourly"})

    assert "period" in result["error"]
    assert result["trend"] == []


@pytest.mark.asyncio
async def test_store_error_becomes_error_result(make_executor):
    """A failing store call never escapes the executor"""
    executor = make_executor(FakeStore(rpc_error=DataStoreError("relation does not exist")))

    result = await executor.execute(
        "preview_aggregation",
        {"group_by": "carrier_name", "metric": "cost", "aggregation": "sum"}
    )

    assert result == {"error": "relation does not exist", "groups": []}


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_error_result(make_executor):
    executor = make_executor(FakeStore(rows_error=RuntimeError("boom")))

    result = await executor.execute("get_summary_stats", {})

    assert result == {"error": "boom", "stats": {}}


@pytest.mark.asyncio
async def test_preview_aggregation(make_executor):
    store = FakeStore(rpc_results={"preview_grouping": CARRIER_GROUPS})
    executor = make_executor(store)

    result = await executor.execute(
        "preview_aggregation",
        {"group_by": "carrier_name", "metric": "cost", "aggregation": "sum", "limit": 3}
    )

    assert result["is_bucketed"] is False
    assert [g["group"] for g in result["groups"]] == ["FedEx", "UPS", "XPO"]
    assert result["groups"][0]["value"] == 5000.46
    assert result["total_groups"] == 5
    name, params = store.rpc_calls[0]
    assert name == "preview_grouping"
    assert params["p_customer_id"] == "42"
    assert params["p_limit"] == 3


@pytest.mark.asyncio
async def test_preview_aggregation_ascending(make_executor):
    executor = make_executor(FakeStore(rpc_results={"preview_grouping": CARRIER_GROUPS}))

    result = await executor.execute(
        "preview_aggregation",
        {"group_by": "carrier_name", "metric": "cost", "aggregation": "sum", "sort": "asc"}
    )

    assert [g["group"] for g in result["groups"]][:2] == ["Saia", "Estes"]


@pytest.mark.asyncio
async def test_preview_aggregation_buckets_numeric_fields(make_executor):
    store = FakeStore(rows=[
        {"transit_days": 1, "cost": 100, "created_date": "2026-10-01"},
        {"transit_days": 3, "cost": 300, "created_date": "2026-10-02"},
        {"transit_days": 3, "cost": 500, "created_date": "2026-10-03"},
        {"transit_days": 12, "cost": 900, "created_date": "2026-10-04"},
    ])
    executor = make_executor(store)

    result = await executor.execute(
        "preview_aggregation",
        {"group_by": "transit_days", "metric": "cost", "aggregation": "avg"}
    )

    assert result["is_bucketed"] is True
    assert result["groups"] == [
        {"group": "0-1 days", "value": 100.0, "count": 1},
        {"group": "2-3 days", "value": 400.0, "count": 2},
        {"group": "10+ days", "value": 900.0, "count": 1},
    ]
    assert store.rpc_calls == []


@pytest.mark.asyncio
async def test_compare_periods(make_executor):
    store = FakeStore(rows=[
        {"cost": 100, "created_date": "2026-10-01"},
        {"cost": 100, "created_date": "2026-10-10"},
        {"cost": 100, "created_date": "2026-09-01"},
        {"cost": 999, "created_date": "2026-07-01"},
    ])
    executor = make_executor(store)

    result = await executor.execute(
        "compare_periods",
        {"metric": "cost", "aggregation": "sum", "period1": "last30", "period2": "last60"}
    )

    assert result["period1"] == {"label": "last30", "value": 200.0, "count": 2}
    assert result["period2"] == {"label": "last60", "value": 100.0, "count": 1}
    assert result["change"] == {"absolute": 100.0, "percent": 100.0}
    assert store.select_calls[0]["since"] == date(2026, 9, 18)
    assert store.select_calls[1]["until"] == date(2026, 9, 18)


@pytest.mark.asyncio
async def test_compare_periods_with_empty_baseline(make_executor):
    executor = make_executor(FakeStore(rows=[{"cost": 50, "created_date": "2026-10-01"}]))

    result = await executor.execute(
        "compare_periods",
        {"metric": "cost", "aggregation": "sum", "period1": "last30", "period2": "last60"}
    )

    assert result["change"]["percent"] == 0.0


@pytest.mark.asyncio
async def test_detect_anomalies_needs_three_groups(make_executor):
    store = FakeStore(rpc_results={"preview_grouping": {"results": CARRIER_GROUPS["results"][:2]}})
    executor = make_executor(store)

    result = await executor.execute("detect_anomalies", {"metric": "cost"})

    assert result["anomalies"] == []
    assert result["message"] == "Not enough data for anomaly detection"
    assert store.rpc_calls[0][1]["p_group_by"] == "carrier_name"
    assert store.rpc_calls[0][1]["p_limit"] == 50


@pytest.mark.asyncio
async def test_detect_anomalies_sensitivity(make_executor):
    groups = {"results": [
        {"name": "A", "value": 10, "count": 1},
        {"name": "B", "value": 10, "count": 1},
        {"name": "C", "value": 10, "count": 1},
        {"name": "D", "value": 40, "count": 1},
    ]}
    executor = make_executor(FakeStore(rpc_results={"preview_grouping": groups}))

    high = await executor.execute("detect_anomalies", {"metric": "cost", "sensitivity": "high"})
    medium = await executor.execute("detect_anomalies", {"metric": "cost"})

    assert [a["group"] for a in high["anomalies"]] == ["D"]
    assert medium["anomalies"] == []
    assert high["stats"]["threshold"] == 1.5


@pytest.mark.asyncio
async def test_investigate_root_cause(make_executor):
    store = FakeStore(rpc_results={"preview_grouping": CARRIER_GROUPS})
    executor = make_executor(store)

    result = await executor.execute(
        "investigate_root_cause",
        {"question": "Why is cost up?", "metric": "cost", "max_depth": 2}
    )

    assert list(result["breakdown_by_dimension"]) == ["carrier_name", "origin_state"]
    top = result["top_contributors"]["carrier_name"]
    assert top["group"] == "FedEx"
    assert top["share_percent"] == 45.46
    assert [call[1]["p_group_by"] for call in store.rpc_calls] == ["carrier_name", "origin_state"]


@pytest.mark.asyncio
async def test_investigate_root_cause_all_dimensions_failing(make_executor):
    executor = make_executor(FakeStore(rpc_error=DataStoreError("timeout")))

    result = await executor.execute("investigate_root_cause", {"question": "Why?", "metric": "cost"})

    assert result == {"error": "timeout", "breakdown_by_dimension": {}}


@pytest.mark.asyncio
async def test_get_trend_monthly(make_executor):
    store = FakeStore(rows=[
        {"cost": 100, "created_date": "2026-08-05"},
        {"cost": 50, "created_date": "2026-08-20"},
        {"cost": 25.25, "created_date": "2026-09-02"},
        {"cost": 10, "created_date": "2025-01-01"},
    ])
    executor = make_executor(store)

    result = await executor.execute("get_trend", {"metric": "cost", "aggregation": "sum", "period": "monthly"})

    assert result["trend"] == [
        {"period": "2026-08", "value": 150.0, "count": 2},
        {"period": "2026-09", "value": 25.25, "count": 1},
    ]
    assert store.select_calls[0]["order_by"] == "created_date"


@pytest.mark.asyncio
async def test_get_trend_without_rows(make_executor):
    executor = make_executor(FakeStore())

    result = await executor.execute("get_trend", {"metric": "cost", "aggregation": "sum", "period": "daily"})

    assert result["trend"] == []
    assert "message" in result


@pytest.mark.asyncio
async def test_summary_stats_with_missing_costs(make_executor):
    rows = [{"cost": None, "retail": None, "miles": 100, "carrier_name": "UPS", "created_date": "2026-10-01"}] * 3
    executor = make_executor(FakeStore(rows=rows))

    result = await executor.execute("get_summary_stats", {"time_range": "last30"})

    assert result["total_shipments"] == 3
    assert result["total_cost"] is None
    assert result["avg_cost"] is None
    assert result["cost_per_mile"] is None
    assert result["total_miles"] == 300.0
    assert result["unique_carriers"] == 1
    assert result["date_range"] == {"earliest": "2026-10-01", "latest": "2026-10-01"}


@pytest.mark.asyncio
async def test_summary_stats(make_executor):
    rows = [
        {"cost": 300, "retail": 400, "miles": 100, "carrier_name": "UPS", "created_date": "2026-10-01"},
        {"cost": 100, "retail": 200, "miles": 300, "carrier_name": "FedEx", "created_date": "2026-09-25"},
    ]
    executor = make_executor(FakeStore(rows=rows))

    result = await executor.execute("get_summary_stats", {})

    assert result["total_cost"] == 400.0
    assert result["avg_cost"] == 200.0
    assert result["cost_per_mile"] == 1.0
    assert result["unique_carriers"] == 2
    assert result["date_range"]["earliest"] == "2026-09-25"


@pytest.mark.asyncio
async def test_summary_stats_without_rows(make_executor):
    executor = make_executor(FakeStore())

    result = await executor.execute("get_summary_stats", {"time_range": "all"})

    assert result["stats"] == {}
    assert result["message"] == "No shipments found"


@pytest.mark.asyncio
async def test_hierarchical_data(make_executor):
    executor = make_executor(FakeStore(rpc_results={"preview_grouping": CARRIER_GROUPS}))

    result = await executor.execute(
        "get_hierarchical_data",
        {"metric": "cost", "group_by": "carrier_name", "aggregation": "sum"}
    )

    assert len(result["items"]) == 5
    assert result["items"][0] == {"name": "FedEx", "value": 5000.46}
    assert result["total"] == 11000.46


@pytest.mark.asyncio
async def test_daily_activity(make_executor):
    executor = make_executor(FakeStore(rows=[
        {"cost": 10, "created_date": "2026-10-01"},
        {"cost": 5, "created_date": "2026-10-01"},
        {"cost": 7, "created_date": "2026-10-02"},
    ]))

    result = await executor.execute("get_daily_activity", {"metric": "cost", "aggregation": "count"})

    assert result["days"] == [{"date": "2026-10-01", "value": 2.0}, {"date": "2026-10-02", "value": 1.0}]


@pytest.mark.asyncio
async def test_geographic_data_keeps_state_codes(make_executor):
    store = FakeStore(rpc_results={"preview_grouping": {"results": [
        {"name": "tx", "value": 10, "count": 1},
        {"name": "California", "value": 8, "count": 1},
        {"name": "CA", "value": 6, "count": 1},
    ]}})
    executor = make_executor(store)

    result = await executor.execute(
        "get_geographic_data",
        {"metric": "cost", "aggregation": "sum", "location_type": "origin"}
    )

    assert result["states"] == [{"state": "TX", "value": 10.0}, {"state": "CA", "value": 6.0}]
    assert store.rpc_calls[0][1]["p_group_by"] == "origin_state"


@pytest.mark.asyncio
async def test_flow_data(make_executor):
    store = FakeStore(rows=[
        {"origin_state": "TX", "destination_state": "CA", "cost": 100, "created_date": "2026-10-01"},
        {"origin_state": "TX", "destination_state": "CA", "cost": 150, "created_date": "2026-10-02"},
        {"origin_state": "IL", "destination_state": "NY", "cost": 400, "created_date": "2026-10-03"},
        {"origin_state": None, "destination_state": "NY", "cost": 999, "created_date": "2026-10-03"},
    ])
    executor = make_executor(store)

    result = await executor.execute("get_flow_data", {"metric": "cost", "aggregation": "sum", "limit": 5})

    assert result["flows"] == [
        {"origin": "IL", "destination": "NY", "value": 400.0, "count": 1},
        {"origin": "TX", "destination": "CA", "value": 250.0, "count": 2},
    ]
    assert store.select_calls[0]["limit"] == 5000


@pytest.mark.asyncio
async def test_multi_metric_comparison(make_executor):
    by_metric = {
        "cost": {"results": [{"name": "FedEx", "value": 200, "count": 1}, {"name": "UPS", "value": 100, "count": 1}]},
        "miles": {"results": [{"name": "FedEx", "value": 50, "count": 1}, {"name": "UPS", "value": 100, "count": 1}]},
    }
    executor = make_executor(FakeStore(rpc_results={"preview_grouping": lambda p: by_metric[p["p_metric"]]}))

    result = await executor.execute(
        "get_multi_metric_comparison",
        {"group_by": "carrier_name", "metrics": ["cost", "miles"]}
    )

    assert result["focus_group"] == "FedEx"
    assert result["comparison"] == [
        {"label": "cost", "value": 100.0, "full_mark": 100, "leader": "FedEx"},
        {"label": "miles", "value": 50.0, "full_mark": 100, "leader": "UPS"},
    ]
    assert result["scores"]["UPS"] == {"cost": 50.0, "miles": 100.0}


@pytest.mark.asyncio
async def test_multi_metric_comparison_rejects_empty_metrics(make_executor):
    executor = make_executor(FakeStore())

    result = await executor.execute("get_multi_metric_comparison", {"group_by": "carrier_name", "metrics": []})

    assert result["comparison"] == []
    assert "error" in result


@pytest.mark.asyncio
async def test_explore_field(make_executor):
    store = FakeStore(rpc_results={"explore_single_field": {
        "total_count": 100,
        "populated_count": 25,
        "values": [{"value": "LTL", "count": 20}, {"value": "FTL", "count": 5}],
    }})
    executor = make_executor(store)

    result = await executor.execute("explore_field", {"field_name": "mode_name"})

    assert result["coverage_percent"] == 25.0
    assert result["recommendation"].startswith("Warning")
    assert store.rpc_calls[0][1]["p_sample_size"] == 15


@pytest.mark.asyncio
async def test_summary_stats_counts_beyond_row_limit(make_executor):
    rows = [
        {"cost": 10, "retail": 12, "miles": 5, "carrier_name": f"C{i % 3}", "created_date": "2026-10-01"}
        for i in range(12)
    ]
    store = FakeStore(rows=rows)
    executor = make_executor(store, config=ToolExecutorConfig(row_limit=10))

    result = await executor.execute("get_summary_stats", {"time_range": "last30"})

    assert result["total_shipments"] == 12
    assert result["total_cost"] == 120.0
    assert result["unique_carriers"] == 3
    assert store.select_calls == []
    assert store.summary_calls[0]["since"] == date(2026, 9, 18)


@pytest.mark.asyncio
async def test_row_based_tools_flag_truncated_reads(make_executor):
    rows = [{"cost": 10, "created_date": f"2026-10-{day:02d}"} for day in range(1, 13)]
    executor = make_executor(FakeStore(rows=rows), config=ToolExecutorConfig(row_limit=10))

    trend = await executor.execute("get_trend", {"metric": "cost", "aggregation": "sum", "period": "monthly"})
    daily = await executor.execute("get_daily_activity", {"metric": "cost", "aggregation": "sum"})

    assert trend["truncated"] is True
    assert trend["row_limit"] == 10
    assert trend["trend"] == [{"period": "2026-10", "value": 100.0, "count": 10}]
    assert daily["truncated"] is True
    assert len(daily["days"]) == 10


@pytest.mark.asyncio
async def test_complete_reads_are_not_flagged(make_executor):
    executor = make_executor(FakeStore(rows=[{"cost": 10, "created_date": "2026-10-01"}]))

    result = await executor.execute("get_trend", {"metric": "cost", "aggregation": "sum", "period": "monthly"})

    assert "truncated" not in result


@pytest.mark.asyncio
async def test_null_metrics_do_not_drag_down_averages(make_executor):
    rows = [
        {"cost": 100, "created_date": "2026-10-05", "origin_state": "TX", "destination_state": "CA"},
        {"cost": None, "created_date": "2026-10-05", "origin_state": "TX", "destination_state": "CA"},
    ]
    executor = make_executor(FakeStore(rows=rows))

    trend = await executor.execute("get_trend", {"metric": "cost", "aggregation": "avg", "period": "monthly"})
    daily = await executor.execute("get_daily_activity", {"metric": "cost", "aggregation": "avg"})
    flows = await executor.execute("get_flow_data", {"metric": "cost", "aggregation": "avg"})
    compared = await executor.execute(
        "compare_periods",
        {"metric": "cost", "aggregation": "avg", "period1": "last30", "period2": "last60"}
    )

    assert trend["trend"] == [{"period": "2026-10", "value": 100.0, "count": 2}]
    assert daily["days"] == [{"date": "2026-10-05", "value": 100.0}]
    assert flows["flows"][0]["value"] == 100.0
    assert flows["flows"][0]["count"] == 2
    assert compared["period1"]["value"] == trend["trend"][0]["value"]


@pytest.mark.asyncio
async def test_count_includes_rows_with_null_metric(make_executor):
    rows = [
        {"cost": 100, "created_date": "2026-10-05"},
        {"cost": None, "created_date": "2026-10-05"},
    ]
    executor = make_executor(FakeStore(rows=rows))

    daily = await executor.execute("get_daily_activity", {"metric": "cost", "aggregation": "count"})

    assert daily["days"] == [{"date": "2026-10-05", "value": 2.0}]
